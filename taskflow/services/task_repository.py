"""Task store used by the recurring task engine and the CRUD service."""
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import delete, exists, func, or_, update
from sqlmodel import Session, select

from taskflow.models.task import Task
from taskflow.services.recurrence import RecurrenceKind


class TaskRepository:
    """Narrow persistence interface over a SQLModel session.

    Writes are flushed but not committed; the caller owns the transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_for_user(self, task_id: int, user_id: str) -> Optional[Task]:
        """Get a task by ID, ensuring user ownership."""
        statement = select(Task).where(Task.id == task_id, Task.user_id == user_id)
        return self.session.exec(statement).first()

    def find_eligible_parents(self, today: datetime, include_archived: bool = True) -> List[Task]:
        """
        Recurring templates that still owe instances.

        Active (not completed), non-instance, recurring tasks whose watermark
        is missing or earlier than the start of today, across all users.
        """
        statement = select(Task).where(
            Task.recurrence != RecurrenceKind.NONE.value,
            Task.is_instance == False,  # noqa: E712
            Task.completed == False,  # noqa: E712
            or_(Task.last_generated_date.is_(None), Task.last_generated_date < today),
        )
        if not include_archived:
            statement = statement.where(Task.is_archived == False)  # noqa: E712
        statement = statement.order_by(Task.id)
        return list(self.session.exec(statement).all())

    def insert_task(self, task: Task) -> Task:
        """Add a new task record."""
        self.session.add(task)
        self.session.flush()
        return task

    def update_task(self, task: Task) -> Task:
        """Persist changes to an existing task record."""
        task.updated_at = datetime.utcnow()
        self.session.add(task)
        self.session.flush()
        return task

    def advance_watermark(self, task_id: int, expected: Optional[datetime], new: datetime) -> bool:
        """
        Compare-and-set the generation watermark of a recurring template.

        The row only changes while its stored watermark still equals
        ``expected``. Returns True if this caller won the update.
        """
        if expected is None:
            condition = Task.last_generated_date.is_(None)
        else:
            condition = Task.last_generated_date == expected

        statement = (
            update(Task)
            .where(Task.id == task_id, condition)
            .values(last_generated_date=new, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.connection().execute(statement)
        return result.rowcount == 1

    def delete_tasks_by_parent(self, parent_id: int, user_id: str) -> int:
        """Delete all instances generated from a template. Returns the number deleted."""
        statement = delete(Task).where(
            Task.parent_id == parent_id,
            Task.user_id == user_id,
            Task.is_instance == True,  # noqa: E712
        )
        result = self.session.connection().execute(statement)
        return result.rowcount or 0

    def tag_matches(self, predicate) -> Any:
        """
        EXISTS clause that holds when any single tag of the task satisfies ``predicate``.

        Tags are unpacked from the JSON array server side, so matching sees the
        decoded strings rather than their JSON text.
        """
        if self.session.get_bind().dialect.name == "postgresql":
            elements = func.json_array_elements_text(Task.tags).table_valued("value")
        else:
            elements = func.json_each(Task.tags).table_valued("value")
        return exists().select_from(elements).where(predicate(elements.c.value))

    def list_instances(self, parent_id: int, user_id: str) -> List[Task]:
        """Instances generated from a template, oldest occurrence first."""
        statement = (
            select(Task)
            .where(Task.parent_id == parent_id, Task.user_id == user_id, Task.is_instance == True)  # noqa: E712
            .order_by(Task.due_date.asc(), Task.id.asc())
        )
        return list(self.session.exec(statement).all())
