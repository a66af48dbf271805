"""Task service for CRUD operations on tasks and recurring templates."""
from sqlmodel import Session, select
from sqlalchemy import or_
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta
import logging

from taskflow.config import RECURRENCE_TIMEZONE
from taskflow.models.task import Task
from taskflow.services.recurrence import RecurrenceKind, current_day, local_to_utc, start_of_day, to_naive_utc
from taskflow.services.recurrence_validator import RecurrenceValidator
from taskflow.services.task_repository import TaskRepository

logger = logging.getLogger(__name__)

PRIORITIES = ["high", "medium", "low"]


class TaskValidationError(ValueError):
    """Raised when task input breaks a business rule."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class TaskService:
    """Service class for task CRUD operations with priorities, due dates, tags, subtasks and recurrence."""

    def __init__(self, session: Session, today: Optional[datetime] = None, timezone: str = RECURRENCE_TIMEZONE):
        self.session = session
        self.repository = TaskRepository(session)
        self.timezone = timezone
        self._today = today

    @property
    def today(self) -> datetime:
        """Start of the current calendar day in the service timezone."""
        return start_of_day(self._today) if self._today else current_day(self.timezone)

    def _utc(self, local: datetime) -> datetime:
        # Day boundaries are local; stored timestamps are naive UTC
        return local_to_utc(local, self.timezone)

    @staticmethod
    def _validate(data: Dict[str, Any]) -> None:
        errors: List[str] = []
        for result in (
            RecurrenceValidator.validate_task_with_recurrence(data),
            RecurrenceValidator.validate_tags(data.get("tags")),
        ):
            errors.extend(result["errors"])
            for warning in result["warnings"]:
                logger.debug("Task validation warning: %s", warning)
        if data.get("priority") is not None and data["priority"] not in PRIORITIES:
            errors.append(f"Priority must be one of: high, medium, low, got: {data['priority']}")
        if errors:
            raise TaskValidationError(errors)

    @staticmethod
    def _subtasks(subtasks: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        return [
            {"title": subtask.get("title", ""), "completed": bool(subtask.get("completed", False))}
            for subtask in (subtasks or [])
        ]

    @staticmethod
    def _details(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return {key: value for key, value in (details or {}).items() if value is not None}

    @staticmethod
    def _set_completed(task: Task, completed: bool) -> None:
        if completed and not task.completed:
            task.completed_at = datetime.utcnow()
        elif not completed:
            task.completed_at = None
        task.completed = completed

    def create(self, user_id: str, data: Dict[str, Any]) -> Task:
        """Create a new task. Recurring templates start without a watermark."""
        self._validate(data)
        recurrence = data.get("recurrence") or RecurrenceKind.NONE.value

        task = Task(
            user_id=user_id,
            title=data["title"],
            description=data.get("description"),
            priority=data.get("priority") or "medium",
            due_date=to_naive_utc(data.get("due_date")),
            reminder_time=to_naive_utc(data.get("reminder_time")),
            tags=list(data.get("tags") or []),
            subtasks=self._subtasks(data.get("subtasks")),
            recurrence=recurrence,
            recurrence_details=self._details(data.get("recurrence_details")) if recurrence != "none" else {},
            last_generated_date=None,
            is_archived=bool(data.get("is_archived", False)),
            pinned=bool(data.get("pinned", False)),
        )
        self._set_completed(task, bool(data.get("completed", False)))

        self.repository.insert_task(task)
        self.session.commit()
        self.session.refresh(task)
        logger.info("Created task %s for user %s (recurrence=%s)", task.id, user_id, recurrence)
        return task

    def list_tasks(
        self,
        user_id: str,
        search: Optional[str] = None,
        filter_type: Optional[str] = None,
        priority: Optional[str] = None,
        tag: Optional[str] = None,
        date_filter: Optional[str] = None,
        archived: bool = False,
    ) -> List[Task]:
        """Get a user's tasks with filtering, in display order."""
        statement = select(Task).where(Task.user_id == user_id, Task.is_archived == archived)

        if search:
            pattern = f"%{search}%"
            statement = statement.where(
                or_(
                    Task.title.ilike(pattern),
                    Task.description.ilike(pattern),
                    self.repository.tag_matches(lambda value: value.ilike(pattern)),
                )
            )

        if filter_type == "completed":
            statement = statement.where(Task.completed == True)  # noqa: E712
        elif filter_type in ("incomplete", "pending"):
            statement = statement.where(Task.completed == False)  # noqa: E712

        if filter_type and filter_type.startswith("priority-"):
            statement = statement.where(Task.priority == filter_type.split("-", 1)[1])
        elif priority:
            statement = statement.where(Task.priority == priority.lower())

        if tag:
            statement = statement.where(self.repository.tag_matches(lambda value: value == tag))

        if date_filter:
            statement = self._apply_date_filter(statement, date_filter)

        statement = statement.order_by(Task.sort_order.asc(), Task.created_at.desc())
        return list(self.session.exec(statement).all())

    def _apply_date_filter(self, statement, date_filter: str):
        today = self.today
        if date_filter == "overdue":
            return statement.where(Task.due_date < self._utc(today), Task.completed == False)  # noqa: E712
        if date_filter == "upcoming-7-days":
            start, end = self._utc(today), self._utc(today + timedelta(days=8))
            return statement.where(Task.due_date >= start, Task.due_date < end, Task.completed == False)  # noqa: E712
        if date_filter == "this-week":
            monday = today - timedelta(days=today.weekday())
            start, end = self._utc(monday), self._utc(monday + timedelta(days=7))
            return statement.where(Task.due_date >= start, Task.due_date < end)
        if date_filter == "this-month":
            first = today.replace(day=1)
            start, end = self._utc(first), self._utc((first + timedelta(days=32)).replace(day=1))
            return statement.where(Task.due_date >= start, Task.due_date < end)
        logger.warning("Ignoring unknown date filter %r", date_filter)
        return statement

    def get_today(self, user_id: str) -> List[Task]:
        """Tasks due during the current day."""
        today = self.today
        statement = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.due_date >= self._utc(today))
            .where(Task.due_date < self._utc(today + timedelta(days=1)))
            .order_by(Task.sort_order.asc())
        )
        return list(self.session.exec(statement).all())

    def get_by_id(self, task_id: int, user_id: str) -> Optional[Task]:
        """Get a specific task by ID, ensuring user ownership."""
        return self.repository.get_for_user(task_id, user_id)

    def get_recurring_tasks(self, user_id: str) -> List[Task]:
        """Get all recurring templates for a user."""
        statement = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.recurrence != RecurrenceKind.NONE.value)
            .where(Task.is_instance == False)  # noqa: E712
            .order_by(Task.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    def get_instances(self, task_id: int, user_id: str) -> Optional[List[Task]]:
        """Instances generated from a template, or None if the template does not exist."""
        if not self.get_by_id(task_id, user_id):
            return None
        return self.repository.list_instances(task_id, user_id)

    def update(self, task_id: int, user_id: str, updates: Dict[str, Any]) -> Optional[Task]:
        """Apply a partial update, ensuring user ownership."""
        task = self.get_by_id(task_id, user_id)
        if not task:
            return None

        merged = {
            "recurrence": updates.get("recurrence", task.recurrence),
            "recurrence_details": updates.get("recurrence_details", task.recurrence_details),
            "due_date": updates.get("due_date", task.due_date),
            "tags": updates.get("tags"),
            "priority": updates.get("priority"),
        }
        self._validate(merged)

        if "recurrence" in updates and updates["recurrence"] != task.recurrence:
            self._change_recurrence(task, updates)
        elif "recurrence_details" in updates and task.recurrence != RecurrenceKind.NONE.value:
            task.recurrence_details = self._details(updates["recurrence_details"])

        for name in ("title", "description", "priority", "is_archived", "pinned"):
            if name in updates:
                setattr(task, name, updates[name])
        for name in ("due_date", "reminder_time"):
            if name in updates:
                setattr(task, name, to_naive_utc(updates[name]))
        if "tags" in updates:
            task.tags = list(updates["tags"] or [])
        if "subtasks" in updates:
            task.subtasks = self._subtasks(updates["subtasks"])
        if "completed" in updates and updates["completed"] is not None:
            self._set_completed(task, bool(updates["completed"]))

        self.repository.update_task(task)
        self.session.commit()
        self.session.refresh(task)
        return task

    def _change_recurrence(self, task: Task, updates: Dict[str, Any]) -> None:
        new_recurrence = updates["recurrence"] or RecurrenceKind.NONE.value
        was_recurring = task.recurrence != RecurrenceKind.NONE.value
        task.recurrence = new_recurrence

        if new_recurrence == RecurrenceKind.NONE.value:
            task.recurrence_details = {}
            task.last_generated_date = None
            return

        task.recurrence_details = self._details(updates.get("recurrence_details"))
        if not was_recurring and not task.is_instance:
            # Anchor on the due date when there is one, otherwise start from today
            due_date = updates.get("due_date", task.due_date)
            task.last_generated_date = None if due_date else self.today

    def toggle_complete(self, task_id: int, user_id: str) -> Optional[Task]:
        """Toggle task completion status. Completing requires every subtask to be done."""
        task = self.get_by_id(task_id, user_id)
        if not task:
            return None

        if not task.completed and any(not subtask.get("completed") for subtask in task.subtasks or []):
            raise TaskValidationError(["Please complete all subtasks before marking the main task as complete."])

        self._set_completed(task, not task.completed)
        self.repository.update_task(task)
        self.session.commit()
        self.session.refresh(task)
        return task

    def _delete_with_instances(self, task: Task) -> int:
        removed = 0
        if not task.is_instance:
            # Also covers templates whose recurrence was switched off after generating
            removed = self.repository.delete_tasks_by_parent(task.id, task.user_id)
            if removed:
                logger.info("Deleted %s recurring instances of task %s", removed, task.id)
        self.session.delete(task)
        return removed + 1

    def delete(self, task_id: int, user_id: str) -> bool:
        """Delete a task, ensuring user ownership. Recurring templates take their instances along."""
        task = self.get_by_id(task_id, user_id)
        if not task:
            return False

        self._delete_with_instances(task)
        self.session.commit()
        return True

    def clear_completed(self, user_id: str) -> int:
        """Delete every completed task of a user. Returns the number of records removed."""
        statement = select(Task).where(Task.user_id == user_id, Task.completed == True)  # noqa: E712
        tasks = list(self.session.exec(statement).all())
        cleared_parents = {task.id for task in tasks if not task.is_instance}

        removed = 0
        for task in tasks:
            if task.is_instance and task.parent_id in cleared_parents:
                # Already removed with its template
                self.session.expunge(task)
                continue
            removed += self._delete_with_instances(task)
        self.session.commit()
        logger.info("Cleared %s completed tasks for user %s", removed, user_id)
        return removed

    def reorder(self, user_id: str, ordered_ids: List[int]) -> int:
        """Set display order from a list of task IDs. Returns the number of tasks updated."""
        if not ordered_ids:
            raise TaskValidationError(["Invalid order array provided."])

        positions = {task_id: index for index, task_id in enumerate(ordered_ids)}
        statement = select(Task).where(Task.user_id == user_id, Task.id.in_(list(positions)))
        updated = 0
        for task in self.session.exec(statement).all():
            task.sort_order = positions[task.id]
            self.session.add(task)
            updated += 1
        self.session.commit()
        return updated
