"""
Recurring Task Service.

Materializes instances of recurring templates. For every template that is
behind, it walks occurrence dates from the template's watermark up to today,
creates one independent task per missed occurrence, and moves the watermark
to today. Instances and the watermark for one template commit in a single
transaction guarded by a compare-and-set on the watermark, so repeated or
overlapping runs on the same day never duplicate instances.
"""

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from taskflow.models.task import Task
from taskflow.services.recurrence import (
    RecurrenceKind,
    current_day,
    local_day,
    local_to_utc,
    next_occurrence,
    start_of_day,
    utc_to_local,
)
from taskflow.services.task_repository import TaskRepository
from taskflow.utils.logger import get_logger
from taskflow.utils.metrics import MetricsCollector, metrics_collector

logger = get_logger("taskflow.recurring")


@dataclass
class GenerationReport:
    """Outcome of one pass over the recurring templates."""

    today: datetime
    parents_processed: int = 0
    instances_created: int = 0
    failed: List[int] = field(default_factory=list)
    conflicted: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)


def build_instance(parent: Task, occurrence: datetime, tz_name: str = "UTC") -> Task:
    """
    Create (without persisting) the instance of a template due on the occurrence day.

    ``occurrence`` is a calendar day in ``tz_name``; the instance's due date and
    reminder are stored as naive UTC like every other timestamp.
    """
    occurrence = start_of_day(occurrence)

    reminder_time = None
    if parent.reminder_time is not None:
        # Same wall-clock time as the template's reminder, on the occurrence day
        wall_clock = utc_to_local(parent.reminder_time, tz_name).time().replace(microsecond=0)
        reminder_time = local_to_utc(datetime.combine(occurrence.date(), wall_clock), tz_name)

    subtasks = [{**copy.deepcopy(subtask), "completed": False} for subtask in (parent.subtasks or [])]

    return Task(
        user_id=parent.user_id,
        title=parent.title,
        description=parent.description,
        priority=parent.priority,
        tags=list(parent.tags or []),
        subtasks=subtasks,
        due_date=local_to_utc(occurrence, tz_name),
        reminder_time=reminder_time,
        completed=False,
        completed_at=None,
        recurrence=RecurrenceKind.NONE.value,
        recurrence_details={},
        is_instance=True,
        parent_id=parent.id,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )


class RecurringTaskService:
    """Generates missed instances for every recurring template."""

    def __init__(
        self,
        engine: Engine,
        clock: Optional[Callable[[], datetime]] = None,
        include_archived: bool = True,
        metrics: Optional[MetricsCollector] = None,
        timezone: str = "UTC",
    ):
        """
        Args:
            engine: Database engine; each template is processed in its own session
            clock: Returns the current reference day, used when run() gets no explicit day
            include_archived: Whether archived templates keep generating instances
            metrics: Counter sink, defaults to the process-wide collector
            timezone: Timezone whose calendar days are occurrences and watermarks
        """
        self.engine = engine
        self.timezone = timezone
        self.clock = clock or (lambda: current_day(timezone))
        self.include_archived = include_archived
        self.metrics = metrics or metrics_collector
        self._run_lock = threading.Lock()

    def materialize_instance(self, repository: TaskRepository, parent: Task, occurrence: datetime) -> Task:
        """Build and insert one instance of the template for the occurrence day."""
        instance = repository.insert_task(build_instance(parent, occurrence, self.timezone))
        logger.debug(
            "Materialized recurring instance",
            parent_id=parent.id,
            instance_id=instance.id,
            occurrence=occurrence,
        )
        return instance

    def generate_for_parent(self, parent: Task, today: datetime) -> Optional[int]:
        """
        Catch one template up to today.

        Returns the number of instances created, or None when the watermark
        was moved by a concurrent run and this attempt was rolled back.
        """
        expected_watermark = parent.last_generated_date
        if expected_watermark is not None:
            # Watermarks are already calendar days in the service timezone
            anchor = start_of_day(expected_watermark)
        else:
            anchor = local_day(parent.due_date or parent.created_at, self.timezone)

        with Session(self.engine) as session:
            repository = TaskRepository(session)

            created = 0
            cursor = next_occurrence(anchor, parent.recurrence, parent.recurrence_details)
            while cursor is not None and cursor <= today:
                self.materialize_instance(repository, parent, cursor)
                created += 1
                cursor = next_occurrence(cursor, parent.recurrence, parent.recurrence_details)

            if not repository.advance_watermark(parent.id, expected_watermark, today):
                session.rollback()
                return None

            session.commit()
            return created

    def run(self, today: Optional[datetime] = None) -> GenerationReport:
        """
        Generate instances for all eligible templates of all users.

        Args:
            today: Reference day; defaults to the clock's current day

        Returns:
            GenerationReport for the pass

        Raises:
            Exception: Only when the eligibility query itself fails; failures
                of individual templates are logged and reported instead
        """
        with self._run_lock:
            today = start_of_day(today or self.clock())
            report = GenerationReport(today=today)
            self.metrics.run_started()
            logger.info("Recurring task generation started", today=today)

            with Session(self.engine) as session:
                parents = TaskRepository(session).find_eligible_parents(
                    today, include_archived=self.include_archived
                )

            for parent in parents:
                if next_occurrence(today, parent.recurrence, parent.recurrence_details) is None:
                    # Unsupported kind: leave the template untouched
                    logger.warning(
                        "Skipping template with unsupported recurrence",
                        parent_id=parent.id,
                        recurrence=parent.recurrence,
                    )
                    report.skipped.append(parent.id)
                    continue

                try:
                    created = self.generate_for_parent(parent, today)
                except Exception:
                    logger.exception("Failed to generate recurring instances", parent_id=parent.id)
                    report.failed.append(parent.id)
                    self.metrics.parent_failed()
                    continue

                if created is None:
                    logger.warning("Watermark changed concurrently, skipping", parent_id=parent.id)
                    report.conflicted.append(parent.id)
                    self.metrics.parent_conflicted()
                    continue

                report.parents_processed += 1
                report.instances_created += created
                self.metrics.parent_processed()
                self.metrics.instances_created(created)
                if created:
                    logger.info("Generated recurring instances", parent_id=parent.id, generated=created)

            logger.info(
                "Recurring task generation finished",
                today=today,
                processed=report.parents_processed,
                generated=report.instances_created,
                failed=len(report.failed),
                conflicted=len(report.conflicted),
            )
            return report
