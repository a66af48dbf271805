# taskflow/core/scheduler.py

from apscheduler.schedulers.background import BackgroundScheduler

from taskflow.config import (
    RECURRENCE_INCLUDE_ARCHIVED,
    RECURRENCE_RUN_HOUR,
    RECURRENCE_RUN_MINUTE,
    RECURRENCE_TIMEZONE,
)
from taskflow.db.config import engine
from taskflow.services.recurring_task_service import RecurringTaskService
from taskflow.utils.logger import get_logger
from taskflow.utils.metrics import metrics_collector

logger = get_logger("taskflow.scheduler")

# Initialize the scheduler
scheduler = BackgroundScheduler(timezone=RECURRENCE_TIMEZONE)

recurring_task_service = RecurringTaskService(
    engine,
    include_archived=RECURRENCE_INCLUDE_ARCHIVED,
    timezone=RECURRENCE_TIMEZONE,
)


# ---------------------------
# Recurring Task Generation
# ---------------------------

@metrics_collector.time_operation("recurring_run_seconds")
def generate_recurring_tasks():
    try:
        report = recurring_task_service.run()
    except Exception:
        # The next trigger retries; nothing was committed for unprocessed templates
        logger.exception("Recurring task generation run failed")
        return None
    return report


@scheduler.scheduled_job(
    "cron",
    hour=RECURRENCE_RUN_HOUR,
    minute=RECURRENCE_RUN_MINUTE,
    id="recurring-task-generation",
    coalesce=True,
    max_instances=1,
)
def scheduled_recurring_generation():
    generate_recurring_tasks()


# ---------------------------
# Start / Stop Scheduler
# ---------------------------

def start_scheduler(run_on_startup: bool = True):
    """Start the background scheduler, optionally queueing an immediate catch-up run."""
    if run_on_startup:
        # Recovers occurrences missed while the process was down
        scheduler.add_job(
            generate_recurring_tasks,
            "date",
            id="recurring-task-generation-startup",
            replace_existing=True,
        )
    scheduler.start()
    logger.info(
        "Background scheduler started",
        hour=RECURRENCE_RUN_HOUR,
        minute=RECURRENCE_RUN_MINUTE,
        timezone=RECURRENCE_TIMEZONE,
        run_on_startup=run_on_startup,
    )


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
