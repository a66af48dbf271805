"""Main FastAPI application for the Taskflow backend."""
import logging

from fastapi import FastAPI

from taskflow import __version__
from taskflow.config import RECURRENCE_RUN_ON_STARTUP, SCHEDULER_ENABLED
from taskflow.db.init import init_db
from taskflow.middleware.cors import add_cors_middleware
from taskflow.routers import tasks_router
from taskflow.utils.logger import configure_logging
from taskflow.utils.metrics import metrics_collector

configure_logging()
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Taskflow API",
    description="Personal task management with priorities, subtasks and recurring tasks",
    version=__version__,
)

add_cors_middleware(app)
app.include_router(tasks_router, prefix="/api")  # Task endpoints: /api/{user_id}/tasks


@app.on_event("startup")
async def startup_event():
    """Initialize database and start the recurring task scheduler."""
    try:
        init_db()
    except Exception:
        logger.exception("Database initialization failed; database operations may fail")

    if SCHEDULER_ENABLED:
        from taskflow.core.scheduler import start_scheduler
        start_scheduler(run_on_startup=RECURRENCE_RUN_ON_STARTUP)

    logger.info("Application startup complete.")


@app.on_event("shutdown")
async def shutdown_event():
    if SCHEDULER_ENABLED:
        from taskflow.core.scheduler import shutdown_scheduler
        shutdown_scheduler()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/metrics")
async def metrics():
    """Recurring task generation counters."""
    return metrics_collector.get_metrics()


@app.get("/")
async def root():
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to the Taskflow API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "taskflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
