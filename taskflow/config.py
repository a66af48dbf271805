"""Application settings read from the environment (and .env)."""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Use the DATABASE_URL from environment variable, with fallback to SQLite for local dev
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./taskflow.db")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
AUTH_SECRET = os.environ.get("AUTH_SECRET", "dev-secret-change-me")
AUTH_ALGORITHM = "HS256"

# Recurring task generation
RECURRENCE_TIMEZONE = os.environ.get("RECURRENCE_TIMEZONE", "UTC")
RECURRENCE_RUN_HOUR = int(os.environ.get("RECURRENCE_RUN_HOUR", "2"))
RECURRENCE_RUN_MINUTE = int(os.environ.get("RECURRENCE_RUN_MINUTE", "0"))
RECURRENCE_RUN_ON_STARTUP = _env_bool("RECURRENCE_RUN_ON_STARTUP", True)
RECURRENCE_INCLUDE_ARCHIVED = _env_bool("RECURRENCE_INCLUDE_ARCHIVED", True)
SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)
