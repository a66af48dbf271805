"""Initialize database tables."""
import logging

from sqlmodel import SQLModel

from taskflow.models.task import Task  # noqa: F401  (registers the table)
from taskflow.db.config import engine

logger = logging.getLogger(__name__)


def init_db(bind=None):
    """Create all tables in the database."""
    logger.info("Creating all tables...")
    SQLModel.metadata.create_all(bind or engine)
    logger.info("Tables created successfully.")


if __name__ == "__main__":
    init_db()
