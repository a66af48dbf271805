"""
Logging utilities.

Root logging setup for the application, plus a structured logger that emits
one JSON object per message for the background generation engine.
"""

import logging
import sys
from datetime import datetime
import json

from taskflow.config import LOG_LEVEL

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install a stdout handler on the root logger once."""
    root = logging.getLogger()
    root.setLevel(level)
    if any(getattr(handler, "_taskflow", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._taskflow = True
    root.addHandler(handler)


class StructuredLogger:
    """JSON-lines logger used by the recurring task engine and the scheduler.

    Keyword arguments become fields of the emitted object.
    """

    def __init__(self, name: str):
        # The logger name doubles as the "service" field
        self.logger = logging.getLogger(name)

    def _payload(self, level: int, message: str, **kwargs) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": logging.getLevelName(level),
            "message": message,
            "service": self.logger.name
        }
        for key, value in kwargs.items():
            log_data[key] = value.isoformat() if isinstance(value, datetime) else value
        return json.dumps(log_data, default=str)

    def _log_structured(self, level: int, message: str, **kwargs):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._payload(level, message, **kwargs))

    def debug(self, message: str, **kwargs):
        self._log_structured(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log_structured(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log_structured(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log_structured(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log at ERROR level with the active exception's traceback."""
        if self.logger.isEnabledFor(logging.ERROR):
            self.logger.exception(self._payload(logging.ERROR, message, exception=True, **kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Structured logger for a component, e.g. "taskflow.recurring"."""
    return StructuredLogger(name)
