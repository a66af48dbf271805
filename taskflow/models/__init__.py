"""SQLModel table definitions."""

from .task import Task

__all__ = ["Task"]
