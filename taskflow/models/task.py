"""Task model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, Text
from datetime import datetime
from typing import Any, Dict, List, Optional


class Task(SQLModel, table=True):
    """Task entity: either a user's todo item, a recurring template, or a generated instance."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=100)
    title: str = Field(max_length=200, min_length=1)
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    completed: bool = Field(default=False)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    priority: str = Field(default="medium", max_length=20)  # high, medium, low
    due_date: Optional[datetime] = Field(default=None, index=True)
    reminder_time: Optional[datetime] = Field(default=None)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    subtasks: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))  # [{"title", "completed"}]

    is_archived: bool = Field(default=False)
    pinned: bool = Field(default=False)
    sort_order: int = Field(default=0)

    # Recurrence template fields, only meaningful when is_instance is False
    recurrence: str = Field(default="none", max_length=20)  # none, daily, weekly, monthly, yearly
    recurrence_details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    last_generated_date: Optional[datetime] = Field(default=None)

    # Generated instance linkage
    is_instance: bool = Field(default=False, index=True)
    parent_id: Optional[int] = Field(default=None, index=True)

    @property
    def is_recurring_parent(self) -> bool:
        """True when this task is a template that spawns instances."""
        return not self.is_instance and (self.recurrence or "none") != "none"
