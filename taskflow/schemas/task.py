"""Task schemas for the task API."""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List

PRIORITY_PATTERN = r"^(high|medium|low)$"
RECURRENCE_PATTERN = r"^(none|daily|weekly|monthly|yearly)$"


class Subtask(BaseModel):
    """Checklist item of a task."""
    title: str = Field(..., min_length=1, max_length=200)
    completed: bool = False


class RecurrenceDetails(BaseModel):
    """Kind-specific recurrence overrides."""
    day_of_week: Optional[int] = Field(None, ge=0, le=6)  # 0=Sunday ... 6=Saturday (weekly)
    day_of_month: Optional[int] = Field(None, ge=1, le=31)  # monthly, yearly
    month: Optional[int] = Field(None, ge=0, le=11)  # 0=January ... 11=December (yearly)


class TaskCreate(BaseModel):
    """Schema for creating a task."""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    completed: bool = False
    priority: Optional[str] = Field(default="medium", pattern=PRIORITY_PATTERN)
    due_date: Optional[datetime] = None
    reminder_time: Optional[datetime] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    subtasks: Optional[List[Subtask]] = None
    recurrence: Optional[str] = Field("none", pattern=RECURRENCE_PATTERN)
    recurrence_details: Optional[RecurrenceDetails] = None
    is_archived: bool = False
    pinned: bool = False


class TaskUpdate(BaseModel):
    """Schema for partially updating a task; only fields that are sent are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    completed: Optional[bool] = None
    priority: Optional[str] = Field(None, pattern=PRIORITY_PATTERN)
    due_date: Optional[datetime] = None
    reminder_time: Optional[datetime] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    subtasks: Optional[List[Subtask]] = None
    recurrence: Optional[str] = Field(None, pattern=RECURRENCE_PATTERN)
    recurrence_details: Optional[RecurrenceDetails] = None
    is_archived: Optional[bool] = None
    pinned: Optional[bool] = None


class TaskReorder(BaseModel):
    """New display order, as task IDs from first to last."""
    order: List[int]


class TaskResponse(BaseModel):
    """Schema for task API responses."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    title: str
    description: Optional[str] = None
    completed: bool
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    priority: str = "medium"
    due_date: Optional[datetime] = None
    reminder_time: Optional[datetime] = None
    tags: List[str] = []
    subtasks: List[Subtask] = []
    is_archived: bool = False
    pinned: bool = False
    sort_order: int = 0
    recurrence: str = "none"
    recurrence_details: RecurrenceDetails = RecurrenceDetails()
    last_generated_date: Optional[datetime] = None
    is_instance: bool = False
    parent_id: Optional[int] = None
