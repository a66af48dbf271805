"""Task router: CRUD, ordering and recurring template endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List, Optional, Dict, Any
from sqlmodel import Session

from taskflow.schemas.task import TaskCreate, TaskUpdate, TaskReorder, TaskResponse
from taskflow.services.task_service import TaskService, TaskValidationError
from taskflow.middleware.auth import get_current_user, ensure_same_user, CurrentUser
from taskflow.db.config import get_session

router = APIRouter(tags=["Tasks"])  # No prefix since main.py adds /api prefix


def get_task_service(session: Session = Depends(get_session)) -> TaskService:
    """Dependency for getting TaskService instance."""
    return TaskService(session)


def _bad_request(error: TaskValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.errors)


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


@router.get("/{user_id}/tasks", response_model=Dict[str, Any])
async def list_tasks(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
    search: Optional[str] = Query(None, description="Search keyword for title, description and tags"),
    filter: Optional[str] = Query(None, description="all, completed, incomplete, priority-high, priority-medium, priority-low"),
    priority: Optional[str] = Query(None, description="Filter by priority: high, medium, low"),
    tag: Optional[str] = Query(None, description="Filter by specific tag"),
    date_filter: Optional[str] = Query(None, description="overdue, upcoming-7-days, this-week, this-month"),
    archived: bool = Query(False, description="List archived tasks instead of active ones"),
):
    """List tasks for the authenticated user with filtering."""
    ensure_same_user(user_id, current_user)

    tasks = service.list_tasks(
        user_id=user_id,
        search=search,
        filter_type=filter,
        priority=priority,
        tag=tag,
        date_filter=date_filter,
        archived=archived,
    )
    return {
        "tasks": [TaskResponse.model_validate(task) for task in tasks],
        "count": len(tasks),
    }


@router.post("/{user_id}/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    user_id: str,
    task_data: TaskCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Create a task; a recurrence other than none makes it a recurring template."""
    ensure_same_user(user_id, current_user)

    try:
        return service.create(user_id, task_data.model_dump(exclude_none=True))
    except TaskValidationError as e:
        raise _bad_request(e)


@router.get("/{user_id}/tasks/today", response_model=List[TaskResponse])
async def get_todays_tasks(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get tasks due today."""
    ensure_same_user(user_id, current_user)
    return service.get_today(user_id)


@router.put("/{user_id}/tasks/reorder")
async def reorder_tasks(
    user_id: str,
    body: TaskReorder,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Persist a user-defined display order."""
    ensure_same_user(user_id, current_user)

    try:
        updated = service.reorder(user_id, body.order)
    except TaskValidationError as e:
        raise _bad_request(e)
    return {"message": "Tasks reordered successfully.", "updated": updated}


@router.delete("/{user_id}/tasks/completed")
async def clear_completed_tasks(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Delete all completed tasks of the user."""
    ensure_same_user(user_id, current_user)

    removed = service.clear_completed(user_id)
    return {"message": f"{removed} completed tasks cleared successfully", "deleted": removed}


@router.get("/{user_id}/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get a specific task by ID."""
    ensure_same_user(user_id, current_user)

    task = service.get_by_id(task_id, user_id)
    if not task:
        raise _not_found()
    return task


@router.get("/{user_id}/tasks/{task_id}/instances", response_model=List[TaskResponse])
async def get_task_instances(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get the instances generated from a recurring template."""
    ensure_same_user(user_id, current_user)

    instances = service.get_instances(task_id, user_id)
    if instances is None:
        raise _not_found()
    return instances


@router.put("/{user_id}/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    user_id: str,
    task_id: int,
    task_data: TaskUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Update the fields that are present in the request body."""
    ensure_same_user(user_id, current_user)

    try:
        task = service.update(task_id, user_id, task_data.model_dump(exclude_unset=True))
    except TaskValidationError as e:
        raise _bad_request(e)
    if not task:
        raise _not_found()
    return task


@router.patch("/{user_id}/tasks/{task_id}/complete", response_model=TaskResponse)
async def toggle_complete(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Toggle task completion status."""
    ensure_same_user(user_id, current_user)

    try:
        task = service.toggle_complete(task_id, user_id)
    except TaskValidationError as e:
        raise _bad_request(e)
    if not task:
        raise _not_found()
    return task


@router.delete("/{user_id}/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Delete a task; deleting a recurring template also deletes its instances."""
    ensure_same_user(user_id, current_user)

    if not service.delete(task_id, user_id):
        raise _not_found()


@router.get("/{user_id}/recurring-tasks", response_model=List[TaskResponse])
async def get_recurring_tasks(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get all recurring templates for the user."""
    ensure_same_user(user_id, current_user)
    return service.get_recurring_tasks(user_id)
