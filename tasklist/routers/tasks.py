from fastapi import APIRouter, status

from tasklist.dependencies import CurrentUser, TaskServiceDep
from tasklist.models import (
    DeleteResult,
    TaskCreate,
    TaskList,
    TaskRead,
    TaskStatusResult,
    TaskStatusUpdate,
    TaskTitleUpdate,
    TaskTitleResult,
)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(task_data: TaskCreate, user_id: CurrentUser, service: TaskServiceDep):
    """Create a new task"""
    return await service.create_task(user_id, task_data.title)


@router.get("", response_model=TaskList)
async def list_tasks(user_id: CurrentUser, service: TaskServiceDep):
    """List the caller's tasks, newest first; `cached` tells where they came from"""
    return await service.list_tasks(user_id)


@router.patch("/{task_id}/status", response_model=TaskStatusResult)
async def update_task_status(
    task_id: str, body: TaskStatusUpdate, user_id: CurrentUser, service: TaskServiceDep
):
    return await service.update_status(user_id, task_id, body.status)


@router.patch("/{task_id}", response_model=TaskTitleResult)
async def edit_task_title(
    task_id: str, body: TaskTitleUpdate, user_id: CurrentUser, service: TaskServiceDep
):
    return await service.edit_title(user_id, task_id, body.title)


@router.delete("/{task_id}", response_model=DeleteResult)
async def delete_task(task_id: str, user_id: CurrentUser, service: TaskServiceDep):
    """Delete a task"""
    return await service.delete_task(user_id, task_id)
