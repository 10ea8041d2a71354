from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.crud import task_crud
from app.deps import get_current_user
from app.errors import NotFoundError
from app.policy import Action, CurrentUser, ensure_allowed
from app.schemas import TaskResponse, TaskWrite

router = APIRouter(prefix="/tasks", tags=["tasks"])


async def _owned_task(task_id: UUID, current_user: CurrentUser) -> TaskResponse:
    """Load a task (404 if absent) and apply the owner-or-admin rule (403)."""
    task = await task_crud.get_task(task_id)
    if not task:
        raise NotFoundError("Task not found")
    ensure_allowed(current_user, Action.MUTATE_TASK, task)
    return task


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskWrite,
    current_user: CurrentUser = Depends(get_current_user),
) -> TaskResponse:
    return await task_crud.create_task(payload, owner_id=current_user.id)


@router.get("/", response_model=list[TaskResponse])
async def list_tasks(
    include_all: bool = Query(default=False, alias="all"),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[TaskResponse]:
    """Own tasks; admins may pass `all=true` to see every task."""
    if current_user.is_admin and include_all:
        return await task_crud.list_tasks()
    return await task_crud.list_tasks(owner_id=current_user.id)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
) -> TaskResponse:
    return await _owned_task(task_id, current_user)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    payload: TaskWrite,
    current_user: CurrentUser = Depends(get_current_user),
) -> TaskResponse:
    await _owned_task(task_id, current_user)
    updated = await task_crud.update_task(task_id, payload)
    if not updated:
        raise NotFoundError("Task not found")
    return updated


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    await _owned_task(task_id, current_user)
    if not await task_crud.delete_task(task_id):
        raise NotFoundError("Task not found")
