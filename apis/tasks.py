from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from database import get_session
from models.user import Token
from helpers.auth import get_auth_token, require_board_member
from helpers.errors import to_http_exception
from services.errors import BoardError
from services.tasks import TaskManager
from .schemas.tasks import (
    AssignUserRequest, CreateChildTaskRequest, CreateTaskRequest, MoveTaskRequest,
    TaskResponse, UpdateTaskRequest
)
from .schemas.common import MessageResponse
from typing import List, Optional

router = APIRouter(prefix="/boards/{board_id}/tasks", tags=["tasks"])


@router.post("", response_model=TaskResponse)
async def create_task(
    board_id: str,
    task_data: CreateTaskRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Create a task at the end of the board's first step."""
    user = await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        task = TaskManager(db_session).create(
            board_id,
            name=task_data.name,
            description=task_data.description,
            created_by=user.id,
            expiration_date=task_data.expiration_date
        )
    except BoardError as e:
        raise to_http_exception(e)

    return TaskResponse.model_validate(task)


@router.get("", response_model=List[TaskResponse])
async def list_tasks(
    board_id: str,
    step_id: Optional[str] = Query(default=None, description="Only tasks of this step, in position order"),
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[TaskResponse]:
    """List the board's tasks, optionally limited to one step."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        tasks = TaskManager(db_session).list(board_id, step_id=step_id)
    except BoardError as e:
        raise to_http_exception(e)

    return [TaskResponse.model_validate(task) for task in tasks]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    board_id: str,
    task_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Get a single task."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        task = TaskManager(db_session).get(board_id, task_id, message="Task not found")
    except BoardError as e:
        raise to_http_exception(e)

    return TaskResponse.model_validate(task)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    board_id: str,
    task_id: str,
    task_data: UpdateTaskRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Update name, description or expiration date of a task."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        task = TaskManager(db_session).update(
            board_id,
            task_id,
            name=task_data.name,
            description=task_data.description,
            expiration_date=task_data.expiration_date
        )
    except BoardError as e:
        raise to_http_exception(e)

    return TaskResponse.model_validate(task)


@router.delete("/{task_id}")
async def delete_task(
    board_id: str,
    task_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> MessageResponse:
    """Delete a task together with all of its child tasks."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        TaskManager(db_session).delete(board_id, task_id)
    except BoardError as e:
        raise to_http_exception(e)

    return MessageResponse(message="The task has been deleted successfully.")


@router.post("/{task_id}/move", response_model=TaskResponse)
async def move_task(
    board_id: str,
    task_id: str,
    move_data: MoveTaskRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Move a task to a position in the same or another step."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        task = TaskManager(db_session).move(board_id, task_id, move_data.step_id, move_data.position)
    except BoardError as e:
        raise to_http_exception(e)

    return TaskResponse.model_validate(task)


@router.post("/{task_id}/place", response_model=TaskResponse)
async def place_task(
    board_id: str,
    task_id: str,
    place_data: MoveTaskRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Put a task without step (child or detached task) into a step."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        task = TaskManager(db_session).place(board_id, task_id, place_data.step_id, place_data.position)
    except BoardError as e:
        raise to_http_exception(e)

    return TaskResponse.model_validate(task)


@router.post("/{task_id}/assignee", response_model=TaskResponse)
async def assign_user(
    board_id: str,
    task_id: str,
    assign_data: AssignUserRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Assign a board member to the task (one member per task)."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        task = TaskManager(db_session).assign_user(board_id, task_id, assign_data.member_id)
    except BoardError as e:
        raise to_http_exception(e)

    return TaskResponse.model_validate(task)


@router.delete("/{task_id}/assignee", response_model=TaskResponse)
async def unassign_user(
    board_id: str,
    task_id: str,
    member_id: str = Query(..., description="User ID of the assigned member"),
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Remove the member assigned to the task."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        task = TaskManager(db_session).unassign_user(board_id, task_id, member_id)
    except BoardError as e:
        raise to_http_exception(e)

    return TaskResponse.model_validate(task)


@router.get("/{task_id}/children", response_model=List[TaskResponse])
async def list_children(
    board_id: str,
    task_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[TaskResponse]:
    """List child tasks: unplaced ones in order, then the placed ones."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        children = TaskManager(db_session).children(board_id, task_id)
    except BoardError as e:
        raise to_http_exception(e)

    return [TaskResponse.model_validate(child) for child in children]


@router.post("/{task_id}/children", response_model=TaskResponse)
async def add_child(
    board_id: str,
    task_id: str,
    child_data: CreateChildTaskRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Add a child task (without step) at the end of the parent's children."""
    user = await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        child = TaskManager(db_session).add_child(
            board_id,
            task_id,
            name=child_data.name,
            description=child_data.description,
            created_by=user.id
        )
    except BoardError as e:
        raise to_http_exception(e)

    return TaskResponse.model_validate(child)


@router.delete("/{task_id}/children/{child_id}")
async def remove_child(
    board_id: str,
    task_id: str,
    child_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> MessageResponse:
    """Delete a child task from its parent."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        TaskManager(db_session).remove_child(board_id, task_id, child_id)
    except BoardError as e:
        raise to_http_exception(e)

    return MessageResponse(message="The child task has been deleted successfully.")


@router.post("/{task_id}/children/recount", response_model=List[TaskResponse])
async def recount_children(
    board_id: str,
    task_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[TaskResponse]:
    """Renumber the unplaced children of a task as 1..N."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        children = TaskManager(db_session).recount_children_positions(board_id, task_id)
    except BoardError as e:
        raise to_http_exception(e)

    return [TaskResponse.model_validate(child) for child in children]
