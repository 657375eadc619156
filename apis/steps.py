from fastapi import APIRouter, Depends
from sqlmodel import Session
from database import get_session
from models.user import Token
from helpers.auth import get_auth_token, require_board_member
from helpers.errors import to_http_exception
from services.errors import BoardError
from services.steps import StepManager
from .schemas.steps import CreateStepRequest, MoveStepRequest, StepResponse, UpdateStepRequest
from .schemas.common import MessageResponse
from typing import List

router = APIRouter(prefix="/boards/{board_id}/steps", tags=["steps"])


@router.get("", response_model=List[StepResponse])
async def list_steps(
    board_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[StepResponse]:
    """List the board's steps in position order."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        steps = StepManager(db_session).list(board_id)
    except BoardError as e:
        raise to_http_exception(e)

    return [StepResponse.model_validate(step) for step in steps]


@router.post("", response_model=StepResponse)
async def create_step(
    board_id: str,
    step_data: CreateStepRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> StepResponse:
    """Create a step at the end of the board (before the finish step, if any)."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        step = StepManager(db_session).create(
            board_id,
            name=step_data.name,
            description=step_data.description,
            kind=step_data.kind,
            capacity=step_data.capacity
        )
    except BoardError as e:
        raise to_http_exception(e)

    return StepResponse.model_validate(step)


@router.put("/{step_id}", response_model=StepResponse)
async def update_step(
    board_id: str,
    step_id: str,
    step_data: UpdateStepRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> StepResponse:
    """Update name, description, kind or capacity of a step."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        step = StepManager(db_session).update(
            board_id,
            step_id,
            name=step_data.name,
            description=step_data.description,
            kind=step_data.kind,
            capacity=step_data.capacity,
            clear_capacity=step_data.clear_capacity
        )
    except BoardError as e:
        raise to_http_exception(e)

    return StepResponse.model_validate(step)


@router.delete("/{step_id}")
async def remove_step(
    board_id: str,
    step_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> MessageResponse:
    """Remove a step; its tasks lose their step and wait to be placed again."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        StepManager(db_session).remove(board_id, step_id)
    except BoardError as e:
        raise to_http_exception(e)

    return MessageResponse(message="The step has been removed successfully.")


@router.post("/{step_id}/finish", response_model=StepResponse)
async def mark_step_as_finished(
    board_id: str,
    step_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> StepResponse:
    """Mark a step as the board's finish step and move it to the end."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        step = StepManager(db_session).mark_as_finished(board_id, step_id)
    except BoardError as e:
        raise to_http_exception(e)

    return StepResponse.model_validate(step)


@router.post("/{step_id}/move", response_model=StepResponse)
async def move_step(
    board_id: str,
    step_id: str,
    move_data: MoveStepRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> StepResponse:
    """Move a step to another position on the board."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    try:
        step = StepManager(db_session).move(board_id, step_id, move_data.position)
    except BoardError as e:
        raise to_http_exception(e)

    return StepResponse.model_validate(step)
