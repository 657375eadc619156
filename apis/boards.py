from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from database import get_session
from models.boards import Board, BoardMember
from models.user import Token, User
from helpers.auth import get_auth_token, get_current_user, require_board_member
from services.positions import board_backlog
from services.steps import StepManager
from services.tasks import TaskManager
from .schemas.boards import (
    AddMemberRequest, BoardDetailResponse, BoardResponse, CreateBoardRequest,
    MemberResponse, StepWithTasksResponse
)
from .schemas.steps import StepResponse
from .schemas.tasks import TaskResponse
from settings import logger
from typing import List

router = APIRouter(prefix="/boards", tags=["boards"])


@router.get("", response_model=List[BoardResponse])
async def list_boards(
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[BoardResponse]:
    """List boards the caller is a member of."""
    user = await get_current_user(token=token, db_session=db_session)

    statement = (
        select(Board)
        .join(BoardMember)
        .where(BoardMember.user_id == user.id)
        .order_by(Board.created_at)
    )
    boards = db_session.exec(statement).all()

    return [BoardResponse.model_validate(board) for board in boards]


@router.post("", response_model=BoardResponse)
async def create_board(
    board_data: CreateBoardRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> BoardResponse:
    """Create a new board; the creator becomes its first member."""
    user = await get_current_user(token=token, db_session=db_session)

    new_board = Board(
        name=board_data.name,
        description=board_data.description,
        created_by=user.id
    )
    db_session.add(new_board)
    db_session.flush()
    db_session.add(BoardMember(board_id=new_board.id, user_id=user.id))
    db_session.commit()
    db_session.refresh(new_board)

    logger.info("Board created", extra={"board_id": new_board.id, "user_id": user.id})
    return BoardResponse.model_validate(new_board)


@router.get("/{board_id}", response_model=BoardDetailResponse)
async def get_board(
    board_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> BoardDetailResponse:
    """Get board with its steps, their tasks, members and backlog."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    board = db_session.get(Board, board_id)
    steps = StepManager(db_session)
    tasks = TaskManager(db_session, steps=steps)

    step_responses = []
    for step in steps.list(board_id):
        step_responses.append(StepWithTasksResponse(
            **StepResponse.model_validate(step).model_dump(),
            tasks=[TaskResponse.model_validate(task) for task in tasks.list(board_id, step.id)]
        ))

    members_statement = select(BoardMember.user_id).where(BoardMember.board_id == board_id)
    members = db_session.exec(members_statement).all()
    backlog = steps.ledger.members(board_backlog(board_id))

    return BoardDetailResponse(
        **BoardResponse.model_validate(board).model_dump(),
        steps=step_responses,
        members=list(members),
        backlog=[TaskResponse.model_validate(task) for task in backlog]
    )


@router.post("/{board_id}/members", response_model=MemberResponse)
async def add_member(
    board_id: str,
    member_data: AddMemberRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> MemberResponse:
    """Add a user to the board so tasks can be assigned to them."""
    await require_board_member(board_id=board_id, token=token, db_session=db_session)

    user = db_session.get(User, member_data.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    existing = db_session.get(BoardMember, (board_id, user.id))
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already a member of this board"
        )

    member = BoardMember(board_id=board_id, user_id=user.id)
    db_session.add(member)
    db_session.commit()
    db_session.refresh(member)

    return MemberResponse.model_validate(member)
