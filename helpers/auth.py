from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session, select

from database import get_session
from models.boards import Board, BoardMember
from models.user import Token, User
from settings import logger


async def get_auth_token(
    authorization: Optional[str] = Header(default=None),
    db_session: Session = Depends(get_session)
) -> Token:
    """Resolve the `Authorization: Bearer <token>` header to a live Token."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: missing bearer token"
        )

    access_token = authorization.split(" ", 1)[1].strip()
    statement = select(Token).where(Token.access_token == access_token)
    token = db_session.exec(statement).first()

    if not token or token.is_revoked:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: invalid token"
        )

    expires_at = token.expires_at
    if expires_at.tzinfo is None:
        # SQLite hands datetimes back without tzinfo
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: token expired"
        )

    return token


async def get_current_user(token: Token, db_session: Session) -> User:
    """User owning the token; inactive users are rejected."""
    user = db_session.get(User, token.user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: user is not active"
        )
    return user


async def require_board_member(board_id: str, token: Token, db_session: Session) -> User:
    """Permission gate: the caller must be a member of the board."""
    user = await get_current_user(token=token, db_session=db_session)

    board = db_session.get(Board, board_id)
    if not board:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Board not found"
        )

    statement = select(BoardMember).where(
        BoardMember.board_id == board_id,
        BoardMember.user_id == user.id
    )
    if not db_session.exec(statement).first():
        logger.warning("Board access denied", extra={
            "board_id": board_id,
            "user_id": user.id
        })
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: you are not a member of this board"
        )

    return user
