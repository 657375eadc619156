#!/usr/bin/env python3
"""
Management commands for Taskflow.

Usage:
    python manage.py init_db
    python manage.py check_db
    python manage.py reset_db
    python manage.py create_user <username> <password>
    python manage.py issue_token <username>
    python manage.py create_board <username> <board name> <step> [<step> ...]
"""

import sys
import hashlib
from datetime import datetime, timedelta, timezone
from sqlmodel import SQLModel, select
from sqlalchemy import inspect
from database import engine, get_session
from settings import logger, TOKEN_TTL_HOURS
from models.helper import id_generator
from models.user import User, Token
# Import all models to ensure tables are created
from models.boards import Board, BoardMember, Step, Task  # noqa: F401
from services.errors import BoardError
from services.steps import StepManager


def init_db():
    """Initialize database tables."""
    logger.info("Creating database tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables created successfully")


def check_db():
    """Check database connection and tables."""
    try:
        tables = inspect(engine).get_table_names()
        logger.info(f"Database connected. Found {len(tables)} tables: {tables}")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        sys.exit(1)


def reset_db():
    """Drop and recreate all database tables."""
    logger.warning("Dropping all database tables...")
    SQLModel.metadata.drop_all(engine)
    logger.info("Creating database tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("Database reset successfully")


def create_user(username: str, password: str):
    """Create an active user."""
    try:
        with next(get_session()) as session:
            hashed_password = hashlib.sha256(password.encode()).hexdigest()

            user = User(
                username=username,
                hashed_password=hashed_password,
                is_active=True
            )

            session.add(user)
            session.commit()
            session.refresh(user)

            logger.info(f"User '{username}' created successfully with ID: {user.id}")
    except Exception as e:
        logger.error(f"Failed to create user: {e}")
        sys.exit(1)


def issue_token(username: str):
    """Issue a bearer token for an existing user and print it."""
    with next(get_session()) as session:
        user = session.exec(select(User).where(User.username == username)).first()
        if not user:
            logger.error(f"User '{username}' not found")
            sys.exit(1)

        token = Token(
            user_id=user.id,
            access_token=id_generator('tkn', 32)(),
            expires_at=datetime.now(timezone.utc) + timedelta(hours=TOKEN_TTL_HOURS)
        )
        session.add(token)
        session.commit()
        session.refresh(token)

        logger.info(f"Token issued for '{username}'", extra={"expires_at": token.expires_at.isoformat()})
        print(token.access_token)


def create_board(username: str, name: str, step_names: list):
    """Create a board owned by `username` with the given steps; the last one is the finish step."""
    with next(get_session()) as session:
        user = session.exec(select(User).where(User.username == username)).first()
        if not user:
            logger.error(f"User '{username}' not found")
            sys.exit(1)

        board = Board(name=name, created_by=user.id)
        session.add(board)
        session.flush()
        session.add(BoardMember(board_id=board.id, user_id=user.id))
        session.commit()

        steps = StepManager(session)
        try:
            created = [steps.create(board.id, step_name) for step_name in step_names]
            if len(created) > 1:
                steps.mark_as_finished(board.id, created[-1].id)
        except BoardError as e:
            logger.error(f"Failed to create board: {e.message}")
            sys.exit(1)

        logger.info(f"Board '{name}' created with ID: {board.id}", extra={"steps": len(created)})
        print(board.id)


def main():
    if len(sys.argv) < 2:
        print("Usage: python manage.py <command> [args]")
        print("Commands:")
        print("  init_db                        - Initialize database tables")
        print("  check_db                       - Check database connection")
        print("  reset_db                       - Drop and recreate all tables")
        print("  create_user <username> <pass>  - Create a user")
        print("  issue_token <username>         - Issue a bearer token for a user")
        print("  create_board <user> <name> <step>...  - Create a board with ordered steps")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init_db":
        init_db()
    elif command == "check_db":
        check_db()
    elif command == "reset_db":
        reset_db()
    elif command == "create_user":
        if len(sys.argv) != 4:
            print("Usage: python manage.py create_user <username> <password>")
            sys.exit(1)
        create_user(sys.argv[2], sys.argv[3])
    elif command == "issue_token":
        if len(sys.argv) != 3:
            print("Usage: python manage.py issue_token <username>")
            sys.exit(1)
        issue_token(sys.argv[2])
    elif command == "create_board":
        if len(sys.argv) < 5:
            print("Usage: python manage.py create_board <username> <board name> <step> [<step> ...]")
            sys.exit(1)
        create_board(sys.argv[2], sys.argv[3], sys.argv[4:])
    else:
        print(f"Unknown command: {command}")
        print("Run 'python manage.py' to see available commands")
        sys.exit(1)


if __name__ == "__main__":
    main()
