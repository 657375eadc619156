"""
Feature: Management commands
  As an operator
  I want to bootstrap users, tokens and boards from the command line
  So that a fresh deployment can be used right away

Scenario: Operator creates a board with its steps
  Given a user exists
  When the operator runs create_board with three step names
  Then the board has the three steps in order and the last one is the finish step

Scenario: Operator issues a token for an unknown user
  Given no such user exists
  When the operator runs issue_token
  Then the command exits with an error
"""

import pytest
from unittest.mock import patch
from sqlmodel import create_engine, Session, SQLModel, select
from models.user import User, Token
from models.boards import Board, BoardMember
from services.steps import StepManager
import manage


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


def test_create_board_command(session, capsys):
    # Given a user exists
    user = User(username="operator", hashed_password="hashed_secret")
    session.add(user)
    session.commit()

    # When the operator runs create_board
    with patch('manage.get_session', side_effect=lambda: iter([session])):
        manage.create_board("operator", "Release", ["To Do", "Doing", "Done"])

    # Then the board has its steps in order with the finish step last
    board_id = capsys.readouterr().out.strip()
    board = session.get(Board, board_id)
    assert board.created_by == user.id
    assert session.get(BoardMember, (board_id, user.id)) is not None

    steps = StepManager(session).list(board_id)
    assert [(s.name, s.position, s.is_terminal) for s in steps] == [
        ("To Do", 1, False),
        ("Doing", 2, False),
        ("Done", 3, True),
    ]


def test_issue_token_command(session, capsys):
    user = User(username="operator", hashed_password="hashed_secret")
    session.add(user)
    session.commit()

    with patch('manage.get_session', side_effect=lambda: iter([session])):
        manage.issue_token("operator")

    access_token = capsys.readouterr().out.strip()
    token = session.exec(select(Token).where(Token.access_token == access_token)).first()
    assert token.user_id == user.id
    assert token.is_revoked is False


def test_issue_token_unknown_user(session):
    with patch('manage.get_session', side_effect=lambda: iter([session])):
        with pytest.raises(SystemExit):
            manage.issue_token("ghost")
