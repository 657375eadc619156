"""
Feature: Assign board members to tasks
  As a board member
  I want to assign exactly one member to a task
  So that everybody knows who is working on it

Scenario: Successfully assign and unassign a member
Scenario: Assigning an already assigned task fails
Scenario: Assigning a user who is not a board member fails
Scenario: Unassigning a task without assignment fails
Scenario: Unassigning a member who is not the assignee fails
"""

import pytest
from sqlmodel import create_engine, Session, SQLModel
from models.user import User
from models.boards import Board, BoardMember
from services.errors import AssignmentConflict, NotFound
from services.steps import StepManager
from services.tasks import TaskManager


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="setup")
def setup_fixture(session):
    owner = User(username="sawako", hashed_password="hashed_secret")
    teammate = User(username="kento", hashed_password="hashed_secret")
    outsider = User(username="outsider", hashed_password="hashed_secret")
    session.add_all([owner, teammate, outsider])
    session.commit()

    board = Board(name="Kento", created_by=owner.id)
    session.add(board)
    session.commit()
    session.add_all([
        BoardMember(board_id=board.id, user_id=owner.id),
        BoardMember(board_id=board.id, user_id=teammate.id),
    ])
    session.commit()

    StepManager(session).create(board.id, "To Do")
    task = TaskManager(session).create(board.id, "T1")
    return {"board": board, "owner": owner, "teammate": teammate, "outsider": outsider, "task": task}


def test_assign_and_unassign(session, setup):
    tasks = TaskManager(session)
    board, task, owner = setup["board"], setup["task"], setup["owner"]

    assigned = tasks.assign_user(board.id, task.id, owner.id)
    assert assigned.assigned_to == owner.id

    unassigned = tasks.unassign_user(board.id, task.id, owner.id)
    assert unassigned.assigned_to is None


def test_assign_is_exclusive(session, setup):
    tasks = TaskManager(session)
    board, task = setup["board"], setup["task"]
    tasks.assign_user(board.id, task.id, setup["owner"].id)

    with pytest.raises(AssignmentConflict):
        tasks.assign_user(board.id, task.id, setup["teammate"].id)

    assert tasks.get(board.id, task.id).assigned_to == setup["owner"].id


def test_assign_requires_board_member(session, setup):
    tasks = TaskManager(session)
    board, task = setup["board"], setup["task"]

    with pytest.raises(NotFound):
        tasks.assign_user(board.id, task.id, setup["outsider"].id)
    with pytest.raises(NotFound):
        tasks.assign_user(board.id, "task_missing", setup["owner"].id)


def test_unassign_without_assignment(session, setup):
    tasks = TaskManager(session)

    with pytest.raises(AssignmentConflict):
        tasks.unassign_user(setup["board"].id, setup["task"].id, setup["owner"].id)


def test_unassign_other_member(session, setup):
    tasks = TaskManager(session)
    board, task = setup["board"], setup["task"]
    tasks.assign_user(board.id, task.id, setup["owner"].id)

    with pytest.raises(AssignmentConflict):
        tasks.unassign_user(board.id, task.id, setup["teammate"].id)
    with pytest.raises(NotFound):
        tasks.unassign_user(board.id, task.id, setup["outsider"].id)

    assert tasks.get(board.id, task.id).assigned_to == setup["owner"].id
