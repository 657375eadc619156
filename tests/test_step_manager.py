"""
Feature: Manage the steps of a board
  As a board member
  I want to create, reorder, finish and remove steps
  So that the board columns always form a dense ordering with one finish step last

Scenario: Steps are appended in creation order
Scenario: Creating a step on a missing board fails
Scenario: A new step is inserted before the finish step
Scenario: Marking a middle step as finished moves it last
Scenario: Marking the last step as finished does not reposition anything
Scenario: Only one finish step exists per board
Scenario: Marking a step that holds unassigned tasks as finished fails
Scenario: Marking a step as finished stamps the finish date of its tasks
Scenario: The finish step cannot be moved
Scenario: No step can take the finish step's slot
Scenario: Moving a step reorders its siblings
Scenario: Removing a step closes its slot and detaches its tasks
Scenario: Updating a step that belongs to another board fails
"""

import pytest
from sqlmodel import create_engine, Session, SQLModel, select
from models.user import User
from models.boards import Board, BoardMember, Step, StepKind
from services.errors import (
    AssignmentConflict, InvalidState, NotFound, PositionOutOfRange, PreconditionFailed
)
from services.positions import PositionLedger, board_backlog, board_steps, task_children
from services.steps import StepManager
from services.tasks import TaskManager


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="board")
def board_fixture(session):
    user = User(username="sawako", hashed_password="hashed_secret")
    session.add(user)
    session.commit()
    board = Board(name="Kento", description="Kento testing board", created_by=user.id)
    session.add(board)
    session.commit()
    session.add(BoardMember(board_id=board.id, user_id=user.id))
    session.commit()
    session.refresh(board)
    return board


def step_order(session, board):
    return [(step.name, step.position) for step in PositionLedger(session).members(board_steps(board.id))]


def test_steps_are_appended(session, board):
    # Given an empty board
    manager = StepManager(session)

    # When three steps are created
    for name in ["To Do", "Doing", "Done"]:
        manager.create(board.id, name)

    # Then they follow creation order
    assert step_order(session, board) == [("To Do", 1), ("Doing", 2), ("Done", 3)]


def test_create_step_with_kind_and_capacity(session, board):
    step = StepManager(session).create(
        board.id, "Review", description="Code review", kind=StepKind.START, capacity=2
    )

    assert step.kind == StepKind.START
    assert step.capacity == 2
    assert step.is_terminal is False


def test_create_step_on_missing_board(session, board):
    with pytest.raises(NotFound):
        StepManager(session).create("board_missing", "To Do")


def test_create_step_with_invalid_capacity(session, board):
    with pytest.raises(PreconditionFailed):
        StepManager(session).create(board.id, "To Do", capacity=0)


def test_new_step_goes_before_finish_step(session, board):
    # Given a board whose last step is the finish step
    manager = StepManager(session)
    manager.create(board.id, "To Do")
    done = manager.create(board.id, "Done")
    manager.mark_as_finished(board.id, done.id)

    # When another step is created
    manager.create(board.id, "Review")

    # Then the finish step stays last
    assert step_order(session, board) == [("To Do", 1), ("Review", 2), ("Done", 3)]


def test_mark_middle_step_as_finished(session, board):
    # Given steps S1, S2, S3
    manager = StepManager(session)
    manager.create(board.id, "S1")
    s2 = manager.create(board.id, "S2")
    manager.create(board.id, "S3")

    # When S2 is marked as finished
    finished = manager.mark_as_finished(board.id, s2.id)

    # Then S2 moves to the end and S3 shifts to position 2
    assert finished.is_terminal is True
    assert finished.position == 3
    assert step_order(session, board) == [("S1", 1), ("S3", 2), ("S2", 3)]


def test_mark_last_step_as_finished_keeps_positions(session, board):
    manager = StepManager(session)
    manager.create(board.id, "S1")
    manager.create(board.id, "S2")
    s3 = manager.create(board.id, "S3")

    manager.mark_as_finished(board.id, s3.id)
    # Marking it again is a no-op as well
    manager.mark_as_finished(board.id, s3.id)

    assert step_order(session, board) == [("S1", 1), ("S2", 2), ("S3", 3)]
    assert manager.terminal(board.id).id == s3.id


def test_only_one_finish_step(session, board):
    # Given S1 is the finish step
    manager = StepManager(session)
    s1 = manager.create(board.id, "S1")
    s2 = manager.create(board.id, "S2")
    manager.create(board.id, "S3")
    manager.mark_as_finished(board.id, s1.id)

    # When S2 is marked as finished
    manager.mark_as_finished(board.id, s2.id)

    # Then S1 lost the marker and S2 is the last step
    terminal_steps = session.exec(
        select(Step).where(Step.board_id == board.id, Step.is_terminal == True)  # noqa: E712
    ).all()
    assert [step.id for step in terminal_steps] == [s2.id]
    assert step_order(session, board) == [("S3", 1), ("S1", 2), ("S2", 3)]


def test_mark_step_with_unassigned_tasks_as_finished(session, board):
    # Given a step holding one assigned and one unassigned task
    manager = StepManager(session)
    review = manager.create(board.id, "Review")
    manager.create(board.id, "Archive")
    tasks = TaskManager(session, steps=manager)
    t1 = tasks.create(board.id, "T1")
    tasks.create(board.id, "T2")
    tasks.assign_user(board.id, t1.id, board.created_by)

    # When the step is marked as finished
    with pytest.raises(AssignmentConflict):
        manager.mark_as_finished(board.id, review.id)

    # Then nothing changed
    assert manager.terminal(board.id) is None
    assert step_order(session, board) == [("Review", 1), ("Archive", 2)]
    assert all(task.finish_date is None for task in tasks.list(board.id, review.id))


def test_mark_step_as_finished_stamps_its_tasks(session, board):
    # Given a step holding an assigned task
    manager = StepManager(session)
    review = manager.create(board.id, "Review")
    manager.create(board.id, "Archive")
    tasks = TaskManager(session, steps=manager)
    t1 = tasks.create(board.id, "T1")
    tasks.assign_user(board.id, t1.id, board.created_by)

    # When the step is marked as finished
    manager.mark_as_finished(board.id, review.id)

    # Then it moves last and its task is finished with a finish date
    assert step_order(session, board) == [("Archive", 1), ("Review", 2)]
    task = tasks.get(board.id, t1.id)
    assert task.is_finished is True
    assert task.finish_date is not None


def test_mark_missing_step_as_finished(session, board):
    with pytest.raises(NotFound):
        StepManager(session).mark_as_finished(board.id, "step_missing")


def test_finish_step_cannot_be_moved(session, board):
    manager = StepManager(session)
    manager.create(board.id, "S1")
    done = manager.create(board.id, "Done")
    manager.mark_as_finished(board.id, done.id)

    with pytest.raises(InvalidState):
        manager.move(board.id, done.id, 1)

    assert step_order(session, board) == [("S1", 1), ("Done", 2)]


def test_step_cannot_take_finish_slot(session, board):
    manager = StepManager(session)
    s1 = manager.create(board.id, "S1")
    manager.create(board.id, "S2")
    done = manager.create(board.id, "Done")
    manager.mark_as_finished(board.id, done.id)

    with pytest.raises(PositionOutOfRange):
        manager.move(board.id, s1.id, 3)

    assert step_order(session, board) == [("S1", 1), ("S2", 2), ("Done", 3)]


def test_move_step(session, board):
    # Given steps S1, S2, S3
    manager = StepManager(session)
    s1 = manager.create(board.id, "S1")
    manager.create(board.id, "S2")
    manager.create(board.id, "S3")

    # When S1 moves to position 3
    moved = manager.move(board.id, s1.id, 3)

    # Then the others shift up
    assert moved.position == 3
    assert step_order(session, board) == [("S2", 1), ("S3", 2), ("S1", 3)]


def test_move_step_out_of_range(session, board):
    manager = StepManager(session)
    s1 = manager.create(board.id, "S1")
    manager.create(board.id, "S2")

    with pytest.raises(PositionOutOfRange):
        manager.move(board.id, s1.id, 3)
    with pytest.raises(PositionOutOfRange):
        manager.move(board.id, s1.id, 0)
    with pytest.raises(NotFound):
        manager.move(board.id, "step_missing", 1)


def test_remove_step_detaches_tasks(session, board):
    # Given S1, S2, S3 where S2 holds T1, T2 and a placed child C of T1
    manager = StepManager(session)
    tasks = TaskManager(session, steps=manager)
    s1 = manager.create(board.id, "S1")
    s2 = manager.create(board.id, "S2")
    manager.create(board.id, "S3")
    t1 = tasks.create(board.id, "T1")
    t2 = tasks.create(board.id, "T2")
    tasks.move(board.id, t1.id, s2.id, 1)
    tasks.move(board.id, t2.id, s2.id, 2)
    child = tasks.add_child(board.id, t1.id, "C")
    tasks.place(board.id, child.id, s2.id, 3)

    # When S2 is removed
    s2_id = s2.id
    manager.remove(board.id, s2_id)

    # Then the remaining steps are dense
    assert step_order(session, board) == [("S1", 1), ("S3", 2)]
    assert session.get(Step, s2_id) is None
    assert s1.position == 1

    # And the parentless tasks wait in the backlog, in their previous order
    backlog = PositionLedger(session).members(board_backlog(board.id))
    assert [(task.name, task.position, task.step_id) for task in backlog] == [
        ("T1", 1, None), ("T2", 2, None)
    ]

    # And the child went back under its parent
    children = PositionLedger(session).members(task_children(t1.id))
    assert [(task.name, task.position) for task in children] == [("C", 1)]


def test_remove_missing_step(session, board):
    with pytest.raises(NotFound):
        StepManager(session).remove(board.id, "step_missing")


def test_update_step(session, board):
    manager = StepManager(session)
    step = manager.create(board.id, "To Do", capacity=3)

    updated = manager.update(board.id, step.id, name="Backlog", description="Everything", kind=StepKind.START)
    assert updated.name == "Backlog"
    assert updated.description == "Everything"
    assert updated.kind == StepKind.START
    assert updated.capacity == 3

    cleared = manager.update(board.id, step.id, clear_capacity=True)
    assert cleared.capacity is None


def test_update_step_from_other_board(session, board):
    # Given a step on another board
    other = Board(name="Other", created_by=board.created_by)
    session.add(other)
    session.commit()
    manager = StepManager(session)
    foreign = manager.create(other.id, "Foreign")

    # When it is updated through this board
    with pytest.raises(NotFound):
        manager.update(board.id, foreign.id, name="Mine")

    # Then it is untouched
    assert session.get(Step, foreign.id).name == "Foreign"
