"""
Step manager: the ordered columns of a board and its single terminal step.

The terminal step is pinned to the last position. New steps are inserted
before it, and it cannot be moved by hand.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Session, select

from models.boards import Board, Step, StepKind
from services.errors import (
    AssignmentConflict, InvalidState, NotFound, PositionOutOfRange, PreconditionFailed
)
from services.positions import PositionLedger, board_steps, step_tasks
from settings import logger


class StepManager:
    def __init__(self, session: Session, ledger: Optional[PositionLedger] = None):
        self.session = session
        self.ledger = ledger or PositionLedger(session)

    def get_board(self, board_id: str) -> Board:
        board = self.session.get(Board, board_id)
        if not board:
            raise NotFound("The board you are trying to use does not exist.")
        return board

    def get(
        self,
        board_id: str,
        step_id: str,
        message: str = "The step you are trying to use does not exist.",
    ) -> Step:
        statement = (
            select(Step)
            .where(Step.board_id == board_id, Step.id == step_id)
            .execution_options(populate_existing=True)
        )
        step = self.session.exec(statement).first()
        if not step:
            raise NotFound(message)
        return step

    def list(self, board_id: str) -> List[Step]:
        self.get_board(board_id)
        return self.ledger.members(board_steps(board_id))

    def first(self, board_id: str) -> Optional[Step]:
        statement = select(Step).where(Step.board_id == board_id).order_by(Step.position).limit(1)
        return self.session.exec(statement).first()

    def terminal(self, board_id: str) -> Optional[Step]:
        statement = select(Step).where(Step.board_id == board_id, Step.is_terminal == True)  # noqa: E712
        return self.session.exec(statement).first()

    def create(
        self,
        board_id: str,
        name: str,
        description: str = "",
        kind: StepKind = StepKind.TASK,
        capacity: Optional[int] = None,
    ) -> Step:
        self.get_board(board_id)
        _check_capacity(capacity)

        group = board_steps(board_id)
        with self.ledger.transaction(group):
            step = Step(
                board_id=board_id,
                name=name,
                description=description,
                kind=kind,
                capacity=capacity,
                position=0,
            )
            position = self.ledger.append(group, step)

            terminal = self.terminal(board_id)
            if terminal is not None:
                # Keep the terminal step last: the new step takes its slot.
                self.ledger.move(terminal, group, group, position)

        self.session.refresh(step)
        logger.info("Step created", extra={
            "board_id": board_id,
            "step_id": step.id,
            "position": step.position
        })
        return step

    def update(
        self,
        board_id: str,
        step_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        kind: Optional[StepKind] = None,
        capacity: Optional[int] = None,
        clear_capacity: bool = False,
    ) -> Step:
        step = self.get(board_id, step_id, message="The step you are trying to update does not exist.")
        _check_capacity(capacity)

        if name is not None:
            step.name = name
        if description is not None:
            step.description = description
        if kind is not None:
            step.kind = kind
        if clear_capacity:
            step.capacity = None
        elif capacity is not None:
            step.capacity = capacity

        self.session.add(step)
        self.session.commit()
        self.session.refresh(step)
        return step

    def remove(self, board_id: str, step_id: str) -> None:
        """Delete a step, closing its slot and detaching the tasks it held."""
        from services.tasks import TaskManager

        step = self.get(board_id, step_id, message="The step you are trying to remove does not exist.")
        tasks = TaskManager(self.session, steps=self, ledger=self.ledger)

        with self.ledger.transaction(board_steps(board_id), step_tasks(step.id)):
            detached = tasks.detach_from_step(step)
            self.ledger.remove(board_steps(board_id), step)
            self.session.delete(step)

        logger.info("Step removed", extra={
            "board_id": board_id,
            "step_id": step_id,
            "detached_tasks": detached
        })

    def mark_as_finished(self, board_id: str, step_id: str) -> Step:
        """Make `step_id` the board's only terminal step and pin it last.

        Tasks already in the step become finished, so each of them needs an
        assigned user; their finish date is stamped here.
        """
        step = self.get(board_id, step_id, message="The step you are trying to mark as finished does not exist.")

        group = board_steps(board_id)
        with self.ledger.transaction(group, step_tasks(step.id)):
            if step.is_terminal:
                return step

            tasks = self.ledger.members(step_tasks(step.id))
            if any(task.assigned_to is None for task in tasks):
                raise AssignmentConflict(
                    "The step you are trying to mark as finished has tasks without an assigned user."
                )

            previous = self.terminal(board_id)
            if previous is not None:
                previous.is_terminal = False
                self.session.add(previous)

            step.is_terminal = True
            self.session.add(step)

            now = datetime.now(timezone.utc)
            for task in tasks:
                if task.finish_date is None:
                    task.finish_date = now
                    self.session.add(task)

            last = self.ledger.size(group)
            if step.position != last:
                self.ledger.move(step, group, group, last)

        self.session.refresh(step)
        logger.info("Step marked as finished", extra={
            "board_id": board_id,
            "step_id": step.id,
            "previous_terminal_id": previous.id if previous else None,
            "finished_tasks": len(tasks)
        })
        return step

    def move(self, board_id: str, step_id: str, position: int) -> Step:
        step = self.get(board_id, step_id, message="The step you are trying to move does not exist.")

        group = board_steps(board_id)
        with self.ledger.transaction(group):
            if step.is_terminal:
                raise InvalidState(
                    "The finish step is always the last step of the board and cannot be moved."
                )
            if self.terminal(board_id) is not None and position == self.ledger.size(group):
                raise PositionOutOfRange(
                    "The position you are trying to move the step to is taken by the finish step."
                )
            self.ledger.move(
                step, group, group, position,
                message="The position you are trying to move the step to does not exist.",
            )

        self.session.refresh(step)
        logger.info("Step moved", extra={
            "board_id": board_id,
            "step_id": step.id,
            "position": step.position
        })
        return step


def _check_capacity(capacity: Optional[int]) -> None:
    if capacity is not None and capacity < 1:
        raise PreconditionFailed("The step capacity must be at least one task.")
