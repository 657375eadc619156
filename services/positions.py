"""
Position ledger: dense, 1-based, gap-free ordering over sibling groups.

A sibling group is every row sharing an ordering context: the steps of a board,
the tasks of a step, the unplaced children of a task, or the backlog of a board.
All rewrites of a group go through `PositionLedger.transaction`, which row-locks
the groups involved and commits (or rolls back) them as one unit.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Tuple

from sqlmodel import Session, select

from models.boards import Step, Task
from services.errors import PositionOutOfRange


@dataclass(frozen=True, eq=False)
class SiblingGroup:
    """Rows of `model` matching `criteria`, ordered by position."""
    key: str
    model: Any
    criteria: Tuple[Any, ...]

    def statement(self):
        return (
            select(self.model)
            .where(*self.criteria)
            .order_by(self.model.position, self.model.id)
        )


def board_steps(board_id: str) -> SiblingGroup:
    return SiblingGroup(f"board:{board_id}:steps", Step, (Step.board_id == board_id,))


def step_tasks(step_id: str) -> SiblingGroup:
    return SiblingGroup(f"step:{step_id}:tasks", Task, (Task.step_id == step_id,))


def task_children(task_id: str) -> SiblingGroup:
    # Placed children are ordered by their step, not by their parent.
    return SiblingGroup(
        f"task:{task_id}:children",
        Task,
        (Task.parent_id == task_id, Task.step_id.is_(None)),
    )


def board_backlog(board_id: str) -> SiblingGroup:
    return SiblingGroup(
        f"board:{board_id}:backlog",
        Task,
        (Task.board_id == board_id, Task.step_id.is_(None), Task.parent_id.is_(None)),
    )


def task_group(task: Task) -> SiblingGroup:
    """Group the task currently belongs to."""
    if task.step_id is not None:
        return step_tasks(task.step_id)
    if task.parent_id is not None:
        return task_children(task.parent_id)
    return board_backlog(task.board_id)


class PositionLedger:
    """Append/remove/move/recount over sibling groups inside one transaction."""

    def __init__(self, session: Session):
        self.session = session
        self._depth = 0
        self._locked: set = set()

    @contextmanager
    def transaction(self, *groups: SiblingGroup) -> Iterator["PositionLedger"]:
        """Lock `groups` for the rest of the transaction and commit on exit.

        Nested calls join the outermost transaction; only the outermost one
        commits or rolls back.
        """
        outermost = self._depth == 0
        self._depth += 1
        try:
            self.lock(*groups)
            yield self
            if outermost:
                self.session.commit()
        except Exception:
            if outermost:
                self.session.rollback()
            raise
        finally:
            self._depth -= 1
            if outermost:
                self._locked.clear()

    def lock(self, *groups: SiblingGroup) -> None:
        """SELECT ... FOR UPDATE every group not yet locked, in key order.

        Rows already in the identity map are overwritten with what the
        database holds now.
        """
        for group in sorted(groups, key=lambda g: g.key):
            if group.key in self._locked:
                continue
            statement = group.statement().with_for_update().execution_options(populate_existing=True)
            self.session.exec(statement).all()
            self._locked.add(group.key)

    def members(self, group: SiblingGroup) -> List[Any]:
        statement = group.statement().execution_options(populate_existing=True)
        return list(self.session.exec(statement).all())

    def size(self, group: SiblingGroup) -> int:
        return len(self.members(group))

    def append(self, group: SiblingGroup, entity: Any) -> int:
        siblings = [m for m in self.members(group) if m.id != entity.id]
        entity.position = len(siblings) + 1
        self.session.add(entity)
        return entity.position

    def remove(self, group: SiblingGroup, entity: Any) -> None:
        """Close the gap left by `entity`; the caller detaches or deletes it."""
        self._renumber([m for m in self.members(group) if m.id != entity.id])

    def check_position(
        self,
        entity: Any,
        target: SiblingGroup,
        position: int,
        message: str = "The target position does not exist.",
    ) -> List[Any]:
        """Validate `position` against `target` and return its other members.

        Within the same group the valid range is 1..N; when arriving from
        another group it is 1..N+1.
        """
        siblings = [m for m in self.members(target) if m.id != entity.id]
        if not 1 <= position <= len(siblings) + 1:
            raise PositionOutOfRange(message)
        return siblings

    def move(
        self,
        entity: Any,
        source: Optional[SiblingGroup],
        target: SiblingGroup,
        position: int,
        attach: Optional[Callable[[Any], None]] = None,
        message: str = "The target position does not exist.",
    ) -> None:
        """Take `entity` out of `source` and insert it at `position` in `target`.

        `attach` rewrites the membership columns (step/parent) of the entity
        when the group changes.
        """
        siblings = self.check_position(entity, target, position, message)
        if source is not None and source.key != target.key:
            self.remove(source, entity)
        if attach is not None:
            attach(entity)
        siblings.insert(position - 1, entity)
        self._renumber(siblings)

    def recount(self, group: SiblingGroup) -> None:
        self._renumber(self.members(group))

    def _renumber(self, ordered: List[Any]) -> None:
        for index, item in enumerate(ordered, start=1):
            if item.position != index:
                item.position = index
                self.session.add(item)
