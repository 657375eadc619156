"""
Task manager: cards on a board, their movement between steps and their
parent/child hierarchy.

Lifecycle: UNPLACED (no step) -> ACTIVE (non-terminal step) -> FINISHED
(terminal step). Finished tasks are frozen. Every check runs before the first
write; position rewrites go through the shared PositionLedger transaction.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Session, select

from models.boards import BoardMember, Step, Task
from services.errors import (
    AssignmentConflict, CapacityExceeded, InvalidState, NotFound, PreconditionFailed
)
from services.positions import (
    PositionLedger, board_backlog, step_tasks, task_children, task_group
)
from services.steps import StepManager
from settings import logger


class TaskManager:
    def __init__(
        self,
        session: Session,
        steps: Optional[StepManager] = None,
        ledger: Optional[PositionLedger] = None,
    ):
        self.session = session
        self.ledger = ledger or (steps.ledger if steps else PositionLedger(session))
        self.steps = steps or StepManager(session, self.ledger)

    # Lookups

    def get(
        self,
        board_id: str,
        task_id: str,
        message: str = "The task you are trying to use does not exist.",
    ) -> Task:
        statement = select(Task).where(Task.board_id == board_id, Task.id == task_id)
        task = self.session.exec(statement).first()
        if not task:
            raise NotFound(message)
        return task

    def list(self, board_id: str, step_id: Optional[str] = None) -> List[Task]:
        """Tasks of a step in position order, or every task of the board."""
        self.steps.get_board(board_id)
        if step_id is not None:
            step = self.steps.get(board_id, step_id)
            return self.ledger.members(step_tasks(step.id))

        statement = (
            select(Task)
            .where(Task.board_id == board_id)
            .order_by(Task.step_id, Task.parent_id, Task.position)
        )
        return list(self.session.exec(statement).all())

    def children(self, board_id: str, task_id: str) -> List[Task]:
        """Unplaced children in position order, followed by placed ones."""
        task = self.get(board_id, task_id)
        statement = (
            select(Task)
            .where(Task.parent_id == task.id, Task.step_id.is_not(None))
            .order_by(Task.step_id, Task.position)
        )
        placed = list(self.session.exec(statement).all())
        return self.ledger.members(task_children(task.id)) + placed

    # Creation

    def create(
        self,
        board_id: str,
        name: str,
        description: str = "",
        created_by: Optional[str] = None,
        expiration_date: Optional[datetime] = None,
    ) -> Task:
        """Create a task at the end of the board's first step."""
        self.steps.get_board(board_id)

        step = self.steps.first(board_id)
        if step is None:
            raise PreconditionFailed(
                "The board must have at least one step in order to create tasks. "
                "These tasks are assigned to the first step."
            )
        if step.is_terminal:
            raise PreconditionFailed(
                "The first step of the board is its finish step, add another step before creating tasks."
            )

        group = step_tasks(step.id)
        with self.ledger.transaction(group):
            self._ensure_room(step)
            task = Task(
                board_id=board_id,
                step_id=step.id,
                name=name,
                description=description,
                created_by=created_by,
                expiration_date=expiration_date,
                position=0,
            )
            task.step = step
            self.ledger.append(group, task)

        self.session.refresh(task)
        logger.info("Task created", extra={
            "board_id": board_id,
            "task_id": task.id,
            "step_id": step.id,
            "position": task.position
        })
        return task

    def add_child(
        self,
        board_id: str,
        parent_id: Optional[str],
        name: str,
        description: str = "",
        created_by: Optional[str] = None,
    ) -> Task:
        """Create an unplaced child at the end of the parent's children."""
        if not parent_id:
            raise PreconditionFailed("The child task must have a parent.")

        parent = self.get(
            board_id, parent_id,
            message="The parent task you are trying to assign does not exist.",
        )
        self._ensure_acyclic(parent)

        group = task_children(parent.id)
        with self.ledger.transaction(group):
            child = Task(
                board_id=board_id,
                parent_id=parent.id,
                name=name,
                description=description,
                created_by=created_by if created_by is not None else parent.created_by,
                position=0,
            )
            self.ledger.append(group, child)

        self.session.refresh(child)
        logger.info("Child task created", extra={
            "board_id": board_id,
            "parent_id": parent.id,
            "task_id": child.id,
            "position": child.position
        })
        return child

    # Mutation

    def update(
        self,
        board_id: str,
        task_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        expiration_date: Optional[datetime] = None,
    ) -> Task:
        task = self.get(board_id, task_id, message="The task you are trying to update does not exist.")

        if name is not None:
            task.name = name
        if description is not None:
            task.description = description
        if expiration_date is not None:
            task.expiration_date = expiration_date

        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        return task

    def move(self, board_id: str, task_id: str, step_id: str, position: int) -> Task:
        """Move a placed task to `position` within `step_id`."""
        with self.ledger.transaction():
            task = self._lock(board_id, task_id, "The task you are trying to move does not exist.")
            step = self.steps.get(
                board_id, step_id,
                message="The step you are trying to move the task to does not exist.",
            )

            if task.is_finished:
                raise InvalidState("The task you are trying to move has already been finished.")
            if task.step_id is None:
                raise InvalidState("The task you are trying to move does not have a step.")
            self._ensure_can_finish(task, step, "move")

            source = step_tasks(task.step_id)
            self.ledger.lock(source, step_tasks(step.id))
            step_changed = task.step_id != step.id
            self._ensure_room(step, task)
            self.ledger.move(
                task, source, step_tasks(step.id), position,
                attach=lambda t: _attach(t, step),
                message="The task you are trying to replace does not exist.",
            )
            _stamp(task, step, step_changed)

        self.session.refresh(task)
        logger.info("Task moved", extra={
            "board_id": board_id,
            "task_id": task.id,
            "step_id": step.id,
            "position": task.position,
            "finished": task.finish_date is not None
        })
        return task

    def place(self, board_id: str, task_id: str, step_id: str, position: int) -> Task:
        """First placement of an unplaced task (a child or a detached task)."""
        with self.ledger.transaction():
            task = self._lock(board_id, task_id, "The task you are trying to place does not exist.")
            step = self.steps.get(
                board_id, step_id,
                message="The step you are trying to place the task in does not exist.",
            )

            if task.step_id is not None:
                raise InvalidState("The task you are trying to place already has a step.")
            self._ensure_can_finish(task, step, "place")

            source = task_group(task)
            self.ledger.lock(source, step_tasks(step.id))
            self._ensure_room(step, task)
            self.ledger.move(
                task, source, step_tasks(step.id), position,
                attach=lambda t: _attach(t, step),
                message="The task you are trying to replace does not exist.",
            )
            _stamp(task, step, step_changed=False)

        self.session.refresh(task)
        logger.info("Task placed", extra={
            "board_id": board_id,
            "task_id": task.id,
            "step_id": step.id,
            "position": task.position
        })
        return task

    def assign_user(self, board_id: str, task_id: str, member_id: str) -> Task:
        with self.ledger.transaction():
            task = self._lock(board_id, task_id, "The task you are trying to assign does not exist.")
            if task.is_finished:
                raise InvalidState("The task you are trying to assign has already been finished.")

            member = self._member(board_id, member_id, "The member you are trying to assign does not exist.")
            if task.assigned_to is not None:
                raise AssignmentConflict("The task you are trying to assign already has an assigned user.")

            task.assigned_to = member.user_id
            self.session.add(task)

        self.session.refresh(task)
        logger.info("User assigned to task", extra={
            "board_id": board_id,
            "task_id": task.id,
            "user_id": member.user_id
        })
        return task

    def unassign_user(self, board_id: str, task_id: str, member_id: str) -> Task:
        with self.ledger.transaction():
            task = self._lock(board_id, task_id, "The task you are trying to unassign does not exist.")
            if task.is_finished:
                raise InvalidState("The task you are trying to unassign has already been finished.")

            member = self._member(board_id, member_id, "The member you are trying to unassign does not exist.")
            if task.assigned_to is None:
                raise AssignmentConflict("The task you are trying to unassign does not have an assigned user.")
            if task.assigned_to != member.user_id:
                raise AssignmentConflict("The member you are trying to unassign is not assigned to the task.")

            task.assigned_to = None
            self.session.add(task)

        self.session.refresh(task)
        logger.info("User unassigned from task", extra={
            "board_id": board_id,
            "task_id": task.id,
            "user_id": member.user_id
        })
        return task

    # Removal

    def delete(self, board_id: str, task_id: str) -> int:
        """Delete a placed task and all of its descendants; returns rows removed."""
        with self.ledger.transaction():
            task = self._lock(board_id, task_id, "The task you are trying to delete does not exist.")
            if task.is_finished:
                raise InvalidState("The task you are trying to delete has already been finished.")
            if task.step_id is None:
                raise InvalidState("The task you are trying to delete does not have a step.")

            self.ledger.lock(step_tasks(task.step_id))
            nodes = self._subtree(task, "The task you are trying to delete has a finished child task.")
            removed = self._delete_tree(nodes)

        logger.info("Task deleted", extra={
            "board_id": board_id,
            "task_id": task_id,
            "removed": removed
        })
        return removed

    def remove_child(self, board_id: str, parent_id: Optional[str], child_id: str) -> int:
        """Delete a child (and its descendants) from under `parent_id`."""
        if not parent_id:
            raise PreconditionFailed("The child task must have a parent.")

        with self.ledger.transaction():
            parent = self._lock(board_id, parent_id, "The parent task you are trying to use does not exist.")
            child = self._lock(
                board_id, child_id,
                "The child task you are trying to remove does not exist.",
                Task.parent_id == parent.id,
            )
            if child.is_finished:
                raise InvalidState("The child task you are trying to remove has already been finished.")

            self.ledger.lock(task_group(child))
            nodes = self._subtree(child, "The child task you are trying to remove has a finished child task.")
            removed = self._delete_tree(nodes)

        logger.info("Child task removed", extra={
            "board_id": board_id,
            "parent_id": parent_id,
            "task_id": child_id,
            "removed": removed
        })
        return removed

    def recount_children_positions(self, board_id: str, task_id: str) -> List[Task]:
        """Renumber the task's unplaced children as 1..N in their current order."""
        task = self.get(board_id, task_id, message="The task you are trying to update does not exist.")

        group = task_children(task.id)
        with self.ledger.transaction(group):
            self.ledger.recount(group)

        return self.ledger.members(group)

    def detach_from_step(self, step: Step) -> int:
        """Take every task out of `step`, keeping their relative order.

        Children go back to their parent's unplaced children, the rest to the
        board backlog. Runs inside the caller's transaction.
        """
        tasks = self.ledger.members(step_tasks(step.id))
        for task in tasks:
            if task.parent_id is not None:
                target = task_children(task.parent_id)
            else:
                target = board_backlog(task.board_id)
            self.ledger.lock(target)
            task.step = None
            task.step_id = None
            self.ledger.append(target, task)
        return len(tasks)

    # Helpers

    def _member(self, board_id: str, user_id: str, message: str) -> BoardMember:
        statement = select(BoardMember).where(
            BoardMember.board_id == board_id, BoardMember.user_id == user_id
        )
        member = self.session.exec(statement).first()
        if not member:
            raise NotFound(message)
        return member

    def _ensure_room(self, step: Step, task: Optional[Task] = None) -> None:
        if step.capacity is None:
            return
        occupied = [
            t for t in self.ledger.members(step_tasks(step.id))
            if task is None or t.id != task.id
        ]
        if len(occupied) >= step.capacity:
            raise CapacityExceeded("The step you are trying to move the task to is full.")

    def _ensure_can_finish(self, task: Task, step: Step, action: str) -> None:
        if step.is_terminal and task.assigned_to is None:
            raise AssignmentConflict(
                f"The task you are trying to {action} does not have an assigned user."
            )

    def _ensure_acyclic(self, task: Task) -> None:
        seen = {task.id}
        parent_id = task.parent_id
        while parent_id is not None:
            if parent_id in seen:
                raise InvalidState("The parent task belongs to a cyclic task hierarchy.")
            seen.add(parent_id)
            parent = self.session.get(Task, parent_id)
            parent_id = parent.parent_id if parent else None

    def _lock(self, board_id: str, task_id: str, message: str, *criteria) -> Task:
        """Re-read the task under a row lock, replacing any copy already loaded."""
        statement = (
            select(Task)
            .where(Task.board_id == board_id, Task.id == task_id, *criteria)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        task = self.session.exec(statement).first()
        if not task:
            raise NotFound(message)
        return task

    def _descendants(self, task: Task) -> List[Task]:
        found: List[Task] = []
        seen = {task.id}
        frontier = [task.id]
        while frontier:
            statement = (
                select(Task)
                .where(Task.parent_id.in_(frontier))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            rows = self.session.exec(statement).all()
            frontier = []
            for row in rows:
                if row.id in seen:
                    continue
                seen.add(row.id)
                found.append(row)
                frontier.append(row.id)
        return found

    def _subtree(self, task: Task, message: str) -> List[Task]:
        """The task followed by its descendants; finished descendants block removal."""
        nodes = [task] + self._descendants(task)
        if any(node.is_finished for node in nodes[1:]):
            raise InvalidState(message)
        return nodes

    def _delete_tree(self, nodes: List[Task]) -> int:
        # Deepest first so no row outlives its parent.
        for node in reversed(nodes):
            group = task_group(node)
            self.ledger.lock(group)
            self.ledger.remove(group, node)
            self.session.delete(node)
            self.session.flush()
        return len(nodes)


def _attach(task: Task, step: Step) -> None:
    task.step = step
    task.step_id = step.id


def _stamp(task: Task, step: Step, step_changed: bool) -> None:
    now = datetime.now(timezone.utc)
    if step_changed and task.start_date is None:
        task.start_date = now
    if step.is_terminal and task.finish_date is None:
        task.finish_date = now
