from sqlmodel import SQLModel, Field, Relationship
from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from .helper import id_generator


class StepKind(str, Enum):
    """Role a step plays in the board flow."""
    START = "START"
    TASK = "TASK"
    FINISH = "FINISH"


class TaskState(str, Enum):
    """Lifecycle state of a task, derived from its step."""
    UNPLACED = "UNPLACED"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"


class Board(SQLModel, table=True):
    """Workspace holding an ordered list of steps and its members."""
    id: str = Field(default_factory=id_generator('board', 10), primary_key=True)
    name: str = Field(index=True)
    description: str = Field(default="")
    created_by: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BoardMember(SQLModel, table=True):
    """Links a User with a Board; members are the eligible assignees."""
    board_id: str = Field(foreign_key="board.id", primary_key=True)
    user_id: str = Field(foreign_key="user.id", primary_key=True)


class Step(SQLModel, table=True):
    """Column of a board. Positions are dense (1..N) within the board."""
    id: str = Field(default_factory=id_generator('step', 10), primary_key=True)
    board_id: str = Field(foreign_key="board.id", index=True)
    name: str
    description: str = Field(default="")
    kind: StepKind = Field(default=StepKind.TASK)
    capacity: Optional[int] = Field(default=None)
    position: int = Field(index=True)
    is_terminal: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Task(SQLModel, table=True):
    """Card on a board.

    `position` is dense within the task's sibling group: its step when placed,
    otherwise its parent's unplaced children, otherwise the board backlog.
    """
    id: str = Field(default_factory=id_generator('task', 10), primary_key=True)
    board_id: str = Field(foreign_key="board.id", index=True)
    step_id: Optional[str] = Field(default=None, foreign_key="step.id", index=True)
    parent_id: Optional[str] = Field(default=None, foreign_key="task.id", index=True)
    name: str
    description: str = Field(default="")
    position: int = Field(index=True)
    assigned_to: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    created_by: Optional[str] = Field(default=None, foreign_key="user.id")
    start_date: Optional[datetime] = Field(default=None)
    finish_date: Optional[datetime] = Field(default=None)
    expiration_date: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    step: Optional[Step] = Relationship()

    @property
    def is_finished(self) -> bool:
        return self.step is not None and self.step.is_terminal

    @property
    def state(self) -> TaskState:
        if self.step_id is None:
            return TaskState.UNPLACED
        if self.is_finished:
            return TaskState.FINISHED
        return TaskState.ACTIVE
