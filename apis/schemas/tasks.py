from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from models.boards import TaskState


class CreateTaskRequest(BaseModel):
    """Schema for creating a new task in the board's first step."""
    name: str = Field(..., max_length=150, description="Task name")
    description: str = Field(default="", max_length=3000, description="Task description")
    expiration_date: Optional[datetime] = Field(default=None, description="Date on which the task should be finished")


class CreateChildTaskRequest(BaseModel):
    """Schema for adding a child task under a parent task."""
    name: str = Field(..., max_length=150, description="Child task name")
    description: str = Field(default="", max_length=3000, description="Child task description")


class UpdateTaskRequest(BaseModel):
    """Schema for updating a task."""
    name: Optional[str] = Field(default=None, max_length=150, description="New task name")
    description: Optional[str] = Field(default=None, max_length=3000, description="New task description")
    expiration_date: Optional[datetime] = Field(default=None, description="New expiration date")


class MoveTaskRequest(BaseModel):
    """Schema for moving (or placing) a task into a step position."""
    step_id: str = Field(..., description="Target step ID")
    position: int = Field(..., description="1-based position inside the target step")


class AssignUserRequest(BaseModel):
    """Schema for (un)assigning a board member to a task."""
    member_id: str = Field(..., description="User ID of the board member")


class TaskResponse(BaseModel):
    """Schema for task responses."""
    id: str = Field(..., description="Task ID")
    board_id: str = Field(..., description="Board ID")
    step_id: Optional[str] = Field(default=None, description="Step holding the task")
    parent_id: Optional[str] = Field(default=None, description="Parent task ID")
    name: str = Field(..., description="Task name")
    description: str = Field(..., description="Task description")
    position: int = Field(..., description="1-based position inside its sibling group")
    assigned_to: Optional[str] = Field(default=None, description="Assigned member user ID")
    created_by: Optional[str] = Field(default=None, description="User who created the task")
    start_date: Optional[datetime] = Field(default=None, description="When work on the task started")
    finish_date: Optional[datetime] = Field(default=None, description="When the task reached the finish step")
    expiration_date: Optional[datetime] = Field(default=None, description="Expected finish date")
    is_finished: bool = Field(..., description="Whether the task sits in the finish step")
    state: TaskState = Field(..., description="UNPLACED, ACTIVE or FINISHED")

    model_config = {"from_attributes": True}
