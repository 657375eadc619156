from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from models.boards import StepKind


class CreateStepRequest(BaseModel):
    """Schema for creating a new step on a board."""
    name: str = Field(..., max_length=100, description="Name of the step")
    description: str = Field(default="", max_length=300, description="Brief description of the step")
    kind: StepKind = Field(default=StepKind.TASK, description="Role of the step (START, TASK or FINISH)")
    capacity: Optional[int] = Field(default=None, ge=1, description="Maximum number of tasks in the step")


class UpdateStepRequest(BaseModel):
    """Schema for updating a step."""
    name: Optional[str] = Field(default=None, max_length=100, description="New step name")
    description: Optional[str] = Field(default=None, max_length=300, description="New step description")
    kind: Optional[StepKind] = Field(default=None, description="New step role")
    capacity: Optional[int] = Field(default=None, ge=1, description="New maximum number of tasks")
    clear_capacity: bool = Field(default=False, description="Remove the task limit of the step")


class MoveStepRequest(BaseModel):
    """Schema for moving a step to another position."""
    position: int = Field(..., description="New 1-based position of the step on the board")


class StepResponse(BaseModel):
    """Schema for step responses."""
    id: str = Field(..., description="Step ID")
    board_id: str = Field(..., description="Board ID")
    name: str = Field(..., description="Step name")
    description: str = Field(..., description="Step description")
    kind: StepKind = Field(..., description="Step role")
    capacity: Optional[int] = Field(default=None, description="Maximum number of tasks")
    position: int = Field(..., description="1-based position on the board")
    is_terminal: bool = Field(..., description="Whether this is the board's finish step")
    created_at: datetime = Field(..., description="Creation timestamp")

    model_config = {"from_attributes": True}
