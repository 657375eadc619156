from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from .steps import StepResponse
from .tasks import TaskResponse


class CreateBoardRequest(BaseModel):
    """Schema for creating a new board."""
    name: str = Field(..., max_length=100, description="Board name")
    description: str = Field(default="", max_length=500, description="Brief description of the board")


class AddMemberRequest(BaseModel):
    """Schema for adding a user to a board."""
    user_id: str = Field(..., description="ID of the user to add as member")


class BoardResponse(BaseModel):
    """Schema for board responses."""
    id: str = Field(..., description="Board ID")
    name: str = Field(..., description="Board name")
    description: str = Field(..., description="Board description")
    created_by: Optional[str] = Field(default=None, description="User who created the board")
    created_at: datetime = Field(..., description="Creation timestamp")

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    """Schema for board member responses."""
    board_id: str = Field(..., description="Board ID")
    user_id: str = Field(..., description="Member user ID")

    model_config = {"from_attributes": True}


class StepWithTasksResponse(StepResponse):
    """Step together with its tasks in position order."""
    tasks: List[TaskResponse] = Field(default_factory=list, description="Tasks in the step")


class BoardDetailResponse(BoardResponse):
    """Board with its steps (in position order), members and backlog."""
    steps: List[StepWithTasksResponse] = Field(default_factory=list, description="Board steps")
    members: List[str] = Field(default_factory=list, description="Member user IDs")
    backlog: List[TaskResponse] = Field(default_factory=list, description="Tasks detached from removed steps")
