from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Schema for plain confirmation responses."""
    message: str = Field(..., description="Human readable result")
