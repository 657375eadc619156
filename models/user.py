from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone
from .helper import id_generator


class User(SQLModel, table=True):
    """Account that can own boards and be assigned to tasks."""
    id: str = Field(default_factory=id_generator('user', 10), primary_key=True)
    username: str = Field(unique=True, index=True)
    email: Optional[str] = Field(default=None, unique=True, index=True)
    hashed_password: str
    is_active: bool = Field(default=True)


class Token(SQLModel, table=True):
    """Bearer token issued to a user."""
    id: str = Field(default_factory=id_generator('token', 10), primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    token_type: str = Field(default="bearer")
    access_token: str = Field(unique=True, index=True)
    expires_at: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_revoked: bool = Field(default=False)
