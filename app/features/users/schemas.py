"""
Pydantic schemas for user-related records, requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from app.core.schemas import RecordModel


class UserRecord(RecordModel):
    """Identity record as held by the identity store."""
    id: str
    username: str
    email: str
    display_name: str
    appwrite_id: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    created_at: datetime
    last_login_at: datetime | None = None


class UserCreate(BaseModel):
    """Schema for registering a new user."""
    username: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=255)
    appwrite_id: str | None = Field(None, description="Appwrite user ID from authentication")


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    display_name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    avatar_url: str | None = Field(None, max_length=500)
    bio: str | None = Field(None, max_length=1000)


class UserResponse(BaseModel):
    """Schema for the authenticated user's own profile."""
    id: str
    username: str
    email: str
    display_name: str
    avatar_url: str | None = None
    bio: str | None = None
    created_at: datetime
    last_login_at: datetime | None = None

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    username: str
    display_name: str
    avatar_url: str | None = None

    model_config = {"from_attributes": True}
