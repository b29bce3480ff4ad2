"""
Pydantic schemas for teams, memberships and invitations.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator

from app.core.schemas import RecordModel
from app.features.permissions.table import Role
from app.features.users.schemas import UserPublic


# ============================================================================
# Records
# ============================================================================

class TeamRecord(RecordModel):
    id: str
    name: str
    owner_id: str
    created_at: datetime


class MembershipRecord(RecordModel):
    id: str
    team_id: str
    user_id: str
    role: Role
    status: str = "active"
    joined_at: datetime


class InvitationRecord(RecordModel):
    id: str
    team_id: str
    email: str
    role: Role
    token: str
    invited_by: str
    expires_at: datetime
    created_at: datetime

    def is_pending(self, now: datetime) -> bool:
        """An invitation is pending until its expiry instant, exclusive."""
        return self.expires_at > now


# ============================================================================
# Requests
# ============================================================================

class TeamCreate(BaseModel):
    """Schema for creating a team; the caller becomes its owner."""
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Team name must not be empty")
        return v


class TeamUpdate(TeamCreate):
    """Schema for renaming a team."""
    pass


class MemberAdd(BaseModel):
    """Schema for adding an existing user to a team."""
    user_id: str = Field(..., description="ID of the user to add")
    role: Role = Field(default=Role.MEMBER, description="Role in the team")


class MemberRoleUpdate(BaseModel):
    """Schema for changing a member's role."""
    role: Role


class InvitationCreate(BaseModel):
    """Schema for inviting someone to a team by email."""
    email: EmailStr
    role: Role = Field(default=Role.MEMBER)


# ============================================================================
# Responses
# ============================================================================

class TeamResponse(BaseModel):
    id: str
    name: str
    owner_id: str
    created_at: datetime
    role: Role | None = Field(None, description="Caller's role in the team")

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    id: str
    team_id: str
    user_id: str
    role: Role
    status: str
    joined_at: datetime
    user: UserPublic | None = None

    model_config = {"from_attributes": True}


class InvitationResponse(BaseModel):
    id: str
    team_id: str
    email: str
    role: Role
    invited_by: str
    expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationCreatedResponse(InvitationResponse):
    """Returned once, to the inviter: includes the token to send to the invitee."""
    token: str
