"""
Pydantic schemas for authorization decisions and the permission API.
"""
import enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.core.errors import ERRORS_BY_CODE
from app.features.permissions.table import Role
from app.features.users.schemas import UserRecord


class DenialReason(str, enum.Enum):
    """Why the guard denied an action. Values double as API error codes."""
    NOT_A_MEMBER = "not_a_member"
    INSUFFICIENT_PERMISSION = "insufficient_permission"
    OWNER_PROTECTED = "owner_protected"
    NOT_FOUND = "not_found"


class AuthorizationDecision(BaseModel):
    """
    Outcome of an authorization check.

    Denials are ordinary values; `raise_for_denial()` converts one into the
    matching WorkspaceError at the HTTP boundary.
    """
    allowed: bool
    reason: Optional[DenialReason] = None
    role: Optional[Role] = None
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def allow(cls, role: Role) -> "AuthorizationDecision":
        return cls(allowed=True, role=role)

    @classmethod
    def deny(
        cls,
        reason: DenialReason,
        role: Optional[Role] = None,
        message: Optional[str] = None,
    ) -> "AuthorizationDecision":
        return cls(allowed=False, reason=reason, role=role, message=message)

    def __bool__(self) -> bool:
        return self.allowed

    def raise_for_denial(self) -> None:
        if self.allowed:
            return
        raise ERRORS_BY_CODE[self.reason.value](self.message)


class TeamAccess(BaseModel):
    """What a team-scoped route learns from the guard: who is calling and as what role."""
    user: UserRecord
    team_id: str
    role: Role


# ============================================================================
# Permission API Schemas
# ============================================================================

class RolePermissionsResponse(BaseModel):
    """The static role -> permissions table."""
    roles: Dict[str, List[str]]


class PermissionCheckRequest(BaseModel):
    """Schema for checking whether the caller has a permission in a team."""
    team_id: str = Field(..., description="Team ID")
    permission: str = Field(..., description="Permission name, e.g. 'manage_team'")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    role: Optional[Role] = None
    reason: Optional[DenialReason] = None
