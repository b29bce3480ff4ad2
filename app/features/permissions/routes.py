"""
Permission API routes.

Exposes the static role table and lets clients ask whether the caller
holds a permission in a team (e.g. to hide controls in the UI).
"""
from fastapi import APIRouter, Depends

from app.features.permissions.dependencies import (
    AuthorizationGuard,
    get_guard,
    get_permission_table,
)
from app.features.permissions.schemas import (
    PermissionCheckRequest,
    PermissionCheckResponse,
    RolePermissionsResponse,
)
from app.features.permissions.table import PermissionTable
from app.features.users.dependencies import get_current_user
from app.features.users.schemas import UserRecord
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.get("/roles", response_model=RolePermissionsResponse)
async def list_role_permissions(table: PermissionTable = Depends(get_permission_table)):
    """List every role with the permissions it grants."""
    return RolePermissionsResponse(roles=table.as_dict())


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    current_user: UserRecord = Depends(get_current_user),
    guard: AuthorizationGuard = Depends(get_guard),
):
    """Check whether the current user has a permission in a team. Unknown permissions are denied."""
    decision = await guard.authorize(current_user.id, check.team_id, check.permission)
    return PermissionCheckResponse(
        has_permission=decision.allowed,
        role=decision.role,
        reason=decision.reason,
    )
