"""
Authorization guard and FastAPI dependencies for team-scoped RBAC.

Implements:
- AuthorizationGuard: membership + permission table -> allow/deny decision
- The narrower owner rule for role changes and member removal
- FastAPI dependencies for route protection
"""
from typing import Optional
from fastapi import Depends, Request

from app.features.permissions.schemas import AuthorizationDecision, DenialReason, TeamAccess
from app.features.permissions.table import Permission, PermissionTable, Role
from app.features.teams.dependencies import get_membership_store
from app.features.teams.schemas import MembershipRecord
from app.features.teams.store import MembershipStore
from app.features.users.dependencies import get_current_user
from app.features.users.schemas import UserRecord
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Guard
# ============================================================================

class AuthorizationGuard:
    """
    Decides whether a user may perform an action in a team.

    Never raises for a denial: every outcome is an AuthorizationDecision.
    Decisions depend only on the caller's membership role and the table.
    """

    def __init__(self, store: MembershipStore, table: PermissionTable):
        self.store = store
        self.table = table

    async def resolve_role(self, user_id: str, team_id: str) -> Optional[Role]:
        return await self.store.get_user_role(user_id, team_id)

    async def authorize(
        self,
        user_id: str,
        team_id: str,
        permission: Permission | str,
    ) -> AuthorizationDecision:
        """
        Check that `user_id` holds `permission` in `team_id`.

        1. No membership -> deny (not_a_member)
        2. Role lacks permission -> deny (insufficient_permission)
        3. Otherwise allow, carrying the resolved role
        """
        role = await self.resolve_role(user_id, team_id)
        if role is None:
            log.debug("User %s denied %s: not a member of team %s", user_id, permission, team_id)
            return AuthorizationDecision.deny(DenialReason.NOT_A_MEMBER)

        if not self.table.has_permission(role, permission):
            log.debug("User %s (%s) denied %s in team %s", user_id, role.value, permission, team_id)
            return AuthorizationDecision.deny(DenialReason.INSUFFICIENT_PERMISSION, role=role)

        log.debug("User %s (%s) granted %s in team %s", user_id, role.value, permission, team_id)
        return AuthorizationDecision.allow(role)

    async def authorize_role_change(
        self,
        actor_id: str,
        membership: MembershipRecord,
        new_role: Role | str,
    ) -> AuthorizationDecision:
        """
        manage_team is necessary but not sufficient: touching the owner's
        membership or granting owner requires being the team's recorded owner.
        """
        grants_owner = new_role == Role.OWNER or str(new_role).strip().lower() == Role.OWNER.value
        return await self._authorize_member_mutation(
            actor_id, membership, touches_owner=membership.role == Role.OWNER or grants_owner,
        )

    async def authorize_member_removal(
        self,
        actor_id: str,
        membership: MembershipRecord,
    ) -> AuthorizationDecision:
        return await self._authorize_member_mutation(
            actor_id, membership, touches_owner=membership.role == Role.OWNER,
        )

    async def _authorize_member_mutation(
        self,
        actor_id: str,
        membership: MembershipRecord,
        touches_owner: bool,
    ) -> AuthorizationDecision:
        decision = await self.authorize(actor_id, membership.team_id, Permission.MANAGE_TEAM)
        if not decision.allowed:
            return decision

        team = await self.store.get_team(membership.team_id)
        if team is None:
            return AuthorizationDecision.deny(DenialReason.NOT_FOUND, message="Team not found")

        if touches_owner and actor_id != team.owner_id:
            log.debug("User %s denied owner-role change on member %s", actor_id, membership.id)
            return AuthorizationDecision.deny(
                DenialReason.OWNER_PROTECTED,
                role=decision.role,
                message="Only the team owner can change the owner role",
            )
        return decision


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def get_permission_table(request: Request) -> PermissionTable:
    """The table built at startup, shared by reference."""
    return request.app.state.permission_table


def get_guard(
    store: MembershipStore = Depends(get_membership_store),
    table: PermissionTable = Depends(get_permission_table),
) -> AuthorizationGuard:
    return AuthorizationGuard(store, table)


def require_team_permission(permission: Permission):
    """
    FastAPI dependency to require a permission in the team named by the
    `team_id` path parameter.

    Usage:
        @router.post("/{team_id}/invitations")
        async def invite(
            access: TeamAccess = Depends(require_team_permission(Permission.MANAGE_TEAM))
        ):
            # access.role is the caller's role in the team
            pass

    Raises:
        NotAMemberError / InsufficientPermissionError (rendered as 403)
    """
    async def permission_dependency(
        team_id: str,
        request: Request,
        current_user: UserRecord = Depends(get_current_user),
        guard: AuthorizationGuard = Depends(get_guard),
    ) -> TeamAccess:
        decision = await guard.authorize(current_user.id, team_id, permission)
        decision.raise_for_denial()
        request.state.team_role = decision.role
        return TeamAccess(user=current_user, team_id=team_id, role=decision.role)

    return permission_dependency
