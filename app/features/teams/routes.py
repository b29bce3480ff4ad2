"""
Team feature routes: teams, members and invitations.

Routes are thin: authorization comes from the guard, invariants from the
membership store. Domain errors are rendered by the handler in app.main.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request, Response, status

from app.core import config
from app.core.errors import NotFoundError, OwnerProtectedError
from app.core.rate_limit import limiter
from app.core.storage import Storage, get_storage
from app.features.permissions.dependencies import (
    AuthorizationGuard,
    get_guard,
    require_team_permission,
)
from app.features.permissions.schemas import TeamAccess
from app.features.permissions.table import Permission
from app.features.teams.dependencies import get_membership_store, get_team_membership
from app.features.teams.schemas import (
    InvitationCreate,
    InvitationCreatedResponse,
    InvitationResponse,
    MemberAdd,
    MemberResponse,
    MemberRoleUpdate,
    MembershipRecord,
    TeamCreate,
    TeamResponse,
    TeamUpdate,
)
from app.features.teams.store import MembershipStore
from app.features.users.dependencies import get_current_user
from app.features.users.schemas import UserPublic, UserRecord


router = APIRouter(tags=["teams"])
invitation_router = APIRouter(tags=["invitations"])

StoreDep = Annotated[MembershipStore, Depends(get_membership_store)]
CurrentUser = Annotated[UserRecord, Depends(get_current_user)]


def _team_response(team, role) -> TeamResponse:
    response = TeamResponse.model_validate(team)
    response.role = role
    return response


# Team CRUD endpoints
@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(config.RATE_LIMIT)
async def create_team(
    request: Request,
    team_data: TeamCreate,
    user: CurrentUser,
    store: StoreDep,
):
    """Create a team; the caller becomes its owner."""
    team = await store.create_team(team_data.name, user.id)
    return _team_response(team, await store.get_user_role(user.id, team.id))


@router.get("", response_model=list[TeamResponse])
async def list_my_teams(user: CurrentUser, store: StoreDep):
    """Get all teams the current user is a member of, with their role in each."""
    teams = await store.list_teams_for_user(user.id)
    return [_team_response(team, await store.get_user_role(user.id, team.id)) for team in teams]


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: str,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.VIEW_INVOICES))],
    store: StoreDep,
):
    """Get a team the caller belongs to."""
    team = await store.get_team(team_id)
    if team is None:
        raise NotFoundError("Team not found")
    return _team_response(team, access.role)


@router.patch("/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: str,
    update_data: TeamUpdate,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.SETTINGS_ACCESS))],
    store: StoreDep,
):
    """Rename a team (requires settings_access)."""
    team = await store.update_team(team_id, update_data.name)
    if team is None:
        raise NotFoundError("Team not found")
    return _team_response(team, access.role)


@router.delete("/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(
    team_id: str,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.MANAGE_TEAM))],
    store: StoreDep,
):
    """Delete a team with its members and invitations (team owner only)."""
    team = await store.get_team(team_id)
    if team is None:
        raise NotFoundError("Team not found")
    if team.owner_id != access.user.id:
        raise OwnerProtectedError("Only the team owner can delete the team")
    await store.delete_team(team_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Member endpoints
@router.get("/{team_id}/members", response_model=list[MemberResponse])
async def list_team_members(
    team_id: str,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.VIEW_INVOICES))],
    store: StoreDep,
    storage: Annotated[Storage, Depends(get_storage)],
):
    """List members of a team with their public profile."""
    memberships = await store.list_memberships(team_id)
    users = await storage.get_users(m.user_id for m in memberships)
    members = []
    for membership in memberships:
        member = MemberResponse.model_validate(membership)
        user = users.get(membership.user_id)
        member.user = UserPublic.model_validate(user) if user else None
        members.append(member)
    return members


@router.post("/{team_id}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def add_team_member(
    team_id: str,
    member_data: MemberAdd,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.MANAGE_TEAM))],
    store: StoreDep,
):
    """Add an existing user to the team (requires manage_team)."""
    return await store.add_membership(team_id, member_data.user_id, member_data.role)


@router.patch("/{team_id}/members/{member_id}/role", response_model=MemberResponse)
async def update_member_role(
    team_id: str,
    role_data: MemberRoleUpdate,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.MANAGE_TEAM))],
    membership: Annotated[MembershipRecord, Depends(get_team_membership)],
    guard: Annotated[AuthorizationGuard, Depends(get_guard)],
    store: StoreDep,
):
    """
    Change a member's role.

    Requires manage_team; touching the owner role additionally requires
    being the team owner. Granting owner hands ownership over.
    """
    decision = await guard.authorize_role_change(access.user.id, membership, role_data.role)
    decision.raise_for_denial()
    updated = await store.update_membership_role(membership.id, role_data.role, actor_id=access.user.id)
    if updated is None:
        raise NotFoundError("Team member not found")
    return updated


@router.delete("/{team_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_team_member(
    team_id: str,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.MANAGE_TEAM))],
    membership: Annotated[MembershipRecord, Depends(get_team_membership)],
    guard: Annotated[AuthorizationGuard, Depends(get_guard)],
    store: StoreDep,
):
    """Remove a member (requires manage_team). The owner cannot be removed."""
    decision = await guard.authorize_member_removal(access.user.id, membership)
    decision.raise_for_denial()
    if not await store.remove_membership(membership.id):
        raise NotFoundError("Team member not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Invitation endpoints
@router.post(
    "/{team_id}/invitations",
    response_model=InvitationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(config.RATE_LIMIT)
async def create_invitation(
    request: Request,
    team_id: str,
    invitation_data: InvitationCreate,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.MANAGE_TEAM))],
    store: StoreDep,
):
    """Invite someone by email (requires manage_team). The token is only returned here."""
    return await store.create_invitation(
        team_id,
        invitation_data.email,
        invitation_data.role,
        invited_by=access.user.id,
    )


@router.get("/{team_id}/invitations", response_model=list[InvitationResponse])
async def list_pending_invitations(
    team_id: str,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.MANAGE_TEAM))],
    store: StoreDep,
):
    """List invitations that have not expired yet."""
    return await store.list_pending_invitations(team_id)


@router.delete("/{team_id}/invitations/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invitation(
    team_id: str,
    invitation_id: str,
    access: Annotated[TeamAccess, Depends(require_team_permission(Permission.MANAGE_TEAM))],
    store: StoreDep,
):
    """Revoke an invitation. Revoking an unknown invitation succeeds."""
    invitation = await store.get_invitation(invitation_id)
    if invitation is not None and invitation.team_id != team_id:
        raise NotFoundError("Invitation not found")
    await store.delete_invitation(invitation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@invitation_router.post("/{token}/accept", response_model=MemberResponse)
async def accept_invitation(token: str, user: CurrentUser, store: StoreDep):
    """Join the invitation's team with the invited role."""
    return await store.accept_invitation(token, user.id)
