"""
Team & membership store.

Owns the membership invariants on top of any Storage backend:

- a team always has exactly one membership with role "owner", and its
  user is Team.owner_id;
- a user has at most one membership per team.

Every mutation of a team's memberships or invitations runs under that
team's lock and is committed before the lock is released. Lookups of a
missing row return None; operations that refer to a missing team, user or
invitation raise NotFoundError.
"""
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional

from app.core import config
from app.core.errors import (
    AlreadyMemberError,
    NotFoundError,
    OwnerProtectedError,
    ValidationError,
)
from app.core.storage.interface import Storage, TeamLocks
from app.features.permissions.table import Role
from app.features.teams.schemas import InvitationRecord, MembershipRecord, TeamRecord
from app.features.users.models import generate_ulid
from app.utils import get_logger, utcnow


log = get_logger(__name__)

ACTIVE = "active"


def parse_role(value: Role | str) -> Role:
    """Coerce `value` to a Role or raise ValidationError."""
    try:
        return Role(value)
    except ValueError:
        raise ValidationError(f"Invalid role: {value!r}")


def generate_invitation_token() -> str:
    return secrets.token_urlsafe(32)


class MembershipStore:
    """
    Teams, memberships and invitations with referential consistency.

    Usage:
        store = MembershipStore(storage)
        team = await store.create_team("Acme", owner_id=user.id)
        await store.get_user_role(user.id, team.id)  # Role.OWNER
    """

    def __init__(
        self,
        storage: Storage,
        locks: TeamLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
        invitation_ttl: timedelta | None = None,
    ):
        self.storage = storage
        self.locks = locks or TeamLocks()
        self.clock = clock
        self.invitation_ttl = invitation_ttl or timedelta(days=config.INVITATION_TTL_DAYS)

    @asynccontextmanager
    async def _locked(self, team_id: str) -> AsyncIterator[None]:
        # Earlier writes of this request must not hold the database while we wait
        await self.storage.commit()
        async with self.locks.for_team(team_id):
            async with self.storage.transaction(team_id):
                yield

    # ========================================================================
    # Teams
    # ========================================================================

    async def create_team(self, name: str, owner_id: str) -> TeamRecord:
        """
        Create a team and its owner membership in one write.

        Raises:
            ValidationError: empty name
            NotFoundError: owner_id is not a known user
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name must not be empty")
        if await self.storage.get_user(owner_id) is None:
            raise NotFoundError("User not found")

        now = self.clock()
        team = TeamRecord(id=generate_ulid(), name=name, owner_id=owner_id, created_at=now)
        owner = MembershipRecord(
            id=generate_ulid(),
            team_id=team.id,
            user_id=owner_id,
            role=Role.OWNER,
            status=ACTIVE,
            joined_at=now,
        )
        async with self._locked(team.id):
            await self.storage.insert_team(team, owner)
        log.info("Created team %s (%r) owned by %s", team.id, name, owner_id)
        return team

    async def get_team(self, team_id: str) -> Optional[TeamRecord]:
        return await self.storage.get_team(team_id)

    async def list_teams_for_user(self, user_id: str) -> list[TeamRecord]:
        return await self.storage.list_teams_for_user(user_id)

    async def update_team(self, team_id: str, name: str) -> Optional[TeamRecord]:
        """Rename a team. Returns None if the team does not exist."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name must not be empty")
        async with self._locked(team_id):
            team = await self.storage.update_team(team_id, name=name)
        if team is not None:
            log.info("Renamed team %s to %r", team_id, name)
        return team

    async def delete_team(self, team_id: str) -> bool:
        """Delete a team with its memberships and invitations."""
        async with self._locked(team_id):
            deleted = await self.storage.delete_team(team_id)
        if deleted:
            self.locks.discard(team_id)
            log.info("Deleted team %s", team_id)
        return deleted

    # ========================================================================
    # Memberships
    # ========================================================================

    async def get_user_role(self, user_id: str, team_id: str) -> Optional[Role]:
        """Role of `user_id` in `team_id`, or None when not an active member."""
        membership = await self.storage.find_membership(team_id, user_id)
        if membership is None or membership.status != ACTIVE:
            return None
        return membership.role

    async def get_membership(self, member_id: str) -> Optional[MembershipRecord]:
        return await self.storage.get_membership(member_id)

    async def list_memberships(self, team_id: str) -> list[MembershipRecord]:
        return await self.storage.list_memberships(team_id)

    async def add_membership(self, team_id: str, user_id: str, role: Role | str = Role.MEMBER) -> MembershipRecord:
        """
        Add an existing user to a team.

        Raises:
            ValidationError: invalid role
            OwnerProtectedError: role is owner
            NotFoundError: unknown team or user
            AlreadyMemberError: the user already belongs to the team
        """
        role = parse_role(role)
        if role == Role.OWNER:
            raise OwnerProtectedError("A team has exactly one owner; the owner role cannot be assigned")

        async with self._locked(team_id):
            if await self.storage.get_team(team_id) is None:
                raise NotFoundError("Team not found")
            if await self.storage.get_user(user_id) is None:
                raise NotFoundError("User not found")
            if await self.storage.find_membership(team_id, user_id) is not None:
                raise AlreadyMemberError()

            membership = MembershipRecord(
                id=generate_ulid(),
                team_id=team_id,
                user_id=user_id,
                role=role,
                status=ACTIVE,
                joined_at=self.clock(),
            )
            await self.storage.insert_membership(membership)
        log.info("Added user %s to team %s as %s", user_id, team_id, role.value)
        return membership

    async def update_membership_role(
        self,
        member_id: str,
        new_role: Role | str,
        actor_id: str,
    ) -> Optional[MembershipRecord]:
        """
        Change a member's role.

        The owner's membership is never edited here. Granting the owner role
        is reserved to the team's recorded owner and hands ownership over:
        the target becomes owner and the previous owner becomes admin.

        Returns:
            The updated membership, or None if it does not exist

        Raises:
            ValidationError: invalid role
            OwnerProtectedError: target is the owner, or owner granted by someone else
        """
        new_role = parse_role(new_role)
        membership = await self.storage.get_membership(member_id)
        if membership is None:
            return None

        async with self._locked(membership.team_id):
            # Re-read under the lock
            membership = await self.storage.get_membership(member_id)
            if membership is None:
                return None
            if membership.role == Role.OWNER:
                raise OwnerProtectedError("The owner's role cannot be edited")
            team = await self.storage.get_team(membership.team_id)
            if team is None:
                return None

            if new_role == Role.OWNER:
                if actor_id != team.owner_id:
                    raise OwnerProtectedError("Only the team owner can grant the owner role")
                return await self._hand_off_ownership(team, membership)

            if new_role == membership.role:
                return membership
            updated = await self.storage.update_membership(member_id, role=new_role)
        log.info(
            "Changed role of member %s in team %s from %s to %s (by %s)",
            member_id, membership.team_id, membership.role.value, new_role.value, actor_id,
        )
        return updated

    async def _hand_off_ownership(self, team: TeamRecord, target: MembershipRecord) -> MembershipRecord:
        # Caller holds the team lock
        previous = await self.storage.find_membership(team.id, team.owner_id)
        updated = await self.storage.update_membership(target.id, role=Role.OWNER)
        if previous is not None:
            await self.storage.update_membership(previous.id, role=Role.ADMIN)
        await self.storage.update_team(team.id, owner_id=target.user_id)
        log.info("Ownership of team %s handed from %s to %s", team.id, team.owner_id, target.user_id)
        return updated

    async def remove_membership(self, member_id: str) -> bool:
        """
        Remove a member from their team.

        Returns:
            False if the membership does not exist

        Raises:
            OwnerProtectedError: the membership is the owner's
        """
        membership = await self.storage.get_membership(member_id)
        if membership is None:
            return False
        async with self._locked(membership.team_id):
            membership = await self.storage.get_membership(member_id)
            if membership is None:
                return False
            if membership.role == Role.OWNER:
                raise OwnerProtectedError("The team owner cannot be removed; hand off ownership first")
            removed = await self.storage.delete_membership(member_id)
        log.info("Removed member %s from team %s", member_id, membership.team_id)
        return removed

    # ========================================================================
    # Invitations
    # ========================================================================

    async def create_invitation(
        self,
        team_id: str,
        email: str,
        role: Role | str,
        invited_by: str,
    ) -> InvitationRecord:
        """
        Invite `email` to the team. The invitation expires after the TTL.

        Repeated invitations to the same address are allowed and accumulate.

        Raises:
            ValidationError: invalid role or email
            OwnerProtectedError: role is owner
            NotFoundError: unknown team
        """
        role = parse_role(role)
        if role == Role.OWNER:
            raise OwnerProtectedError("Invitations cannot grant the owner role")
        email = (email or "").strip()
        if not email or "@" not in email:
            raise ValidationError(f"Invalid email address: {email!r}")

        async with self._locked(team_id):
            if await self.storage.get_team(team_id) is None:
                raise NotFoundError("Team not found")
            now = self.clock()
            invitation = InvitationRecord(
                id=generate_ulid(),
                team_id=team_id,
                email=email,
                role=role,
                token=generate_invitation_token(),
                invited_by=invited_by,
                expires_at=now + self.invitation_ttl,
                created_at=now,
            )
            await self.storage.insert_invitation(invitation)
        log.info("Invited %s to team %s as %s (by %s)", email, team_id, role.value, invited_by)
        return invitation

    async def list_pending_invitations(self, team_id: str) -> list[InvitationRecord]:
        """Invitations whose expiry is still in the future."""
        now = self.clock()
        return [inv for inv in await self.storage.list_invitations(team_id) if inv.is_pending(now)]

    async def get_invitation(self, invitation_id: str) -> Optional[InvitationRecord]:
        return await self.storage.get_invitation(invitation_id)

    async def get_invitation_by_token(self, token: str) -> Optional[InvitationRecord]:
        return await self.storage.get_invitation_by_token(token)

    async def delete_invitation(self, invitation_id: str) -> bool:
        """Delete an invitation. Deleting an unknown id is not an error."""
        invitation = await self.storage.get_invitation(invitation_id)
        if invitation is None:
            return False
        async with self._locked(invitation.team_id):
            return await self.storage.delete_invitation(invitation_id)

    async def accept_invitation(self, token: str, user_id: str) -> MembershipRecord:
        """
        Turn a pending invitation into a membership for `user_id`.

        Raises:
            NotFoundError: unknown token, user or team
            ValidationError: expired invitation or email mismatch
            AlreadyMemberError: the user already belongs to the team
        """
        invitation = await self.storage.get_invitation_by_token(token)
        if invitation is None:
            raise NotFoundError("Invitation not found")

        async with self._locked(invitation.team_id):
            invitation = await self.storage.get_invitation_by_token(token)
            if invitation is None:
                raise NotFoundError("Invitation not found")
            if not invitation.is_pending(self.clock()):
                raise ValidationError("Invitation has expired")
            user = await self.storage.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found")
            if user.email.lower() != invitation.email.lower():
                raise ValidationError("Invitation was sent to a different email address")
            if await self.storage.get_team(invitation.team_id) is None:
                raise NotFoundError("Team not found")
            if await self.storage.find_membership(invitation.team_id, user_id) is not None:
                raise AlreadyMemberError()

            membership = MembershipRecord(
                id=generate_ulid(),
                team_id=invitation.team_id,
                user_id=user_id,
                role=invitation.role,
                status=ACTIVE,
                joined_at=self.clock(),
            )
            await self.storage.insert_membership(membership)
            await self.storage.delete_invitation(invitation.id)
        log.info("User %s joined team %s as %s via invitation %s",
                 user_id, invitation.team_id, invitation.role.value, invitation.id)
        return membership
