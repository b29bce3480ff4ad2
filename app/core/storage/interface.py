"""
Abstract storage interface.

Both backends (in-memory and SQLAlchemy) implement the same record-level
operations. Business rules (one owner per team, unique members, owner
protection) live in `MembershipStore`, not here: a backend only reads and
writes rows.
"""
import asyncio
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

from app.features.settings.schemas import NotificationPreferencesRecord, SecuritySettingsRecord
from app.features.teams.schemas import InvitationRecord, MembershipRecord, TeamRecord
from app.features.users.schemas import UserRecord


class Storage(ABC):
    """
    Record storage for users, teams, memberships, invitations and settings.

    Update methods take the fields to change as keyword arguments and return
    the updated record, or None when the row does not exist.
    """

    async def commit(self) -> None:
        """Make writes so far durable. No-op for backends without transactions."""

    @asynccontextmanager
    async def transaction(self, team_id: str | None = None) -> AsyncIterator[None]:
        """
        Unit of work for one team mutation.

        Reads inside the block see what other sessions have committed, and
        writes are durable once it exits; on error they are discarded.
        Backends without transactions make this a no-op.
        """
        yield

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_user(self, user: UserRecord) -> UserRecord:
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def get_users(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        """Fetch several users at once, keyed by id. Unknown ids are skipped."""
        pass

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        """Case-insensitive lookup."""
        pass

    @abstractmethod
    async def get_user_by_appwrite_id(self, appwrite_id: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def update_user(self, user_id: str, **fields: Any) -> Optional[UserRecord]:
        pass

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_team(self, team: TeamRecord, owner: MembershipRecord) -> TeamRecord:
        """Insert a team together with its owner membership, as one unit."""
        pass

    @abstractmethod
    async def get_team(self, team_id: str) -> Optional[TeamRecord]:
        pass

    @abstractmethod
    async def list_teams_for_user(self, user_id: str) -> list[TeamRecord]:
        pass

    @abstractmethod
    async def update_team(self, team_id: str, **fields: Any) -> Optional[TeamRecord]:
        pass

    @abstractmethod
    async def delete_team(self, team_id: str) -> bool:
        """Delete a team with its memberships and invitations."""
        pass

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_membership(self, membership: MembershipRecord) -> MembershipRecord:
        pass

    @abstractmethod
    async def get_membership(self, member_id: str) -> Optional[MembershipRecord]:
        pass

    @abstractmethod
    async def find_membership(self, team_id: str, user_id: str) -> Optional[MembershipRecord]:
        pass

    @abstractmethod
    async def list_memberships(self, team_id: str) -> list[MembershipRecord]:
        pass

    @abstractmethod
    async def update_membership(self, member_id: str, **fields: Any) -> Optional[MembershipRecord]:
        pass

    @abstractmethod
    async def delete_membership(self, member_id: str) -> bool:
        pass

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_invitation(self, invitation: InvitationRecord) -> InvitationRecord:
        pass

    @abstractmethod
    async def get_invitation(self, invitation_id: str) -> Optional[InvitationRecord]:
        pass

    @abstractmethod
    async def get_invitation_by_token(self, token: str) -> Optional[InvitationRecord]:
        pass

    @abstractmethod
    async def list_invitations(self, team_id: str) -> list[InvitationRecord]:
        """All invitations of a team, expired ones included."""
        pass

    @abstractmethod
    async def delete_invitation(self, invitation_id: str) -> bool:
        pass

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_notification_preferences(self, user_id: str) -> Optional[NotificationPreferencesRecord]:
        pass

    @abstractmethod
    async def save_notification_preferences(
        self, prefs: NotificationPreferencesRecord
    ) -> NotificationPreferencesRecord:
        """Insert or replace the user's preferences."""
        pass

    @abstractmethod
    async def get_security_settings(self, user_id: str) -> Optional[SecuritySettingsRecord]:
        pass

    @abstractmethod
    async def save_security_settings(self, settings: SecuritySettingsRecord) -> SecuritySettingsRecord:
        """Insert or replace the user's security settings."""
        pass


class StorageProvider(ABC):
    """Hands out a Storage for the duration of one request or job."""

    @abstractmethod
    def session(self) -> AbstractAsyncContextManager[Storage]:
        pass

    async def startup(self) -> None:
        """Prepare the backend (create tables, etc). No-op by default."""


class TeamLocks:
    """
    One asyncio.Lock per team id.

    Mutations of a team's memberships and invitations run under its lock so
    that check-then-write sequences cannot interleave.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def for_team(self, team_id: str) -> asyncio.Lock:
        lock = self._locks.get(team_id)
        if lock is None:
            lock = self._locks[team_id] = asyncio.Lock()
        return lock

    def discard(self, team_id: str) -> None:
        self._locks.pop(team_id, None)
