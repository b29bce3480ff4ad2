"""
In-memory storage backend.

Plain dicts keyed by record id. Records are immutable, so updates replace
the stored record with a modified copy. State lives as long as the process.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

from app.core.storage.interface import Storage, StorageProvider
from app.features.settings.schemas import NotificationPreferencesRecord, SecuritySettingsRecord
from app.features.teams.schemas import InvitationRecord, MembershipRecord, TeamRecord
from app.features.users.schemas import UserRecord


class MemoryStorage(Storage):
    """Dict-backed storage. Also used as the test double for the database backend."""

    def __init__(self):
        self._users: dict[str, UserRecord] = {}
        self._teams: dict[str, TeamRecord] = {}
        self._memberships: dict[str, MembershipRecord] = {}
        self._invitations: dict[str, InvitationRecord] = {}
        self._notification_preferences: dict[str, NotificationPreferencesRecord] = {}
        self._security_settings: dict[str, SecuritySettingsRecord] = {}

    def reset(self) -> None:
        """Clear all state (used for test isolation)."""
        self._users.clear()
        self._teams.clear()
        self._memberships.clear()
        self._invitations.clear()
        self._notification_preferences.clear()
        self._security_settings.clear()

    # Users

    async def insert_user(self, user: UserRecord) -> UserRecord:
        self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        return {uid: self._users[uid] for uid in user_ids if uid in self._users}

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        return next((u for u in self._users.values() if u.username == username), None)

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        email = email.lower()
        return next((u for u in self._users.values() if u.email.lower() == email), None)

    async def get_user_by_appwrite_id(self, appwrite_id: str) -> Optional[UserRecord]:
        return next((u for u in self._users.values() if u.appwrite_id == appwrite_id), None)

    async def update_user(self, user_id: str, **fields: Any) -> Optional[UserRecord]:
        user = self._users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(update=fields)
        self._users[user_id] = updated
        return updated

    # Teams

    async def insert_team(self, team: TeamRecord, owner: MembershipRecord) -> TeamRecord:
        self._teams[team.id] = team
        self._memberships[owner.id] = owner
        return team

    async def get_team(self, team_id: str) -> Optional[TeamRecord]:
        return self._teams.get(team_id)

    async def list_teams_for_user(self, user_id: str) -> list[TeamRecord]:
        team_ids = [m.team_id for m in self._memberships.values() if m.user_id == user_id]
        return [self._teams[tid] for tid in team_ids if tid in self._teams]

    async def update_team(self, team_id: str, **fields: Any) -> Optional[TeamRecord]:
        team = self._teams.get(team_id)
        if team is None:
            return None
        updated = team.model_copy(update=fields)
        self._teams[team_id] = updated
        return updated

    async def delete_team(self, team_id: str) -> bool:
        if self._teams.pop(team_id, None) is None:
            return False
        self._memberships = {k: m for k, m in self._memberships.items() if m.team_id != team_id}
        self._invitations = {k: i for k, i in self._invitations.items() if i.team_id != team_id}
        return True

    # Memberships

    async def insert_membership(self, membership: MembershipRecord) -> MembershipRecord:
        self._memberships[membership.id] = membership
        return membership

    async def get_membership(self, member_id: str) -> Optional[MembershipRecord]:
        return self._memberships.get(member_id)

    async def find_membership(self, team_id: str, user_id: str) -> Optional[MembershipRecord]:
        return next(
            (m for m in self._memberships.values() if m.team_id == team_id and m.user_id == user_id),
            None,
        )

    async def list_memberships(self, team_id: str) -> list[MembershipRecord]:
        return [m for m in self._memberships.values() if m.team_id == team_id]

    async def update_membership(self, member_id: str, **fields: Any) -> Optional[MembershipRecord]:
        membership = self._memberships.get(member_id)
        if membership is None:
            return None
        updated = membership.model_copy(update=fields)
        self._memberships[member_id] = updated
        return updated

    async def delete_membership(self, member_id: str) -> bool:
        return self._memberships.pop(member_id, None) is not None

    # Invitations

    async def insert_invitation(self, invitation: InvitationRecord) -> InvitationRecord:
        self._invitations[invitation.id] = invitation
        return invitation

    async def get_invitation(self, invitation_id: str) -> Optional[InvitationRecord]:
        return self._invitations.get(invitation_id)

    async def get_invitation_by_token(self, token: str) -> Optional[InvitationRecord]:
        return next((i for i in self._invitations.values() if i.token == token), None)

    async def list_invitations(self, team_id: str) -> list[InvitationRecord]:
        return [i for i in self._invitations.values() if i.team_id == team_id]

    async def delete_invitation(self, invitation_id: str) -> bool:
        return self._invitations.pop(invitation_id, None) is not None

    # Settings

    async def get_notification_preferences(self, user_id: str) -> Optional[NotificationPreferencesRecord]:
        return self._notification_preferences.get(user_id)

    async def save_notification_preferences(
        self, prefs: NotificationPreferencesRecord
    ) -> NotificationPreferencesRecord:
        self._notification_preferences[prefs.user_id] = prefs
        return prefs

    async def get_security_settings(self, user_id: str) -> Optional[SecuritySettingsRecord]:
        return self._security_settings.get(user_id)

    async def save_security_settings(self, settings: SecuritySettingsRecord) -> SecuritySettingsRecord:
        self._security_settings[settings.user_id] = settings
        return settings


class MemoryStorageProvider(StorageProvider):
    """Every session shares the same MemoryStorage."""

    def __init__(self, storage: MemoryStorage | None = None):
        self.storage = storage or MemoryStorage()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Storage]:
        yield self.storage
