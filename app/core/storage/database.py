"""
SQLAlchemy storage backend.

One DatabaseStorage wraps one AsyncSession. Writes are flushed immediately
so later reads in the same request see them. Team mutations commit inside
Storage.transaction; the provider commits whatever else the request wrote
when it succeeds and rolls back otherwise.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional
from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, AsyncEngine

from app.core.database.engine import AsyncSessionLocal, engine as default_engine, init_db
from app.core.errors import AlreadyMemberError
from app.core.storage.interface import Storage, StorageProvider
from app.features.settings import models as settings_models
from app.features.settings.schemas import NotificationPreferencesRecord, SecuritySettingsRecord
from app.features.teams.models import Team, TeamMember, TeamInvitation
from app.features.teams.schemas import InvitationRecord, MembershipRecord, TeamRecord
from app.features.users.models import User
from app.features.users.schemas import UserRecord


def _column_values(record, exclude: set[str] = frozenset()) -> dict[str, Any]:
    """Record fields as ORM column values (enums stored by value)."""
    values = record.model_dump(mode="python", exclude=exclude)
    return {k: (v.value if hasattr(v, "value") else v) for k, v in values.items()}


def _normalize(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()}


class DatabaseStorage(Storage):
    """Storage over an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def commit(self) -> None:
        await self.db.commit()

    @asynccontextmanager
    async def transaction(self, team_id: str | None = None) -> AsyncIterator[None]:
        # Cached rows may predate another session's commit
        self.db.expire_all()
        try:
            if team_id is not None:
                # Row lock on backends that support it (no-op on SQLite)
                await self.db.execute(select(Team.id).where(Team.id == team_id).with_for_update())
            yield
            await self.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _update_row(self, model, row_id: str, fields: dict[str, Any]):
        row = await self.db.get(model, row_id)
        if row is None:
            return None
        for key, value in _normalize(fields).items():
            setattr(row, key, value)
        await self.db.flush()
        return row

    # Users

    async def insert_user(self, user: UserRecord) -> UserRecord:
        self.db.add(User(**_column_values(user)))
        await self.db.flush()
        return user

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        row = await self.db.get(User, user_id)
        return UserRecord.model_validate(row) if row else None

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        ids = list(user_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {row.id: UserRecord.model_validate(row) for row in result.scalars().all()}

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        row = await self.db.scalar(select(User).where(User.username == username))
        return UserRecord.model_validate(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        row = await self.db.scalar(select(User).where(func.lower(User.email) == email.lower()))
        return UserRecord.model_validate(row) if row else None

    async def get_user_by_appwrite_id(self, appwrite_id: str) -> Optional[UserRecord]:
        row = await self.db.scalar(select(User).where(User.appwrite_id == appwrite_id))
        return UserRecord.model_validate(row) if row else None

    async def update_user(self, user_id: str, **fields: Any) -> Optional[UserRecord]:
        row = await self._update_row(User, user_id, fields)
        return UserRecord.model_validate(row) if row else None

    # Teams

    async def insert_team(self, team: TeamRecord, owner: MembershipRecord) -> TeamRecord:
        self.db.add(Team(**_column_values(team)))
        await self.db.flush()
        self.db.add(TeamMember(**_column_values(owner)))
        await self.db.flush()
        return team

    async def get_team(self, team_id: str) -> Optional[TeamRecord]:
        row = await self.db.get(Team, team_id)
        return TeamRecord.model_validate(row) if row else None

    async def list_teams_for_user(self, user_id: str) -> list[TeamRecord]:
        result = await self.db.execute(
            select(Team)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(TeamMember.user_id == user_id)
            .order_by(Team.id)
        )
        return [TeamRecord.model_validate(row) for row in result.scalars().all()]

    async def update_team(self, team_id: str, **fields: Any) -> Optional[TeamRecord]:
        row = await self._update_row(Team, team_id, fields)
        return TeamRecord.model_validate(row) if row else None

    async def delete_team(self, team_id: str) -> bool:
        row = await self.db.get(Team, team_id)
        if row is None:
            return False
        await self.db.execute(delete(TeamInvitation).where(TeamInvitation.team_id == team_id))
        await self.db.execute(delete(TeamMember).where(TeamMember.team_id == team_id))
        await self.db.delete(row)
        await self.db.flush()
        return True

    # Memberships

    async def insert_membership(self, membership: MembershipRecord) -> MembershipRecord:
        self.db.add(TeamMember(**_column_values(membership)))
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise AlreadyMemberError() from e
        return membership

    async def get_membership(self, member_id: str) -> Optional[MembershipRecord]:
        row = await self.db.get(TeamMember, member_id)
        return MembershipRecord.model_validate(row) if row else None

    async def find_membership(self, team_id: str, user_id: str) -> Optional[MembershipRecord]:
        row = await self.db.scalar(
            select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        )
        return MembershipRecord.model_validate(row) if row else None

    async def list_memberships(self, team_id: str) -> list[MembershipRecord]:
        result = await self.db.execute(
            select(TeamMember).where(TeamMember.team_id == team_id).order_by(TeamMember.joined_at, TeamMember.id)
        )
        return [MembershipRecord.model_validate(row) for row in result.scalars().all()]

    async def update_membership(self, member_id: str, **fields: Any) -> Optional[MembershipRecord]:
        row = await self._update_row(TeamMember, member_id, fields)
        return MembershipRecord.model_validate(row) if row else None

    async def delete_membership(self, member_id: str) -> bool:
        row = await self.db.get(TeamMember, member_id)
        if row is None:
            return False
        await self.db.delete(row)
        await self.db.flush()
        return True

    # Invitations

    async def insert_invitation(self, invitation: InvitationRecord) -> InvitationRecord:
        self.db.add(TeamInvitation(**_column_values(invitation)))
        await self.db.flush()
        return invitation

    async def get_invitation(self, invitation_id: str) -> Optional[InvitationRecord]:
        row = await self.db.get(TeamInvitation, invitation_id)
        return InvitationRecord.model_validate(row) if row else None

    async def get_invitation_by_token(self, token: str) -> Optional[InvitationRecord]:
        row = await self.db.scalar(select(TeamInvitation).where(TeamInvitation.token == token))
        return InvitationRecord.model_validate(row) if row else None

    async def list_invitations(self, team_id: str) -> list[InvitationRecord]:
        result = await self.db.execute(
            select(TeamInvitation)
            .where(TeamInvitation.team_id == team_id)
            .order_by(TeamInvitation.created_at, TeamInvitation.id)
        )
        return [InvitationRecord.model_validate(row) for row in result.scalars().all()]

    async def delete_invitation(self, invitation_id: str) -> bool:
        row = await self.db.get(TeamInvitation, invitation_id)
        if row is None:
            return False
        await self.db.delete(row)
        await self.db.flush()
        return True

    # Settings

    async def get_notification_preferences(self, user_id: str) -> Optional[NotificationPreferencesRecord]:
        row = await self.db.scalar(
            select(settings_models.NotificationPreferences)
            .where(settings_models.NotificationPreferences.user_id == user_id)
        )
        return NotificationPreferencesRecord.model_validate(row) if row else None

    async def save_notification_preferences(
        self, prefs: NotificationPreferencesRecord
    ) -> NotificationPreferencesRecord:
        row = await self.db.scalar(
            select(settings_models.NotificationPreferences)
            .where(settings_models.NotificationPreferences.user_id == prefs.user_id)
        )
        if row is None:
            self.db.add(settings_models.NotificationPreferences(**_column_values(prefs)))
        else:
            for key, value in _column_values(prefs, exclude={"user_id"}).items():
                setattr(row, key, value)
        await self.db.flush()
        return prefs

    async def get_security_settings(self, user_id: str) -> Optional[SecuritySettingsRecord]:
        row = await self.db.scalar(
            select(settings_models.SecuritySettings)
            .where(settings_models.SecuritySettings.user_id == user_id)
        )
        return SecuritySettingsRecord.model_validate(row) if row else None

    async def save_security_settings(self, settings: SecuritySettingsRecord) -> SecuritySettingsRecord:
        row = await self.db.scalar(
            select(settings_models.SecuritySettings)
            .where(settings_models.SecuritySettings.user_id == settings.user_id)
        )
        if row is None:
            self.db.add(settings_models.SecuritySettings(**_column_values(settings)))
        else:
            for key, value in _column_values(settings, exclude={"user_id"}).items():
                setattr(row, key, value)
        await self.db.flush()
        return settings


class DatabaseStorageProvider(StorageProvider):
    """
    Opens one session per request: commit on success, rollback on error.

    Usage:
        provider = DatabaseStorageProvider()
        async with provider.session() as storage:
            await storage.get_team(team_id)
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        engine: AsyncEngine = default_engine,
    ):
        self._sessionmaker = sessionmaker
        self._engine = engine

    async def startup(self) -> None:
        await init_db(self._engine)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Storage]:
        async with self._sessionmaker() as db:
            try:
                yield DatabaseStorage(db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
