"""
Identity store: registration and profile updates for users.
"""
import re
from typing import Callable, Optional
from datetime import datetime

from app.core.errors import ValidationError
from app.core.storage.interface import Storage
from app.features.users.models import generate_ulid
from app.features.users.schemas import UserRecord
from app.utils import get_logger, utcnow


log = get_logger(__name__)

_USERNAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")

PROFILE_FIELDS = frozenset({"display_name", "email", "avatar_url", "bio"})


class IdentityStore:
    """User records. Authorization never depends on anything stored here."""

    def __init__(self, storage: Storage, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.clock = clock

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        return await self.storage.get_user(user_id)

    async def get_by_appwrite_id(self, appwrite_id: str) -> Optional[UserRecord]:
        return await self.storage.get_user_by_appwrite_id(appwrite_id)

    async def register_user(
        self,
        username: str,
        email: str,
        display_name: str,
        appwrite_id: str | None = None,
        user_id: str | None = None,
    ) -> UserRecord:
        """
        Create a user.

        Raises:
            ValidationError: blank fields, or username/email already taken
        """
        username = (username or "").strip()
        email = (email or "").strip()
        display_name = (display_name or "").strip()
        if not username or not email or not display_name:
            raise ValidationError("Username, email and display name are required")
        if "@" not in email:
            raise ValidationError(f"Invalid email address: {email!r}")
        if await self.storage.get_user_by_username(username):
            raise ValidationError(f"Username {username!r} is already taken")
        if await self.storage.get_user_by_email(email):
            raise ValidationError(f"Email {email!r} is already registered")

        user = UserRecord(
            id=user_id or generate_ulid(),
            username=username,
            email=email,
            display_name=display_name,
            appwrite_id=appwrite_id,
            created_at=self.clock(),
        )
        await self.storage.insert_user(user)
        log.info("Registered user %s (%s)", user.id, username)
        return user

    async def provision_external_user(self, appwrite_id: str, email: str, name: str | None) -> UserRecord:
        """Create the local user for an Appwrite identity seen for the first time."""
        base = _USERNAME_UNSAFE.sub("", email.split("@")[0]) or "user"
        username = base
        suffix = 1
        while await self.storage.get_user_by_username(username):
            suffix += 1
            username = f"{base}{suffix}"
        user = await self.register_user(
            username=username,
            email=email,
            display_name=name or username,
            appwrite_id=appwrite_id,
        )
        return await self.record_login(user.id) or user

    async def update_profile(self, user_id: str, **changes) -> Optional[UserRecord]:
        """Apply profile changes; unknown fields are rejected, None values ignored."""
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in changes.items() if v is not None}
        if "email" in changes:
            existing = await self.storage.get_user_by_email(changes["email"])
            if existing is not None and existing.id != user_id:
                raise ValidationError(f"Email {changes['email']!r} is already registered")
        if not changes:
            return await self.storage.get_user(user_id)
        return await self.storage.update_user(user_id, **changes)

    async def record_login(self, user_id: str) -> Optional[UserRecord]:
        return await self.storage.update_user(user_id, last_login_at=self.clock())
