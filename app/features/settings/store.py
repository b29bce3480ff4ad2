"""
Per-user settings with defaults for users who never saved any.
"""
from typing import Any

from app.core.storage.interface import Storage
from app.features.settings.schemas import NotificationPreferencesRecord, SecuritySettingsRecord


class SettingsStore:

    def __init__(self, storage: Storage):
        self.storage = storage

    async def get_notification_preferences(self, user_id: str) -> NotificationPreferencesRecord:
        prefs = await self.storage.get_notification_preferences(user_id)
        return prefs or NotificationPreferencesRecord(user_id=user_id)

    async def update_notification_preferences(self, user_id: str, changes: dict[str, Any]) -> NotificationPreferencesRecord:
        current = await self.get_notification_preferences(user_id)
        changes = {k: v for k, v in changes.items() if v is not None}
        return await self.storage.save_notification_preferences(current.model_copy(update=changes))

    async def get_security_settings(self, user_id: str) -> SecuritySettingsRecord:
        settings = await self.storage.get_security_settings(user_id)
        return settings or SecuritySettingsRecord(user_id=user_id)

    async def update_security_settings(self, user_id: str, changes: dict[str, Any]) -> SecuritySettingsRecord:
        current = await self.get_security_settings(user_id)
        return await self.storage.save_security_settings(current.model_copy(update=changes))
