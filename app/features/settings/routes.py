"""
Settings routes: the caller's notification preferences and security settings.
"""
from typing import Annotated
from fastapi import APIRouter, Depends

from app.core.storage import Storage, get_storage
from app.features.settings.schemas import (
    NotificationPreferencesRecord,
    NotificationPreferencesUpdate,
    SecuritySettingsRecord,
    SecuritySettingsUpdate,
)
from app.features.settings.store import SettingsStore
from app.features.users.dependencies import get_current_user
from app.features.users.schemas import UserRecord


router = APIRouter(tags=["settings"])


def get_settings_store(storage: Annotated[Storage, Depends(get_storage)]) -> SettingsStore:
    return SettingsStore(storage)


CurrentUser = Annotated[UserRecord, Depends(get_current_user)]
SettingsDep = Annotated[SettingsStore, Depends(get_settings_store)]


@router.get("/notifications", response_model=NotificationPreferencesRecord)
async def get_notification_preferences(user: CurrentUser, settings: SettingsDep):
    return await settings.get_notification_preferences(user.id)


@router.patch("/notifications", response_model=NotificationPreferencesRecord)
async def update_notification_preferences(
    update_data: NotificationPreferencesUpdate,
    user: CurrentUser,
    settings: SettingsDep,
):
    """Update only the preferences present in the request body."""
    return await settings.update_notification_preferences(
        user.id, update_data.model_dump(exclude_unset=True)
    )


@router.get("/security", response_model=SecuritySettingsRecord)
async def get_security_settings(user: CurrentUser, settings: SettingsDep):
    return await settings.get_security_settings(user.id)


@router.patch("/security", response_model=SecuritySettingsRecord)
async def update_security_settings(
    update_data: SecuritySettingsUpdate,
    user: CurrentUser,
    settings: SettingsDep,
):
    """
    Update security settings.

    Fields left out are unchanged; `recovery_email: null` clears the recovery address.
    """
    changes = update_data.model_dump(exclude_unset=True)
    for flag in ("two_factor_enabled", "session_timeout"):
        if changes.get(flag, ...) is None:
            changes.pop(flag)
    return await settings.update_security_settings(user.id, changes)
