"""
Pydantic schemas for user settings.
"""
from pydantic import BaseModel, EmailStr, Field

from app.core.schemas import RecordModel


class NotificationPreferencesRecord(RecordModel):
    user_id: str
    email_notifications: bool = True
    invoice_alerts: bool = True
    seasonal_alerts: bool = True
    team_updates: bool = True
    billing_alerts: bool = True


class SecuritySettingsRecord(RecordModel):
    user_id: str
    two_factor_enabled: bool = False
    recovery_email: str | None = None
    session_timeout: int = 30


class NotificationPreferencesUpdate(BaseModel):
    email_notifications: bool | None = None
    invoice_alerts: bool | None = None
    seasonal_alerts: bool | None = None
    team_updates: bool | None = None
    billing_alerts: bool | None = None


class SecuritySettingsUpdate(BaseModel):
    two_factor_enabled: bool | None = None
    recovery_email: EmailStr | None = None
    session_timeout: int | None = Field(None, ge=5, le=1440, description="Session timeout in minutes")
