"""
Per-user settings: notification preferences and security settings.
"""
from sqlalchemy import String, ForeignKey, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base
from app.features.users.models import generate_ulid


class NotificationPreferences(Base):
    """Which notifications a user wants to receive."""
    __tablename__ = "notification_preferences"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    invoice_alerts: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    seasonal_alerts: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    team_updates: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    billing_alerts: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class SecuritySettings(Base):
    """Account security options for a user."""
    __tablename__ = "security_settings"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recovery_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    session_timeout: Mapped[int] = mapped_column(Integer, default=30, nullable=False)  # minutes
