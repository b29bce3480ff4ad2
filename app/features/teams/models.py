"""
Team, membership and invitation models.

A team has exactly one owner (Team.owner_id), mirrored by the single
membership row whose role is "owner". Members are unique per team.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin
from app.features.users.models import generate_ulid


class Team(Base, TimestampMixin):
    """
    Workspace shared by a group of users.

    owner_id only changes through an explicit ownership handoff.
    """
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    owner_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name!r}, owner_id={self.owner_id})>"


class TeamMember(Base):
    """Membership of one user in one team, with a role."""
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    team_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")  # owner, admin, manager, member, viewer
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<TeamMember(id={self.id}, team_id={self.team_id}, user_id={self.user_id}, role={self.role})>"


class TeamInvitation(Base):
    """
    Pending offer to join a team with a preset role.

    Rows are never updated: they are either accepted (and deleted) or left
    to expire. Expiry is checked when reading.
    """
    __tablename__ = "team_invitations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    team_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    invited_by: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<TeamInvitation(id={self.id}, team_id={self.team_id}, email={self.email!r}, role={self.role})>"
