"""
Team-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends, Request

from app.core.errors import NotFoundError
from app.core.storage import Storage, get_storage
from app.features.teams.schemas import MembershipRecord
from app.features.teams.store import MembershipStore


def get_membership_store(
    request: Request,
    storage: Annotated[Storage, Depends(get_storage)],
) -> MembershipStore:
    """Membership store over the request's storage, sharing the app's team locks."""
    return MembershipStore(storage, locks=request.app.state.team_locks)


async def get_team_membership(
    team_id: str,
    member_id: str,
    store: Annotated[MembershipStore, Depends(get_membership_store)],
) -> MembershipRecord:
    """
    Get a membership of the team in the path or raise 404.

    Raises:
        NotFoundError: no such membership in this team
    """
    membership = await store.get_membership(member_id)
    if membership is None or membership.team_id != team_id:
        raise NotFoundError("Team member not found")
    return membership
