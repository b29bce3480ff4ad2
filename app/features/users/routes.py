"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends

from app.core.errors import NotFoundError
from app.features.users.dependencies import get_current_user, get_identity_store
from app.features.users.schemas import UserPublic, UserRecord, UserResponse, UserUpdate
from app.features.users.store import IdentityStore


router = APIRouter(tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[UserRecord, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: UserUpdate,
    user: Annotated[UserRecord, Depends(get_current_user)],
    identities: Annotated[IdentityStore, Depends(get_identity_store)],
):
    """Update current user's profile."""
    updated = await identities.update_profile(user.id, **update_data.model_dump(exclude_unset=True))
    if updated is None:
        raise NotFoundError("User not found")
    return updated


@router.get("/{user_id}", response_model=UserPublic)
async def get_user_by_id(
    user_id: str,
    _user: Annotated[UserRecord, Depends(get_current_user)],
    identities: Annotated[IdentityStore, Depends(get_identity_store)],
):
    """Get public user profile by ID."""
    user = await identities.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
