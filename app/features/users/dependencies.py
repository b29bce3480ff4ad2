"""
FastAPI dependencies for authentication.
"""
from typing import Annotated, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.storage import Storage, get_storage
from app.features.users.auth import AuthenticationProvider
from app.features.users.schemas import UserRecord
from app.features.users.store import IdentityStore


# auto_error=False: providers decide what missing credentials mean
security = HTTPBearer(auto_error=False)


def get_identity_store(storage: Annotated[Storage, Depends(get_storage)]) -> IdentityStore:
    return IdentityStore(storage)


async def get_current_user(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    identities: Annotated[IdentityStore, Depends(get_identity_store)],
) -> UserRecord:
    """
    Get the current authenticated user through the app's authentication provider.

    Usage:
        @router.get("/me")
        async def get_me(user: UserRecord = Depends(get_current_user)):
            return user
    """
    provider: AuthenticationProvider = request.app.state.auth_provider
    return await provider.authenticate(credentials, identities)


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
