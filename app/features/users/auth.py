"""
Authentication providers.

A provider turns request credentials into a known user. The application
picks one provider when it is built (AUTH_PROVIDER):

- AppwriteAuthenticationProvider: asks Appwrite who owns the bearer JWT
  and links that Appwrite account to a local user, creating it on first
  sight.
- FixedIdentityProvider: always authenticates as one configured user.
  For tests and local demos only.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import jwt
from fastapi import HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from appwrite.client import Client
from appwrite.services.account import Account
from appwrite.exception import AppwriteException

from app.core import config
from app.features.users.schemas import UserRecord
from app.features.users.store import IdentityStore
from app.utils import get_logger


log = get_logger(__name__)


def appwrite_session_client(token: str) -> Client:
    """Appwrite client acting as the user who owns `token`."""
    client = Client()
    client.set_endpoint(config.APPWRITE_ENDPOINT)
    client.set_project(config.APPWRITE_PROJECT_ID)
    client.set_jwt(token)
    return client


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt_token(token: str) -> dict:
    """
    Reject malformed or expired Appwrite JWTs before calling Appwrite.

    The signature is only checked by Appwrite itself (see
    get_appwrite_account); nothing in the returned payload identifies
    the caller.

    Args:
        token: JWT token from Authorization header

    Returns:
        Decoded JWT payload

    Raises:
        HTTPException: If token is malformed or expired
    """
    try:
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        raise _unauthorized(f"Invalid token: {str(e)}")


async def get_appwrite_account(token: str) -> dict:
    """
    Get the Appwrite account that owns `token`.

    Appwrite rejects forged, revoked and expired tokens, so the returned
    `$id` is the authenticated Appwrite user.

    Raises:
        HTTPException: If Appwrite does not accept the token
    """
    try:
        account = Account(appwrite_session_client(token))
        # The SDK is synchronous
        return await asyncio.to_thread(account.get)
    except AppwriteException as e:
        raise _unauthorized(f"Failed to verify user: {str(e)}")


class AuthenticationProvider(ABC):
    """Resolves the caller of a request to a user record."""

    @abstractmethod
    async def authenticate(
        self,
        credentials: Optional[HTTPAuthorizationCredentials],
        identities: IdentityStore,
    ) -> UserRecord:
        """
        Raises:
            HTTPException: 401 when the caller cannot be authenticated
        """


class AppwriteAuthenticationProvider(AuthenticationProvider):
    """Bearer JWT issued by Appwrite, checked with Appwrite on every request."""

    def __init__(self, fetch_account: Callable[[str], Awaitable[dict]] = get_appwrite_account):
        self._fetch_account = fetch_account

    async def authenticate(
        self,
        credentials: Optional[HTTPAuthorizationCredentials],
        identities: IdentityStore,
    ) -> UserRecord:
        if credentials is None or not credentials.credentials:
            raise _unauthorized("Not authenticated")

        verify_jwt_token(credentials.credentials)
        account = await self._fetch_account(credentials.credentials)
        appwrite_user_id = account.get("$id")
        if not appwrite_user_id:
            raise _unauthorized("Invalid Appwrite account")

        user = await identities.get_by_appwrite_id(appwrite_user_id)
        if user is None:
            email = account.get("email") or ""
            if not email:
                raise _unauthorized("Appwrite user has no email address")
            log.info("Provisioning local user for Appwrite user %s", appwrite_user_id)
            return await identities.provision_external_user(
                appwrite_id=appwrite_user_id,
                email=email,
                name=account.get("name"),
            )
        return await identities.record_login(user.id) or user


class FixedIdentityProvider(AuthenticationProvider):
    """Every request is made by the same, pre-existing user. Credentials are ignored."""

    def __init__(self, user_id: str):
        self.user_id = user_id

    async def authenticate(
        self,
        credentials: Optional[HTTPAuthorizationCredentials],
        identities: IdentityStore,
    ) -> UserRecord:
        user = await identities.get_user(self.user_id)
        if user is None:
            raise _unauthorized(f"Fixed identity user {self.user_id} does not exist")
        return user


def build_auth_provider(name: str | None = None, fixed_user_id: str | None = None) -> AuthenticationProvider:
    """Create the provider named by `name` (defaults to AUTH_PROVIDER)."""
    name = (name or config.AUTH_PROVIDER).lower()
    if name == "appwrite":
        return AppwriteAuthenticationProvider()
    if name == "fixed":
        user_id = fixed_user_id or config.FIXED_USER_ID
        if not user_id:
            raise ValueError("AUTH_PROVIDER=fixed requires FIXED_USER_ID")
        log.warning("Fixed identity authentication enabled: every request acts as user %s", user_id)
        return FixedIdentityProvider(user_id)
    raise ValueError(f"Unknown authentication provider: {name!r}")
