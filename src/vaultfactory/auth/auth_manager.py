# Auth - Session Lifecycle
#
# Maps long-term credentials (email + password) to short-lived access
# tokens and revocable, rotating refresh tokens.
#
# Session states: Active -> Rotated (refresh) -> Terminated (logout/expiry)
#
# Errors are raised, never logged here; the request layer records
# audit events.

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Tuple

from ..core.errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    PartialWriteError,
    StoreError,
)
from ..core.validator import validate_email, validate_password
from ..db.repositories import SessionStore, UserStore
from ..models import Session, User, utcnow
from ..vault.encryption import CryptoEngine
from .tokens import TokenIssuer

_INVALID_CREDENTIALS = "invalid credentials"
_INVALID_REFRESH_TOKEN = "invalid refresh token"


class AuthManager:
    """
    Registration, login, token refresh, logout and token validation.

    Security:
    - Unknown email and wrong password fail identically (no enumeration)
    - Refresh rotates the session row with a store-level compare-and-swap,
      so a refresh token is single-use even under concurrent refreshes
    - Argon2 work runs in a worker thread to keep the event loop free
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        crypto: CryptoEngine,
        tokens: TokenIssuer,
        refresh_ttl: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.users = users
        self.sessions = sessions
        self.crypto = crypto
        self.tokens = tokens
        self.refresh_ttl = refresh_ttl
        self._clock = clock
        # Built up front so the first unknown-email login costs the same as the rest.
        self._dummy_hash = crypto.hash_password("vaultfactory-timing-equalizer")

    # ------------------------------------------------------------------
    # Registration / login
    # ------------------------------------------------------------------

    async def register(self, email: str, password: str) -> User:
        """
        Create a new user.

        Raises:
            ValidationError: If email or password is malformed
            ConflictError: If the email is already registered (also when a
                concurrent registration wins at the store's unique index)
        """
        validate_email(email)
        validate_password(password)

        if await self.users.get_by_email(email) is not None:
            raise ConflictError(f"user with email {email} already exists")

        password_hash = await asyncio.to_thread(self.crypto.hash_password, password)
        now = self._clock()
        user = User(
            email=email,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        await self.users.create(user)
        return user

    async def login(self, email: str, password: str) -> Tuple[User, str, str]:
        """
        Authenticate and open a new session.

        Returns:
            (user, access_token, refresh_token)

        Raises:
            AuthError: "invalid credentials" for unknown email or bad password
        """
        user = await self.users.get_by_email(email)
        if user is None:
            # Burn the same Argon2 cost as a real check.
            await asyncio.to_thread(self.crypto.verify_password, password, self._dummy_hash)
            raise AuthError(_INVALID_CREDENTIALS)

        ok = await asyncio.to_thread(
            self.crypto.verify_password, password, user.password_hash
        )
        if not ok:
            raise AuthError(_INVALID_CREDENTIALS)

        now = self._clock()
        access_token = self.tokens.issue_access_token(user, now)
        refresh_token = self.tokens.generate_refresh_token()
        session = Session(
            user_id=user.id,
            refresh_token=refresh_token,
            expires_at=now + self.refresh_ttl,
            created_at=now,
            updated_at=now,
        )
        await self.sessions.create(session)
        return user, access_token, refresh_token

    # ------------------------------------------------------------------
    # Session rotation / termination
    # ------------------------------------------------------------------

    async def refresh_token(self, refresh_token: str) -> Tuple[str, str]:
        """
        Exchange a refresh token for a new access/refresh pair.

        The old refresh token is overwritten in the same row; at most one
        of several concurrent calls with the same token can succeed.

        Returns:
            (access_token, refresh_token)

        Raises:
            AuthError: Unknown, expired, already-rotated token, or user gone
        """
        if not refresh_token:
            raise AuthError(_INVALID_REFRESH_TOKEN)

        session = await self.sessions.get_by_refresh_token(refresh_token)
        if session is None:
            raise AuthError(_INVALID_REFRESH_TOKEN)

        now = self._clock()
        if session.is_expired(now):
            raise AuthError("refresh token expired")

        user = await self.users.get_by_id(session.user_id)
        if user is None:
            raise AuthError("user not found")

        access_token = self.tokens.issue_access_token(user, now)
        new_refresh_token = self.tokens.generate_refresh_token()
        rotated = replace(
            session,
            refresh_token=new_refresh_token,
            expires_at=now + self.refresh_ttl,
            updated_at=now,
        )
        if not await self.sessions.update(rotated, expected_refresh_token=refresh_token):
            # Lost the race: another refresh or a logout got there first.
            raise AuthError(_INVALID_REFRESH_TOKEN)

        return access_token, new_refresh_token

    async def logout(self, refresh_token: str) -> None:
        """
        Terminate the session owning ``refresh_token``.

        Access tokens already issued stay valid until they expire.

        Raises:
            AuthError: If no such session exists
        """
        if not refresh_token:
            raise AuthError(_INVALID_REFRESH_TOKEN)

        session = await self.sessions.get_by_refresh_token(refresh_token)
        if session is None or not await self.sessions.delete(session.id):
            raise AuthError(_INVALID_REFRESH_TOKEN)

    async def purge_expired_sessions(self) -> int:
        """Expiry sweep. Returns the number of sessions removed."""
        return await self.sessions.delete_expired(self._clock())

    # ------------------------------------------------------------------
    # Token validation
    # ------------------------------------------------------------------

    async def validate_token(self, access_token: str) -> User:
        """
        Resolve an access token to its user.

        Raises:
            AuthError: Bad signature, wrong algorithm, expired, or the
                user no longer exists
        """
        claims = self.tokens.verify_access_token(access_token)
        user = await self.users.get_by_id(claims.user_id)
        if user is None:
            raise AuthError("user not found")
        return user

    # ------------------------------------------------------------------
    # Account-level operations
    # ------------------------------------------------------------------

    async def change_password(
        self, user_id: str, current_password: str, new_password: str
    ) -> int:
        """
        Replace a user's password and revoke all of their sessions.

        Returns:
            Number of sessions revoked

        Raises:
            NotFoundError: If the user does not exist
            AuthError: If ``current_password`` is wrong
            ValidationError: If ``new_password`` is malformed
            PartialWriteError: Password changed but sessions not revoked
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("user not found")

        ok = await asyncio.to_thread(
            self.crypto.verify_password, current_password, user.password_hash
        )
        if not ok:
            raise AuthError(_INVALID_CREDENTIALS)
        validate_password(new_password)

        password_hash = await asyncio.to_thread(self.crypto.hash_password, new_password)
        updated = replace(user, password_hash=password_hash, updated_at=self._clock())
        if not await self.users.update(updated):
            raise NotFoundError("user not found")

        try:
            return await self.sessions.delete_by_user_id(user_id)
        except StoreError as exc:
            raise PartialWriteError(
                f"password changed for user {user_id} but sessions were not revoked",
                entity_id=user_id,
                completed="user.update",
            ) from exc
