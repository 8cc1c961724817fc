# Auth - Token Issuer
#
# Signed access tokens (JWT, HMAC) carrying user_id and email, and
# opaque refresh tokens from the OS CSPRNG.
# Access tokens are stateless: revoking a session does not revoke the
# access tokens already issued for it, the short TTL bounds exposure.

import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, NamedTuple

from jose import JWTError, jwt

from ..core.errors import AuthError
from ..models import User

_INVALID_TOKEN = "invalid token"


class AccessClaims(NamedTuple):
    """Verified contents of an access token."""
    user_id: str
    email: str
    issued_at: int
    expires_at: int


class TokenIssuer:
    """
    Issues and verifies access tokens; generates refresh tokens.

    Claims: user_id, email, sub, iss, iat, nbf, exp.
    """

    REFRESH_TOKEN_BYTES = 32  # 64 hex chars

    def __init__(
        self,
        secret: str,
        access_ttl: timedelta = timedelta(minutes=60),
        algorithm: str = "HS256",
        issuer: str = "vaultfactory",
    ):
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self.access_ttl = access_ttl
        self.algorithm = algorithm
        self.issuer = issuer

    @classmethod
    def from_config(cls, config) -> "TokenIssuer":
        return cls(
            secret=config.jwt_secret,
            access_ttl=config.access_token_ttl,
            algorithm=config.jwt_algorithm,
            issuer=config.jwt_issuer,
        )

    def issue_access_token(self, user: User, now: datetime) -> str:
        """Sign a new access token for ``user`` valid from ``now``."""
        issued_at = int(now.timestamp())
        claims: Dict[str, Any] = {
            "user_id": user.id,
            "email": user.email,
            "sub": user.id,
            "iss": self.issuer,
            "iat": issued_at,
            "nbf": issued_at,
            "exp": issued_at + int(self.access_ttl.total_seconds()),
        }
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> AccessClaims:
        """
        Verify signature, algorithm, issuer, expiry and not-before.

        Raises:
            AuthError: On any verification failure
        """
        if not token:
            raise AuthError(_INVALID_TOKEN, reason="empty token")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require_exp": True, "require_nbf": True, "require_iat": True},
            )
        except JWTError as exc:
            raise AuthError(_INVALID_TOKEN, reason=str(exc)) from exc

        user_id = payload.get("user_id")
        if not user_id:
            raise AuthError(_INVALID_TOKEN, reason="missing user_id claim")
        return AccessClaims(
            user_id=user_id,
            email=payload.get("email", ""),
            issued_at=payload["iat"],
            expires_at=payload["exp"],
        )

    def generate_refresh_token(self) -> str:
        """Opaque random refresh token with no embedded structure."""
        return secrets.token_hex(self.REFRESH_TOKEN_BYTES)
