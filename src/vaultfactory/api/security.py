# API Security - Bearer token authentication
#
# Every data endpoint and the account endpoints require
#   Authorization: Bearer <access token>
# The token is verified by AuthManager.validate_token(); any failure
# surfaces as AuthError, which the app maps to 401 + WWW-Authenticate.

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.audit_log import EventSeverity, EventType
from ..core.errors import AuthError
from ..models import User
from .deps import get_audit, get_auth, with_timeout

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> User:
    """
    FastAPI dependency resolving the bearer token to a user.

    Usage in routes:
        @router.get("/me")
        async def me(user: User = Depends(get_current_user)): ...

    Raises:
        AuthError: Missing, malformed, expired or forged token
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("missing bearer token")

    try:
        return await with_timeout(
            request, get_auth(request).validate_token(credentials.credentials)
        )
    except AuthError as exc:
        get_audit(request).log_event(
            EventType.TOKEN_REJECTED,
            EventSeverity.INVESTIGATE,
            "Access token rejected",
            details={"path": request.url.path, "reason": exc.reason or exc.message},
        )
        raise
