# Auth API - account and session endpoints
#
# - Register (register then login, returns a token pair)
# - Login / refresh / logout
# - Current user and password change (bearer)

from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel

from ..core.audit_log import EventSeverity, EventType
from ..core.errors import AuthError
from ..models import User
from .deps import get_audit, get_auth, with_timeout
from .security import get_current_user

router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request/Response Models
class CredentialsRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class UserResponse(BaseModel):
    id: str
    email: str
    created_at: datetime
    updated_at: datetime


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(TokenPairResponse):
    user: UserResponse


class PasswordChangedResponse(BaseModel):
    sessions_revoked: int


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


# Endpoints

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(body: CredentialsRequest, request: Request):
    """
    Create an account and open its first session.

    Errors: 400 malformed email/password, 409 email already registered.
    """
    auth = get_auth(request)
    user = await with_timeout(request, auth.register(body.email, body.password))
    get_audit(request).log_event(
        EventType.USER_REGISTERED,
        EventSeverity.INFO,
        "User registered",
        user_id=user.id,
    )

    user, access_token, refresh_token = await with_timeout(
        request, auth.login(body.email, body.password)
    )
    return AuthResponse(
        user=_user_response(user),
        access_token=access_token,
        refresh_token=refresh_token,
    )


@router.post("/login", response_model=AuthResponse)
async def login(body: CredentialsRequest, request: Request):
    """Exchange email + password for a token pair."""
    audit = get_audit(request)
    try:
        user, access_token, refresh_token = await with_timeout(
            request, get_auth(request).login(body.email, body.password)
        )
    except AuthError:
        audit.log_event(
            EventType.USER_LOGIN_FAILED,
            EventSeverity.INVESTIGATE,
            "Login failed",
            details={"email": body.email},
        )
        raise

    audit.log_event(EventType.USER_LOGIN, EventSeverity.INFO, "User logged in", user_id=user.id)
    return AuthResponse(
        user=_user_response(user),
        access_token=access_token,
        refresh_token=refresh_token,
    )


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(body: RefreshRequest, request: Request):
    """
    Rotate a refresh token.

    The submitted token is invalid afterwards, whether or not the caller
    receives the response.
    """
    audit = get_audit(request)
    try:
        access_token, refresh_token = await with_timeout(
            request, get_auth(request).refresh_token(body.refresh_token)
        )
    except AuthError as exc:
        audit.log_event(
            EventType.TOKEN_REFRESH_FAILED,
            EventSeverity.INVESTIGATE,
            "Refresh token rejected",
            details={"reason": exc.message},
        )
        raise

    audit.log_event(EventType.TOKEN_REFRESHED, EventSeverity.INFO, "Session refreshed")
    return TokenPairResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(body: RefreshRequest, request: Request):
    """Terminate the session. Issued access tokens expire on their own."""
    await with_timeout(request, get_auth(request).logout(body.refresh_token))
    get_audit(request).log_event(EventType.USER_LOGOUT, EventSeverity.INFO, "User logged out")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return _user_response(user)


@router.post("/password", response_model=PasswordChangedResponse)
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    user: User = Depends(get_current_user),
):
    """
    Change the password and revoke every session of the account.

    Access tokens already issued stay valid until expiry.
    """
    revoked = await with_timeout(
        request,
        get_auth(request).change_password(user.id, body.current_password, body.new_password),
    )
    get_audit(request).log_event(
        EventType.USER_PASSWORD_CHANGED,
        EventSeverity.ALERT,
        "Password changed, sessions revoked",
        details={"sessions_revoked": revoked},
        user_id=user.id,
    )
    return PasswordChangedResponse(sessions_revoked=revoked)
