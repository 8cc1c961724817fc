# API - FastAPI application factory
#
# Builds the app around explicitly injected services:
#   config -> CryptoEngine + TokenIssuer + SQLite stores -> AuthManager / VaultManager
# Maps the VaultError taxonomy to HTTP status codes in one handler and
# runs the expired-session sweep as a lifespan task.

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .. import __version__
from ..auth import AuthManager, TokenIssuer
from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..core.config import VaultConfig
from ..core.errors import (
    AccessDeniedError,
    AuthError,
    ConflictError,
    CryptoError,
    NotFoundError,
    PartialWriteError,
    StoreError,
    ValidationError,
    VaultError,
)
from ..db import SQLiteStores
from ..vault import CryptoEngine, VaultManager
from .auth_routes import router as auth_router
from .data_routes import router as data_router

logger = logging.getLogger(__name__)

# Most specific first: PartialWriteError is a StoreError.
_ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (AccessDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (CryptoError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (PartialWriteError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
)

# Client-facing text for errors whose message could leak internals or
# reveal whether another user's item exists.
_GENERIC_DETAIL = {
    AccessDeniedError: "Access denied",
    NotFoundError: "Not found",
    CryptoError: "Internal error",
    PartialWriteError: "Internal error",
    StoreError: "Storage unavailable",
}


def build_services(config: VaultConfig):
    """
    Wire the default SQLite-backed services for ``config``.

    Returns:
        (AuthManager, VaultManager)
    """
    stores = SQLiteStores(config.database_path)
    crypto = CryptoEngine.from_config(config)
    auth = AuthManager(
        stores.users,
        stores.sessions,
        crypto,
        TokenIssuer.from_config(config),
        refresh_ttl=config.refresh_token_ttl,
    )
    vault = VaultManager(stores.items, stores.versions, crypto)
    return auth, vault


async def _sweep_sessions(app: FastAPI, interval: int) -> None:
    """Purge expired sessions every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await app.state.auth.purge_expired_sessions()
        except StoreError as exc:
            logger.error("Expired-session sweep failed: %s", exc)
            continue
        except Exception:
            logger.exception("Expired-session sweep crashed, retrying next interval")
            continue
        if removed:
            app.state.audit.log_event(
                EventType.SESSIONS_PURGED,
                EventSeverity.INFO,
                "Expired sessions purged",
                details={"removed": removed},
            )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    interval = app.state.config.session_sweep_interval
    sweeper = asyncio.create_task(_sweep_sessions(app, interval)) if interval > 0 else None
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
        app.state.audit.log_event(EventType.SYSTEM_STOP, EventSeverity.INFO, "API server stopping")


async def _vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Internal error"
    for error_cls, code in _ERROR_STATUS:
        if isinstance(exc, error_cls):
            status_code = code
            detail = _GENERIC_DETAIL.get(error_cls, exc.message)
            break

    body = {"detail": detail}
    headers = None
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    elif isinstance(exc, AuthError):
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, PartialWriteError):
        request.app.state.audit.log_event(
            EventType.PARTIAL_WRITE,
            EventSeverity.CRITICAL,
            "Multi-row write left partially applied",
            details={"entity_id": exc.entity_id, "completed": exc.completed},
        )

    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def create_app(
    config: VaultConfig,
    auth: Optional[AuthManager] = None,
    vault: Optional[VaultManager] = None,
    audit: Optional[AuditLogger] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Validated configuration
        auth: Auth service (default: SQLite-backed, built from config)
        vault: Vault service (default: SQLite-backed, built from config)
        audit: Audit logger (default: writes under config.audit_log_dir)
    """
    if auth is None or vault is None:
        default_auth, default_vault = build_services(config)
        auth = auth or default_auth
        vault = vault or default_vault

    app = FastAPI(
        title="vaultfactory",
        description="Encrypted personal data vault",
        version=__version__,
        lifespan=_lifespan,
    )
    app.state.config = config
    app.state.auth = auth
    app.state.vault = vault
    app.state.audit = audit or AuditLogger(config.audit_log_dir)

    app.add_exception_handler(VaultError, _vault_error_handler)
    app.include_router(auth_router)
    app.include_router(data_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def start_api_server(config: VaultConfig):
    """
    Start the API server.

    Binds to config.host (localhost by default) and config.port.
    """
    app = create_app(config)
    app.state.audit.log_event(
        EventType.SYSTEM_START,
        EventSeverity.INFO,
        "API server starting",
        details={"host": config.host, "port": config.port},
    )
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
