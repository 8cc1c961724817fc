# API - Shared Dependencies
#
# Services are built once in create_app() and hung off app.state;
# routes reach them through these getters so tests can inject their own.

import asyncio
from typing import Awaitable, TypeVar

from fastapi import HTTPException, Request, status

from ..auth import AuthManager
from ..core.audit_log import AuditLogger
from ..vault import VaultManager

T = TypeVar("T")


def get_auth(request: Request) -> AuthManager:
    return request.app.state.auth


def get_vault(request: Request) -> VaultManager:
    return request.app.state.vault


def get_audit(request: Request) -> AuditLogger:
    return request.app.state.audit


async def with_timeout(request: Request, call: Awaitable[T]) -> T:
    """
    Await a service call under the configured request timeout.

    Raises:
        HTTPException: 504 if the call does not finish in time
    """
    timeout = request.app.state.config.request_timeout
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Request timed out",
        )
