# Data API - RESTful endpoints for encrypted data items
#
# - CRUD on the caller's own items (payload travels as base64)
# - Listing by type, incremental sync, version history
# - Cross-user access is reported as 403 and audited

import base64
import binascii
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import BaseModel

from ..core.audit_log import EventSeverity, EventType
from ..core.errors import AccessDeniedError, ValidationError
from ..models import DataItem, DataVersion, User
from .deps import get_audit, get_vault, with_timeout
from .security import get_current_user

router = APIRouter(prefix="/api/data", tags=["data"])


# Request/Response Models
class CreateDataRequest(BaseModel):
    type: str
    name: str
    metadata: str = ""
    data: str  # base64


class UpdateDataRequest(BaseModel):
    name: str
    metadata: str = ""
    data: str  # base64


class DataItemResponse(BaseModel):
    id: str
    type: str
    name: str
    metadata: str
    version: int
    created_at: datetime
    updated_at: datetime
    # decrypted payload, only on single-item reads
    data: Optional[str] = None


class DataVersionResponse(BaseModel):
    id: str
    data_id: str
    version: int
    created_at: datetime


class DataHistoryResponse(BaseModel):
    data_id: str
    current_version: int
    drift: bool
    versions: List[DataVersionResponse]


def _decode_payload(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("data must be valid base64", field="data") from exc


def _item_response(item: DataItem, plaintext: Optional[bytes] = None) -> DataItemResponse:
    return DataItemResponse(
        id=item.id,
        type=item.type.value,
        name=item.name,
        metadata=item.metadata,
        version=item.version,
        created_at=item.created_at,
        updated_at=item.updated_at,
        data=base64.b64encode(plaintext).decode("ascii") if plaintext is not None else None,
    )


def _version_response(version: DataVersion) -> DataVersionResponse:
    return DataVersionResponse(
        id=version.id,
        data_id=version.data_id,
        version=version.version,
        created_at=version.created_at,
    )


async def _owned(request: Request, user: User, data_id: str, call):
    """Run an item-scoped call, auditing cross-user attempts."""
    try:
        return await with_timeout(request, call)
    except AccessDeniedError:
        get_audit(request).log_event(
            EventType.DATA_ACCESS_DENIED,
            EventSeverity.ALERT,
            "Access to another user's data item denied",
            details={"data_id": data_id},
            user_id=user.id,
        )
        raise


# Endpoints

@router.post("", response_model=DataItemResponse, status_code=status.HTTP_201_CREATED)
async def create_data(
    body: CreateDataRequest,
    request: Request,
    user: User = Depends(get_current_user),
):
    """Encrypt and store a new item (version 1)."""
    plaintext = _decode_payload(body.data)
    item = await with_timeout(
        request,
        get_vault(request).create_data(user.id, body.type, body.name, body.metadata, plaintext),
    )
    get_audit(request).log_event(
        EventType.DATA_CREATED,
        EventSeverity.INFO,
        "Data item created",
        details={"data_id": item.id, "type": item.type.value},
        user_id=user.id,
    )
    return _item_response(item)


@router.get("", response_model=List[DataItemResponse])
async def list_data(
    request: Request,
    data_type: Optional[str] = Query(None, alias="type"),
    user: User = Depends(get_current_user),
):
    """List the caller's items, most recently updated first. No payloads."""
    vault = get_vault(request)
    if data_type is None:
        items = await with_timeout(request, vault.get_user_data(user.id))
    else:
        items = await with_timeout(request, vault.get_user_data_by_type(user.id, data_type))
    return [_item_response(item) for item in items]


@router.get("/sync", response_model=List[DataItemResponse])
async def sync_data(
    request: Request,
    last_sync: datetime = Query(...),
    user: User = Depends(get_current_user),
):
    """
    Items changed strictly after ``last_sync``, oldest first. No payloads.

    Pass the newest ``updated_at`` seen as the next ``last_sync``.
    Deleted items are not reported.
    """
    items = await with_timeout(request, get_vault(request).sync_data(user.id, last_sync))
    get_audit(request).log_event(
        EventType.DATA_SYNCED,
        EventSeverity.INFO,
        "Data synced",
        details={"count": len(items)},
        user_id=user.id,
    )
    return [_item_response(item) for item in items]


@router.get("/{data_id}", response_model=DataItemResponse)
async def get_data(data_id: str, request: Request, user: User = Depends(get_current_user)):
    """Fetch one item with its decrypted payload (base64)."""
    item, plaintext = await _owned(
        request, user, data_id, get_vault(request).read_payload(user.id, data_id)
    )
    get_audit(request).log_event(
        EventType.DATA_ACCESSED,
        EventSeverity.INFO,
        "Data item read",
        details={"data_id": data_id},
        user_id=user.id,
    )
    return _item_response(item, plaintext)


@router.put("/{data_id}", response_model=DataItemResponse)
async def update_data(
    data_id: str,
    body: UpdateDataRequest,
    request: Request,
    user: User = Depends(get_current_user),
):
    """Replace an item's content. Last writer wins."""
    plaintext = _decode_payload(body.data)
    item = await _owned(
        request,
        user,
        data_id,
        get_vault(request).update_data(user.id, data_id, body.name, body.metadata, plaintext),
    )
    get_audit(request).log_event(
        EventType.DATA_UPDATED,
        EventSeverity.INFO,
        "Data item updated",
        details={"data_id": data_id, "version": item.version},
        user_id=user.id,
    )
    return _item_response(item)


@router.delete("/{data_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_data(data_id: str, request: Request, user: User = Depends(get_current_user)):
    await _owned(request, user, data_id, get_vault(request).delete_data(user.id, data_id))
    get_audit(request).log_event(
        EventType.DATA_DELETED,
        EventSeverity.INFO,
        "Data item deleted",
        details={"data_id": data_id},
        user_id=user.id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{data_id}/versions", response_model=DataHistoryResponse)
async def get_versions(data_id: str, request: Request, user: User = Depends(get_current_user)):
    """Version trail of an item, plus whether the item ran ahead of it."""
    vault = get_vault(request)
    item = await _owned(request, user, data_id, vault.get_data(user.id, data_id))
    versions = await with_timeout(request, vault.get_history(user.id, data_id))
    drift = await with_timeout(request, vault.has_version_drift(user.id, data_id))
    return DataHistoryResponse(
        data_id=data_id,
        current_version=item.version,
        drift=drift,
        versions=[_version_response(v) for v in versions],
    )
