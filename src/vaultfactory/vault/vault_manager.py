# Vault - Data Item Manager
#
# Owner-scoped create/read/update/delete of encrypted secrets, version
# audit trail and incremental sync.
#
# Security Model:
# - Each item gets its own random key at creation (never rotated)
# - Payloads are encrypted here; stores only ever see ciphertext
# - Listings and sync results never carry payloads or keys
# - Ownership is checked before any read, write or delete

from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple, Union

from ..core.errors import AccessDeniedError, NotFoundError, PartialWriteError, StoreError
from ..core.validator import coerce_data_type, validate_data_name, validate_payload
from ..db.repositories import DataItemStore, DataVersionStore
from ..models import DataItem, DataType, DataVersion, utcnow
from .encryption import CryptoEngine


class VaultManager:
    """
    Manages a user's encrypted data items.

    Concurrency:
        No optimistic locking. Two concurrent updates of the same item can
        both compute version N+1; the later write wins.
    """

    def __init__(
        self,
        items: DataItemStore,
        versions: DataVersionStore,
        crypto: CryptoEngine,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.items = items
        self.versions = versions
        self.crypto = crypto
        self._clock = clock

    async def create_data(
        self,
        user_id: str,
        data_type: Union[str, DataType],
        name: str,
        metadata: str,
        plaintext: bytes,
    ) -> DataItem:
        """
        Encrypt and store a new item at version 1.

        Raises:
            ValidationError: Bad type, blank/oversized name or non-bytes payload
            CryptoError: Encryption failed
            PartialWriteError: Item stored but its version row was not
        """
        data_type = coerce_data_type(data_type)
        validate_data_name(name)
        validate_payload(plaintext)

        item_key = self.crypto.generate_key()
        encrypted = self.crypto.encrypt(bytes(plaintext), item_key)

        now = self._clock()
        item = DataItem(
            user_id=user_id,
            type=data_type,
            name=name,
            metadata=metadata or "",
            encrypted_payload=encrypted,
            item_key=item_key,
            created_at=now,
            updated_at=now,
            version=1,
        )
        await self.items.create(item)
        await self._record_version(item, completed="data_item.create")
        return item

    async def get_data(self, user_id: str, data_id: str) -> DataItem:
        """
        Fetch one owned item, payload and key included.

        Raises:
            NotFoundError: No such item
            AccessDeniedError: Item belongs to another user
        """
        item = await self.items.get_by_id(data_id)
        if item is None:
            raise NotFoundError(f"data item {data_id} not found")
        if item.user_id != user_id:
            raise AccessDeniedError("access denied")
        return item

    async def read_payload(self, user_id: str, data_id: str) -> Tuple[DataItem, bytes]:
        """Fetch an owned item and decrypt its payload."""
        item = await self.get_data(user_id, data_id)
        return item, self.crypto.decrypt(item.encrypted_payload, item.item_key)

    async def get_user_data(self, user_id: str) -> List[DataItem]:
        """All owned items, newest update first, without payloads."""
        items = await self.items.get_by_user_id(user_id)
        return [item.without_secrets() for item in items]

    async def get_user_data_by_type(
        self, user_id: str, data_type: Union[str, DataType]
    ) -> List[DataItem]:
        data_type = coerce_data_type(data_type)
        items = await self.items.get_by_user_id_and_type(user_id, data_type)
        return [item.without_secrets() for item in items]

    async def update_data(
        self,
        user_id: str,
        data_id: str,
        name: str,
        metadata: str,
        plaintext: bytes,
    ) -> DataItem:
        """
        Replace an owned item's content and bump its version by one.

        The item key is reused.

        Raises:
            NotFoundError: No such item (or it vanished mid-update)
            AccessDeniedError: Item belongs to another user (checked before
                the new content is validated)
            ValidationError: Blank/oversized name or non-bytes payload
            PartialWriteError: Item updated but its version row was not
        """
        current = await self.get_data(user_id, data_id)
        validate_data_name(name)
        validate_payload(plaintext)

        encrypted = self.crypto.encrypt(bytes(plaintext), current.item_key)

        updated = replace(
            current,
            name=name,
            metadata=metadata or "",
            encrypted_payload=encrypted,
            version=current.version + 1,
            updated_at=self._clock(),
        )
        if not await self.items.update(updated):
            raise NotFoundError(f"data item {data_id} not found")
        await self._record_version(updated, completed="data_item.update")
        return updated

    async def delete_data(self, user_id: str, data_id: str) -> None:
        """
        Delete an owned item. Its version rows are kept.

        Raises:
            NotFoundError: No such item
            AccessDeniedError: Item belongs to another user
        """
        await self.get_data(user_id, data_id)
        if not await self.items.delete(data_id):
            raise NotFoundError(f"data item {data_id} not found")

    async def sync_data(self, user_id: str, last_sync: datetime) -> List[DataItem]:
        """
        Owned items changed strictly after ``last_sync``, oldest first.

        Payloads are stripped; clients fetch content per item. Deletions
        are not reported. A naive ``last_sync`` is taken as UTC.
        """
        if last_sync.tzinfo is None:
            last_sync = last_sync.replace(tzinfo=timezone.utc)
        items = await self.items.get_updated_since(user_id, last_sync)
        return [item.without_secrets() for item in items]

    # ------------------------------------------------------------------
    # Version trail
    # ------------------------------------------------------------------

    async def get_history(self, user_id: str, data_id: str) -> List[DataVersion]:
        """Version rows of an owned item, ascending."""
        await self.get_data(user_id, data_id)
        return await self.versions.get_by_data_id(data_id)

    async def has_version_drift(self, user_id: str, data_id: str) -> bool:
        """
        True when the item's version has no matching latest version row.

        That only happens after a PartialWriteError left the item ahead of
        its audit trail.
        """
        item = await self.get_data(user_id, data_id)
        latest: Optional[DataVersion] = await self.versions.get_latest_version(data_id)
        return latest is None or latest.version != item.version

    async def _record_version(self, item: DataItem, completed: str) -> None:
        version = DataVersion(
            data_id=item.id,
            version=item.version,
            created_at=item.updated_at,
        )
        try:
            await self.versions.create(version)
        except StoreError as exc:
            raise PartialWriteError(
                f"data item {item.id} written at version {item.version} "
                f"but its version row was not",
                entity_id=item.id,
                completed=completed,
            ) from exc
