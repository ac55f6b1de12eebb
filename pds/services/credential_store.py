"""
Encrypted per-user, per-provider credential storage.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from pds.core.errors import ValidationError
from pds.models.data_source import CredentialRecord, DataSourceType
from pds.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

Credentials = Union[Mapping[str, Any], str]


class RecordStore(Protocol):
    """Storage operations shared by ``SQLiteStore`` and ``DynamoDBClient``."""

    def put_item(self, item: Dict[str, Any]) -> None: ...

    def get_item(self, *, partition_key: str, sort_key: str) -> Optional[Dict[str, Any]]: ...

    def delete_item(self, *, partition_key: str, sort_key: str) -> bool: ...

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]: ...

    def list_items_by_sort_key(self, *, sort_key: str) -> list[Dict[str, Any]]: ...


def coerce_data_source_type(value: Union[str, DataSourceType]) -> DataSourceType:
    """Map a raw value onto the enum, raising ``ValidationError`` when unknown."""
    try:
        return DataSourceType(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in DataSourceType)
        raise ValidationError(
            f"Invalid data source type: {value}. Must be one of: {allowed}"
        ) from exc


class CredentialStore:
    """Upsert, read and enumerate encrypted data source credentials.

    There is at most one record per ``(user_id, data_source_type)``; storing
    again overwrites the ciphertext in place and keeps ``created_at`` and
    ``last_ingested_at``.
    """

    _SORT_KEY_PREFIX = "datasource#"

    def __init__(self, store: RecordStore, token_cipher: TokenCipherService) -> None:
        self._store = store
        self._cipher = token_cipher

    async def store_credentials(
        self,
        user_id: str,
        data_source_type: Union[str, DataSourceType],
        credentials: Credentials,
    ) -> CredentialRecord:
        """Encrypt and upsert credentials, returning the persisted record."""
        source = coerce_data_source_type(data_source_type)
        plaintext = credentials if isinstance(credentials, str) else json.dumps(dict(credentials))
        encrypted = self._cipher.encrypt(plaintext)

        pk = CredentialRecord.partition_key(user_id)
        sk = CredentialRecord.sort_key(source)
        existing = await asyncio.to_thread(
            self._store.get_item, partition_key=pk, sort_key=sk
        )
        now = datetime.now(timezone.utc)
        record = CredentialRecord(
            pk=pk,
            sk=sk,
            user_id=user_id,
            data_source_type=source,
            credentials=encrypted,
            last_ingested_at=existing.get("last_ingested_at") if existing else None,
            created_at=existing["created_at"] if existing else now,
            updated_at=now,
        )
        await asyncio.to_thread(self._store.put_item, record.model_dump(mode="json"))
        logger.info("Stored %s credentials for user %s", source.value, user_id)
        return record

    async def get_credentials(
        self, user_id: str, data_source_type: Union[str, DataSourceType]
    ) -> Optional[Union[Dict[str, Any], str]]:
        """Return the decrypted credentials, or ``None`` when nothing is stored."""
        record = await self.get_record(user_id, data_source_type)
        if record is None:
            return None

        decrypted = self._cipher.decrypt(record.credentials)
        try:
            return json.loads(decrypted)
        except json.JSONDecodeError:
            return decrypted

    async def get_record(
        self, user_id: str, data_source_type: Union[str, DataSourceType]
    ) -> Optional[CredentialRecord]:
        source = coerce_data_source_type(data_source_type)
        item = await asyncio.to_thread(
            self._store.get_item,
            partition_key=CredentialRecord.partition_key(user_id),
            sort_key=CredentialRecord.sort_key(source),
        )
        if not item:
            return None
        return CredentialRecord.model_validate(item)

    async def get_users_with_data_source(
        self, data_source_type: Union[str, DataSourceType]
    ) -> list[str]:
        """List users holding credentials for a provider, in enumeration order."""
        source = coerce_data_source_type(data_source_type)
        items = await asyncio.to_thread(
            self._store.list_items_by_sort_key, sort_key=CredentialRecord.sort_key(source)
        )
        return [item["user_id"] for item in items]

    async def list_user_data_sources(self, user_id: str) -> list[CredentialRecord]:
        items = await asyncio.to_thread(
            self._store.list_items_with_prefix,
            partition_key=CredentialRecord.partition_key(user_id),
            sort_key_prefix=self._SORT_KEY_PREFIX,
        )
        return [CredentialRecord.model_validate(item) for item in items]

    async def update_last_ingested_at(
        self, user_id: str, data_source_type: Union[str, DataSourceType]
    ) -> None:
        """Stamp a successful ingestion; a missing record is left alone."""
        record = await self.get_record(user_id, data_source_type)
        if record is None:
            logger.warning(
                "No %s record for user %s; skipping last_ingested_at update",
                data_source_type,
                user_id,
            )
            return
        now = datetime.now(timezone.utc)
        updated = record.model_copy(update={"last_ingested_at": now, "updated_at": now})
        await asyncio.to_thread(self._store.put_item, updated.model_dump(mode="json"))

    async def delete_credentials(
        self, user_id: str, data_source_type: Union[str, DataSourceType]
    ) -> bool:
        """Administrative removal of a data source; never called implicitly."""
        source = coerce_data_source_type(data_source_type)
        deleted = await asyncio.to_thread(
            self._store.delete_item,
            partition_key=CredentialRecord.partition_key(user_id),
            sort_key=CredentialRecord.sort_key(source),
        )
        if deleted:
            logger.info("Deleted %s credentials for user %s", source.value, user_id)
        return deleted


__all__ = ["CredentialStore", "RecordStore", "coerce_data_source_type"]
