"""
Settings store: key -> serialized blob persistence.

Blobs live in memory unless a SQLAlchemy async session factory is supplied,
in which case they are written to the ``settings_blobs`` table with a change
history. When an encryption key is configured blobs are Fernet-encrypted at
rest.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import logging
from datetime import datetime

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import select, update

from .models import Base, SettingsBlob, SettingsHistory

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a settings blob cannot be read or written."""


class SettingsStore:
    def __init__(
        self,
        db_session_factory: Optional[Any] = None,
        encryption_key: Optional[str] = None,
    ):
        self.db_factory = db_session_factory
        self._store: Dict[str, str] = {}  # Fallback in-memory store
        self._cipher: Optional[Fernet] = (
            Fernet(encryption_key.encode()) if encryption_key else None
        )

    def _protect(self, blob: str) -> str:
        if not self._cipher:
            return blob
        return self._cipher.encrypt(blob.encode("utf-8")).decode("utf-8")

    def _unprotect(self, value: str, is_encrypted: bool) -> str:
        if not is_encrypted:
            return value
        if not self._cipher:
            raise PersistenceError("blob is encrypted but no key is configured")
        try:
            return self._cipher.decrypt(value.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise PersistenceError("blob decryption failed") from e

    async def init_schema(self, engine: Any) -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def get(self, key: str) -> Optional[str]:
        """Return the stored blob for ``key`` or None when absent."""
        if self.db_factory:
            try:
                return await self._get_db(key)
            except PersistenceError:
                raise
            except Exception as e:  # noqa: BLE001
                raise PersistenceError(f"read failed for {key}: {e}") from e
        value = self._store.get(key)
        if value is None:
            return None
        return self._unprotect(value, self._cipher is not None)

    async def set(self, key: str, blob: str) -> None:
        """Persist ``blob`` under ``key``, replacing any previous value."""
        if self.db_factory:
            try:
                await self._set_db(key, blob)
            except Exception as e:  # noqa: BLE001
                raise PersistenceError(f"write failed for {key}: {e}") from e
            return
        self._store[key] = self._protect(blob)

    async def _get_db(self, key: str) -> Optional[str]:
        async with self.db_factory() as session:
            row = await session.scalar(select(SettingsBlob).where(SettingsBlob.key == key))
            if row is None:
                return None
            return self._unprotect(row.value, row.is_encrypted)

    async def _set_db(self, key: str, blob: str) -> None:
        value = self._protect(blob)
        encrypted = self._cipher is not None
        async with self.db_factory() as session:
            current = await session.scalar(
                select(SettingsBlob).where(SettingsBlob.key == key)
            )
            if current:
                old_value = current.value
                await session.execute(
                    update(SettingsBlob)
                    .where(SettingsBlob.id == current.id)
                    .values(
                        value=value,
                        is_encrypted=encrypted,
                        updated_at=datetime.utcnow(),
                        version=SettingsBlob.version + 1,
                    )
                )
                session.add(
                    SettingsHistory(  # type: ignore[call-arg]
                        blob_id=current.id,
                        old_value=old_value,
                        new_value=value,
                    )
                )
            else:
                entry = SettingsBlob(  # type: ignore[call-arg]
                    key=key,
                    value=value,
                    is_encrypted=encrypted,
                )
                session.add(entry)
                await session.flush()
                session.add(
                    SettingsHistory(  # type: ignore[call-arg]
                        blob_id=entry.id,
                        old_value=None,
                        new_value=value,
                    )
                )
            await session.commit()

        logger.info("Settings blob updated: %s", key, extra={"key": key, "encrypted": encrypted})
