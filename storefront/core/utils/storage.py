"""Durable key/value storage on SQLite.

Holds the per-role session tokens and profiles and the persisted cart state
in the `storefront_stored_value` table so they survive a process restart.
Each key is written independently; there are no transactional guarantees
across keys.
"""
from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.engine import Engine

from storefront.core.utils.encryption import CredentialEncryption
from storefront.db.base import Base
from storefront.db.models.stored_value import StoredValue
from storefront.db.session import create_session_factory, get_db_sync

logger = logging.getLogger(__name__)


class DurableStore:
    """Persisted key/value surface with optional encryption for secret keys."""

    def __init__(
        self,
        engine: Engine,
        encryption: Optional[CredentialEncryption] = None,
        encrypted_keys: Iterable[str] = (),
    ):
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._encryption = encryption
        self._encrypted_keys = frozenset(encrypted_keys)
        self._tables_initialized = False
        self._tables_init_lock = Lock()

    def _ensure_table(self) -> None:
        """Ensure the storage table exists."""
        if self._tables_initialized:
            return

        with self._tables_init_lock:
            if not self._tables_initialized:
                try:
                    Base.metadata.create_all(
                        bind=self._engine,
                        tables=[StoredValue.__table__],
                        checkfirst=True,
                    )
                    self._tables_initialized = True
                    logger.debug("Durable storage table initialized successfully")
                except Exception as e:
                    logger.error(f"Failed to initialize durable storage table: {e}")
                    raise

    def _should_encrypt(self, key: str) -> bool:
        return self._encryption is not None and key in self._encrypted_keys

    def set(self, key: str, value: Any) -> None:
        """
        Store a value with the given key, replacing any previous value.

        Raises:
            StorageEncryptionError: If encryption fails for a secret key
        """
        self._ensure_table()

        if self._should_encrypt(key):
            # Let encryption errors bubble up - no fallback to plaintext
            stored_value = self._encryption.encrypt(value)
        else:
            stored_value = value

        with get_db_sync(self._session_factory) as db:
            try:
                result = db.execute(
                    update(StoredValue)
                    .where(StoredValue.key == key)
                    .values(data=stored_value)
                )
                if result.rowcount == 0:
                    db.add(StoredValue(key=key, data=stored_value))
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Storage write failed for key {key}: {e}")
                raise

    def get(self, key: str) -> Optional[Any]:
        """Retrieve the value for the given key."""
        self._ensure_table()
        with get_db_sync(self._session_factory) as db:
            row = db.scalar(select(StoredValue).where(StoredValue.key == key))
            if row is None:
                return None

            if self._should_encrypt(key):
                if not isinstance(row.data, str):
                    logger.warning(f"Unencrypted value found for secret key: {key}")
                    return None
                # Never return raw ciphertext; None on failure
                return self._encryption.decrypt(row.data)

            return row.data

    def clear(self, key: str) -> None:
        """Remove the entry for the given key."""
        self._ensure_table()
        with get_db_sync(self._session_factory) as db:
            db.execute(delete(StoredValue).where(StoredValue.key == key))
            db.commit()

    def keys(self) -> list[str]:
        self._ensure_table()
        with get_db_sync(self._session_factory) as db:
            return list(db.scalars(select(StoredValue.key).order_by(StoredValue.id)))
