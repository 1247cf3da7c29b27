from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from .crypto import KEY_LEN, generate_key
from .errors import KeyStoreError
from .fileio import atomic_write_bytes, ensure_private_dir, remove_if_exists

logger = logging.getLogger(__name__)

DEFAULT_KEY_NAME = "com.scrume.encryptionKey"


class SecretStore(Protocol):
    """Holds the single symmetric key protecting the document store."""

    def get_or_create_key(self) -> bytes:
        ...


class FileSecretStore:
    """Key store backed by an owner-only file in a dedicated directory.

    The key lives apart from the encrypted document so the two can be
    placed on different volumes or permission domains. Read and write
    failures are logged, never raised: a freshly generated key is still
    handed out, and reused for the lifetime of this instance so the
    current process can read back what it wrote.
    """

    def __init__(self, key_dir: Path, key_name: str = DEFAULT_KEY_NAME) -> None:
        self.key_dir = key_dir
        self.key_name = key_name
        self._unpersisted_key: bytes | None = None

    @property
    def key_path(self) -> Path:
        return self.key_dir / self.key_name

    def get_or_create_key(self) -> bytes:
        """Return the stored key, generating and persisting one on first use."""
        try:
            stored = self._read_key()
        except KeyStoreError as exc:
            logger.error("Failed to read encryption key %r: %s", self.key_name, exc)
            stored = None
        if stored is not None:
            return stored
        if self._unpersisted_key is not None:
            return self._unpersisted_key

        key = generate_key()
        try:
            self._write_key(key)
        except KeyStoreError as exc:
            logger.error(
                "Failed to persist encryption key %r; data saved in this session "
                "will be unreadable after restart: %s",
                self.key_name,
                exc,
            )
            self._unpersisted_key = key
        else:
            logger.info("Generated new encryption key %r", self.key_name)
        return key

    def delete_key(self) -> None:
        """Remove the persisted key. Idempotent."""
        self._unpersisted_key = None
        try:
            remove_if_exists(self.key_path)
        except OSError as exc:
            raise KeyStoreError(f"cannot delete key {self.key_path}: {exc}") from exc

    def _read_key(self) -> bytes | None:
        if not self.key_path.is_file():
            return None
        try:
            data = self.key_path.read_bytes()
        except OSError as exc:
            raise KeyStoreError(f"cannot read key {self.key_path}: {exc}") from exc
        if len(data) != KEY_LEN:
            logger.warning(
                "Ignoring stored key %r with invalid length %d (expected %d)",
                self.key_name,
                len(data),
                KEY_LEN,
            )
            return None
        return data

    def _write_key(self, key: bytes) -> None:
        try:
            ensure_private_dir(self.key_dir)
            atomic_write_bytes(self.key_path, key)
        except OSError as exc:
            raise KeyStoreError(f"cannot write key {self.key_path}: {exc}") from exc


class InMemorySecretStore:
    """Process-local key store, used where no durable key storage is wanted."""

    def __init__(self, key: bytes | None = None) -> None:
        self._key = key

    def get_or_create_key(self) -> bytes:
        if self._key is None:
            self._key = generate_key()
        return self._key
