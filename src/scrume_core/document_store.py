from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .codec import decode_projects, encode_projects, export_projects
from .crypto import open_sealed, seal
from .errors import CorruptStoreError, DecodeError, StorageWriteError
from .fileio import atomic_write_bytes, remove_if_exists
from .models import Project
from .secret_store import SecretStore

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "scrume_data.encrypted"


@dataclass(frozen=True)
class StorageInfo:
    file_size: int
    location: str


class EncryptedDocumentStore:
    """Single-file, AES-256-GCM encrypted store for the whole project collection.

    Every call goes to disk; nothing is cached between calls. Writes are
    atomic (temp file, fsync, rename) so an interrupted save leaves the
    previous file readable.
    """

    def __init__(
        self,
        path: Path,
        secret_store: SecretStore,
        *,
        guard_empty_overwrite: bool = False,
    ) -> None:
        self.path = path
        self.secret_store = secret_store
        self.guard_empty_overwrite = guard_empty_overwrite

    def exists(self) -> bool:
        return self.path.is_file()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def load(self) -> list[Project]:
        """Return the stored projects, or an empty list if none can be read.

        A missing file is an empty store. An unreadable file (wrong key,
        tampering, truncation, schema mismatch) is logged and also reported
        as empty; the file itself is left untouched.
        """
        try:
            projects = self.load_strict()
        except CorruptStoreError:
            logger.exception("Error loading projects from %s", self.path)
            return []
        return projects

    def load_strict(self) -> list[Project]:
        """Like :meth:`load` but raise instead of failing open.

        Raises:
            CorruptStoreError: If the file cannot be read, decrypted or decoded.
        """
        if not self.path.is_file():
            return []
        try:
            blob = self.path.read_bytes()
        except OSError as exc:
            raise CorruptStoreError(f"cannot read {self.path}: {exc}") from exc
        plaintext = open_sealed(blob, self.secret_store.get_or_create_key())
        try:
            projects = decode_projects(plaintext)
        except DecodeError as exc:
            raise CorruptStoreError(f"decrypted store at {self.path} is not decodable: {exc}") from exc
        logger.info("Loaded %d projects (decrypted)", len(projects))
        return projects

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def save(self, projects: Sequence[Project]) -> None:
        """Encrypt and atomically persist the full collection.

        Raises:
            StorageWriteError: If the file cannot be written, or if the
                empty-overwrite guard refuses to replace existing data.
        """
        if self.guard_empty_overwrite and not projects:
            self._check_empty_overwrite()
        sealed = seal(encode_projects(projects), self.secret_store.get_or_create_key())
        try:
            atomic_write_bytes(self.path, sealed)
        except OSError as exc:
            raise StorageWriteError(f"cannot write {self.path}: {exc}") from exc
        logger.info("Saved %d projects (encrypted)", len(projects))

    def _check_empty_overwrite(self) -> None:
        if not self.path.is_file():
            return
        try:
            existing = self.load_strict()
        except CorruptStoreError as exc:
            raise StorageWriteError(
                f"refusing to overwrite unreadable store {self.path} with an empty collection"
            ) from exc
        if existing:
            raise StorageWriteError(
                f"refusing to overwrite {len(existing)} stored projects with an empty collection"
            )

    def clear(self) -> None:
        """Delete the store file. Idempotent."""
        try:
            removed = remove_if_exists(self.path)
        except OSError as exc:
            raise StorageWriteError(f"cannot delete {self.path}: {exc}") from exc
        if removed:
            logger.info("All data cleared at %s", self.path)

    # ------------------------------------------------------------------
    # Plaintext backup
    # ------------------------------------------------------------------

    def export_bytes(self) -> bytes:
        """Plaintext, pretty-printed, key-sorted dump of the stored collection."""
        return export_projects(self.load())

    def import_bytes(self, data: bytes) -> bool:
        """Replace the stored collection with a plaintext backup.

        Returns:
            True on success. False if *data* does not decode (storage is
            left untouched) or if the write fails.
        """
        try:
            projects = decode_projects(data)
        except DecodeError as exc:
            logger.error("Import error: %s", exc)
            return False
        try:
            self.save(projects)
        except StorageWriteError as exc:
            logger.error("Import could not be saved: %s", exc)
            return False
        logger.info("Imported %d projects", len(projects))
        return True

    def storage_info(self) -> StorageInfo:
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            size = 0
        return StorageInfo(file_size=size, location=str(self.path))
