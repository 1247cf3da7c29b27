"""One-shot upgrade from the old unencrypted key-value storage.

Earlier releases kept the serialized project list, in plaintext, under a
single key of a generic key-value file. :func:`migrate_if_needed` runs at
process start, before anything else touches the encrypted store, and moves
that data across exactly once.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

from .codec import decode_projects
from .document_store import EncryptedDocumentStore
from .errors import DecodeError, StorageWriteError
from .fileio import atomic_write_bytes, remove_if_exists

logger = logging.getLogger(__name__)

LEGACY_PROJECTS_KEY = "scrume_projects"


class MigrationOutcome(str, Enum):
    NOTHING_TO_MIGRATE = "nothing_to_migrate"
    CLEANED_UP = "cleaned_up"
    MIGRATED = "migrated"
    FAILED = "failed"


class JsonKeyValueStore:
    """Generic key-value store kept as one JSON object on disk.

    Values are returned as bytes. String values are UTF-8 encoded; any other
    JSON value is re-serialized.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError(f"legacy store at {self.path} is unreadable: {exc}") from exc
        if not isinstance(raw, dict):
            raise DecodeError(f"legacy store at {self.path} must hold a JSON object")
        return raw

    def _write_all(self, values: dict[str, Any]) -> None:
        atomic_write_bytes(self.path, json.dumps(values, indent=2, sort_keys=True).encode("utf-8"))

    def get(self, key: str) -> bytes | None:
        value = self._read_all().get(key)
        if value is None:
            return None
        if isinstance(value, str):
            return value.encode("utf-8")
        return json.dumps(value).encode("utf-8")

    def set(self, key: str, data: bytes) -> None:
        values = self._read_all()
        values[key] = data.decode("utf-8")
        self._write_all(values)

    def remove(self, key: str) -> None:
        """Delete *key*; the file itself goes away once it holds nothing else."""
        values = self._read_all()
        if key not in values:
            return
        del values[key]
        if values:
            self._write_all(values)
        else:
            remove_if_exists(self.path)


def migrate_if_needed(
    store: EncryptedDocumentStore,
    legacy: JsonKeyValueStore,
    *,
    key: str = LEGACY_PROJECTS_KEY,
) -> MigrationOutcome:
    """Move legacy plaintext projects into the encrypted store.

    Safe to call on every launch: once the legacy key is gone the call is a
    no-op. When the encrypted store already exists it is treated as the
    authority and the legacy copy is discarded unread. On any failure the
    legacy data is left in place so the next launch can retry.

    Args:
        store: Destination encrypted store.
        legacy: Old key-value storage.
        key: Key holding the serialized project list.

    Returns:
        What the call did.
    """
    try:
        legacy_data = legacy.get(key)
    except DecodeError as exc:
        logger.error("Migration error: %s", exc)
        return MigrationOutcome.FAILED
    if legacy_data is None:
        return MigrationOutcome.NOTHING_TO_MIGRATE

    try:
        if store.exists():
            legacy.remove(key)
            logger.info("Cleaned up legacy project data at %s", legacy.path)
            return MigrationOutcome.CLEANED_UP

        projects = decode_projects(legacy_data)
        store.save(projects)
        legacy.remove(key)
    except (DecodeError, StorageWriteError, OSError) as exc:
        logger.error("Migration error: %s", exc)
        return MigrationOutcome.FAILED

    logger.info("Migrated %d projects from legacy storage to encrypted storage", len(projects))
    return MigrationOutcome.MIGRATED
