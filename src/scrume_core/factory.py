from __future__ import annotations

import logging
from dataclasses import dataclass

from .controller import ProjectStateController
from .document_store import EncryptedDocumentStore
from .migration import JsonKeyValueStore, MigrationOutcome, migrate_if_needed
from .secret_store import FileSecretStore, SecretStore
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScrumeRuntime:
    """Objects created once at process start and shared for its lifetime."""

    settings: RuntimeSettings
    secret_store: SecretStore
    store: EncryptedDocumentStore
    controller: ProjectStateController
    migration: MigrationOutcome


def build_runtime(
    settings: RuntimeSettings | None = None,
    *,
    secret_store: SecretStore | None = None,
) -> ScrumeRuntime:
    """Wire stores and controller, run the legacy migration, load projects.

    The migration runs before the controller's first load so the loaded
    collection already includes any migrated data.

    Args:
        settings: Storage settings; read from the environment when omitted.
        secret_store: Key store override; defaults to a file-backed store
            under ``settings.key_dir_path``.

    Returns:
        The assembled runtime.
    """
    resolved = settings if settings is not None else RuntimeSettings.from_env()
    keys = secret_store if secret_store is not None else FileSecretStore(resolved.key_dir_path, resolved.key_name)
    store = EncryptedDocumentStore(
        resolved.data_file_path,
        keys,
        guard_empty_overwrite=resolved.guard_empty_overwrite,
    )
    legacy = JsonKeyValueStore(resolved.legacy_file_path)
    outcome = migrate_if_needed(store, legacy, key=resolved.legacy_key)
    logger.debug("Legacy migration outcome: %s", outcome.value)

    controller = ProjectStateController(store, default_sprint_weeks=resolved.default_sprint_weeks)
    controller.load()
    return ScrumeRuntime(
        settings=resolved,
        secret_store=keys,
        store=store,
        controller=controller,
        migration=outcome,
    )
