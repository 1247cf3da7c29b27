from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from scrume_core.codec import encode_projects
from scrume_core.document_store import EncryptedDocumentStore
from scrume_core.errors import DecodeError
from scrume_core.migration import LEGACY_PROJECTS_KEY, JsonKeyValueStore, MigrationOutcome, migrate_if_needed
from scrume_core.models import Project
from scrume_core.samples import sample_projects


@pytest.fixture
def legacy(tmp_path: Path) -> JsonKeyValueStore:
    return JsonKeyValueStore(tmp_path / "legacy_defaults.json")


def _bare_list(projects: list[Project]) -> bytes:
    return json.dumps([p.model_dump(mode="json", by_alias=True) for p in projects]).encode("utf-8")


def test_key_value_store_round_trip(legacy: JsonKeyValueStore) -> None:
    assert legacy.get("missing") is None
    legacy.set("a", b"[1, 2]")
    legacy.set("b", b"hello")
    assert legacy.get("a") == b"[1, 2]"
    legacy.remove("a")
    assert legacy.get("a") is None
    assert legacy.path.is_file()
    legacy.remove("b")
    assert not legacy.path.exists()
    legacy.remove("b")


def test_key_value_store_reserializes_non_string_values(legacy: JsonKeyValueStore) -> None:
    legacy.path.write_text(json.dumps({LEGACY_PROJECTS_KEY: [{"name": "Inline"}]}), encoding="utf-8")
    assert json.loads(legacy.get(LEGACY_PROJECTS_KEY)) == [{"name": "Inline"}]


def test_key_value_store_rejects_non_object_file(legacy: JsonKeyValueStore) -> None:
    legacy.path.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(DecodeError):
        legacy.get(LEGACY_PROJECTS_KEY)


def test_nothing_to_migrate(store: EncryptedDocumentStore, legacy: JsonKeyValueStore) -> None:
    assert migrate_if_needed(store, legacy) is MigrationOutcome.NOTHING_TO_MIGRATE
    assert not store.exists()


def test_migrates_legacy_projects_once(
    store: EncryptedDocumentStore,
    legacy: JsonKeyValueStore,
    caplog: pytest.LogCaptureFixture,
    now,
) -> None:
    projects = sample_projects(now)
    legacy.set(LEGACY_PROJECTS_KEY, _bare_list(projects))

    with caplog.at_level(logging.INFO, logger="scrume_core.migration"):
        assert migrate_if_needed(store, legacy) is MigrationOutcome.MIGRATED
    assert "Migrated 3 projects" in caplog.text
    assert store.load() == projects
    assert legacy.get(LEGACY_PROJECTS_KEY) is None
    assert not legacy.path.exists()

    before = store.path.read_bytes()
    assert migrate_if_needed(store, legacy) is MigrationOutcome.NOTHING_TO_MIGRATE
    assert store.path.read_bytes() == before
    assert store.load() == projects


def test_migration_accepts_enveloped_data_and_keeps_other_keys(
    store: EncryptedDocumentStore,
    legacy: JsonKeyValueStore,
) -> None:
    legacy.set("unrelated_setting", b"dark")
    legacy.set(LEGACY_PROJECTS_KEY, encode_projects([Project(name="Enveloped")]))
    assert migrate_if_needed(store, legacy) is MigrationOutcome.MIGRATED
    assert [p.name for p in store.load()] == ["Enveloped"]
    assert legacy.get("unrelated_setting") == b"dark"


def test_existing_store_wins_and_legacy_is_cleaned(
    store: EncryptedDocumentStore,
    legacy: JsonKeyValueStore,
) -> None:
    current = [Project(name="Current")]
    store.save(current)
    legacy.set(LEGACY_PROJECTS_KEY, _bare_list([Project(name="Stale")]))

    assert migrate_if_needed(store, legacy) is MigrationOutcome.CLEANED_UP
    assert store.load() == current
    assert legacy.get(LEGACY_PROJECTS_KEY) is None


def test_undecodable_legacy_data_is_left_in_place(
    store: EncryptedDocumentStore,
    legacy: JsonKeyValueStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    legacy.set(LEGACY_PROJECTS_KEY, b"[{broken")
    with caplog.at_level(logging.ERROR, logger="scrume_core.migration"):
        assert migrate_if_needed(store, legacy) is MigrationOutcome.FAILED
    assert "Migration error" in caplog.text
    assert legacy.get(LEGACY_PROJECTS_KEY) == b"[{broken"
    assert not store.exists()


def test_unreadable_legacy_file_fails(store: EncryptedDocumentStore, legacy: JsonKeyValueStore) -> None:
    legacy.path.write_text("{not json", encoding="utf-8")
    assert migrate_if_needed(store, legacy) is MigrationOutcome.FAILED
    assert legacy.path.read_text(encoding="utf-8") == "{not json"


def test_failed_save_keeps_legacy_data(
    store: EncryptedDocumentStore,
    legacy: JsonKeyValueStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    payload = _bare_list([Project(name="Keep me")])
    legacy.set(LEGACY_PROJECTS_KEY, payload)

    def fail_write(path: Path, content: bytes, **kwargs) -> None:
        raise OSError("read-only volume")

    monkeypatch.setattr("scrume_core.document_store.atomic_write_bytes", fail_write)
    assert migrate_if_needed(store, legacy) is MigrationOutcome.FAILED
    assert legacy.get(LEGACY_PROJECTS_KEY) == payload
