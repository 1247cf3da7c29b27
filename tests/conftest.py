from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from scrume_core.controller import ProjectStateController
from scrume_core.document_store import EncryptedDocumentStore
from scrume_core.secret_store import InMemorySecretStore

FIXED_NOW = datetime(2026, 10, 17, 9, 30, tzinfo=UTC)


class FixedClock:
    """Controller clock that only moves when a test advances it."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore()


@pytest.fixture
def data_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "scrume_data.encrypted"


@pytest.fixture
def store(data_path: Path, secret_store: InMemorySecretStore) -> EncryptedDocumentStore:
    return EncryptedDocumentStore(data_path, secret_store)


@pytest.fixture
def controller(store: EncryptedDocumentStore, clock: FixedClock) -> ProjectStateController:
    ctl = ProjectStateController(store, clock=clock)
    ctl.load()
    return ctl

