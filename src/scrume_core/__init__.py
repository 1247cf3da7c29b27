from importlib.metadata import PackageNotFoundError, version

from .codec import decode_projects, encode_projects, export_projects
from .controller import ProjectStateController
from .document_store import EncryptedDocumentStore, StorageInfo
from .errors import (
    CorruptStoreError,
    DecodeError,
    InvalidTransitionError,
    InvariantViolation,
    KeyStoreError,
    NotFoundError,
    ScrumeError,
    StorageWriteError,
    ValidationError,
)
from .factory import ScrumeRuntime, build_runtime
from .migration import JsonKeyValueStore, MigrationOutcome, migrate_if_needed
from .models import (
    SPRINT_STATUS_TRANSITIONS,
    VALID_STORY_POINTS,
    AcceptanceCriterion,
    Priority,
    Project,
    ScrumRole,
    Sprint,
    SprintStatus,
    StoryStatus,
    TeamMember,
    UserStory,
    check_invariants,
)
from .secret_store import FileSecretStore, InMemorySecretStore, SecretStore
from .settings import RuntimeSettings


def get_version() -> str:
    try:
        return version("scrume-core")
    except PackageNotFoundError:
        return "0.0.0"


__all__ = [
    "AcceptanceCriterion",
    "CorruptStoreError",
    "DecodeError",
    "EncryptedDocumentStore",
    "FileSecretStore",
    "InMemorySecretStore",
    "InvalidTransitionError",
    "InvariantViolation",
    "JsonKeyValueStore",
    "KeyStoreError",
    "MigrationOutcome",
    "NotFoundError",
    "Priority",
    "Project",
    "ProjectStateController",
    "RuntimeSettings",
    "ScrumRole",
    "ScrumeError",
    "ScrumeRuntime",
    "SecretStore",
    "Sprint",
    "SprintStatus",
    "StorageInfo",
    "StorageWriteError",
    "StoryStatus",
    "TeamMember",
    "UserStory",
    "ValidationError",
    "SPRINT_STATUS_TRANSITIONS",
    "VALID_STORY_POINTS",
    "build_runtime",
    "check_invariants",
    "decode_projects",
    "encode_projects",
    "export_projects",
    "get_version",
    "migrate_if_needed",
]
