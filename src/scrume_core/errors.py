from __future__ import annotations


class ScrumeError(Exception):
    """Base class for every error raised by scrume_core."""


class ValidationError(ScrumeError):
    """Caller-supplied input violates a domain rule. No state was changed."""


class NotFoundError(ValidationError):
    """A project, sprint, story, member or criterion id does not exist."""


class InvalidTransitionError(ValidationError):
    """A sprint status change is not allowed by the sprint state machine."""


class InvariantViolation(ValidationError):
    """A project graph breaks one of the structural invariants."""


class DecodeError(ScrumeError):
    """Serialized bytes could not be turned back into a project collection."""


class CorruptStoreError(ScrumeError):
    """The encrypted store could not be decrypted or decoded."""


class KeyStoreError(ScrumeError):
    """The encryption key could not be read from or written to the key store."""


class StorageWriteError(ScrumeError):
    """The document store could not be written to durable storage."""
