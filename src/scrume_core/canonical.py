from __future__ import annotations

import hashlib
import json
from typing import Any

import rfc8785
from pydantic import BaseModel

# JSON-primitive types that rfc8785 can serialize directly.
_PASSTHROUGH_TYPES = (bool, int, float, str, type(None))


def normalize_for_json(value: Any) -> bool | int | float | str | None | list[Any] | dict[str, Any]:
    """Recursively convert models and containers into JSON-primitive types.

    Pydantic models are dumped with their wire aliases, so the output uses
    the same camelCase keys the codec reads back.

    Args:
        value: Any Python value to normalize.

    Returns:
        A JSON-primitive structure suitable for rfc8785.dumps or json.dumps.

    Raises:
        TypeError: If value contains a type that cannot be converted to JSON.
    """
    if isinstance(value, _PASSTHROUGH_TYPES):
        return value

    if isinstance(value, BaseModel):
        return normalize_for_json(value.model_dump(mode="json", by_alias=True))

    if isinstance(value, dict):
        return {str(k): normalize_for_json(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [normalize_for_json(item) for item in value]

    raise TypeError(
        f"Cannot serialize type {type(value).__name__} to canonical JSON. "
        f"Convert to a JSON-compatible type first."
    )


def to_canonical_json(value: Any) -> str:
    """Serialize a value to deterministic, byte-for-byte reproducible JSON per RFC 8785.

    Args:
        value: JSON primitives, pydantic models, or dicts, lists and tuples of them.

    Returns:
        A string containing the canonicalized JSON representation.

    Raises:
        TypeError: If value contains an unsupported type.
        rfc8785.CanonicalizationError: If rfc8785 rejects the normalized value.
    """
    return rfc8785.dumps(normalize_for_json(value)).decode("utf-8")


def to_pretty_json(value: Any) -> str:
    """Human-readable JSON with sorted keys and a trailing newline."""
    return json.dumps(normalize_for_json(value), indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def fingerprint(value: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of *value*."""
    return hashlib.sha256(to_canonical_json(value).encode("utf-8")).hexdigest()
