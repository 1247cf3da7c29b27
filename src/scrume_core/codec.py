"""Byte-level serialization of the project collection.

The stored form is an envelope around the project list::

    {"format": "scrume.projects", "version": 1, "projects": [...]}

The compact form written into the encrypted store is RFC 8785 canonical JSON;
the export form is indented JSON with sorted keys. Both decode the same way.
A bare JSON array of projects (the format written by earlier releases and
found in legacy storage) is accepted on input as well.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .canonical import to_canonical_json, to_pretty_json
from .errors import DecodeError
from .models import Project

logger = logging.getLogger(__name__)

FORMAT_TAG = "scrume.projects"
FORMAT_VERSION = 1

_PROJECT_LIST = TypeAdapter(list[Project])


def _envelope(projects: Sequence[Project]) -> dict[str, Any]:
    return {"format": FORMAT_TAG, "version": FORMAT_VERSION, "projects": list(projects)}


def encode_projects(projects: Sequence[Project]) -> bytes:
    """Encode *projects* as compact canonical JSON bytes."""
    return to_canonical_json(_envelope(projects)).encode("utf-8")


def export_projects(projects: Sequence[Project]) -> bytes:
    """Encode *projects* as pretty-printed, key-sorted JSON bytes for backups."""
    return to_pretty_json(_envelope(projects)).encode("utf-8")


def decode_projects(data: bytes) -> list[Project]:
    """Decode bytes produced by :func:`encode_projects` or :func:`export_projects`.

    Args:
        data: Serialized collection.

    Returns:
        The project list, in stored order.

    Raises:
        DecodeError: If the bytes are not UTF-8 JSON, carry an unknown format
            tag or version, or fail model validation.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("project data is not valid UTF-8") from exc
    if not text.strip():
        raise DecodeError("project data is empty")
    try:
        raw = json.loads(text)
    except (ValueError, RecursionError) as exc:
        # ValueError covers JSONDecodeError and over-long integer literals.
        raise DecodeError(f"project data is not valid JSON: {exc}") from exc

    if isinstance(raw, dict):
        if raw.get("format") != FORMAT_TAG:
            raise DecodeError(f"unknown project data format: {raw.get('format')!r}")
        version = raw.get("version")
        if version != FORMAT_VERSION:
            raise DecodeError(f"unsupported project data version: {version!r}")
        items = raw.get("projects")
    elif isinstance(raw, list):
        logger.debug("Decoding bare project list (%d entries)", len(raw))
        items = raw
    else:
        raise DecodeError(f"project data must be an object or list, got {type(raw).__name__}")

    try:
        return _PROJECT_LIST.validate_python(items)
    except PydanticValidationError as exc:
        raise DecodeError(f"project data failed validation: {exc}") from exc
