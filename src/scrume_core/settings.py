from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class RuntimeSettings:
    """Storage settings loaded from environment with fail-fast validation."""

    data_dir: str = "~/.scrume"
    data_file: str = "scrume_data.encrypted"
    key_dir: str = ""
    key_name: str = "com.scrume.encryptionKey"
    legacy_file: str = "legacy_defaults.json"
    legacy_key: str = "scrume_projects"
    default_sprint_weeks: int = 2
    guard_empty_overwrite: bool = False

    @classmethod
    def from_env(cls, *, env_file: Path | None = None) -> "RuntimeSettings":
        """Build settings from ``SCRUME_*`` environment variables.

        A ``.env`` file is loaded first when *env_file* is given (or when one
        exists in the current directory). Variables already present in the
        environment win over the file.
        """
        dotenv_path = env_file if env_file is not None else Path.cwd() / ".env"
        if dotenv_path.is_file():
            load_dotenv(dotenv_path)
        return cls(
            data_dir=os.getenv("SCRUME_DATA_DIR", "~/.scrume"),
            data_file=os.getenv("SCRUME_DATA_FILE", "scrume_data.encrypted"),
            key_dir=os.getenv("SCRUME_KEY_DIR", ""),
            key_name=os.getenv("SCRUME_KEY_NAME", "com.scrume.encryptionKey"),
            legacy_file=os.getenv("SCRUME_LEGACY_FILE", "legacy_defaults.json"),
            legacy_key=os.getenv("SCRUME_LEGACY_KEY", "scrume_projects"),
            default_sprint_weeks=_get_env_int("SCRUME_DEFAULT_SPRINT_WEEKS", default=2, minimum=1, maximum=4),
            guard_empty_overwrite=_get_env_bool("SCRUME_GUARD_EMPTY_OVERWRITE", default=False),
        ).normalized()

    def normalized(self) -> "RuntimeSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        data_dir = self.data_dir.strip()
        if not data_dir:
            raise ValueError("SCRUME_DATA_DIR must be non-empty")

        # -- File names must stay inside their directory --
        data_file = self.data_file.strip()
        legacy_file = self.legacy_file.strip()
        key_name = self.key_name.strip()
        for label, value in (
            ("SCRUME_DATA_FILE", data_file),
            ("SCRUME_LEGACY_FILE", legacy_file),
            ("SCRUME_KEY_NAME", key_name),
        ):
            if not value:
                raise ValueError(f"{label} must be non-empty")
            if "/" in value or "\\" in value or value in {".", ".."}:
                raise ValueError(f"{label} must be a plain file name, got: {value!r}")
        if data_file == legacy_file:
            raise ValueError("SCRUME_DATA_FILE and SCRUME_LEGACY_FILE must differ")

        legacy_key = self.legacy_key.strip()
        if not legacy_key:
            raise ValueError("SCRUME_LEGACY_KEY must be non-empty")

        if not 1 <= self.default_sprint_weeks <= 4:
            raise ValueError(
                f"SCRUME_DEFAULT_SPRINT_WEEKS must be between 1 and 4, got: {self.default_sprint_weeks}"
            )
        return RuntimeSettings(
            data_dir=data_dir,
            data_file=data_file,
            key_dir=self.key_dir.strip(),
            key_name=key_name,
            legacy_file=legacy_file,
            legacy_key=legacy_key,
            default_sprint_weeks=self.default_sprint_weeks,
            guard_empty_overwrite=self.guard_empty_overwrite,
        )

    @property
    def data_dir_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def data_file_path(self) -> Path:
        return self.data_dir_path / self.data_file

    @property
    def key_dir_path(self) -> Path:
        """Return the key directory, defaulting to ``<data_dir>/keys`` if unset."""
        return Path(self.key_dir).expanduser() if self.key_dir else self.data_dir_path / "keys"

    @property
    def legacy_file_path(self) -> Path:
        return self.data_dir_path / self.legacy_file


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Parse an integer from an environment variable with bounds checking.

    Args:
        name: Environment variable name.
        default: Value to return if the variable is unset.
        minimum: Inclusive lower bound.
        maximum: Inclusive upper bound.

    Returns:
        The parsed integer, guaranteed to be within [minimum, maximum].

    Raises:
        ValueError: If the value is not an integer or is outside bounds.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got: {raw!r}")
