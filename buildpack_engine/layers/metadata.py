"""Layer metadata persistence.

This module handles:
- Atomic writes (temp file in the same directory, then rename)
- Loading and validating persisted layer records
- Mapping unreadable or outdated records to CacheCorruptionError
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from buildpack_engine.layers.models import LAYER_SCHEMA_VERSION, LayerRecord

logger = logging.getLogger(__name__)


class CacheCorruptionError(Exception):
    """Raised when a persisted layer record cannot be trusted."""

    def __init__(self, path: Path, reason: str, code: str = "cache_corruption") -> None:
        super().__init__(f"Corrupt layer record {path}: {reason}")
        self.path = path
        self.reason = reason
        self.code = code


def atomic_write_text(path: Path, content: str) -> Path:
    """Write a text file atomically.

    The content goes to a temporary file in the destination directory which
    is then renamed over the target, so readers see either the old or the
    new file, never a partial one.

    Args:
        path: Destination path.
        content: Text to write.

    Returns:
        The destination path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def atomic_write_json(path: Path, data: dict[str, Any]) -> Path:
    """Write a JSON document atomically with sorted keys."""
    return atomic_write_text(path, json.dumps(data, indent=2, sort_keys=True) + "\n")


def write_record(path: Path, record: LayerRecord) -> Path:
    """Persist a layer record atomically."""
    atomic_write_json(path, record.model_dump(mode="json"))
    logger.debug("Wrote layer record %s", path)
    return path


def load_record(path: Path) -> LayerRecord | None:
    """Load a persisted layer record.

    Args:
        path: Record file path.

    Returns:
        LayerRecord, or None if no record exists.

    Raises:
        CacheCorruptionError: If the record is unreadable, not valid JSON,
            fails validation, or was written with another schema version.
    """
    if not path.exists():
        return None

    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CacheCorruptionError(path, str(e)) from e

    if not isinstance(data, dict):
        raise CacheCorruptionError(path, f"expected an object, got {type(data).__name__}")

    version = data.get("schema_version")
    if version != LAYER_SCHEMA_VERSION:
        raise CacheCorruptionError(
            path, f"schema version {version!r} != {LAYER_SCHEMA_VERSION!r}"
        )

    try:
        return LayerRecord.model_validate(data)
    except ValidationError as e:
        raise CacheCorruptionError(path, f"invalid record: {e.error_count()} error(s)") from e


__all__ = [
    "CacheCorruptionError",
    "atomic_write_json",
    "atomic_write_text",
    "load_record",
    "write_record",
]
