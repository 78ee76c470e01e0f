"""Cache key computation for layers.

This module handles:
- Deterministic hashing of normalized inputs
- Tree hashing of source files that affect a layer
- Folding tool output (e.g. a runtime version) into a key

Keys are opaque strings; equal keys mean a layer's content can be reused.
"""

from __future__ import annotations

import hashlib
import json
import stat
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from buildpack_engine.context import BuildContext

# Schema version for cache key format; bump when the key format changes
CACHE_KEY_SCHEMA_VERSION = "1"


def compute_cache_key(**inputs: Any) -> str:
    """Compute a cache key from named inputs.

    The key is a SHA-256 hash of the canonical JSON representation of the
    inputs plus the key schema version.

    Args:
        **inputs: JSON-serializable values that affect layer content.

    Returns:
        Cache key as hex string (sha256:...).
    """
    payload = {"schema_version": CACHE_KEY_SCHEMA_VERSION, "inputs": inputs}
    canonical_json = json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    hash_hex = hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()
    return f"sha256:{hash_hex}"


def hash_files(root: Path, patterns: Iterable[str] = ("**/*",)) -> str:
    """Compute a deterministic hash of files under a directory.

    The hash covers sorted relative paths, the lower 9 mode bits, and file
    contents. Missing files simply contribute nothing.

    Args:
        root: Directory to hash.
        patterns: Glob patterns relative to root.

    Returns:
        SHA-256 hex digest.
    """
    hasher = hashlib.sha256()

    if not root.exists():
        return hasher.hexdigest()

    paths: set[Path] = set()
    for pattern in patterns:
        paths.update(p for p in root.glob(pattern) if p.is_file())

    for path in sorted(paths):
        rel_path = path.relative_to(root).as_posix()
        mode = stat.S_IMODE(path.stat().st_mode)
        # Hash: path\0mode\0content\0
        hasher.update(rel_path.encode("utf-8"))
        hasher.update(b"\0")
        hasher.update(f"{mode:o}".encode())
        hasher.update(b"\0")
        hasher.update(path.read_bytes())
        hasher.update(b"\0")

    return hasher.hexdigest()


def command_output_key(ctx: BuildContext, args: Sequence[str]) -> str:
    """Run a tool and return its trimmed stdout for use in a cache key.

    Typical use is a runtime version (`node --version`), so that upgrading
    the tool invalidates layers built with it.

    Raises:
        ExecutionError: If the tool fails.
    """
    result = ctx.exec(args)
    return result.stdout.strip()


__all__ = [
    "CACHE_KEY_SCHEMA_VERSION",
    "command_output_key",
    "compute_cache_key",
    "hash_files",
]
