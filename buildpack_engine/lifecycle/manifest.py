"""Final build manifest generation.

The manifest is the hand-off to whatever packaging step produces the
runnable image. It contains:
- Every retained layer with its flags and cache key
- The merged environment overlay, in application order
- Declared processes and the build order
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from buildpack_engine.environment import EnvironmentOverlay
from buildpack_engine.layers.metadata import atomic_write_json
from buildpack_engine.layers.models import LayerSummary

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0"


def generate_manifest(
    layers: list[LayerSummary],
    environment: EnvironmentOverlay,
    buildpacks: list[str],
    processes: dict[str, str] | None = None,
    extra_metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Generate the build manifest.

    Args:
        layers: Retained layers.
        environment: Merged environment overlay.
        buildpacks: Build order.
        processes: Declared processes by type.
        extra_metadata: Optional additional metadata.

    Returns:
        Manifest dictionary suitable for JSON serialization.
    """
    now = datetime.now(timezone.utc)

    manifest: dict[str, Any] = {
        "version": MANIFEST_VERSION,
        "generated_at": now.isoformat(),
        "buildpacks": list(buildpacks),
        "layers": {
            summary.id: {
                key: value for key, value in asdict(summary).items() if key != "id"
            }
            for summary in layers
        },
        "environment": environment.to_list(),
        "processes": dict(processes or {}),
    }

    if extra_metadata:
        manifest["metadata"] = extra_metadata

    manifest["summary"] = {
        "total_layers": len(layers),
        "launch_layers": sum(1 for s in layers if "launch" in s.flags),
        "cache_hits": sum(1 for s in layers if s.cache_hit),
    }

    return manifest


def write_manifest(manifest: dict[str, Any], output_path: Path) -> Path:
    """Write the manifest atomically to a JSON file.

    Args:
        manifest: Manifest dictionary.
        output_path: Output file path.

    Returns:
        Path to the written manifest file.
    """
    atomic_write_json(output_path, manifest)
    logger.info("Wrote manifest to %s", output_path)
    return output_path


def load_manifest(path: Path) -> dict[str, Any]:
    """Load a manifest written by write_manifest.

    Raises:
        FileNotFoundError: If the manifest does not exist.
        json.JSONDecodeError: If it is not valid JSON.
    """
    with path.open(encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


__all__ = [
    "MANIFEST_VERSION",
    "generate_manifest",
    "load_manifest",
    "write_manifest",
]
