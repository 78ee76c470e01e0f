"""Layer storage and cache reuse decisions.

This module handles:
- Creating and reopening buildpack-owned layer directories
- Judging cache hits by comparing persisted and current cache keys
- Clearing stale content on a miss (record first, then content)
- Pruning layers that are no longer needed at the end of a build

Layout: <root>/<buildpack>/<layer>/ holds content and
<root>/<buildpack>/<layer>.json holds the record.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Iterable
from pathlib import Path

from buildpack_engine.layers.metadata import (
    CacheCorruptionError,
    load_record,
    write_record,
)
from buildpack_engine.layers.models import (
    Layer,
    LayerFlags,
    LayerRecord,
    LayerSummary,
    MetadataValue,
)

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-]+$")


class LayerError(Exception):
    """Raised for invalid layer requests."""

    def __init__(self, message: str, code: str = "layer_error") -> None:
        super().__init__(message)
        self.code = code


def _validate_name(value: str, kind: str) -> str:
    if not NAME_PATTERN.match(value) or value in (".", ".."):
        raise LayerError(f"Invalid {kind} name: {value!r}", code="invalid_name")
    return value


def _load_or_none(path: Path) -> LayerRecord | None:
    try:
        return load_record(path)
    except CacheCorruptionError as e:
        logger.warning("%s; treating as cache miss", e)
        return None


class LayerManager:
    """Owns physical layer storage for one build invocation."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._layers: dict[str, Layer] = {}

    def layer_path(self, owner: str, name: str) -> Path:
        return self.root / _validate_name(owner, "buildpack") / _validate_name(name, "layer")

    def get_layer(
        self,
        owner: str,
        name: str,
        *,
        build: bool = False,
        cache: bool = False,
        launch: bool = False,
    ) -> Layer:
        """Create or reopen a layer.

        Previously persisted metadata is loaded. A layer requested without
        the cache flag starts empty: its prior content and record are removed.

        Args:
            owner: Buildpack name.
            name: Layer name.
            build: Visible to later build steps.
            cache: Persist across builds for reuse.
            launch: Included in the final image.

        Returns:
            Layer handle.

        Raises:
            LayerError: If a name is invalid.
            ValueError: If no flag is set.
        """
        flags = LayerFlags(build=build, cache=cache, launch=launch)
        path = self.layer_path(owner, name)
        key = f"{owner}/{name}"

        layer = self._layers.get(key)
        if layer is not None:
            if layer.flags != flags:
                logger.debug("Layer %s flags changed to %s", key, flags.names())
                layer.flags = flags
                if not cache and not layer.cleared:
                    self._reset(layer)
            return layer

        path.mkdir(parents=True, exist_ok=True)
        previous = _load_or_none(path.parent / f"{name}.json")
        layer = Layer(
            owner=owner,
            name=name,
            path=path,
            flags=flags,
            metadata=dict(previous.metadata) if previous else {},
            previous=previous,
        )
        if not cache:
            self._reset(layer)
        self._layers[key] = layer
        logger.debug("Opened layer %s (flags=%s)", key, flags.names())
        return layer

    def set_cache_key(self, layer: Layer, key: str) -> None:
        """Record the key used to judge reuse of this layer."""
        layer.cache_key = key

    def is_cache_hit(self, layer: Layer) -> bool:
        """Decide whether the layer's existing content can be reused.

        A hit requires a prior record with the same cache key and a layer
        still flagged for caching. On a miss the prior content is cleared so
        the buildpack can repopulate it.

        Returns:
            True on a cache hit.
        """
        previous = layer.previous
        hit = (
            layer.flags.cache
            and layer.cache_key is not None
            and previous is not None
            and previous.cache_key == layer.cache_key
        )
        if hit:
            logger.info("Cache hit for layer %s (key=%s)", layer.id, layer.cache_key)
            layer.cache_hit = True
            return True

        layer.cache_hit = False
        if not layer.cleared:
            logger.info("Cache miss for layer %s, clearing prior content", layer.id)
            self._reset(layer)
        return False

    def write_metadata(
        self,
        layer: Layer,
        data: dict[str, MetadataValue] | None = None,
    ) -> Path:
        """Persist the layer record atomically.

        Args:
            layer: Layer handle.
            data: Payload entries merged into the layer's metadata.

        Returns:
            Path of the written record.
        """
        if data:
            layer.metadata.update(data)
        path = write_record(layer.record_path, layer.to_record())
        layer.written = True
        return path

    def flush(self, owner: str) -> list[Layer]:
        """Persist records for a buildpack's touched, unwritten layers."""
        flushed = []
        for layer in self._layers.values():
            if layer.owner == owner and not layer.written:
                self.write_metadata(layer)
                flushed.append(layer)
        return flushed

    def finalize(self, active_owners: Iterable[str]) -> list[LayerSummary]:
        """Prune layers the next build cannot use.

        Untouched layers survive only if their owner is still active and
        their record is flagged for caching.

        Args:
            active_owners: Buildpacks in the current plan.

        Returns:
            Summaries of retained layers, sorted by id.
        """
        active = set(active_owners)
        retained: list[LayerSummary] = []

        if not self.root.exists():
            return retained

        for owner_dir in sorted(p for p in self.root.iterdir() if p.is_dir()):
            owner = owner_dir.name
            names = {p.name for p in owner_dir.iterdir() if p.is_dir()}
            names |= {p.stem for p in owner_dir.glob("*.json")}

            for name in sorted(names):
                key = f"{owner}/{name}"
                layer = self._layers.get(key)
                if layer is not None:
                    retained.append(layer.summary())
                    continue

                record = _load_or_none(owner_dir / f"{name}.json")
                if owner in active and record is not None and record.flags.cache:
                    retained.append(
                        LayerSummary(
                            id=key,
                            flags=record.flags.names(),
                            cache_key=record.cache_key,
                        )
                    )
                    continue

                logger.info("Removing unused layer %s", key)
                self._remove(owner_dir / name, owner_dir / f"{name}.json")

            if not any(owner_dir.iterdir()):
                owner_dir.rmdir()

        return retained

    def list_persisted(self) -> list[LayerSummary]:
        """Summarize records currently on disk."""
        summaries: list[LayerSummary] = []
        if not self.root.exists():
            return summaries
        for record_path in sorted(self.root.glob("*/*.json")):
            record = _load_or_none(record_path)
            if record is None:
                continue
            summaries.append(
                LayerSummary(
                    id=f"{record_path.parent.name}/{record_path.stem}",
                    flags=record.flags.names(),
                    cache_key=record.cache_key,
                )
            )
        return summaries

    def _reset(self, layer: Layer) -> None:
        # Record goes first so a crash never pairs an old key with new content
        self._remove(layer.path, layer.record_path)
        layer.path.mkdir(parents=True, exist_ok=True)
        layer.previous = None
        layer.metadata.clear()
        layer.cleared = True

    @staticmethod
    def _remove(content: Path, record: Path) -> None:
        record.unlink(missing_ok=True)
        if content.is_dir():
            shutil.rmtree(content)
        elif content.exists():
            content.unlink()


__all__ = ["NAME_PATTERN", "LayerError", "LayerManager"]
