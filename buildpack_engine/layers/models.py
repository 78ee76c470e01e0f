"""Layer models.

Layer is the in-memory handle a buildpack works with during one build.
LayerRecord is the persisted schema, validated with pydantic so that a
record written by an older schema is detected rather than misread.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

# Bump when the persisted record format changes; older records become misses
LAYER_SCHEMA_VERSION = "1"

Scalar = Union[str, int, float, bool, None]
MetadataValue = Union[Scalar, list[Scalar]]


class LayerFlagsSchema(BaseModel):
    """Persisted form of layer flags."""

    model_config = ConfigDict(extra="forbid")

    build: bool = False
    cache: bool = False
    launch: bool = False

    def names(self) -> list[str]:
        return [n for n in ("build", "cache", "launch") if getattr(self, n)]


class LayerRecord(BaseModel):
    """Schema of the metadata record persisted next to each layer.

    Attributes:
        schema_version: Record format version.
        cache_key: Key used to judge reuse (None if never set).
        flags: Layer flags at the time of writing.
        metadata: Buildpack-defined key/value payload.
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: str = Field(default=LAYER_SCHEMA_VERSION)
    cache_key: str | None = None
    flags: LayerFlagsSchema = Field(default_factory=LayerFlagsSchema)
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


@dataclass(frozen=True)
class LayerFlags:
    """Where a layer is visible: later build steps, cache, or the final image."""

    build: bool = False
    cache: bool = False
    launch: bool = False

    def __post_init__(self) -> None:
        if not (self.build or self.cache or self.launch):
            raise ValueError("A layer needs at least one of build, cache, launch")

    def names(self) -> list[str]:
        return [n for n in ("build", "cache", "launch") if getattr(self, n)]

    def to_schema(self) -> LayerFlagsSchema:
        return LayerFlagsSchema(build=self.build, cache=self.cache, launch=self.launch)


@dataclass
class Layer:
    """Handle to one buildpack-owned layer.

    Attributes:
        owner: Name of the buildpack that owns the layer.
        name: Layer name, unique per owner.
        path: Content directory.
        flags: Current flags.
        cache_key: Key set for this build.
        metadata: Payload to persist.
        previous: Record persisted by a prior build, if any and valid.
        touched: Requested during the current build.
        written: Record persisted during the current build.
        cache_hit: Result of the last is_cache_hit() call.
    """

    owner: str
    name: str
    path: Path
    flags: LayerFlags
    cache_key: str | None = None
    metadata: dict[str, MetadataValue] = field(default_factory=dict)
    previous: LayerRecord | None = None
    touched: bool = True
    written: bool = False
    cache_hit: bool = False
    cleared: bool = False

    @property
    def id(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def record_path(self) -> Path:
        return self.path.parent / f"{self.path.name}.json"

    def to_record(self) -> LayerRecord:
        return LayerRecord(
            cache_key=self.cache_key,
            flags=self.flags.to_schema(),
            metadata=dict(self.metadata),
        )

    def summary(self) -> LayerSummary:
        return LayerSummary(
            id=self.id,
            flags=self.flags.names(),
            cache_key=self.cache_key,
            cache_hit=self.cache_hit,
            touched=self.touched,
        )


@dataclass
class LayerSummary:
    """Manifest view of a retained layer."""

    id: str
    flags: list[str]
    cache_key: str | None = None
    cache_hit: bool = False
    touched: bool = False


__all__ = [
    "LAYER_SCHEMA_VERSION",
    "Layer",
    "LayerFlags",
    "LayerFlagsSchema",
    "LayerRecord",
    "LayerSummary",
    "MetadataValue",
]
