"""Environment overlays exported by buildpacks.

An overlay is an ordered list of variable mutations. Entries are applied in
registration order on top of a base environment:

- override: replace the current value
- prepend/append: join onto the current value with a delimiter
- default: set only if the variable is unset at apply time
"""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from buildpack_engine.types import EnvOp


@dataclass(frozen=True)
class EnvEntry:
    """One environment mutation.

    Attributes:
        variable: Environment variable name.
        op: Operation to apply.
        value: Value to set or join.
        delimiter: Separator used by prepend/append.
    """

    variable: str
    op: EnvOp
    value: str
    delimiter: str = os.pathsep

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "variable": self.variable,
            "op": self.op.value,
            "value": self.value,
            "delimiter": self.delimiter,
        }


@dataclass
class EnvironmentOverlay:
    """Ordered sequence of environment mutations."""

    entries: list[EnvEntry] = field(default_factory=list)

    def __iter__(self) -> Iterator[EnvEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def add(
        self,
        variable: str,
        op: EnvOp,
        value: str,
        delimiter: str = os.pathsep,
    ) -> None:
        """Append an entry to the overlay.

        Raises:
            ValueError: If the variable name is empty or contains '='.
        """
        if not variable or "=" in variable:
            raise ValueError(f"Invalid environment variable name: {variable!r}")
        self.entries.append(EnvEntry(variable, EnvOp(op), value, delimiter))

    def override(self, variable: str, value: str) -> None:
        self.add(variable, EnvOp.OVERRIDE, value)

    def default(self, variable: str, value: str) -> None:
        self.add(variable, EnvOp.DEFAULT, value)

    def prepend(self, variable: str, value: str, delimiter: str = os.pathsep) -> None:
        self.add(variable, EnvOp.PREPEND, value, delimiter)

    def append(self, variable: str, value: str, delimiter: str = os.pathsep) -> None:
        self.add(variable, EnvOp.APPEND, value, delimiter)

    def extend(self, other: EnvironmentOverlay) -> None:
        """Append all entries of another overlay, preserving their order."""
        self.entries.extend(other.entries)

    def apply(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Apply the overlay on top of a base environment.

        Args:
            base: Base environment; not modified.

        Returns:
            New environment dictionary.
        """
        result = dict(base or {})
        for entry in self.entries:
            current = result.get(entry.variable)
            if entry.op is EnvOp.OVERRIDE:
                result[entry.variable] = entry.value
            elif entry.op is EnvOp.DEFAULT:
                if current is None:
                    result[entry.variable] = entry.value
            elif entry.op is EnvOp.PREPEND:
                result[entry.variable] = (
                    f"{entry.value}{entry.delimiter}{current}" if current else entry.value
                )
            elif entry.op is EnvOp.APPEND:
                result[entry.variable] = (
                    f"{current}{entry.delimiter}{entry.value}" if current else entry.value
                )
        return result

    def to_list(self) -> list[dict[str, Any]]:
        """Serialize entries in order."""
        return [entry.to_dict() for entry in self.entries]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]]) -> EnvironmentOverlay:
        """Rebuild an overlay from its serialized form."""
        overlay = cls()
        for item in data:
            overlay.add(
                item["variable"],
                EnvOp(item["op"]),
                item["value"],
                item.get("delimiter", os.pathsep),
            )
        return overlay


__all__ = ["EnvEntry", "EnvironmentOverlay"]
