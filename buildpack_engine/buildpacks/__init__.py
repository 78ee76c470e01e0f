"""Reference buildpacks and buildpack registration.

Buildpacks are registered explicitly: either by built-in name or by a
`module:attr` import path naming a Buildpack subclass or instance.
Registration order is the order the names are given.
"""

from __future__ import annotations

import importlib
from collections.abc import Iterable

from buildpack_engine.buildpack import Buildpack
from buildpack_engine.buildpacks.go_flex import GoFlexBuildpack
from buildpack_engine.buildpacks.maven import MavenBuildpack
from buildpack_engine.buildpacks.yarn import YarnBuildpack

BUILTINS: dict[str, type[Buildpack]] = {
    GoFlexBuildpack.name: GoFlexBuildpack,
    MavenBuildpack.name: MavenBuildpack,
    YarnBuildpack.name: YarnBuildpack,
}


def load_buildpack(spec: str) -> Buildpack:
    """Resolve one buildpack reference.

    Args:
        spec: Built-in name (e.g. "google.java.maven") or "module:attr".

    Returns:
        Buildpack instance.

    Raises:
        ValueError: If the reference cannot be resolved to a Buildpack.
    """
    if spec in BUILTINS:
        return BUILTINS[spec]()

    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        known = ", ".join(BUILTINS)
        raise ValueError(f"Unknown buildpack {spec!r} (built-ins: {known}; or use module:attr)")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import buildpack module {module_name!r}: {e}") from e

    try:
        target = getattr(module, attr)
    except AttributeError as e:
        raise ValueError(f"Module {module_name!r} has no attribute {attr!r}") from e

    if isinstance(target, type) and issubclass(target, Buildpack):
        target = target()
    if not isinstance(target, Buildpack):
        raise ValueError(f"{spec!r} is not a Buildpack")
    return target


def load_buildpacks(specs: Iterable[str] | None = None) -> list[Buildpack]:
    """Resolve buildpack references in order; all built-ins if none are given."""
    specs = list(specs or [])
    if not specs:
        return [cls() for cls in BUILTINS.values()]
    return [load_buildpack(spec) for spec in specs]


__all__ = [
    "BUILTINS",
    "GoFlexBuildpack",
    "MavenBuildpack",
    "YarnBuildpack",
    "load_buildpack",
    "load_buildpacks",
]
