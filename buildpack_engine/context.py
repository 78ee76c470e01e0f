"""Per-invocation context handed to every buildpack.

The context bundles the application root, a read-only snapshot of the
process environment, the environment overlay, the executor, and the layer
manager. Buildpacks reach the outside world only through it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType

from buildpack_engine import env as platform_env
from buildpack_engine.config import Settings, get_settings
from buildpack_engine.environment import EnvironmentOverlay
from buildpack_engine.execution.runner import ExecResult, Executor, SubprocessExecutor
from buildpack_engine.layers.manager import LayerManager
from buildpack_engine.layers.models import Layer, MetadataValue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildContext:
    """Everything a buildpack may touch during detect or build.

    Attributes:
        app_root: Application source root.
        env: Read-only snapshot of the process environment.
        executor: Runs external processes.
        layers: Layer storage for this invocation.
        settings: Engine settings.
        overlay: Environment entries declared by the current buildpack.
        exported: Entries exported by buildpacks that already ran.
        buildpack: Name of the buildpack this view belongs to.
    """

    app_root: Path
    env: Mapping[str, str]
    executor: Executor
    layers: LayerManager
    settings: Settings
    overlay: EnvironmentOverlay = field(default_factory=EnvironmentOverlay)
    exported: EnvironmentOverlay = field(default_factory=EnvironmentOverlay)
    buildpack: str | None = None

    def scoped(self, buildpack: str) -> BuildContext:
        """Return the view of this context for one buildpack.

        The view shares the executor, layers, and exported overlay but
        starts with an empty overlay of its own.
        """
        return replace(self, buildpack=buildpack, overlay=EnvironmentOverlay())

    @property
    def log(self) -> logging.LoggerAdapter[logging.Logger]:
        return logging.LoggerAdapter(
            logging.getLogger(f"buildpack_engine.buildpack.{self.buildpack or 'engine'}"),
            {"buildpack": self.buildpack},
        )

    # Environment

    def effective_env(self) -> dict[str, str]:
        """Snapshot plus upstream exports plus this buildpack's own entries."""
        return self.overlay.apply(self.exported.apply(self.env))

    def getenv(self, name: str, default: str | None = None) -> str | None:
        return self.effective_env().get(name, default)

    def buildable(self) -> str | None:
        """Explicit buildable target set by the operator, if any."""
        value = self.getenv(platform_env.BUILDABLE)
        if value is None or not value.strip():
            return None
        return value.strip()

    def target_platform(self) -> str | None:
        return self.getenv(platform_env.TARGET_PLATFORM)

    def debug_enabled(self) -> bool:
        return platform_env.is_truthy(self.getenv(platform_env.DEBUG))

    # Files

    def app_path(self, *parts: str) -> Path:
        return self.app_root.joinpath(*parts)

    def file_exists(self, *parts: str) -> bool:
        return self.app_path(*parts).exists()

    def read_text(self, *parts: str) -> str:
        return self.app_path(*parts).read_text(encoding="utf-8")

    # Execution

    def exec(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        ignore_nonzero: bool = False,
        expect_failure: bool = False,
        timeout: float | None = None,
    ) -> ExecResult:
        """Run an external command with the effective environment.

        Args:
            args: Command and arguments.
            cwd: Working directory (defaults to the application root).
            env: Extra variables layered over the effective environment.
            ignore_nonzero: Return instead of raising on non-zero exit.
            expect_failure: Suppress error logging on failure.
            timeout: Timeout in seconds.

        Raises:
            ExecutionError: See Executor.run.
        """
        full_env = self.effective_env()
        if env:
            full_env.update(env)
        return self.executor.run(
            args,
            cwd=cwd if cwd is not None else self.app_root,
            env=full_env,
            ignore_nonzero=ignore_nonzero,
            expect_failure=expect_failure,
            timeout=timeout,
            owner=self.buildpack,
        )

    # Layers

    def layer(
        self,
        name: str,
        *,
        build: bool = False,
        cache: bool = False,
        launch: bool = False,
    ) -> Layer:
        """Create or reopen a layer owned by the current buildpack."""
        if self.buildpack is None:
            raise RuntimeError("Layers can only be requested from a buildpack context")
        return self.layers.get_layer(
            self.buildpack, name, build=build, cache=cache, launch=launch
        )

    def set_cache_key(self, layer: Layer, key: str) -> None:
        self.layers.set_cache_key(layer, key)

    def is_cache_hit(self, layer: Layer) -> bool:
        return self.layers.is_cache_hit(layer)

    def write_metadata(
        self, layer: Layer, data: dict[str, MetadataValue] | None = None
    ) -> Path:
        return self.layers.write_metadata(layer, data)


def new_context(
    app_root: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    executor: Executor | None = None,
    layers_dir: Path | str | None = None,
    settings: Settings | None = None,
) -> BuildContext:
    """Create the context for one detect or build invocation.

    Args:
        app_root: Application root (defaults to settings.app_dir).
        env: Environment snapshot source (defaults to os.environ).
        executor: Process executor (defaults to a SubprocessExecutor).
        layers_dir: Layer storage root (defaults to settings.layers_dir).
        settings: Engine settings.

    Returns:
        BuildContext not yet scoped to a buildpack.
    """
    if settings is None:
        settings = get_settings()
    if executor is None:
        executor = SubprocessExecutor(
            default_timeout=settings.exec_timeout,
            tail_size=settings.stderr_tail_lines,
        )
    root = Path(app_root) if app_root is not None else settings.app_dir
    layers_root = Path(layers_dir) if layers_dir is not None else settings.layers_dir
    snapshot = dict(os.environ if env is None else env)

    logger.debug("New context: app_root=%s layers=%s", root, layers_root)
    return BuildContext(
        app_root=root,
        env=MappingProxyType(snapshot),
        executor=executor,
        layers=LayerManager(layers_root),
        settings=settings,
    )


__all__ = ["BuildContext", "new_context"]
