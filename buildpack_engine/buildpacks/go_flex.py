"""Go modules buildpack for the flex platform.

Participates when the application has a go.mod, the target platform is
flex, and no explicit buildable was given. The main package directory may
be pinned by a stager-written `_main-package-path` file.
"""

from __future__ import annotations

import posixpath

from buildpack_engine import env as platform_env
from buildpack_engine.buildpack import Buildpack, BuildOutcome
from buildpack_engine.context import BuildContext
from buildpack_engine.layers.cache_key import compute_cache_key, hash_files
from buildpack_engine.plan.models import DetectResult, PlanEntry, Provide

GO_MOD = "go.mod"
MAIN_PACKAGE_FILE = "_main-package-path"


def main_path(ctx: BuildContext) -> str:
    """Return the main package path from the stager file, or "" if absent."""
    if not ctx.file_exists(MAIN_PACKAGE_FILE):
        return ""
    return ctx.read_text(MAIN_PACKAGE_FILE).strip()


def clean_main_path(path: str) -> str:
    """Normalize a main package path relative to the application root.

    Raises:
        ValueError: If the path is absolute or escapes the root.
    """
    cleaned = posixpath.normpath(path.strip())
    if posixpath.isabs(cleaned):
        raise ValueError(f"main package path must be relative: {path!r}")
    if cleaned == ".." or cleaned.startswith("../"):
        raise ValueError(f"main package path escapes the application root: {path!r}")
    return cleaned


class GoFlexBuildpack(Buildpack):
    name = "google.go.flex-gomod"

    def detect(self, ctx: BuildContext) -> DetectResult:
        if ctx.target_platform() != platform_env.TARGET_PLATFORM_FLEX:
            return DetectResult.skip("target platform is not flex")
        if ctx.buildable() is not None:
            return DetectResult.skip(f"{platform_env.BUILDABLE} is set")
        if not ctx.file_exists(GO_MOD):
            return DetectResult.skip(f"{GO_MOD} not found")
        return DetectResult.passed(
            provides=[Provide("web-process", {"language": "go"})],
        )

    def build(self, ctx: BuildContext, entry: PlanEntry) -> BuildOutcome:
        package = clean_main_path(main_path(ctx) or ".")
        target = "." if package == "." else f"./{package}"

        layer = ctx.layer("bin", launch=True, cache=True)
        ctx.set_cache_key(
            layer,
            compute_cache_key(
                sources=hash_files(ctx.app_root, ("**/*.go", "go.mod", "go.sum")),
                package=package,
            ),
        )
        binary = layer.path / "main"

        if ctx.is_cache_hit(layer) and binary.exists():
            ctx.log.info("Reusing compiled binary %s", binary)
        else:
            ctx.exec(["go", "build", "-o", str(binary), target])
            ctx.write_metadata(layer, {"package": package})

        ctx.overlay.prepend("PATH", str(layer.path))
        return BuildOutcome(processes={"web": str(binary)})


__all__ = ["GoFlexBuildpack", "clean_main_path", "main_path"]
