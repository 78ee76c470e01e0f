"""Maven buildpack.

Builds Java applications with Maven. Detection looks for pom.xml or
.mvn/extensions.xml, under GOOGLE_BUILDABLE when the operator sets it.
The local Maven repository is kept in a cache layer keyed on the pom.
"""

from __future__ import annotations

import posixpath
import shlex
from pathlib import Path

from buildpack_engine import env as platform_env
from buildpack_engine.buildpack import Buildpack, BuildOutcome
from buildpack_engine.context import BuildContext
from buildpack_engine.layers.cache_key import compute_cache_key, hash_files
from buildpack_engine.plan.models import DetectResult, PlanEntry, Provide

POM_XML = "pom.xml"
EXTENSIONS_XML = ".mvn/extensions.xml"
MAVEN_WRAPPER = "mvnw"

DEFAULT_BUILD_ARGS = [
    "clean",
    "package",
    "--batch-mode",
    "-DskipTests",
    "-Dhttp.keepAlive=false",
]


def ensure_unix_line_endings(ctx: BuildContext, path: Path) -> bool:
    """Rewrite CRLF line endings to LF in a script.

    Returns:
        True if the file was rewritten.
    """
    content = path.read_bytes()
    if b"\r\n" not in content:
        return False
    ctx.log.info("Converting %s to Unix line endings", path.name)
    path.write_bytes(content.replace(b"\r\n", b"\n"))
    return True


def build_args(ctx: BuildContext) -> list[str]:
    """Maven goals and flags, replaced wholesale by GOOGLE_MAVEN_BUILD_ARGS."""
    override = ctx.getenv(platform_env.MAVEN_BUILD_ARGS)
    if override:
        return shlex.split(override)
    return list(DEFAULT_BUILD_ARGS)


class MavenBuildpack(Buildpack):
    name = "google.java.maven"

    def project_dir(self, ctx: BuildContext) -> Path:
        """Directory holding the pom, the buildable when one is set.

        Raises:
            ValueError: If the buildable is absolute or leaves the app root.
        """
        buildable = ctx.buildable()
        if not buildable:
            return ctx.app_root

        cleaned = posixpath.normpath(buildable)
        if posixpath.isabs(cleaned) or cleaned == ".." or cleaned.startswith("../"):
            raise ValueError(
                f"{platform_env.BUILDABLE} must be inside the application root: {buildable!r}"
            )
        project = ctx.app_path(cleaned)
        # Symlinks may still point elsewhere
        if not project.resolve().is_relative_to(ctx.app_root.resolve()):
            raise ValueError(
                f"{platform_env.BUILDABLE} resolves outside the application root: {buildable!r}"
            )
        return project

    def detect(self, ctx: BuildContext) -> DetectResult:
        # An explicit buildable replaces the root-level heuristic entirely
        try:
            project = self.project_dir(ctx)
        except ValueError as e:
            return DetectResult.error(str(e))
        if (project / POM_XML).exists() or (project / EXTENSIONS_XML).exists():
            return DetectResult.passed(
                provides=[Provide("web-process", {"language": "java"})],
            )
        return DetectResult.skip(f"neither {POM_XML} nor {EXTENSIONS_XML} found in {project}")

    def maven_command(self, ctx: BuildContext, project: Path) -> str:
        wrapper = project / MAVEN_WRAPPER
        if wrapper.exists():
            ensure_unix_line_endings(ctx, wrapper)
            wrapper.chmod(wrapper.stat().st_mode | 0o111)
            return f"./{MAVEN_WRAPPER}"

        result = ctx.exec(["bash", "-c", "command -v mvn || true"])
        if not result.stdout.strip():
            raise RuntimeError("Maven is not installed and no ./mvnw wrapper was found")
        return "mvn"

    def build(self, ctx: BuildContext, entry: PlanEntry) -> BuildOutcome:
        project = self.project_dir(ctx)

        m2 = ctx.layer("m2", cache=True)
        ctx.set_cache_key(
            m2, compute_cache_key(pom=hash_files(project, (POM_XML, EXTENSIONS_XML)))
        )
        if ctx.is_cache_hit(m2):
            ctx.log.info("Reusing cached Maven repository")

        mvn = self.maven_command(ctx, project)
        repository = m2.path / "repository"
        ctx.exec(
            [mvn, *build_args(ctx)],
            cwd=project,
            env={"MAVEN_OPTS": f"-Dmaven.repo.local={repository}"},
        )
        ctx.write_metadata(m2)

        outcome = BuildOutcome()
        jars = sorted((project / "target").glob("*.jar"))
        if jars:
            outcome.processes["web"] = f"java -jar {jars[0]}"
        return outcome


__all__ = [
    "DEFAULT_BUILD_ARGS",
    "MavenBuildpack",
    "build_args",
    "ensure_unix_line_endings",
]
