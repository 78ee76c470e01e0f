"""Yarn buildpack.

This module handles:
- Deciding whether installs may use a frozen lockfile (Node.js > 10)
- Telling Yarn 2+ lockfiles from Yarn 1 lockfiles
- Downloading Yarn when the build image does not ship it
- Installing dependencies with the Yarn cache kept in a layer
"""

from __future__ import annotations

import logging
import re
import shutil
import tarfile
import tempfile
from pathlib import Path

import httpx
import yaml

from buildpack_engine.buildpack import Buildpack, BuildOutcome
from buildpack_engine.context import BuildContext
from buildpack_engine.layers.cache_key import command_output_key, compute_cache_key, hash_files
from buildpack_engine.plan.models import DetectResult, PlanEntry, Provide

logger = logging.getLogger(__name__)

YARN_LOCK = "yarn.lock"
PACKAGE_JSON = "package.json"

# Yarn 1 ships as a tarball; Yarn 2+ as a single JavaScript bundle.
YARN_URL = "https://yarnpkg.com/downloads/{version}/yarn-v{version}.tar.gz"
YARN2_URL = "https://repo.yarnpkg.com/{version}/packages/yarnpkg-cli/bin/yarn.js"

DEFAULT_YARN_VERSION = "1.22.22"

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 300

_NODE_VERSION = re.compile(r"^v?(\d+)")


class YarnInstallError(Exception):
    """Raised when Yarn cannot be downloaded or unpacked."""

    def __init__(self, message: str, code: str = "yarn_install_error") -> None:
        super().__init__(message)
        self.code = code


def node_major_version(version: str) -> int:
    """Parse the major version out of `node -v` output such as "v15.11.0".

    Raises:
        ValueError: If the output is not a version string.
    """
    match = _NODE_VERSION.match(version.strip())
    if match is None:
        raise ValueError(f"Unrecognized Node.js version: {version!r}")
    return int(match.group(1))


def use_frozen_lockfile(ctx: BuildContext) -> bool:
    """Whether `yarn install` may pass --frozen-lockfile.

    Older Node.js releases ship a Yarn that mishandles the flag, so it is
    only used on Node.js 11 and later.
    """
    version = ctx.exec(["node", "-v"]).stdout
    return node_major_version(version) > 10


def is_yarn2(app_dir: Path) -> bool:
    """Whether the application's yarn.lock was written by Yarn 2 or later.

    Yarn 2+ lockfiles are YAML documents with a `__metadata` section. Yarn 1
    lockfiles are not always valid YAML; a parse failure means Yarn 1.

    Raises:
        FileNotFoundError: If there is no yarn.lock.
    """
    content = (app_dir / YARN_LOCK).read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError:
        return False
    return isinstance(data, dict) and "__metadata" in data


def _fetch(client: httpx.Client, url: str) -> bytes:
    logger.info("Downloading %s", url)
    try:
        response = client.get(url, timeout=DOWNLOAD_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
        return response.content
    except httpx.HTTPStatusError as e:
        raise YarnInstallError(
            f"HTTP error downloading {url}: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise YarnInstallError(f"Timeout downloading {url}", code="timeout") from e
    except httpx.RequestError as e:
        raise YarnInstallError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e


def _extract_stripped(archive: Path, dest: Path) -> None:
    """Extract a tarball into dest, dropping its single top-level directory."""
    with tempfile.TemporaryDirectory(dir=dest.parent) as tmp:
        staging = Path(tmp)
        try:
            with tarfile.open(archive, "r:*") as tar:
                tar.extractall(staging, filter="data")
        except tarfile.TarError as e:
            raise YarnInstallError(
                f"Failed to extract {archive.name}: {e}",
                code="extraction_error",
            ) from e

        entries = list(staging.iterdir())
        top = entries[0] if len(entries) == 1 and entries[0].is_dir() else staging
        shutil.copytree(top, dest, dirs_exist_ok=True)


def install_yarn(dest: Path, version: str, client: httpx.Client | None = None) -> Path:
    """Download Yarn into dest.

    Yarn 1 tarballs are unpacked with their top-level directory stripped.
    Yarn 2+ is a single script written to `bin/yarn`.

    Args:
        dest: Installation directory.
        version: Yarn version, e.g. "1.22.22" or "3.2.0".
        client: HTTPX client (a short-lived one is created if omitted).

    Returns:
        Directory holding the `yarn` executable.

    Raises:
        YarnInstallError: If the download or unpacking fails.
    """
    major = node_major_version(version)
    dest.mkdir(parents=True, exist_ok=True)
    bin_dir = dest / "bin"

    owns_client = client is None
    http = client if client is not None else httpx.Client()
    try:
        if major >= 2:
            script = _fetch(http, YARN2_URL.format(version=version))
            bin_dir.mkdir(parents=True, exist_ok=True)
            target = bin_dir / "yarn"
            target.write_bytes(script)
            target.chmod(0o755)
        else:
            payload = _fetch(http, YARN_URL.format(version=version))
            with tempfile.NamedTemporaryFile(
                dir=dest.parent, suffix=".tar.gz", delete=False
            ) as tmp:
                tmp.write(payload)
                archive = Path(tmp.name)
            try:
                _extract_stripped(archive, dest)
            finally:
                archive.unlink(missing_ok=True)
    finally:
        if owns_client:
            http.close()

    logger.info("Installed Yarn %s to %s", version, dest)
    return bin_dir


class YarnBuildpack(Buildpack):
    name = "google.nodejs.yarn"

    def detect(self, ctx: BuildContext) -> DetectResult:
        if not ctx.file_exists(PACKAGE_JSON):
            return DetectResult.skip(f"{PACKAGE_JSON} not found")
        if not ctx.file_exists(YARN_LOCK):
            return DetectResult.skip(f"{YARN_LOCK} not found")
        return DetectResult.passed(
            provides=[Provide("web-process", {"language": "nodejs"})],
        )

    def ensure_yarn(self, ctx: BuildContext) -> None:
        found = ctx.exec(["bash", "-c", "command -v yarn || true"]).stdout.strip()
        if found:
            return

        layer = ctx.layer("yarn", build=True, launch=True, cache=True)
        ctx.set_cache_key(layer, compute_cache_key(version=DEFAULT_YARN_VERSION))
        bin_dir = layer.path / "bin"
        if not (ctx.is_cache_hit(layer) and (bin_dir / "yarn").exists()):
            bin_dir = install_yarn(layer.path, DEFAULT_YARN_VERSION)
            ctx.write_metadata(layer, {"version": DEFAULT_YARN_VERSION})
        ctx.overlay.prepend("PATH", str(bin_dir))

    def build(self, ctx: BuildContext, entry: PlanEntry) -> BuildOutcome:
        self.ensure_yarn(ctx)
        yarn2 = is_yarn2(ctx.app_root)

        cache = ctx.layer("yarn_cache", build=True, cache=True)
        ctx.set_cache_key(
            cache,
            compute_cache_key(
                lockfile=hash_files(ctx.app_root, (YARN_LOCK,)),
                node=command_output_key(ctx, ["node", "--version"]),
            ),
        )
        if ctx.is_cache_hit(cache):
            ctx.log.info("Reusing Yarn cache")

        if yarn2:
            args = ["yarn", "install", "--immutable"]
            env = {"YARN_CACHE_FOLDER": str(cache.path), "YARN_ENABLE_GLOBAL_CACHE": "false"}
        else:
            args = ["yarn", "install", "--non-interactive", "--prefer-offline"]
            if use_frozen_lockfile(ctx):
                args.append("--frozen-lockfile")
            env = {"YARN_CACHE_FOLDER": str(cache.path)}

        ctx.exec(args, env=env)
        ctx.write_metadata(cache, {"yarn2": str(yarn2).lower()})

        ctx.overlay.default("NODE_ENV", "production")
        return BuildOutcome(processes={"web": "yarn start"})


__all__ = [
    "DEFAULT_YARN_VERSION",
    "YARN2_URL",
    "YARN_URL",
    "YarnBuildpack",
    "YarnInstallError",
    "install_yarn",
    "is_yarn2",
    "node_major_version",
    "use_frozen_lockfile",
]
