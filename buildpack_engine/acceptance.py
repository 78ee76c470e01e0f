"""Acceptance harness interface.

Building full images and running them is left to an external harness.
This module supplies the pieces such a harness shares with the engine:
the shape of a test case, the check that expected files landed in layer
or workspace storage, and an HTTP probe against a running application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import httpx

logger = logging.getLogger(__name__)

# Image paths that map onto the engine's storage roots
LAYERS_PREFIX = PurePosixPath("/layers")
WORKSPACE_PREFIX = PurePosixPath("/workspace")

# Timeout for probe requests (seconds)
PROBE_TIMEOUT = 30


class AcceptanceError(AssertionError):
    """Raised when an acceptance check fails."""

    def __init__(self, message: str, code: str = "acceptance_failed") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class AcceptanceCase:
    """One application build-and-probe case.

    Attributes:
        name: Case name.
        app: Application fixture directory name.
        env: Build-time environment (e.g. GOOGLE_FUNCTION_TARGET=Func).
        run_env: Environment for the running container.
        path: Request path to probe.
        must_match_status: Expected HTTP status.
        must_match: Substring the response body must contain.
        files_must_exist: Image paths under /layers or /workspace.
    """

    name: str
    app: str
    env: dict[str, str] = field(default_factory=dict)
    run_env: dict[str, str] = field(default_factory=dict)
    path: str = "/"
    must_match_status: int = 200
    must_match: str = ""
    files_must_exist: list[str] = field(default_factory=list)


@dataclass
class FailureCase:
    """A build that must fail with output containing `must_match`."""

    app: str
    must_match: str
    env: dict[str, str] = field(default_factory=dict)


def resolve_image_path(layers_dir: Path, app_root: Path, path: str) -> Path:
    """Map an image path onto local storage.

    Raises:
        ValueError: If the path is not under /layers or /workspace.
    """
    pure = PurePosixPath(path)
    for prefix, root in ((LAYERS_PREFIX, layers_dir), (WORKSPACE_PREFIX, app_root)):
        if pure == prefix or prefix in pure.parents:
            return root.joinpath(*pure.relative_to(prefix).parts)
    raise ValueError(f"Path {path!r} is not under {LAYERS_PREFIX} or {WORKSPACE_PREFIX}")


def verify_files(layers_dir: Path, app_root: Path, paths: list[str]) -> None:
    """Check that every image path exists in local storage.

    Raises:
        AcceptanceError: Listing every missing path.
    """
    missing = [
        path for path in paths if not resolve_image_path(layers_dir, app_root, path).exists()
    ]
    if missing:
        raise AcceptanceError(f"Missing files: {', '.join(missing)}", code="missing_files")


def probe(client: httpx.Client, base_url: str, case: AcceptanceCase) -> httpx.Response:
    """Request the case's path and check status and body.

    Raises:
        AcceptanceError: On a mismatch or a request failure.
    """
    url = base_url.rstrip("/") + "/" + case.path.lstrip("/")
    logger.info("Probing %s for case %s", url, case.name)

    try:
        response = client.get(url, timeout=PROBE_TIMEOUT)
    except httpx.RequestError as e:
        raise AcceptanceError(f"Request to {url} failed: {e}", code="request_failed") from e

    if response.status_code != case.must_match_status:
        raise AcceptanceError(
            f"{case.name}: got status {response.status_code}, "
            f"want {case.must_match_status}",
            code="status_mismatch",
        )
    if case.must_match and case.must_match not in response.text:
        raise AcceptanceError(
            f"{case.name}: response body does not contain {case.must_match!r}",
            code="body_mismatch",
        )
    return response


def check_failure(output: str, case: FailureCase) -> None:
    """Check that a failed build's output contains the expected text.

    Raises:
        AcceptanceError: If the text is absent.
    """
    if case.must_match not in output:
        raise AcceptanceError(
            f"{case.app}: build output does not contain {case.must_match!r}",
            code="failure_mismatch",
        )


__all__ = [
    "AcceptanceCase",
    "AcceptanceError",
    "FailureCase",
    "check_failure",
    "probe",
    "resolve_image_path",
    "verify_files",
]
