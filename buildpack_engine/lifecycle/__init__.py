"""Build lifecycle module.

This module handles:
- Running detect and build across registered buildpacks (orchestrator)
- Writing the final manifest (manifest)
"""

from buildpack_engine.lifecycle.orchestrator import (
    BuildError,
    BuildReport,
    build,
    detect,
    run_lifecycle,
)

__all__ = ["BuildError", "BuildReport", "build", "detect", "run_lifecycle"]
