"""Buildpack Engine - lifecycle engine for Dockerfile-free container builds.

This package provides the shared machinery every buildpack plugs into:
detection and build-plan negotiation, layer caching, process execution,
and build orchestration.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
