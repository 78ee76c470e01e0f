"""Environment variables recognized by the platform.

Operators set these to force buildpack participation or behavior without
changing the application source.
"""

# Explicit buildable target; takes precedence over file heuristics.
BUILDABLE = "GOOGLE_BUILDABLE"

# Target platform the image is built for (e.g. "flex", "gcf", "gae").
TARGET_PLATFORM = "X_GOOGLE_TARGET_PLATFORM"

FUNCTION_TARGET = "GOOGLE_FUNCTION_TARGET"
RUNTIME_VERSION = "GOOGLE_RUNTIME_VERSION"

# Replaces the default Maven goals and flags.
MAVEN_BUILD_ARGS = "GOOGLE_MAVEN_BUILD_ARGS"

DEBUG = "GOOGLE_DEBUG"

TARGET_PLATFORM_FLEX = "flex"
TARGET_PLATFORM_GCF = "gcf"


def is_truthy(value: str | None) -> bool:
    """Interpret an environment variable value as a boolean flag."""
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


__all__ = [
    "BUILDABLE",
    "DEBUG",
    "FUNCTION_TARGET",
    "MAVEN_BUILD_ARGS",
    "RUNTIME_VERSION",
    "TARGET_PLATFORM",
    "TARGET_PLATFORM_FLEX",
    "TARGET_PLATFORM_GCF",
    "is_truthy",
]
