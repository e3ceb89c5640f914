"""Version strings reported by the commands."""

from __future__ import annotations

DEFAULT_VERSION = "unknown"


def get_version_parts(version: str = DEFAULT_VERSION, git_commit: str = "") -> list[str]:
    """Return the version components: the version and, if known, the commit."""
    parts = [version]
    if git_commit:
        parts.append(f"commit: {git_commit}")
    return parts


def get_version_string(*more: str, version: str = DEFAULT_VERSION, git_commit: str = "") -> str:
    """Return the version components and any extra lines joined by newlines."""
    return "\n".join([*get_version_parts(version, git_commit), *more])