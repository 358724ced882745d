"""Runtime version metadata for Session Tally.

This module is import-safe and exposes version identifiers for the startup
banner and outbound request headers.
"""

from __future__ import annotations

PROJECT_NAME = "Session Tally"
PACKAGE_NAME = "session-tally"
VERSION = "0.3.0"

__all__ = [
    "PROJECT_NAME",
    "PACKAGE_NAME",
    "VERSION",
    "as_string",
    "as_user_agent",
]


def as_string() -> str:
    """Return a concise version string."""

    return f"{PROJECT_NAME} v{VERSION}"


def as_user_agent() -> str:
    return f"{PACKAGE_NAME}/{VERSION}"
