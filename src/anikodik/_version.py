"""Package version.

The version is declared once, in pyproject.toml, and read back from the
installed distribution's metadata. A source checkout that was never
installed reports FALLBACK_VERSION.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

DISTRIBUTION_NAME = "anikodik"

# Keep in step with pyproject.toml
FALLBACK_VERSION = "1.0.0"


def get_version(distribution: str = DISTRIBUTION_NAME) -> str:
    """Get the installed version of a distribution, or the fallback."""
    try:
        return version(distribution)
    except PackageNotFoundError:
        return FALLBACK_VERSION


__version__ = get_version()
