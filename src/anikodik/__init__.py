"""AniKodik - anime catalog normalization and franchise watch-order engine."""

from anikodik._version import __version__

__all__ = ["__version__"]
