"""Public API for the catalog-cd Tekton resource catalog tooling.

The package resolves external repositories into a per-version release index,
fetches and validates release tarballs against their contracts, stamps
provenance onto extracted manifests, and builds new releases from local
resource files.
"""

from __future__ import annotations

from importlib import metadata

try:
    __version__ = metadata.version("catalog-cd")
except metadata.PackageNotFoundError:  # pragma: no cover - source checkout without install
    __version__ = "0.0.0+unknown"

__all__ = ["__version__"]
