"""Exception hierarchy shared across catalog resolution, extraction, and release.

The catalog tooling spans configuration loading, GitHub release discovery,
tarball download and extraction, manifest annotation, and release building.
The classes below group those failure modes so callers can tell a fatal
resolution problem apart from a per-release failure that the synchronizer is
allowed to skip.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "CatalogError",
    "ConfigurationError",
    "ContractError",
    "UnsupportedResourceError",
    "ResolutionError",
    "DownloadFailure",
    "ExtractionError",
    "ChecksumMismatchError",
    "AnnotationError",
    "AttestationError",
]


class CatalogError(RuntimeError):
    """Base exception for catalog resolution, synchronization, or release failures."""


class ConfigurationError(CatalogError):
    """Raised when CLI inputs or the external repositories file are invalid."""


class ContractError(CatalogError):
    """Raised when a catalog contract cannot be read, parsed, or saved."""


class UnsupportedResourceError(ContractError):
    """Raised when a resource kind is not one of Task, Pipeline, or StepAction."""

    def __init__(self, kind: Optional[str], path: Optional[str] = None) -> None:
        location = f" ({path})" if path else ""
        super().__init__(f"unsupported tekton resource kind {kind!r}{location}")
        self.kind = kind
        self.path = path


class ResolutionError(CatalogError):
    """Raised when an external repository cannot be resolved into releases."""


class DownloadFailure(CatalogError):
    """Raised when an HTTP download attempt fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExtractionError(CatalogError):
    """Raised when a release tarball cannot be decoded or written to disk."""


class ChecksumMismatchError(ExtractionError):
    """Raised when an extracted file does not hash to its declared checksum."""

    def __init__(self, filename: str, expected: str, actual: str) -> None:
        super().__init__(f"invalid checksum for {filename}: {actual} != {expected}")
        self.filename = filename
        self.expected = expected
        self.actual = actual


class AnnotationError(CatalogError):
    """Raised when a provenance annotation cannot be written to a manifest."""


class AttestationError(CatalogError):
    """Raised when signing or verifying a resource fails."""
