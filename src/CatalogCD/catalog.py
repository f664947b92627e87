# === NAVMAP v1 ===
# {
#   "module": "CatalogCD.catalog",
#   "purpose": "Resolve external repositories into releases and materialize them on disk",
#   "sections": [
#     {"id": "model", "name": "Catalog model", "anchor": "MOD", "kind": "api"},
#     {"id": "resolve", "name": "External repository resolution", "anchor": "RES", "kind": "api"},
#     {"id": "extract", "name": "Fetch, extract & validate", "anchor": "EXT", "kind": "api"},
#     {"id": "sync", "name": "Synchronization", "anchor": "SYN", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Catalog synchronization pipeline.

:func:`resolve` turns the external repositories configuration into an
in-memory :class:`Catalog` indexed by repository name and bare semantic
version.  Any failure while resolving aborts the whole run.

:func:`synchronize` then downloads each release tarball, streams it through
gzip and tar decoding, writes every file declared in the release contract (and
any companion ``README.md``) under ``<kind>s/<name>/<version>/``, checks each
declared file against its SHA-256 checksum while it is being written, and
stamps extracted manifests with their provenance.  A failing release is logged
and skipped so the remaining releases are still processed.
"""

from __future__ import annotations

import hashlib
import io
import logging
import posixpath
import tarfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

import httpx

from .annotate import annotate, is_manifest
from .contract import Contract, ResourceKind, TektonResource
from .errors import (
    AnnotationError,
    CatalogError,
    ChecksumMismatchError,
    ConfigurationError,
    DownloadFailure,
    ExtractionError,
    ResolutionError,
)
from .externals import RESOURCE_TYPES, ExternalConfig
from .github import ReleaseLister, contract_url, fetch_contracts_from_repository
from .net import get_http_client
from .settings import README_FILENAME

logger = logging.getLogger(__name__)

_COPY_CHUNK_SIZE = 1 << 16

__all__ = [
    "Catalog",
    "Release",
    "Repository",
    "SyncReport",
    "fetch_and_extract",
    "normalize_version",
    "resolve",
    "resources_for_type",
    "synchronize",
]


# --- Catalog model ---------------------------------------------------------------


@dataclass(frozen=True)
class Release:
    """Contract of one repository release plus the URL of its resources tarball."""

    resources_uri: str
    contract: Contract


Repository = Dict[str, Release]


@dataclass
class Catalog:
    """Repositories indexed by name, each mapping bare versions to releases."""

    repositories: Dict[str, Repository] = field(default_factory=dict)

    def releases(self) -> Iterator[Tuple[str, str, Release]]:
        """Yield ``(repository, version, release)`` in sorted order."""
        for name in sorted(self.repositories):
            repository = self.repositories[name]
            for version in sorted(repository):
                yield name, version, repository[version]


def normalize_version(tag: str) -> str:
    """Strip one leading ``v`` from a release tag (``v1.2.3`` -> ``1.2.3``)."""
    return tag[1:] if tag.startswith("v") else tag


# --- External repository resolution ----------------------------------------------


def resolve(config: ExternalConfig, lister: ReleaseLister) -> Catalog:
    """Resolve every configured repository into its releases.

    Raises:
        ResolutionError: If releases or a contract of any repository cannot be
            loaded.  Resolution does not partially succeed.
    """
    catalog = Catalog()
    for repository in config.with_defaults().repositories:
        name = repository.display_name
        catalog.repositories[name] = {}
        ignored = set(repository.ignore_versions)
        try:
            contracts = fetch_contracts_from_repository(repository, lister, skip=ignored)
        except ResolutionError:
            raise
        except (CatalogError, httpx.HTTPError) as exc:
            raise ResolutionError(f"could not resolve repository {name} ({repository.url}): {exc}") from exc

        for tag in ignored:
            contracts.pop(tag, None)

        for tag, contract in contracts.items():
            version = normalize_version(tag)
            if version in catalog.repositories[name]:
                logger.warning(
                    "duplicate release version, keeping the last one",
                    extra={"stage": "resolve", "repository": name, "version": version},
                )
            catalog.repositories[name][version] = Release(
                resources_uri=contract_url(repository.url, tag, repository.resources_tarball_name),
                contract=contract,
            )
        logger.info(
            "repository resolved",
            extra={
                "stage": "resolve",
                "repository": name,
                "count": len(catalog.repositories[name]),
                "ignored": sorted(ignored),
            },
        )
    return catalog


# --- Fetch, extract & validate ---------------------------------------------------


def resources_for_type(contract: Contract, resource_type: str = "") -> Dict[str, TektonResource]:
    """Index the contract resources accepted for ``resource_type`` by archive path.

    ``resource_type`` is ``tasks``, ``pipelines``, ``stepactions``, or empty
    for all three combined.
    """
    if resource_type and resource_type not in RESOURCE_TYPES:
        raise ConfigurationError(f"unknown resource type {resource_type!r}, expected one of {RESOURCE_TYPES}")
    kinds = [ResourceKind.from_plural(resource_type)] if resource_type else list(ResourceKind)
    accepted: Dict[str, TektonResource] = {}
    for kind in kinds:
        for resource in contract.catalog.resources.for_kind(kind):
            accepted[resource.filename] = resource
    return accepted


class _ResponseStream(io.RawIOBase):
    """Expose an HTTPX byte iterator as a readable file object."""

    def __init__(self, chunks: Iterator[bytes]) -> None:
        self._chunks = chunks
        self._buffer = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._buffer:
            try:
                self._buffer = next(self._chunks)
            except StopIteration:
                return 0
        size = min(len(buffer), len(self._buffer))
        buffer[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return size


def _is_within(root: Path, target: Path) -> bool:
    try:
        target.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def _archive_name(relative: Path) -> str:
    """Map ``<dir>/<version>/<file>`` back to the archive path ``<dir>/<file>``."""
    return posixpath.join(*relative.parts[:-2], relative.name)


def _copy_and_hash(source, target: Path) -> str:
    """Stream ``source`` into ``target`` while hashing it; the file is closed on return."""
    digest = hashlib.sha256()
    with open(target, "wb") as out:
        for chunk in iter(lambda: source.read(_COPY_CHUNK_SIZE), b""):
            digest.update(chunk)
            out.write(chunk)
    return digest.hexdigest()


def _extract(
    archive: tarfile.TarFile,
    destination: Path,
    version: str,
    accepted: Dict[str, TektonResource],
    resources_uri: str,
) -> List[Path]:
    written: List[Path] = []
    for member in archive:
        name = member.name[2:] if member.name.startswith("./") else member.name
        filename = posixpath.basename(name)
        target_dir = destination / posixpath.dirname(name) / version
        target = target_dir / filename

        resource = accepted.get(name)
        if resource is None and filename != README_FILENAME:
            logger.info(
                "ignoring %s (file not present in the catalog file)",
                name,
                extra={"stage": "extract", "filename": name, "version": version},
            )
            continue
        if not _is_within(destination, target):
            logger.warning(
                "ignoring %s (path escapes the destination)",
                name,
                extra={"stage": "extract", "filename": name, "version": version},
            )
            continue

        target_dir.mkdir(parents=True, exist_ok=True)

        if member.isdir():
            target.mkdir(parents=True, exist_ok=True)
            continue
        if not member.isfile():
            logger.debug("skipping non-regular entry %s", name, extra={"stage": "extract"})
            continue

        source = archive.extractfile(member)
        if source is None:  # pragma: no cover - isfile() entries always have content
            continue
        checksum = _copy_and_hash(source, target)
        written.append(target)

        if filename != README_FILENAME:
            expected = resource.checksum.strip().lower()
            if checksum != expected:
                logger.error(
                    "%s checksum is different than the one in the catalog file: %s != %s",
                    name,
                    checksum,
                    expected,
                    extra={"stage": "extract", "filename": name, "version": version},
                )
                raise ChecksumMismatchError(filename, expected, checksum)
            logger.info("✅ %s", resource.filename, extra={"stage": "extract", "version": version})

        if is_manifest(target):
            try:
                annotate(target, resources_uri)
            except AnnotationError as exc:
                logger.warning(
                    "could not annotate %s: %s",
                    target,
                    exc,
                    extra={"stage": "annotate", "filename": str(target)},
                )
    return written


def fetch_and_extract(
    destination: Union[str, Path],
    release: Release,
    version: str,
    resource_type: str = "",
) -> List[Path]:
    """Download one release tarball and materialize its accepted files.

    Returns:
        Paths written, in tar stream order.

    Raises:
        DownloadFailure: Transport error or non-200 response.
        ExtractionError: Corrupt gzip or tar stream.
        ChecksumMismatchError: A declared file does not match its checksum.
            Files already written by this call stay on disk.
    """
    root = Path(destination)
    accepted = resources_for_type(release.contract, resource_type)
    client = get_http_client()
    try:
        with client.stream("GET", release.resources_uri) as response:
            if response.status_code != 200:
                raise DownloadFailure(
                    f"status error: {response.status_code}", status_code=response.status_code
                )
            stream = io.BufferedReader(_ResponseStream(response.iter_bytes()))
            try:
                with tarfile.open(fileobj=stream, mode="r|gz") as archive:
                    written = _extract(archive, root, version, accepted, release.resources_uri)
            except (tarfile.TarError, EOFError, zlib.error) as exc:
                raise ExtractionError(f"corrupt archive {release.resources_uri}: {exc}") from exc
    except httpx.HTTPError as exc:
        raise DownloadFailure(f"could not download {release.resources_uri}: {exc}") from exc

    extracted = {_archive_name(path.relative_to(root)) for path in written}
    for filename in sorted(set(accepted) - extracted):
        logger.warning(
            "%s is declared in the catalog file but missing from the tarball",
            filename,
            extra={"stage": "extract", "filename": filename, "version": version},
        )
    return written


# --- Synchronization ---------------------------------------------------------------


@dataclass
class SyncReport:
    """Outcome of a synchronization run."""

    written: List[Path] = field(default_factory=list)
    succeeded: List[Tuple[str, str]] = field(default_factory=list)
    failed: Dict[Tuple[str, str], Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def synchronize(
    destination: Union[str, Path],
    catalog: Catalog,
    resource_type: str = "",
) -> SyncReport:
    """Materialize every release of ``catalog`` under ``destination``.

    A failing ``(repository, version)`` pair is logged and recorded in the
    report; the remaining pairs are still processed.
    """
    if resource_type and resource_type not in RESOURCE_TYPES:
        raise ConfigurationError(f"unknown resource type {resource_type!r}, expected one of {RESOURCE_TYPES}")
    root = Path(destination)
    report = SyncReport()
    current: Optional[str] = None
    for name, version, release in catalog.releases():
        if name != current:
            logger.info("# Fetching resources from %s", name, extra={"stage": "fetch", "repository": name})
            current = name
        logger.info(
            "## Fetching version %s",
            version,
            extra={"stage": "fetch", "repository": name, "version": version},
        )
        try:
            written = fetch_and_extract(root, release, version, resource_type)
        except ChecksumMismatchError as exc:
            logger.error(
                "integrity violation in %s, release skipped: %s",
                release.resources_uri,
                exc,
                extra={"stage": "extract", "repository": name, "version": version},
            )
            report.failed[(name, version)] = exc
            continue
        except (CatalogError, OSError) as exc:
            logger.error(
                "failed to fetch resource %s: %s, skipping",
                release.resources_uri,
                exc,
                extra={"stage": "fetch", "repository": name, "version": version},
            )
            report.failed[(name, version)] = exc
            continue
        report.written.extend(written)
        report.succeeded.append((name, version))
    return report
