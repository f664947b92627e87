# === NAVMAP v1 ===
# {
#   "module": "CatalogCD.contract",
#   "purpose": "Versioned catalog contract model, (de)serialization, and resource bookkeeping",
#   "sections": [
#     {"id": "kinds", "name": "Resource kinds", "anchor": "KND", "kind": "api"},
#     {"id": "models", "name": "Contract models", "anchor": "MOD", "kind": "api"},
#     {"id": "loading", "name": "Loading & saving", "anchor": "LOD", "kind": "api"},
#     {"id": "attestation", "name": "Signing & verification", "anchor": "ATT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Catalog contract model.

A contract (``catalog.yaml``) is both the manifest downloaded next to a
release tarball, used as the source of truth when validating extracted files,
and the artifact produced when building a release from local resource files.
It lists every Task, Pipeline, and StepAction shipped in the tarball along
with the SHA-256 digest of its content.
"""

from __future__ import annotations

import hashlib
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

import httpx
import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, field_validator
from pydantic import ValidationError as PydanticValidationError

from .attestation import Signer, Verifier
from .errors import ContractError, DownloadFailure, UnsupportedResourceError
from .net import get_http_client
from .settings import CONTRACT_FILENAME, CONTRACT_VERSION, SIGNATURE_EXTENSION

logger = logging.getLogger(__name__)

_HASH_CHUNK_SIZE = 1 << 16

__all__ = [
    "Attestation",
    "CatalogSpec",
    "Contract",
    "RepositoryInfo",
    "ResourceKind",
    "Resources",
    "TektonResource",
    "sha256_file",
]


# --- Resource kinds -------------------------------------------------------------


class ResourceKind(str, Enum):
    """Tekton resource kinds tracked by the catalog."""

    TASK = "Task"
    PIPELINE = "Pipeline"
    STEP_ACTION = "StepAction"

    @property
    def plural(self) -> str:
        """Directory and contract list name, e.g. ``tasks`` or ``stepactions``."""
        return f"{self.value.lower()}s"

    @classmethod
    def from_kind(cls, kind: Optional[str], path: Optional[Union[str, Path]] = None) -> "ResourceKind":
        """Map a manifest ``kind`` value onto a :class:`ResourceKind`."""
        for member in cls:
            if member.value == kind:
                return member
        raise UnsupportedResourceError(kind, str(path) if path is not None else None)

    @classmethod
    def from_plural(cls, plural: str) -> "ResourceKind":
        """Map a resource type filter (``tasks``, ``pipelines``, ``stepactions``) onto a kind."""
        for member in cls:
            if member.plural == plural:
                return member
        raise ValueError(f"unknown resource type {plural!r}")


# --- Contract models ------------------------------------------------------------


class TektonResource(BaseModel):
    """One resource file shipped in a release tarball."""

    name: str
    version: str = ""
    filename: str
    checksum: str = ""

    model_config = ConfigDict(extra="ignore")

    @field_validator("name", "version", mode="before")
    @classmethod
    def _numbers_as_text(cls, value: object) -> object:
        # unquoted YAML versions such as 1.0 load as floats
        return str(value) if isinstance(value, (int, float)) else value


class Resources(BaseModel):
    """Inventory of resources grouped by kind."""

    tasks: List[TektonResource] = Field(default_factory=list)
    pipelines: List[TektonResource] = Field(default_factory=list)
    stepactions: List[TektonResource] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("tasks", "pipelines", "stepactions", mode="before")
    @classmethod
    def _null_as_empty(cls, value: object) -> object:
        return [] if value is None else value

    def for_kind(self, kind: ResourceKind) -> List[TektonResource]:
        return getattr(self, kind.plural)

    def items(self) -> Iterator[Tuple[ResourceKind, TektonResource]]:
        for kind in ResourceKind:
            for resource in self.for_kind(kind):
                yield kind, resource


class RepositoryInfo(BaseModel):
    """General repository information."""

    description: str = ""

    model_config = ConfigDict(extra="ignore")


class Attestation(BaseModel):
    """Software supply chain provenance settings."""

    public_key_ref: str = Field(
        default="",
        serialization_alias="publicKeyRef",
        validation_alias=AliasChoices("publicKeyRef", "publickeyref", "public_key_ref"),
    )

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CatalogSpec(BaseModel):
    """Repository metadata, attestation reference, and resource inventory."""

    repository: Optional[RepositoryInfo] = None
    attestation: Optional[Attestation] = None
    resources: Resources = Field(default_factory=Resources)

    model_config = ConfigDict(extra="ignore")


class Contract(BaseModel):
    """Versioned catalog contract."""

    version: str = CONTRACT_VERSION
    catalog: CatalogSpec = Field(default_factory=CatalogSpec)

    model_config = ConfigDict(extra="ignore")

    _file: Optional[Path] = PrivateAttr(default=None)

    @property
    def file(self) -> Optional[Path]:
        """Location the contract was loaded from, when known."""
        return self._file

    @classmethod
    def empty(cls) -> "Contract":
        """Return a new contract with empty repository, attestation, and resources."""
        return cls(
            version=CONTRACT_VERSION,
            catalog=CatalogSpec(
                repository=RepositoryInfo(),
                attestation=Attestation(),
                resources=Resources(),
            ),
        )

    # --- serialization ---------------------------------------------------------

    @classmethod
    def parse(cls, payload: Union[bytes, str]) -> "Contract":
        """Parse a YAML contract payload."""
        try:
            data = yaml.safe_load(payload)
        except yaml.YAMLError as exc:
            raise ContractError(f"contract is not valid YAML: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ContractError("contract must be a YAML mapping")
        data.setdefault("version", CONTRACT_VERSION)
        if data.get("catalog") is None:
            data["catalog"] = {}
        elif isinstance(data["catalog"], dict) and data["catalog"].get("resources") is None:
            data["catalog"]["resources"] = {}
        try:
            contract = cls.model_validate(data)
        except PydanticValidationError as exc:
            raise ContractError(f"invalid contract: {exc}") from exc
        if contract.version != CONTRACT_VERSION:
            raise ContractError(
                f"unsupported contract version {contract.version!r}, expected {CONTRACT_VERSION!r}"
            )
        return contract

    def to_dict(self) -> Dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def serialize(self) -> bytes:
        """Render the YAML representation of the contract."""
        text = yaml.safe_dump(self.to_dict(), sort_keys=False, indent=2, default_flow_style=False)
        return text.encode("utf-8")

    # --- loading & saving ------------------------------------------------------

    @classmethod
    def from_path(cls, location: Union[str, Path]) -> "Contract":
        """Load a contract from a file, or from the default file inside a directory."""
        path = Path(location)
        file = path / CONTRACT_FILENAME if path.is_dir() else path
        try:
            payload = file.read_bytes()
        except OSError as exc:
            raise ContractError(f"could not read contract from {file}: {exc}") from exc
        contract = cls.parse(payload)
        contract._file = file
        return contract

    @classmethod
    def from_url(cls, url: str) -> "Contract":
        """Load a contract over HTTP; any status other than 200 is an error."""
        client = get_http_client()
        try:
            response = client.get(url)
        except httpx.HTTPError as exc:
            raise DownloadFailure(f"could not load contract from {url}: {exc}") from exc
        if response.status_code != 200:
            raise DownloadFailure(
                f"could not load contract from {url}: status error {response.status_code}",
                status_code=response.status_code,
            )
        return cls.parse(response.content)

    def save(self) -> Path:
        """Write the contract back to the file it was loaded from."""
        if self._file is None:
            raise ContractError("contract file location is not set")
        return self.save_as(self._file)

    def save_as(self, file: Union[str, Path]) -> Path:
        path = Path(file)
        path.write_bytes(self.serialize())
        self._file = path
        return path

    # --- resources -------------------------------------------------------------

    def iter_resources(self) -> Iterator[Tuple[ResourceKind, TektonResource]]:
        return self.catalog.resources.items()

    def add_resource_file(self, path: Union[str, Path], version: str) -> TektonResource:
        """Record a local Tekton resource file in the contract.

        The archive-internal filename is ``<kind>s/<name>/<basename>``.  An
        existing entry with the same filename is replaced.

        Raises:
            UnsupportedResourceError: The document kind is not tracked.
            ContractError: The file is unreadable or is not a Tekton resource.
        """
        file = Path(path)
        try:
            document = yaml.safe_load(file.read_bytes())
        except (OSError, yaml.YAMLError) as exc:
            raise ContractError(f"could not load resource file {file}: {exc}") from exc
        if not isinstance(document, dict) or "kind" not in document:
            raise ContractError(f"{file} is not a tekton resource")
        kind = ResourceKind.from_kind(document.get("kind"), file)
        metadata = document.get("metadata") or {}
        name = metadata.get("name") if isinstance(metadata, dict) else None
        if not name:
            raise ContractError(f"{file} has no metadata.name")

        resource = TektonResource(
            name=str(name),
            version=version,
            filename=f"{kind.plural}/{name}/{file.name}",
            checksum=sha256_file(file),
        )
        entries = self.catalog.resources.for_kind(kind)
        entries[:] = [entry for entry in entries if entry.filename != resource.filename]
        entries.append(resource)
        logger.debug(
            "resource added to contract",
            extra={"stage": "release", "filename": resource.filename, "version": version},
        )
        return resource

    # --- signing & verification ------------------------------------------------

    def get_public_key(self) -> str:
        """Return the attestation public key reference."""
        attestation = self.catalog.attestation
        if attestation is None or not attestation.public_key_ref:
            raise ContractError("public key reference is not set in the contract")
        return attestation.public_key_ref

    def _base_dir(self) -> Path:
        if self._file is None:
            raise ContractError("contract file location is not set")
        return self._file.parent

    def sign_resources(self, sign: Signer) -> None:
        """Sign every resource, writing ``<file>.sig`` next to it."""
        base = self._base_dir()
        for _, resource in self.iter_resources():
            payload = base / resource.filename
            signature = payload.with_name(f"{payload.name}.{SIGNATURE_EXTENSION}")
            sign(payload, signature)

    def verify_resources(self, verify: Verifier) -> None:
        """Verify every resource against its ``.sig`` companion; the first failure propagates."""
        base = self._base_dir()
        for _, resource in self.iter_resources():
            blob = base / resource.filename
            verify(str(blob), f"{blob}.{SIGNATURE_EXTENSION}")


def sha256_file(path: Union[str, Path]) -> str:
    """Return the hex SHA-256 digest of ``path``."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
