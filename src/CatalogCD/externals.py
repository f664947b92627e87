"""External repositories configuration.

The ``externals.yaml`` file lists the repositories whose releases make up the
catalog::

    repositories:
      - name: sbr-golang
        url: https://github.com/shortbrain/golang-tasks
        types: [tasks]
        ignore-versions: [v0.1.0]
        catalog-name: catalog.yaml
        resources-tarball-name: resources.tar.gz

Missing ``catalog-name`` and ``resources-tarball-name`` fall back to the
contract defaults before resolution.
"""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError
from .settings import CONTRACT_FILENAME, RESOURCES_TARBALL_NAME

logger = logging.getLogger(__name__)

RESOURCE_TYPES = ("tasks", "pipelines", "stepactions")
DEFAULT_MATRIX_TYPES = ("tasks", "pipelines")

__all__ = [
    "DEFAULT_MATRIX_TYPES",
    "ExternalConfig",
    "ExternalRepository",
    "RESOURCE_TYPES",
    "build_matrix",
    "load_external",
    "repository_display_name",
]


def repository_display_name(url: str, name: Optional[str] = None) -> str:
    """Return ``name`` when set, else the last path segment of ``url``."""
    if name:
        return name
    return posixpath.basename(url.rstrip("/"))


class ExternalRepository(BaseModel):
    """One repository publishing catalog releases."""

    name: str = ""
    url: str
    types: List[str] = Field(default_factory=list)
    ignore_versions: List[str] = Field(default_factory=list, alias="ignore-versions")
    catalog_name: str = Field(default="", alias="catalog-name")
    resources_tarball_name: str = Field(default="", alias="resources-tarball-name")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("types", "ignore_versions", mode="before")
    @classmethod
    def _coerce_sequence(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, list):
            return [str(item) for item in value]
        return value

    @field_validator("types")
    @classmethod
    def _validate_types(cls, value: List[str]) -> List[str]:
        for item in value:
            if item not in RESOURCE_TYPES:
                raise ValueError(f"unknown resource type {item!r}, expected one of {RESOURCE_TYPES}")
        return value

    @property
    def display_name(self) -> str:
        return repository_display_name(self.url, self.name)

    def with_defaults(self) -> "ExternalRepository":
        return self.model_copy(
            update={
                "catalog_name": self.catalog_name or CONTRACT_FILENAME,
                "resources_tarball_name": self.resources_tarball_name or RESOURCES_TARBALL_NAME,
            }
        )


class ExternalConfig(BaseModel):
    """Declarative list of external repositories."""

    repositories: List[ExternalRepository] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("repositories", mode="before")
    @classmethod
    def _null_as_empty(cls, value: object) -> object:
        return [] if value is None else value

    def with_defaults(self) -> "ExternalConfig":
        return ExternalConfig(repositories=[repo.with_defaults() for repo in self.repositories])


def load_external(filename: Union[str, Path]) -> ExternalConfig:
    """Load the external repositories file and apply defaults."""
    path = Path(filename)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"could not load external configuration from {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"could not load external configuration from {path}: expected a mapping")
    try:
        config = ExternalConfig.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"could not load external configuration from {path}: {exc}") from exc
    logger.debug(
        "external configuration loaded",
        extra={"stage": "resolve", "repositories": len(config.repositories)},
    )
    return config.with_defaults()


def build_matrix(config: ExternalConfig) -> Dict[str, List[Dict[str, str]]]:
    """Build a GitHub Actions matrix ``include`` list, one entry per repository and type."""
    include: List[Dict[str, str]] = []
    for repository in config.repositories:
        types = repository.types or list(DEFAULT_MATRIX_TYPES)
        ignore_versions = ",".join(repository.ignore_versions)
        for resource_type in types:
            include.append(
                {
                    "name": repository.display_name,
                    "url": repository.url,
                    "type": resource_type,
                    "ignoreVersions": ignore_versions,
                    "catalog-name": repository.catalog_name,
                    "resources-tarball-name": repository.resources_tarball_name,
                }
            )
    return {"include": include}
