# === NAVMAP v1 ===
# {
#   "module": "CatalogCD.settings",
#   "purpose": "Process-wide settings and catalog contract constants",
#   "sections": [
#     {"id": "constants", "name": "Contract constants", "anchor": "CONST", "kind": "constants"},
#     {"id": "settings", "name": "Environment settings", "anchor": "SET", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Settings and constants for catalog-cd.

Settings are read once from the environment (``CATALOG_CD_`` prefix) and
cached for the lifetime of the process.  The GitHub token additionally honours
the ``GITHUB_TOKEN`` and ``GH_TOKEN`` variables understood by the ``gh`` CLI.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Contract constants ---------------------------------------------------------

CONTRACT_VERSION = "v1"
CONTRACT_FILENAME = "catalog.yaml"
RESOURCES_TARBALL_NAME = "resources.tar.gz"
SIGNATURE_EXTENSION = "sig"
README_FILENAME = "README.md"

__all__ = [
    "CONTRACT_VERSION",
    "CONTRACT_FILENAME",
    "RESOURCES_TARBALL_NAME",
    "SIGNATURE_EXTENSION",
    "README_FILENAME",
    "Settings",
    "get_settings",
    "reset_settings",
]


# --- Environment settings -------------------------------------------------------


class Settings(BaseSettings):
    """Runtime settings resolved from the environment."""

    github_api_url: str = Field(default="https://api.github.com")
    github_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CATALOG_CD_GITHUB_TOKEN", "GITHUB_TOKEN", "GH_TOKEN"),
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    json_logs: bool = Field(default=False, description="Emit JSON lines to the log file")
    log_file: Optional[Path] = Field(default=None)
    http_retries: int = Field(default=3, ge=1, le=10)
    cosign_binary: str = Field(default="cosign")
    user_agent: str = Field(default="catalog-cd (+https://github.com/openshift-pipelines/catalog-cd)")

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_CD_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    @field_validator("github_api_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached process-wide settings."""

    return Settings()


def reset_settings() -> None:
    """Drop cached settings so the next lookup re-reads the environment (test helper)."""

    get_settings.cache_clear()
