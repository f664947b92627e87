"""Discovery of local Tekton resource files for the release workflow."""

from __future__ import annotations

import glob
import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml

from .errors import ConfigurationError, ContractError

logger = logging.getLogger(__name__)

_RESOURCE_SUFFIXES = (".yaml", ".yml")

__all__ = ["get_resource_type", "scan"]


def _is_resource_file(path: Path) -> bool:
    return path.is_file() and path.suffix in _RESOURCE_SUFFIXES


def scan(location: Union[str, Path]) -> List[Path]:
    """Expand a directory, glob pattern, or file into resource file paths.

    Directories are walked recursively for ``*.yaml`` and ``*.yml`` files.
    Results are sorted so that releases are built in a stable order.
    """
    path = Path(location)
    if path.is_dir():
        files = sorted(p for p in path.rglob("*") if _is_resource_file(p))
    elif path.is_file():
        files = [path]
    else:
        files = sorted(Path(p) for p in glob.glob(str(location), recursive=True) if _is_resource_file(Path(p)))
    if not files:
        raise ConfigurationError(f"no tekton resource files found at {location}")
    logger.debug("scanned resource files", extra={"stage": "release", "count": len(files)})
    return files


def get_resource_type(path: Union[str, Path]) -> Optional[str]:
    """Return the ``kind`` declared by the YAML document at ``path``."""
    try:
        document = yaml.safe_load(Path(path).read_bytes())
    except (OSError, yaml.YAMLError) as exc:
        raise ContractError(f"could not load resource file {path}: {exc}") from exc
    if not isinstance(document, dict):
        return None
    kind = document.get("kind")
    return str(kind) if kind is not None else None
