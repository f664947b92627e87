"""Provenance annotation of extracted resource manifests.

Extracted manifests get a ``tekton.dev/source`` annotation pointing at the
repository they were released from.  The file is patched line by line rather
than re-serialized so comments, key order, and formatting survive untouched.
Only documents that already carry an indented ``annotations:`` block are
modified, and a block already holding the source annotation is left alone, so
annotating twice yields the same content as annotating once.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import List, Tuple, Union

from .errors import AnnotationError

logger = logging.getLogger(__name__)

SOURCE_ANNOTATION = "tekton.dev/source"
MANIFEST_SUFFIXES = (".yaml", ".yml")

_ANNOTATIONS_PATTERN = re.compile(r"^\s+annotations:\s*$")
_SOURCE_ANNOTATION_PATTERN = re.compile(r'^\s+tekton\.dev/source:\s*".*"$')

__all__ = [
    "MANIFEST_SUFFIXES",
    "SOURCE_ANNOTATION",
    "annotate",
    "annotate_text",
    "extract_repository_url",
    "is_manifest",
]


def extract_repository_url(url: str) -> str:
    """Return the repository URL for a release asset URL.

    Examples:
        >>> extract_repository_url("https://github.com/org/repo/releases/download/v1.0.0/resources.tar.gz")
        'https://github.com/org/repo'
    """
    parts = url.split("/")
    if len(parts) < 5:
        return ""
    return "/".join(parts[:5])


def is_manifest(path: Union[str, Path]) -> bool:
    return str(path).endswith(MANIFEST_SUFFIXES)


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _scan_block(lines: List[str], key_index: int) -> Tuple[bool, int]:
    """Inspect the annotations block opened at ``key_index``.

    Returns whether the block already holds the source annotation, and the
    indentation new entries should use: that of the first existing entry, or
    two spaces deeper than the key for an empty block.
    """
    key_indent = _indent(lines[key_index])
    entry_indent = key_indent + 2
    first_entry = True
    for line in lines[key_index + 1 :]:
        content = line.rstrip("\r\n")
        if not content.strip():
            continue
        if _indent(content) <= key_indent:
            break
        if first_entry:
            entry_indent = _indent(content)
            first_entry = False
        if _SOURCE_ANNOTATION_PATTERN.match(content):
            return True, entry_indent
    return False, entry_indent


def annotate_text(text: str, repository_url: str) -> str:
    """Return ``text`` with the source annotation added to every annotations block lacking it.

    The new entry is placed right after the ``annotations:`` key and indented
    like the first existing entry of the block, so it stays a sibling of the
    other annotations whatever indentation the manifest uses.  An empty block
    gets the key indentation plus two spaces.  With the usual two-space YAML
    layout this is the four-space ``    tekton.dev/source: "..."`` line.
    """
    lines = text.splitlines(keepends=True)
    newline = "\r\n" if lines and lines[0].endswith("\r\n") else "\n"

    updated: List[str] = []
    for index, line in enumerate(lines):
        updated.append(line)
        if not _ANNOTATIONS_PATTERN.match(line.rstrip("\r\n")):
            continue
        present, entry_indent = _scan_block(lines, index)
        if present:
            continue
        if not line.endswith(("\n", "\r")):
            updated[-1] = line + newline
        updated.append(f'{" " * entry_indent}{SOURCE_ANNOTATION}: "{repository_url}"{newline}')
    return "".join(updated)


def _write_atomic(path: Path, content: str) -> None:
    mode = path.stat().st_mode & 0o7777
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", newline="", dir=str(path.parent), delete=False
    ) as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
        temp_name = handle.name
    os.chmod(temp_name, mode)
    Path(temp_name).replace(path)


def annotate(manifest_path: Union[str, Path], source_uri: str) -> bool:
    """Add the ``tekton.dev/source`` annotation to ``manifest_path``.

    Args:
        manifest_path: Extracted YAML manifest to patch in place.
        source_uri: Release tarball URL the manifest came from.

    Returns:
        ``True`` when the file was rewritten.

    Raises:
        AnnotationError: If the manifest cannot be read, is not UTF-8, or
            cannot be written.
    """
    path = Path(manifest_path)
    repository_url = extract_repository_url(source_uri)
    try:
        with open(path, "r", encoding="utf-8", newline="") as handle:
            original = handle.read()
        updated = annotate_text(original, repository_url)
        if updated == original:
            return False
        _write_atomic(path, updated)
    except (OSError, UnicodeDecodeError) as exc:
        raise AnnotationError(f"could not annotate {path}: {exc}") from exc
    logger.debug(
        "source annotation added",
        extra={"stage": "annotate", "filename": str(path), "url": repository_url},
    )
    return True
