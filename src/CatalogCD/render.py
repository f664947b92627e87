"""Markdown rendering of a single Tekton resource file.

The output documents the attributes every catalog entry should describe:
workspaces, params, and results, each rendered as a markdown table.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import yaml

from .contract import ResourceKind
from .errors import ContractError
from .resources import get_resource_type

__all__ = ["format_markdown_table", "render_markdown"]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        value = yaml.safe_dump(value, default_flow_style=True).strip()
    text = str(value).strip().replace("\n", " ")
    return text.replace("|", "\\|")


def format_markdown_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Render a markdown table with a header separator row."""
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join(" --- " for _ in headers) + "|",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return "\n".join(lines)


def _section(title: str, headers: Sequence[str], keys: Sequence[str], entries: List[Dict[str, Any]]) -> str:
    rows = [[_cell(entry.get(key)) for key in keys] for entry in entries if isinstance(entry, dict)]
    return f"## {title}\n\n{format_markdown_table(headers, rows)}\n"


def render_markdown(path: Union[str, Path]) -> str:
    """Return the markdown documentation of the resource at ``path``."""
    file = Path(path)
    ResourceKind.from_kind(get_resource_type(file), file)
    document = yaml.safe_load(file.read_text(encoding="utf-8"))
    metadata = document.get("metadata") or {}
    spec = document.get("spec") or {}
    if not isinstance(spec, dict):
        raise ContractError(f"{file} has an invalid spec")

    parts = [f"# `{metadata.get('name', file.stem)}`\n"]
    description = (spec.get("description") or "").strip()
    if description:
        parts.append(f"{description}\n")

    workspaces = spec.get("workspaces") or []
    if workspaces:
        parts.append(
            _section(
                "Workspaces",
                ("Workspace", "Optional", "Description"),
                ("name", "optional", "description"),
                workspaces,
            )
        )
    params = spec.get("params") or []
    if params:
        parts.append(
            _section(
                "Params",
                ("Param", "Type", "Default", "Description"),
                ("name", "type", "default", "description"),
                params,
            )
        )
    results = spec.get("results") or []
    if results:
        parts.append(
            _section("Results", ("Result", "Description"), ("name", "description"), results)
        )
    return "\n".join(parts)
