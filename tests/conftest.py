"""
Pytest Configuration

Adds ``src`` to ``sys.path`` so the suite runs from a plain checkout, and
isolates every test from the process-wide settings cache and shared HTTP
client.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from CatalogCD.net import reset_http_client  # noqa: E402
from CatalogCD.settings import reset_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_runtime(monkeypatch):
    """Start each test with fresh settings and no shared HTTP client."""

    for variable in ("GITHUB_TOKEN", "GH_TOKEN", "CATALOG_CD_GITHUB_TOKEN", "CATALOG_CD_GITHUB_API_URL"):
        monkeypatch.delenv(variable, raising=False)
    reset_settings()
    reset_http_client()
    yield
    reset_http_client()
    reset_settings()
