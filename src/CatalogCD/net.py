# === NAVMAP v1 ===
# {
#   "module": "CatalogCD.net",
#   "purpose": "Provide a shared HTTPX client for contract, release, and tarball requests",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client used across catalog-cd networking.

Tarball downloads deliberately carry no read timeout: a release archive is
streamed to completion or the transport fails.  Tests swap the client for one
backed by :class:`httpx.MockTransport` through :func:`use_mock_http_client`.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import Iterator, Optional

import httpx

from .settings import get_settings

LOGGER = logging.getLogger(__name__)

# --- Constants & globals -------------------------------------------------------

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None


def _build_http_client() -> httpx.Client:
    settings = get_settings()
    return httpx.Client(
        timeout=httpx.Timeout(None, connect=30.0),
        follow_redirects=True,
        headers={"User-Agent": settings.user_agent},
        trust_env=True,
    )


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is not None:
        with contextlib.suppress(Exception):
            _HTTP_CLIENT.close()
    _HTTP_CLIENT = None


# --- Public API ----------------------------------------------------------------


def get_http_client() -> httpx.Client:
    """Return the shared HTTPX client, creating it if necessary."""

    global _HTTP_CLIENT
    with _CLIENT_LOCK:
        if _HTTP_CLIENT is None:
            _HTTP_CLIENT = _build_http_client()
        return _HTTP_CLIENT


def configure_http_client(client: httpx.Client) -> None:
    """Install ``client`` as the shared HTTPX client."""

    global _HTTP_CLIENT
    with _CLIENT_LOCK:
        if _HTTP_CLIENT is not client:
            _close_client_unlocked()
        _HTTP_CLIENT = client


def reset_http_client() -> None:
    """Close the shared client so the next lookup builds a fresh one."""

    with _CLIENT_LOCK:
        _close_client_unlocked()


@contextlib.contextmanager
def use_mock_http_client(transport: httpx.BaseTransport, **client_kwargs) -> Iterator[httpx.Client]:
    """Temporarily install an HTTPX client backed by ``transport``."""

    client_kwargs.setdefault("follow_redirects", True)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


__all__ = [
    "configure_http_client",
    "get_http_client",
    "reset_http_client",
    "use_mock_http_client",
]
