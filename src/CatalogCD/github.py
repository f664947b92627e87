# === NAVMAP v1 ===
# {
#   "module": "CatalogCD.github",
#   "purpose": "List repository releases over the GitHub REST API and load their contracts",
#   "sections": [
#     {"id": "protocol", "name": "ReleaseLister protocol", "anchor": "PRO", "kind": "api"},
#     {"id": "client", "name": "GitHub REST lister", "anchor": "GHB", "kind": "api"},
#     {"id": "contracts", "name": "Contract loading", "anchor": "CON", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""GitHub release discovery.

The resolver only needs a list of release tags per repository, expressed by
the :class:`ReleaseLister` protocol.  :class:`GitHubReleaseLister` implements
it over the GitHub REST API, retrying rate-limit and server errors with a
jittered exponential backoff.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol
from urllib.parse import urlparse

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from .contract import Contract
from .errors import ResolutionError
from .externals import ExternalRepository
from .net import get_http_client
from .settings import get_settings

logger = logging.getLogger(__name__)

_PER_PAGE = 100
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}

__all__ = [
    "GitHubReleaseLister",
    "ReleaseLister",
    "contract_url",
    "fetch_contracts_from_repository",
    "repository_slug",
]


class ReleaseLister(Protocol):
    """Anything able to list the release tags of a repository URL."""

    def list_releases(self, repository_url: str) -> List[str]:
        ...


def repository_slug(repository_url: str) -> str:
    """Return ``owner/name`` for a GitHub repository URL."""
    parsed = urlparse(repository_url)
    parts = [part for part in parsed.path.split("/") if part]
    if len(parts) < 2:
        raise ResolutionError(f"cannot determine owner/repository from {repository_url!r}")
    name = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
    return f"{parts[0]}/{name}"


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout))


class GitHubReleaseLister:
    """List release tags through ``GET /repos/{owner}/{repo}/releases``."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        client: Optional[httpx.Client] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.api_url = (api_url or settings.github_api_url).rstrip("/")
        self.token = token if token is not None else settings.github_token
        self._client = client
        self.max_attempts = max_attempts or settings.http_retries

    @property
    def client(self) -> httpx.Client:
        return self._client or get_http_client()

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_random_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _get_page(self, url: str, page: int) -> List[Dict[str, Any]]:
        for attempt in self._retrying():
            with attempt:
                response = self.client.get(
                    url,
                    params={"per_page": _PER_PAGE, "page": page},
                    headers=self._headers(),
                )
                response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise ResolutionError(f"unexpected releases payload from {url}") from exc
        if not isinstance(payload, list):
            raise ResolutionError(f"unexpected releases payload from {url}")
        return payload

    def iter_release_payloads(self, repository_url: str) -> Iterable[Dict[str, Any]]:
        url = f"{self.api_url}/repos/{repository_slug(repository_url)}/releases"
        page = 1
        while True:
            payload = self._get_page(url, page)
            yield from payload
            if len(payload) < _PER_PAGE:
                return
            page += 1

    def list_releases(self, repository_url: str) -> List[str]:
        """Return published release tags in API order (drafts excluded)."""
        try:
            tags = [
                str(release["tag_name"])
                for release in self.iter_release_payloads(repository_url)
                if release.get("tag_name") and not release.get("draft", False)
            ]
        except httpx.HTTPError as exc:
            raise ResolutionError(f"could not list releases of {repository_url}: {exc}") from exc
        logger.info(
            "listed releases",
            extra={"stage": "resolve", "url": repository_url, "count": len(tags)},
        )
        return tags


def contract_url(repository_url: str, tag: str, filename: str) -> str:
    """Return the download URL of a release asset."""
    return f"{repository_url}/releases/download/{tag}/{filename}"


def fetch_contracts_from_repository(
    repository: ExternalRepository,
    lister: ReleaseLister,
    *,
    skip: Iterable[str] = (),
) -> Dict[str, Contract]:
    """Load the contract of every release of ``repository``, keyed by raw tag.

    Tags listed in ``skip`` are not fetched.
    """
    skipped = set(skip)
    contracts: Dict[str, Contract] = {}
    for tag in lister.list_releases(repository.url):
        if tag in skipped:
            continue
        url = contract_url(repository.url, tag, repository.catalog_name)
        logger.debug("loading contract", extra={"stage": "resolve", "url": url, "version": tag})
        contracts[tag] = Contract.from_url(url)
    return contracts
