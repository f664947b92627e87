"""Shared fixtures for the catalog_cd test suite."""

from __future__ import annotations

import hashlib
import io
import json
import tarfile
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

import httpx
import pytest

from CatalogCD.contract import CatalogSpec, Contract, Resources, TektonResource

TESTDATA = Path(__file__).parent / "testdata"
API_URL = "https://api.github.com"


def sha256_bytes(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def build_tarball(files: Mapping[str, bytes], *, directories: Tuple[str, ...] = ()) -> bytes:
    """Return a gzip tarball holding ``files`` (archive name -> content) in insertion order."""

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name in directories:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            archive.addfile(info)
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def contract_for(files: Mapping[str, bytes], version: str) -> Contract:
    """Build a contract declaring every non-README file of ``files`` with its checksum."""

    resources = Resources()
    for filename, content in files.items():
        if filename.endswith("README.md"):
            continue
        kind_dir, name = filename.split("/")[:2]
        getattr(resources, kind_dir).append(
            TektonResource(name=name, version=version, filename=filename, checksum=sha256_bytes(content))
        )
    return Contract(catalog=CatalogSpec(resources=resources))


class FakeRemote:
    """Route table backing an :class:`httpx.MockTransport`."""

    def __init__(self) -> None:
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        url: str,
        content: Union[bytes, str] = b"",
        *,
        status: int = 200,
        json_body: Optional[object] = None,
    ) -> None:
        if json_body is not None:
            body = json.dumps(json_body).encode("utf-8")
        elif isinstance(content, str):
            body = content.encode("utf-8")
        else:
            body = content
        self.routes[url] = lambda request: httpx.Response(status, content=body)

    def add_releases(self, repository_url: str, tags: List[str]) -> None:
        slug = repository_url.removeprefix("https://github.com/")
        self.add(f"{API_URL}/repos/{slug}/releases", json_body=[{"tag_name": tag} for tag in tags])

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = str(request.url).split("?", 1)[0]
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, content=b"not found")
        return route(request)

    def requested(self, url: str) -> bool:
        return any(str(request.url).split("?", 1)[0] == url for request in self.requests)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def testdata() -> Path:
    return TESTDATA


@pytest.fixture
def golang_tasks() -> Dict[str, bytes]:
    """Archive layout of the ``sbr-golang`` 0.5.0 release."""

    files: Dict[str, bytes] = {}
    for name in ("go-crane-image", "go-ko-image"):
        base = TESTDATA / "tasks" / name
        files[f"tasks/{name}/{name}.yaml"] = (base / f"{name}.yaml").read_bytes()
        files[f"tasks/{name}/README.md"] = (base / "README.md").read_bytes()
    return files


@pytest.fixture
def make_tarball() -> Callable[..., bytes]:
    return build_tarball


@pytest.fixture
def make_contract() -> Callable[[Mapping[str, bytes], str], Contract]:
    return contract_for
