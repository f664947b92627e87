"""Tests for downloading, extracting, validating, and annotating release tarballs."""

from __future__ import annotations

import gzip

import pytest

from CatalogCD.catalog import Catalog, Release, fetch_and_extract, resources_for_type, synchronize
from CatalogCD.contract import CatalogSpec, Contract, Resources, TektonResource
from CatalogCD.errors import (
    ChecksumMismatchError,
    ConfigurationError,
    DownloadFailure,
    ExtractionError,
)
from CatalogCD.net import use_mock_http_client

REPO_URL = "https://github.com/shortbrain/golang-tasks"
TARBALL_URL = f"{REPO_URL}/releases/download/v0.5.0/resources.tar.gz"


def _relative_files(root):
    return sorted(path.relative_to(root).as_posix() for path in root.rglob("*") if path.is_file())


def test_golden_release_is_materialized(tmp_path, remote, testdata, golang_tasks, make_tarball, make_contract):
    remote.add(TARBALL_URL, make_tarball(golang_tasks))
    catalog = Catalog(
        repositories={"sbr-golang": {"0.5.0": Release(TARBALL_URL, make_contract(golang_tasks, "0.5.0"))}}
    )

    with use_mock_http_client(remote.transport):
        report = synchronize(tmp_path, catalog)

    assert report.ok
    assert report.succeeded == [("sbr-golang", "0.5.0")]
    assert _relative_files(tmp_path) == [
        "tasks/go-crane-image/0.5.0/README.md",
        "tasks/go-crane-image/0.5.0/go-crane-image.yaml",
        "tasks/go-ko-image/0.5.0/README.md",
        "tasks/go-ko-image/0.5.0/go-ko-image.yaml",
    ]
    for name in ("go-crane-image", "go-ko-image"):
        extracted = tmp_path / "tasks" / name / "0.5.0"
        golden = testdata / "golden" / "tasks" / name
        assert (extracted / f"{name}.yaml").read_bytes() == (golden / f"{name}.yaml").read_bytes()
        assert (extracted / "README.md").read_bytes() == (testdata / "tasks" / name / "README.md").read_bytes()


def test_dot_slash_prefixed_members(tmp_path, remote, golang_tasks, make_tarball, make_contract):
    prefixed = {f"./{name}": content for name, content in golang_tasks.items()}
    remote.add(TARBALL_URL, make_tarball(prefixed, directories=("./", "./tasks/")))
    release = Release(TARBALL_URL, make_contract(golang_tasks, "0.5.0"))

    with use_mock_http_client(remote.transport):
        written = fetch_and_extract(tmp_path, release, "0.5.0")

    assert len(written) == 4
    assert (tmp_path / "tasks/go-ko-image/0.5.0/go-ko-image.yaml").is_file()


def test_files_missing_from_contract_are_skipped(tmp_path, remote, golang_tasks, make_tarball, make_contract):
    contract = make_contract(golang_tasks, "0.5.0")
    files = dict(golang_tasks)
    files["tasks/go-crane-image/extra.sh"] = b"#!/bin/sh\n"
    files["LICENSE"] = b"Apache-2.0\n"
    remote.add(TARBALL_URL, make_tarball(files))

    with use_mock_http_client(remote.transport):
        fetch_and_extract(tmp_path, Release(TARBALL_URL, contract), "0.5.0")

    assert not (tmp_path / "tasks/go-crane-image/0.5.0/extra.sh").exists()
    assert not (tmp_path / "0.5.0").exists()


def test_resource_type_filter(tmp_path, remote, golang_tasks, make_tarball, make_contract):
    pipeline = b"apiVersion: tekton.dev/v1\nkind: Pipeline\nmetadata:\n  name: build\n"
    files = dict(golang_tasks)
    files["pipelines/build/build.yaml"] = pipeline
    remote.add(TARBALL_URL, make_tarball(files))
    release = Release(TARBALL_URL, make_contract(files, "0.5.0"))

    with use_mock_http_client(remote.transport):
        fetch_and_extract(tmp_path, release, "0.5.0", "pipelines")

    assert (tmp_path / "pipelines/build/0.5.0/build.yaml").is_file()
    assert not (tmp_path / "tasks/go-crane-image/0.5.0/go-crane-image.yaml").exists()


def test_checksum_mismatch_fails_only_that_release(tmp_path, remote, golang_tasks, make_tarball, make_contract):
    good_url = f"{REPO_URL}/releases/download/v0.4.0/resources.tar.gz"
    tampered = dict(golang_tasks)
    tampered["tasks/go-ko-image/go-ko-image.yaml"] += b"# tampered\n"
    remote.add(TARBALL_URL, make_tarball(tampered))
    remote.add(good_url, make_tarball(golang_tasks))
    catalog = Catalog(
        repositories={
            "sbr-golang": {
                "0.4.0": Release(good_url, make_contract(golang_tasks, "0.4.0")),
                "0.5.0": Release(TARBALL_URL, make_contract(golang_tasks, "0.5.0")),
            }
        }
    )

    with use_mock_http_client(remote.transport):
        report = synchronize(tmp_path, catalog)

    assert report.succeeded == [("sbr-golang", "0.4.0")]
    assert isinstance(report.failed[("sbr-golang", "0.5.0")], ChecksumMismatchError)
    assert not report.ok
    assert (tmp_path / "tasks/go-ko-image/0.4.0/go-ko-image.yaml").is_file()


def test_checksum_mismatch_raises(tmp_path, remote, golang_tasks, make_tarball, make_contract):
    contract = make_contract(golang_tasks, "0.5.0")
    contract.catalog.resources.tasks[0].checksum = "0" * 64
    remote.add(TARBALL_URL, make_tarball(golang_tasks))

    with use_mock_http_client(remote.transport):
        with pytest.raises(ChecksumMismatchError) as excinfo:
            fetch_and_extract(tmp_path, Release(TARBALL_URL, contract), "0.5.0")

    assert excinfo.value.filename == "go-crane-image.yaml"
    assert excinfo.value.expected == "0" * 64


def test_non_200_response(tmp_path, remote, golang_tasks, make_contract):
    remote.add(TARBALL_URL, b"gone", status=404)

    with use_mock_http_client(remote.transport):
        with pytest.raises(DownloadFailure) as excinfo:
            fetch_and_extract(tmp_path, Release(TARBALL_URL, make_contract(golang_tasks, "0.5.0")), "0.5.0")

    assert excinfo.value.status_code == 404
    assert list(tmp_path.iterdir()) == []


def test_corrupt_gzip(tmp_path, remote, golang_tasks, make_contract):
    remote.add(TARBALL_URL, b"definitely not gzip")

    with use_mock_http_client(remote.transport):
        with pytest.raises(ExtractionError):
            fetch_and_extract(tmp_path, Release(TARBALL_URL, make_contract(golang_tasks, "0.5.0")), "0.5.0")


def test_gzip_without_tar(tmp_path, remote, golang_tasks, make_contract):
    remote.add(TARBALL_URL, gzip.compress(b"plain text, no tar headers here" * 40))

    with use_mock_http_client(remote.transport):
        with pytest.raises(ExtractionError):
            fetch_and_extract(tmp_path, Release(TARBALL_URL, make_contract(golang_tasks, "0.5.0")), "0.5.0")


def test_failures_do_not_stop_synchronization(tmp_path, remote, golang_tasks, make_tarball, make_contract):
    other_url = "https://github.com/example/other/releases/download/v1.0.0/resources.tar.gz"
    remote.add(TARBALL_URL, make_tarball(golang_tasks))
    catalog = Catalog(
        repositories={
            "aaa-broken": {"1.0.0": Release(other_url, make_contract(golang_tasks, "1.0.0"))},
            "sbr-golang": {"0.5.0": Release(TARBALL_URL, make_contract(golang_tasks, "0.5.0"))},
        }
    )

    with use_mock_http_client(remote.transport):
        report = synchronize(tmp_path, catalog)

    assert list(report.failed) == [("aaa-broken", "1.0.0")]
    assert isinstance(report.failed[("aaa-broken", "1.0.0")], DownloadFailure)
    assert report.succeeded == [("sbr-golang", "0.5.0")]
    assert len(report.written) == 4


def test_readme_cannot_escape_destination(tmp_path, remote, golang_tasks, make_tarball, make_contract):
    dest = tmp_path / "catalog"
    files = dict(golang_tasks)
    files["../../README.md"] = b"escaped\n"
    remote.add(TARBALL_URL, make_tarball(files))

    with use_mock_http_client(remote.transport):
        fetch_and_extract(dest, Release(TARBALL_URL, make_contract(golang_tasks, "0.5.0")), "0.5.0")

    assert not (tmp_path.parent / "0.5.0" / "README.md").exists()
    assert (dest / "tasks/go-crane-image/0.5.0/README.md").is_file()


def test_unknown_resource_type_is_rejected(tmp_path):
    with pytest.raises(ConfigurationError):
        synchronize(tmp_path, Catalog(), "widgets")


def test_resources_for_type():
    contract = Contract(
        catalog=CatalogSpec(
            resources=Resources(
                tasks=[TektonResource(name="a", filename="tasks/a/a.yaml")],
                pipelines=[TektonResource(name="b", filename="pipelines/b/b.yaml")],
                stepactions=[TektonResource(name="c", filename="stepactions/c/c.yaml")],
            )
        )
    )

    assert sorted(resources_for_type(contract)) == [
        "pipelines/b/b.yaml",
        "stepactions/c/c.yaml",
        "tasks/a/a.yaml",
    ]
    assert list(resources_for_type(contract, "stepactions")) == ["stepactions/c/c.yaml"]


def test_undecodable_manifest_is_kept_as_extracted(tmp_path, remote, golang_tasks, make_tarball, make_contract):
    bad_url = f"{REPO_URL}/releases/download/v1.0.0/resources.tar.gz"
    good_url = f"{REPO_URL}/releases/download/v2.0.0/resources.tar.gz"
    bad_files = {"tasks/bad/bad.yaml": b"kind: Task\nmetadata:\n  annotations:\n    note: \xff\xfe\n"}
    remote.add(bad_url, make_tarball(bad_files))
    remote.add(good_url, make_tarball(golang_tasks))
    catalog = Catalog(
        repositories={
            "sbr-golang": {
                "1.0.0": Release(bad_url, make_contract(bad_files, "1.0.0")),
                "2.0.0": Release(good_url, make_contract(golang_tasks, "2.0.0")),
            }
        }
    )

    with use_mock_http_client(remote.transport):
        report = synchronize(tmp_path, catalog)

    assert report.ok
    assert report.succeeded == [("sbr-golang", "1.0.0"), ("sbr-golang", "2.0.0")]
    assert (tmp_path / "tasks/bad/1.0.0/bad.yaml").read_bytes() == bad_files["tasks/bad/bad.yaml"]
    assert (tmp_path / "tasks/go-ko-image/2.0.0/go-ko-image.yaml").is_file()
