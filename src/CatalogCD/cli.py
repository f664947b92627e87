# === NAVMAP v1 ===
# {
#   "module": "CatalogCD.cli",
#   "purpose": "Typer CLI wiring catalog generation, release, signing, and rendering",
#   "sections": [
#     {"id": "app", "name": "Application & global options", "anchor": "APP", "kind": "api"},
#     {"id": "catalog", "name": "Catalog commands", "anchor": "CAT", "kind": "api"},
#     {"id": "release", "name": "Release & attestation commands", "anchor": "REL", "kind": "api"},
#     {"id": "misc", "name": "Render & version", "anchor": "MSC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for catalog-cd.

Example:
    $ catalog-cd catalog generate --config externals.yaml ./catalog
    $ catalog-cd release --version 0.1.0 --output ./release tasks/
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from . import __version__
from .attestation import CosignAttestation
from .catalog import SyncReport, resolve, synchronize
from .contract import Contract
from .errors import CatalogError, ConfigurationError
from .externals import RESOURCE_TYPES, ExternalConfig, ExternalRepository, build_matrix, load_external
from .github import GitHubReleaseLister
from .logging_config import setup_logging
from .release import build_release
from .render import render_markdown
from .settings import CONTRACT_FILENAME, RESOURCES_TARBALL_NAME, get_settings

_console = Console(stderr=True)

app = typer.Typer(
    name="catalog-cd",
    help="Manage a catalog of versioned Tekton resources published by external repositories.",
    no_args_is_help=True,
)
catalog_app = typer.Typer(
    help="Catalog management commands: generate a full or partial catalog, or a GitHub matrix.",
    no_args_is_help=True,
)
app.add_typer(catalog_app, name="catalog")


def _fail(exc: Exception) -> typer.Exit:
    _console.print(f"[red]Error: {escape(str(exc))}[/red]")
    return typer.Exit(code=1)


def _require_file(path: Path, flag: str) -> None:
    if not path.is_file():
        raise ConfigurationError(f"{flag} {path} does not exist")


def _summarize(report: SyncReport) -> None:
    _console.print(f"{len(report.succeeded)} release(s) synchronized, {len(report.written)} file(s) written")
    for (name, version), exc in sorted(report.failed.items()):
        _console.print(f"[yellow]skipped {name} {version}: {escape(str(exc))}[/yellow]")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Write JSON lines to the log file"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Copy log records to this file"),
) -> None:
    """catalog-cd - Tekton resource catalog tooling."""
    settings = get_settings()
    setup_logging(
        (log_level or settings.log_level).upper(),
        json_logs=json_logs or settings.json_logs,
        log_file=log_file or settings.log_file,
    )


# --- Catalog commands -------------------------------------------------------------


@catalog_app.command("generate")
def generate(
    target: Path = typer.Argument(..., help="Folder in which the catalog is generated"),
    config: Path = typer.Option(Path("./externals.yaml"), "--config", help="External repositories file"),
) -> None:
    """Generate a file-based catalog in TARGET from a configuration file."""
    try:
        _require_file(config, "--config")
        _console.print(f"Generating a catalog from {config} in {target}")
        external = load_external(config)
        catalog = resolve(external, GitHubReleaseLister())
        _summarize(synchronize(target, catalog, ""))
    except CatalogError as exc:
        raise _fail(exc) from exc


@catalog_app.command("generate-from")
def generate_from(
    target: Path = typer.Argument(..., help="Folder in which the catalog is generated"),
    url: str = typer.Option("", "--url", help="URL of the repository to pull"),
    resource_type: str = typer.Option("", "--type", help=f"Type of resource to pull {RESOURCE_TYPES}"),
    name: str = typer.Option("", "--name", help="Name of the repository to pull"),
    ignore_versions: str = typer.Option("", "--ignore-versions", help="Comma separated versions to ignore"),
    catalog_name: str = typer.Option(CONTRACT_FILENAME, "--catalog-name", help="Contract file to pull"),
    resources_tarball_name: str = typer.Option(
        RESOURCES_TARBALL_NAME, "--resources-tarball-name", help="Resources tarball to pull"
    ),
) -> None:
    """Generate a partial file-based catalog in TARGET from a single repository."""
    try:
        if not url:
            raise ConfigurationError("flag --url is required")
        if not resource_type:
            raise ConfigurationError("flag --type is required")
        if resource_type not in RESOURCE_TYPES:
            raise ConfigurationError(f"flag --type must be one of {', '.join(RESOURCE_TYPES)}")
        _console.print(f"Generating a partial catalog from {url} (type: {resource_type})")
        repository = ExternalRepository(
            name=name,
            url=url,
            types=[resource_type],
            ignore_versions=[v.strip() for v in ignore_versions.split(",") if v.strip()],
            catalog_name=catalog_name,
            resources_tarball_name=resources_tarball_name,
        )
        catalog = resolve(ExternalConfig(repositories=[repository]), GitHubReleaseLister())
        _summarize(synchronize(target, catalog, resource_type))
    except CatalogError as exc:
        raise _fail(exc) from exc


@catalog_app.command("externals")
def externals(
    config: Path = typer.Option(Path("./externals.yaml"), "--config", help="External repositories file"),
) -> None:
    """Print a GitHub matrix strategy compatible JSON from an externals file."""
    try:
        _require_file(config, "--config")
        matrix = build_matrix(load_external(config))
    except CatalogError as exc:
        raise _fail(exc) from exc
    typer.echo(json.dumps(matrix))


# --- Release & attestation commands -----------------------------------------------


@app.command("release")
def release(
    paths: List[Path] = typer.Argument(..., help="Directories, globs, or files with Tekton resources"),
    version: str = typer.Option(..., "--version", help="Release version"),
    output: Path = typer.Option(Path("."), "--output", help="Where the contract and tarball are written"),
    catalog_name: str = typer.Option(CONTRACT_FILENAME, "--catalog-name", help="Contract file name"),
    resources_tarball_name: str = typer.Option(
        RESOURCES_TARBALL_NAME, "--resources-tarball-name", help="Resources tarball name"
    ),
) -> None:
    """Create a contract and a resources tarball for Tekton resource files."""
    try:
        contract_path, tarball = build_release(
            paths,
            version,
            output,
            catalog_name=catalog_name,
            resources_name=resources_tarball_name,
        )
    except CatalogError as exc:
        raise _fail(exc) from exc
    typer.echo(str(contract_path))
    typer.echo(str(tarball))


@app.command("sign")
def sign(
    location: Path = typer.Argument(Path("."), help="Contract file or directory holding it"),
    private_key: str = typer.Option(..., "--private-key", help="Private key file location"),
) -> None:
    """Sign the contract resources and save the contract."""
    try:
        contract = Contract.from_path(location)
        helper = CosignAttestation(private_key)
        contract.sign_resources(helper.sign)
        contract.save()
    except CatalogError as exc:
        raise _fail(exc) from exc


@app.command("verify")
def verify(
    location: Path = typer.Argument(Path("."), help="Contract file or directory holding it"),
    public_key: str = typer.Option("", "--public-key", help="Public key; defaults to the contract's"),
) -> None:
    """Verify the signature of every resource described in the contract."""
    try:
        contract = Contract.from_path(location)
        key = public_key or contract.get_public_key()
        _console.print(f"# Public-Key: {key!r}")
        helper = CosignAttestation(key)
        contract.verify_resources(helper.verify)
    except CatalogError as exc:
        raise _fail(exc) from exc


# --- Render & version --------------------------------------------------------------


@app.command("render")
def render(resource: Path = typer.Argument(..., help="Tekton resource file")) -> None:
    """Render a Tekton resource file as markdown."""
    try:
        if not resource.is_file():
            raise ConfigurationError(f"{resource} does not exist")
        typer.echo(render_markdown(resource))
    except CatalogError as exc:
        raise _fail(exc) from exc


@app.command("version")
def version_cmd() -> None:
    """Print the catalog-cd version."""
    typer.echo(__version__)


__all__ = ["app", "catalog_app"]
