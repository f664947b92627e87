"""Allow ``python -m CatalogCD`` to invoke the Typer application."""

from CatalogCD.cli import app

if __name__ == "__main__":  # pragma: no cover - exercised via CLI entry point
    app()
