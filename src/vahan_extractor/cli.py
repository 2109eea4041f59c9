"""Command line entry point for Vahan Extractor."""

import os
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console

from vahan_extractor import __version__
from vahan_extractor.core import config as config_module
from vahan_extractor.core.config import CONFIG_ENV, Settings

app = typer.Typer(
    name="vahan-extractor",
    help="Vahan Extractor - Bulk vehicle detail extraction from the Vahan portal",
)
console = Console()
logger = structlog.get_logger()


def load_settings(config_path: Optional[Path]) -> Settings:
    """Load settings from file or defaults."""
    if config_path and not config_path.exists():
        console.print(f"[red][X][/red] Config file not found: {config_path}")
        raise typer.Exit(code=1)

    settings = config_module.load_settings(config_path)
    logger.info("config_loaded", path=str(config_path) if config_path else None)
    return settings


@app.command()
def serve(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the API server."""
    import uvicorn

    settings = load_settings(config)

    # The app module reads config_module.settings at import; reload workers
    # re-import in a fresh process and find the file through the environment
    if config:
        os.environ[CONFIG_ENV] = str(config.resolve())
    config_module.settings = settings

    uvicorn.run(
        "vahan_extractor.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload or settings.debug,
    )


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Vahan Extractor v{__version__}")


@app.command()
def check(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """Check configuration, storage directories and browser installation."""
    console.print("[bold]Vahan Extractor - System Check[/bold]\n")

    settings = load_settings(config)

    console.print(f"Portal: {settings.browser.home_url}")
    console.print(f"Database: {settings.database_url or f'sqlite (in {settings.storage.data_dir})'}")

    for label, directory in (
        ("Data", settings.storage.data_dir),
        ("Upload", settings.storage.upload_dir),
        ("Results", settings.storage.results_dir),
    ):
        path = Path(directory)
        if path.exists():
            console.print(f"[green][OK][/green] {label} directory exists: {path}")
        else:
            console.print(f"[yellow][!][/yellow] {label} directory missing: {path}")
            console.print("  (Will be created on server start)")

    try:
        from playwright.sync_api import sync_playwright

        with sync_playwright() as playwright:
            chromium_path = Path(playwright.chromium.executable_path)
    except Exception as e:
        console.print(f"[red][X][/red] Playwright unavailable: {e}")
        raise typer.Exit(code=1)

    if chromium_path.exists():
        console.print(f"[green][OK][/green] Chromium found: {chromium_path}")
    else:
        console.print(f"[red][X][/red] Chromium not found: {chromium_path}")
        console.print("  (Run: playwright install chromium)")


if __name__ == "__main__":
    app()
