"""Command line interface for async-webdriver."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from .config import DriverConfig, load_config
from .errors import WebDriverClientError
from .factory import build_client, build_launcher
from .launcher import LauncherError
from .models import DriverStatus, Locator

app = typer.Typer(help="Async WebDriver client entry point")

T = TypeVar("T")

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to YAML configuration."),
]
EnvFileOption = Annotated[
    Optional[Path],
    typer.Option("--env-file", help="Path to an .env file with default configuration values."),
]
DriverUrlOption = Annotated[
    Optional[str],
    typer.Option("--driver-url", help="Base URL of a running WebDriver server."),
]
LaunchOption = Annotated[
    bool,
    typer.Option("--launch/--no-launch", help="Spawn the configured driver binary locally."),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("async-webdriver"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


@app.command()
def status(
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    driver_url: DriverUrlOption = None,
    launch: LaunchOption = False,
) -> None:
    """Report whether the driver is ready to create sessions."""

    config = _load(config_path, env_file, driver_url)

    async def query(webdriver_url: str) -> DriverStatus:
        client = build_client(config, webdriver_url=webdriver_url)
        try:
            return await client.status()
        finally:
            await client.close()

    report = _run(config, launch, query)
    table = Table(title="WebDriver status")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("url", config.webdriver_url)
    table.add_row("ready", "yes" if report.ready else "no")
    table.add_row("message", report.message)
    Console().print(table)
    if not report.ready:
        raise typer.Exit(code=1)


@app.command()
def source(
    url: Annotated[str, typer.Argument(help="Page to load.")],
    selector: Annotated[
        Optional[str],
        typer.Option("--selector", "-s", help="CSS selector of the element to print."),
    ] = None,
    inner: Annotated[
        bool,
        typer.Option("--inner/--outer", help="Exclude the selected element's own tag."),
    ] = False,
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    driver_url: DriverUrlOption = None,
    launch: LaunchOption = False,
) -> None:
    """Load a page and print its HTML (or that of one element)."""

    config = _load(config_path, env_file, driver_url)

    async def fetch(webdriver_url: str) -> str:
        async with build_client(config, webdriver_url=webdriver_url) as client:
            await client.navigate(url)
            if selector is None:
                return await client.source()
            element = await client.find(Locator.css(selector))
            return await client.html(element, inner=inner)

    typer.echo(_run(config, launch, fetch))


@app.command()
def screenshot(
    url: Annotated[str, typer.Argument(help="Page to load.")],
    output: Annotated[Path, typer.Argument(help="Where to write the PNG.")],
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    driver_url: DriverUrlOption = None,
    launch: LaunchOption = False,
) -> None:
    """Load a page and save a screenshot of the viewport."""

    config = _load(config_path, env_file, driver_url)

    async def capture(webdriver_url: str) -> bytes:
        async with build_client(config, webdriver_url=webdriver_url) as client:
            await client.navigate(url)
            return await client.screenshot()

    png = _run(config, launch, capture)
    output.write_bytes(png)
    typer.echo(f"Saved {len(png)} bytes to {output}")


def _load(
    config_path: Optional[Path],
    env_file: Optional[Path],
    driver_url: Optional[str],
) -> DriverConfig:
    overrides: dict[str, Any] = {}
    if driver_url is not None:
        overrides["webdriver_url"] = driver_url
    return load_config(config_path, env_file=env_file, **overrides)


def _run(
    config: DriverConfig,
    launch: bool,
    job: Callable[[str], Coroutine[Any, Any, T]],
) -> T:
    try:
        if launch:
            with build_launcher(config.launcher) as webdriver_url:
                config.webdriver_url = webdriver_url
                return asyncio.run(job(webdriver_url))
        return asyncio.run(job(config.webdriver_url))
    except (WebDriverClientError, LauncherError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


if __name__ == "__main__":
    app()
