"""Command line interface for browser-test-runtime."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Optional

import typer

from .config import RuntimeSettings, parse_assignments
from .errors import ConfigurationError, SessionError
from .factory import build_resolver, build_runtime

app = typer.Typer(help="Browser test runtime utilities")


def _settings(config_path: Optional[Path]) -> RuntimeSettings:
    settings = RuntimeSettings()
    if config_path is not None:
        settings = settings.model_copy(update={"config_file": config_path})
    return settings


def _overrides(assignments: Optional[list[str]]) -> dict[str, str]:
    try:
        return parse_assignments(assignments or [])
    except ConfigurationError as exc:
        raise typer.BadParameter(exc.message, param_hint="--set") from exc


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
        typer.echo(get_version("browser-test-runtime"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


@app.command()
def resolve(
    keys: Annotated[list[str], typer.Argument(help="Configuration keys to resolve.")],
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a key=value configuration file."),
    ] = None,
    assignments: Annotated[
        Optional[list[str]],
        typer.Option("--set", "-s", help="Override a key (key=value). Repeatable."),
    ] = None,
) -> None:
    """Print resolved configuration values and the source they came from."""

    resolver = build_resolver(_settings(config_path), _overrides(assignments))
    failed = False
    for key in keys:
        try:
            resolved = resolver.resolve_value(key)
        except ConfigurationError as exc:
            typer.echo(str(exc), err=True)
            failed = True
            continue
        typer.echo(f"{resolved.key}={resolved.value} ({resolved.source.value})")
    if failed:
        raise typer.Exit(code=1)


@app.command()
def smoke(
    browser: Annotated[
        Optional[str],
        typer.Option("--browser", "-b", help="Browser to launch (chrome, firefox, edge)."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a key=value configuration file."),
    ] = None,
    assignments: Annotated[
        Optional[list[str]],
        typer.Option("--set", "-s", help="Override a key (key=value). Repeatable."),
    ] = None,
) -> None:
    """Launch and tear down one browser session, narrating each step."""

    context = build_runtime(_settings(config_path), overrides=_overrides(assignments))
    try:
        with context.test_case("Smoke check", browser=browser) as session:
            typer.echo(f"Session {session.id} started with {session.kind.value}")
    except (ConfigurationError, SessionError) as exc:
        typer.echo(f"Smoke check failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        context.close_suite()
        context.reporter.close()
    typer.echo("Smoke check completed successfully.")


if __name__ == "__main__":
    app()
