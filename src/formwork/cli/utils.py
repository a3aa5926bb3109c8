"""
Shared helpers for CLI commands.
"""

from __future__ import annotations

import json
import logging
import platform
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from formwork._version import get_version
from formwork.config import ProjectConfig, load_project_config
from formwork.core.annotations import AnnotationMessage, MessageLevel
from formwork.core.app import STRICT_CONTEXT, App
from formwork.core.errors import FormworkError
from formwork.loader import load_app

console = Console()

_LEVEL_STYLES = {
    MessageLevel.ERROR: "red",
    MessageLevel.WARNING: "yellow",
    MessageLevel.INFO: "cyan",
}


def version_callback(value: bool) -> None:
    """Display version and environment information."""
    if value:
        typer.echo(f"formwork version {get_version()}")
        typer.echo(f"  Python:        {platform.python_implementation()} {platform.python_version()}")
        typer.echo(f"  Platform:      {platform.system()} {platform.release()}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("formwork").setLevel(logging.DEBUG if verbose else logging.WARNING)


def parse_context_overrides(values: list[str] | None) -> dict[str, Any]:
    """
    Parse ``-c KEY=VALUE`` options.

    Values that parse as JSON (``true``, ``3``, ``["a"]``) keep their type;
    anything else is a string.
    """
    overrides: dict[str, Any] = {}
    for item in values or []:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Context must be KEY=VALUE, got '{item}'")
        try:
            overrides[key] = json.loads(raw)
        except json.JSONDecodeError:
            overrides[key] = raw
    return overrides


def load_project_app(
    config_path: Path | None,
    entry: str | None,
    context: list[str] | None = None,
    strict: bool = False,
) -> tuple[ProjectConfig, App]:
    """
    Load the configuration and the App it points to.

    Raises:
        FormworkError: If no entry point is configured, or loading fails
    """
    config = load_project_config(config_path)
    entry = entry or config.app.entry
    if not entry:
        raise FormworkError(
            "No app entry point. Pass --app or set 'entry' in the [app] section of formwork.toml"
        )
    overrides = parse_context_overrides(context)
    if strict:
        overrides[STRICT_CONTEXT] = True
    merged = config.build_context(overrides)

    app = load_app(entry, context=merged)
    return config, app


def print_messages(messages: list[AnnotationMessage]) -> None:
    for message in messages:
        style = _LEVEL_STYLES[message.level]
        console.print(f"[{style}]{escape(message.format())}[/{style}]")


def fail(error: FormworkError) -> typer.Exit:
    """Print an error in red and return the exit to raise."""
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    return typer.Exit(1)
