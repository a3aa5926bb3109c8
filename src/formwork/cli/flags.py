"""
Feature flag commands for the formwork CLI.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from rich.table import Table

from formwork.config import load_project_config
from formwork.core.errors import FormworkError
from formwork.core.feature_flags import FLAGS, FlagInfo, parse_bool, recommended_flags

from .utils import console, fail


def recommended_flags_toml() -> str:
    """The ``[feature_flags]`` block enabling every recommended value."""
    lines = ["[feature_flags]"]
    for name, value in recommended_flags().items():
        lines.append(f'"{name}" = {str(value).lower()}')
    return "\n".join(lines)


def effective_flags(context: dict[str, Any]) -> list[tuple[FlagInfo, bool, bool]]:
    """
    Each flag with its effective value and whether the context sets it.

    Raises:
        ValidationError: If a configured value is not a boolean
    """
    rows = []
    for name, info in FLAGS.items():
        configured = name in context
        value = parse_bool(name, context[name]) if configured else info.default_value
        rows.append((info, value, configured))
    return rows


def flags_command(
    config: Path | None = typer.Option(None, "--config", help="Path to formwork.toml"),
    recommended: bool = typer.Option(
        False, "--recommended", help="Print the recommended [feature_flags] block"
    ),
) -> None:
    """Show feature flags and their effective values."""
    if recommended:
        typer.echo(recommended_flags_toml())
        return

    try:
        project = load_project_config(config)
        rows = effective_flags(project.build_context())
    except FormworkError as e:
        raise fail(e)

    table = Table(title="Feature Flags")
    table.add_column("Flag", style="cyan")
    table.add_column("Value")
    table.add_column("Recommended")
    table.add_column("Source")
    for info, value, configured in rows:
        table.add_row(
            info.name,
            str(value).lower(),
            str(info.recommended_value).lower(),
            "formwork.toml" if configured else "default",
        )
    console.print(table)
