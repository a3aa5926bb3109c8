"""
Synthesis commands for the formwork CLI.

- synth:    Synthesize the app and write the cloud assembly
- ls:       List stacks in deployment order
- validate: Synthesize without writing and report annotations
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from formwork.core.assembly import CloudAssembly, StackArtifact, render_template
from formwork.core.errors import FormworkError

from .utils import console, fail, load_project_app, print_messages

CONFIG_OPTION = typer.Option(None, "--config", help="Path to formwork.toml (default: ./formwork.toml)")
APP_OPTION = typer.Option(None, "--app", "-a", help="App entry point, 'package.module:attribute'")
CONTEXT_OPTION = typer.Option(None, "--context", "-c", help="Context value KEY=VALUE (repeatable)")


def _select_stacks(assembly: CloudAssembly, names: list[str] | None) -> list[StackArtifact]:
    """Stacks matching ``names`` by stack name, path or artifact id; all when empty."""
    if not names:
        return list(assembly.stacks)
    selected: list[StackArtifact] = []
    for name in names:
        matches = [
            s
            for s in assembly.stacks
            if name in (s.stack_name, s.display_name, s.artifact_id)
        ]
        if not matches:
            available = ", ".join(s.stack_name for s in assembly.stacks) or "none"
            raise FormworkError(f"No stack named '{name}'. Available stacks: {available}")
        selected.extend(m for m in matches if m not in selected)
    return selected


def synth_command(
    stacks: list[str] | None = typer.Argument(None, help="Stacks to print (default: all)"),
    config: Path | None = CONFIG_OPTION,
    app_entry: str | None = APP_OPTION,
    output: Path | None = typer.Option(None, "--output", "-o", help="Assembly output directory"),
    output_format: str | None = typer.Option(
        None, "--format", "-f", help="Template format: json or yaml"
    ),
    context: list[str] | None = CONTEXT_OPTION,
    print_template: bool = typer.Option(False, "--print", help="Print the selected templates"),
    strict: bool = typer.Option(False, "--strict", help="Fail on warnings as well as errors"),
) -> None:
    """Synthesize the app into a cloud assembly."""
    if output_format is not None and output_format not in ("json", "yaml"):
        raise typer.BadParameter("--format must be 'json' or 'yaml'")

    try:
        project, app = load_project_app(config, app_entry, context, strict)
        app.outdir = str(output or project.app.outdir)
        app.template_format = output_format or project.app.output_format
        assembly = app.synth(force=True)
        selected = _select_stacks(assembly, stacks)
    except FormworkError as e:
        raise fail(e)

    print_messages(assembly.messages)

    if print_template:
        print_format = "json" if output_format == "json" else "yaml"
        for i, stack in enumerate(selected):
            if i:
                typer.echo("---")
            typer.echo(render_template(stack.template, print_format))
    else:
        table = Table(title="Synthesized Stacks")
        table.add_column("Stack", style="cyan")
        table.add_column("Environment")
        table.add_column("Resources", justify="right")
        table.add_column("Template")
        for stack in selected:
            table.add_row(
                escape(stack.stack_name),
                escape(stack.environment),
                str(len(stack.resources)),
                escape(stack.template_file_for(app.template_format)),
            )
        console.print(table)
        console.print(f"[green]Cloud assembly written to {escape(app.outdir)}[/green]")

    if assembly.has_errors:
        console.print("[red]Synthesis produced errors[/red]")
        raise typer.Exit(1)


def ls_command(
    config: Path | None = CONFIG_OPTION,
    app_entry: str | None = APP_OPTION,
    context: list[str] | None = CONTEXT_OPTION,
    long: bool = typer.Option(False, "--long", "-l", help="Show environments and dependencies"),
) -> None:
    """List stacks in deployment order."""
    try:
        _, app = load_project_app(config, app_entry, context)
        app.outdir = None
        assembly = app.synth(force=True)
    except FormworkError as e:
        raise fail(e)

    if not long:
        for stack in assembly.stacks:
            typer.echo(stack.stack_name)
        return

    table = Table(title="Stacks")
    table.add_column("Stack", style="cyan")
    table.add_column("Path")
    table.add_column("Environment")
    table.add_column("Depends on")
    for stack in assembly.stacks:
        table.add_row(
            escape(stack.stack_name),
            escape(stack.display_name),
            escape(stack.environment),
            escape(", ".join(stack.dependencies)) or "-",
        )
    console.print(table)


def validate_command(
    config: Path | None = CONFIG_OPTION,
    app_entry: str | None = APP_OPTION,
    context: list[str] | None = CONTEXT_OPTION,
    strict: bool = typer.Option(False, "--strict", help="Fail on warnings as well as errors"),
) -> None:
    """Synthesize without writing and report annotations."""
    try:
        _, app = load_project_app(config, app_entry, context, strict)
        app.outdir = None
        assembly = app.synth(force=True)
    except FormworkError as e:
        raise fail(e)

    print_messages(assembly.messages)
    if assembly.has_errors:
        console.print("[red]Validation failed[/red]")
        raise typer.Exit(1)
    console.print(f"[green]OK: {len(assembly.stacks)} stack(s) valid[/green]")
