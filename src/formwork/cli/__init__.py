"""
formwork CLI.

- synth:    Synthesize the app and write the cloud assembly
- ls:       List stacks in deployment order
- validate: Synthesize without writing and report annotations
- flags:    Show feature flags
"""

from __future__ import annotations

import typer

from .flags import flags_command
from .synth import ls_command, synth_command, validate_command
from .utils import configure_logging, version_callback

app = typer.Typer(
    help="""formwork – define cloud infrastructure as constructs, synthesize templates

Commands operate in the CURRENT directory (formwork.toml is read from it).
""",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    version: bool | None = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and environment information",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """formwork CLI main callback for global options."""
    configure_logging(verbose)


app.command(name="synth")(synth_command)
app.command(name="ls")(ls_command)
app.command(name="validate")(validate_command)
app.command(name="flags")(flags_command)


def main() -> None:
    app(standalone_mode=True)


__all__ = ["app", "main"]
