"""jobtrace CLI - Main entry point."""

from __future__ import annotations

from typing import Annotated

import typer

from jobtrace import __version__

from .helpers import console

app = typer.Typer(
    name="jobtrace",
    help="Distributed tracing for background jobs.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]jobtrace[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override the configured log level."),
    ] = None,
):
    """jobtrace - wrap background jobs in root spans and export them.

    [bold]Quick Start:[/bold]

        jobtrace config show      Show effective tracing settings
        jobtrace simulate -n 10   Trace ten synthetic jobs
    """
    from jobtrace.config import configure_logging, get_settings

    settings = get_settings()
    configure_logging(log_level or settings.log_level, settings.log_format)


# =============================================================================
# Register commands
# =============================================================================

from .commands.config import config_app  # noqa: E402
from .commands.simulate import simulate  # noqa: E402

app.add_typer(config_app, name="config")
app.command("simulate")(simulate)


if __name__ == "__main__":
    app()
