"""Main CLI entry point for credgate."""

import logging

import typer
from rich.console import Console

from credgate.cli.commands import creds, server, test

app = typer.Typer(
    name="credgate",
    help="credgate CLI - run and inspect the credential pool gateway",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command()(server.start)
app.command()(server.status)
app.command()(server.providers)
app.add_typer(creds.app, name="creds", help="Credential management")
app.add_typer(test.app, name="test", help="Send test requests to a running gateway")


@app.command()
def version() -> None:
    """Show version information."""
    from credgate import __version__

    console = Console()
    console.print(f"[bold cyan]credgate[/bold cyan] version [green]{__version__}[/green]")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """credgate CLI."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


if __name__ == "__main__":
    app()
