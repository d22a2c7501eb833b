"""Credential inspection and reload commands."""

import asyncio
import sys

import httpx
import typer
from rich.console import Console
from rich.table import Table

from credgate.cli.http import call, print_response
from credgate.core.exceptions import GatewayError

app = typer.Typer(help="Credential management")


@app.command()
def env(
    provider: str = typer.Argument(..., help="Provider key, e.g. kiro"),
    reveal: bool = typer.Option(False, "--reveal", help="Show secret values unmasked"),
) -> None:
    """Show a provider's environment and credential values (secrets masked)."""
    from credgate.main import app as fastapi_app

    console = Console()
    service = fastapi_app.state.status_service
    asyncio.run(service.manager.startup(watch=False))
    try:
        rows = service.list_env_variables(provider.lower(), reveal=reveal)
    except GatewayError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        sys.exit(1)

    table = Table(title=f"🔑 {provider.lower()}")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Masked")
    for row in rows:
        table.add_row(row.key, row.value, "yes" if row.masked else "")
    console.print(table)


def _post(path: str, url: str | None) -> None:
    console = Console()
    try:
        response, elapsed_ms = call("POST", path, url=url)
    except httpx.HTTPError as e:
        console.print(f"[red]❌ Gateway not reachable: {e}[/red]")
        sys.exit(1)
    print_response(console, response, elapsed_ms)
    if not response.is_success:
        sys.exit(1)


@app.command()
def reload(url: str | None = typer.Option(None, "--url", help="Gateway URL")) -> None:
    """Ask the running gateway to re-read every credential file."""
    _post("/admin/credentials/reload", url)


@app.command()
def refresh(
    provider: str = typer.Argument(..., help="OAuth provider key"),
    url: str | None = typer.Option(None, "--url", help="Gateway URL"),
) -> None:
    """Ask the running gateway to refresh one provider's token now."""
    _post(f"/admin/credentials/{provider.lower()}/refresh", url)
