"""Server commands for the credgate CLI."""

import asyncio
import sys

import httpx
import typer
from rich.console import Console
from rich.table import Table

from credgate.cli.http import call, server_url
from credgate.core.config import config


def start(
    host: str = typer.Option(None, "--host", help="Override host"),
    port: int = typer.Option(None, "--port", help="Override port"),
) -> None:
    """Start the gateway and serve until Ctrl+C."""
    from credgate.core.exceptions import ServerStartError
    from credgate.main import serve

    console = Console()
    server_host = host or config.host
    server_port = config.port if port is None else port

    table = Table(title="credgate configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Server URL", f"http://{server_host}:{server_port}")
    table.add_row("API Key", config.api_key_hash)
    table.add_row("Default provider", f"{config.default_provider} ({config.default_provider_source})")
    table.add_row("Request timeout", f"{config.request_timeout}s")
    console.print(table)

    try:
        asyncio.run(serve(server_host, server_port))
    except ServerStartError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        sys.exit(1)


def status(url: str | None = typer.Option(None, "--url", help="Gateway URL")) -> None:
    """Show the status of a running gateway."""
    console = Console()
    try:
        response, _ = call("GET", "/admin/status", url=url, timeout=10.0)
    except httpx.HTTPError:
        console.print(f"[yellow]⏹  No gateway answering at {server_url(url)}[/yellow]")
        sys.exit(1)
    if not response.is_success:
        console.print(f"[red]❌ HTTP {response.status_code}: {response.text}[/red]")
        sys.exit(1)

    data = response.json()
    table = Table(title="📡 Gateway status")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Running", "✅" if data.get("running") else "❌")
    table.add_row("Address", f"{data.get('host')}:{data.get('port')}")
    table.add_row("Started", str(data.get("started_at")))
    table.add_row("Uptime", f"{data.get('uptime_seconds', 0):.0f}s")
    table.add_row("Requests", str(data.get("request_count")))
    table.add_row("Default provider", str(data.get("default_provider")))
    table.add_row("Available", ", ".join(data.get("providers") or []) or "-")
    console.print(table)

    failover = data.get("failover") or {}
    if failover:
        health = Table(title="Provider health")
        health.add_column("Provider", style="cyan")
        health.add_column("State")
        health.add_column("Failures")
        health.add_column("Last error")
        for key, entry in failover.items():
            health.add_row(
                key, entry.get("state", ""), str(entry.get("consecutive_failures", 0)), entry.get("last_error") or ""
            )
        console.print(health)


def providers() -> None:
    """Load the configured providers locally and print their readiness."""
    manager = config.provider_manager
    asyncio.run(manager.startup(watch=False))
    manager.print_provider_summary(Console())
