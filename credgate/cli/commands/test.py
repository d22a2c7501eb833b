"""Manual probing harness against a running gateway."""

import sys

import httpx
import typer
from rich.console import Console

from credgate.cli.http import call, print_response, server_url

app = typer.Typer(help="Send test requests to a running gateway")

DEFAULT_PROMPT = "Reply with the single word: pong"

URL_OPTION = typer.Option(None, "--url", help="Gateway URL (defaults to HOST/PORT)")


def _call_gateway(method: str, path: str, url: str | None, payload: dict | None = None) -> None:
    console = Console()
    console.print(f"[bold cyan]{method} {server_url(url)}{path}[/bold cyan]")
    try:
        response, elapsed_ms = call(method, path, url=url, payload=payload)
    except httpx.HTTPError as e:
        console.print(f"[red]❌ Request failed: {e}[/red]")
        sys.exit(1)
    print_response(console, response, elapsed_ms)
    if not response.is_success:
        sys.exit(1)


@app.command()
def health(url: str | None = URL_OPTION) -> None:
    """GET /health."""
    _call_gateway("GET", "/health", url)


@app.command()
def models(url: str | None = URL_OPTION) -> None:
    """GET /v1/models."""
    _call_gateway("GET", "/v1/models", url)


@app.command()
def chat(
    model: str = typer.Option(..., "--model", "-m", help="Model (or provider:model)"),
    prompt: str = typer.Option(DEFAULT_PROMPT, "--prompt", "-p"),
    max_tokens: int = typer.Option(64, "--max-tokens"),
    url: str | None = URL_OPTION,
) -> None:
    """POST /v1/chat/completions with one user message."""
    payload = {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    _call_gateway("POST", "/v1/chat/completions", url, payload)


@app.command()
def messages(
    model: str = typer.Option(..., "--model", "-m", help="Model (or provider:model)"),
    prompt: str = typer.Option(DEFAULT_PROMPT, "--prompt", "-p"),
    max_tokens: int = typer.Option(64, "--max-tokens"),
    url: str | None = URL_OPTION,
) -> None:
    """POST /v1/messages with one user message."""
    payload = {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    _call_gateway("POST", "/v1/messages", url, payload)
