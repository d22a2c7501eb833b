"""Tiny httpx helper shared by the commands that talk to a running server."""

import json
import time
from typing import Any

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from credgate.core.config import config


def server_url(url: str | None = None) -> str:
    if url:
        return url.rstrip("/")
    host = "127.0.0.1" if config.host in ("0.0.0.0", "::") else config.host
    return f"http://{host}:{config.port}"


def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {config.api_key}"} if config.api_key else {}


def call(
    method: str,
    path: str,
    *,
    url: str | None = None,
    payload: dict[str, Any] | None = None,
    timeout: float = 60.0,
) -> tuple[httpx.Response, float]:
    """Issue one request; returns the response and the elapsed milliseconds."""
    start = time.perf_counter()
    response = httpx.request(
        method,
        f"{server_url(url)}{path}",
        json=payload,
        headers=auth_headers(),
        timeout=timeout,
    )
    return response, (time.perf_counter() - start) * 1000


def print_response(console: Console, response: httpx.Response, elapsed_ms: float) -> None:
    style = "green" if response.is_success else "red"
    title = f"[{style}]HTTP {response.status_code}[/{style}]  {elapsed_ms:.0f}ms"
    try:
        body = json.dumps(response.json(), indent=2, ensure_ascii=False)
        renderable: Any = Syntax(body, "json", word_wrap=True)
    except ValueError:
        renderable = response.text
    console.print(Panel(renderable, title=title, expand=False))
