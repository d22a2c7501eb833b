"""HTTP listener lifecycle.

GatewayServer runs uvicorn inside the caller's event loop so the process can
start and stop the listener on demand (CLI, settings UI, tests) instead of
handing the whole process to `uvicorn.run`.
"""

import asyncio
import contextlib
import logging
import signal
import socket
import threading
from collections.abc import Generator
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

import uvicorn

from credgate.core.exceptions import ServerStartError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerStatus:
    """Snapshot of the listener state."""

    running: bool
    host: str
    port: int
    started_at: datetime | None = None
    uptime_seconds: float = 0.0
    request_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        return data


class RequestCounter:
    """Thread-safe monotonic counter of accepted requests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        return self._value

    def reset(self) -> None:
        with self._lock:
            self._value = 0


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to its owner."""

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield

    def install_signal_handlers(self) -> None:
        return None


class GatewayServer:
    """Start/stop wrapper around an embedded uvicorn server.

    The listening socket is bound here, before uvicorn sees it, so a port
    that is in use surfaces as ServerStartError instead of uvicorn exiting
    the process. Port 0 binds an ephemeral port (reported by `status()`).
    """

    def __init__(
        self,
        app: Any,
        host: str = "127.0.0.1",
        port: int = 3001,
        shutdown_grace_seconds: float = 10.0,
        request_counter: RequestCounter | None = None,
        log_level: str = "warning",
    ) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self.request_counter = request_counter or RequestCounter()
        self.log_level = log_level
        self._server: _EmbeddedServer | None = None
        self._task: asyncio.Task[None] | None = None
        self._started_at: datetime | None = None
        self._bound_port: int | None = None
        self._lock: asyncio.Lock | None = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @property
    def running(self) -> bool:
        return (
            self._server is not None
            and self._server.started
            and self._task is not None
            and not self._task.done()
        )

    def status(self) -> ServerStatus:
        """Pure snapshot; safe to call from any thread."""
        started_at = self._started_at
        running = self.running
        uptime = (datetime.now(timezone.utc) - started_at).total_seconds() if running and started_at else 0.0
        return ServerStatus(
            running=running,
            host=self.host,
            port=self._bound_port if running and self._bound_port is not None else self.port,
            started_at=started_at if running else None,
            uptime_seconds=uptime,
            request_count=self.request_counter.value,
        )

    def _bind(self, host: str, port: int) -> socket.socket:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise ServerStartError(f"Cannot bind {host}:{port}: {e.strerror or e}") from e
        return sock

    async def start(self, host: str | None = None, port: int | None = None) -> ServerStatus:
        """Bind and serve; a second call while running returns the current status."""
        async with self._get_lock():
            if self.running:
                _logger.info("Server already running; start() is a no-op")
                return self.status()

            self.host = host or self.host
            self.port = self.port if port is None else port
            sock = self._bind(self.host, self.port)

            server_config = uvicorn.Config(
                self.app,
                host=self.host,
                port=self.port,
                log_level=self.log_level,
                log_config=None,
                access_log=False,
                timeout_graceful_shutdown=max(1, int(round(self.shutdown_grace_seconds))),
            )
            server = _EmbeddedServer(server_config)
            task = asyncio.create_task(server.serve(sockets=[sock]), name="credgate-http-server")

            while not server.started:
                if task.done():
                    sock.close()
                    error = task.exception() if not task.cancelled() else None
                    raise ServerStartError(f"Server failed to start: {error or 'startup aborted'}")
                await asyncio.sleep(0.02)

            self._server = server
            self._task = task
            self._bound_port = sock.getsockname()[1]
            self._started_at = datetime.now(timezone.utc)
            self.request_counter.reset()

            _logger.info(f"🚀 Listening on http://{self.host}:{self._bound_port}")
            return self.status()

    async def stop(self) -> ServerStatus:
        """Stop accepting, drain in-flight requests for at most the grace period, then cancel."""
        async with self._get_lock():
            server, task = self._server, self._task
            if server is None or task is None:
                return self.status()

            server.should_exit = True
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.shutdown_grace_seconds + 1)
            except asyncio.TimeoutError:
                _logger.warning("Graceful shutdown timed out; forcing exit")
                server.force_exit = True
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

            self._server = None
            self._task = None
            self._started_at = None
            self._bound_port = None
            self.request_counter.reset()
            _logger.info("🛑 Server stopped")
            return self.status()

    async def run(self, host: str | None = None, port: int | None = None) -> None:
        """Serve until SIGINT/SIGTERM (or until the server exits on its own)."""
        await self.start(host, port)
        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop_requested.set)

        assert self._task is not None
        waiter = asyncio.create_task(stop_requested.wait())
        try:
            await asyncio.wait({waiter, self._task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)
            await self.stop()
