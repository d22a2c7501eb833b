import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from credgate import __version__
from credgate.api.admin import router as admin_router
from credgate.api.endpoints import router as api_router
from credgate.api.orchestrator.protocol_gateway import ProtocolGateway
from credgate.api.services.error_handling import ErrorResponseBuilder, wire_for_path
from credgate.core.config import Config, config
from credgate.core.exceptions import GatewayError
from credgate.core.logging import conversation_logger
from credgate.core.provider_manager import ProviderManager
from credgate.core.server import GatewayServer, RequestCounter
from credgate.core.status_service import StatusService

logger = logging.getLogger(__name__)


def create_app(
    manager: ProviderManager | None = None,
    app_config: Config | None = None,
    watch_credentials: bool = True,
) -> FastAPI:
    """Build the gateway application.

    Tests pass their own manager and config; the module-level `app` uses the
    process-wide config singleton and its lazily created manager.
    """
    app_config = app_config or config
    manager = manager or app_config.provider_manager

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await manager.startup(watch=watch_credentials)
        if not app_config.api_key:
            logger.warning("CREDGATE_API_KEY is not set: client authentication is disabled")
        try:
            yield
        finally:
            await manager.shutdown()

    app = FastAPI(title="credgate", version=__version__, lifespan=lifespan)

    request_counter = RequestCounter()
    server = GatewayServer(
        app,
        host=app_config.host,
        port=app_config.port,
        shutdown_grace_seconds=app_config.shutdown_grace_seconds,
        request_counter=request_counter,
        log_level=app_config.log_level.split()[0].lower(),
    )
    app.state.config = app_config
    app.state.manager = manager
    app.state.request_counter = request_counter
    app.state.server = server
    app.state.gateway = ProtocolGateway(manager)
    app.state.status_service = StatusService(server, manager, env=app_config.environ)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            conversation_logger.error(f"❌ {exc.error_type.value}: {exc.message}")
        else:
            conversation_logger.info(f"⚠️ {exc.error_type.value}: {exc.message}")
        return ErrorResponseBuilder.from_exception(exc, wire_for_path(request.url.path))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        return ErrorResponseBuilder.internal_error(wire_for_path(request.url.path), exc)

    app.include_router(api_router)
    app.include_router(admin_router)
    return app


app = create_app()


def main() -> None:
    if len(sys.argv) > 1 and sys.argv[1] == "--help":
        print(f"credgate v{__version__}")
        print("")
        print("Usage: python -m credgate.main")
        print("       or: credgate start")
        print("")
        print("Optional environment variables:")
        print("  CREDGATE_API_KEY - Key clients must present (auth disabled if unset)")
        print("  CREDGATE_DEFAULT_PROVIDER - Startup default provider (default: kiro)")
        print("  HOST - Server host (default: 127.0.0.1)")
        print("  PORT - Server port (default: 3001)")
        print("  LOG_LEVEL - Logging level (default: INFO)")
        print("  REQUEST_TIMEOUT - Upstream request timeout in seconds (default: 90)")
        sys.exit(0)

    print(f"🚀 credgate v{__version__}")
    print("✅ Configuration loaded successfully")
    print(f"   API Key : {config.api_key_hash}")
    print(f"   Server  : {config.host}:{config.port}")
    print(f"   Request Timeout : {config.request_timeout}s")
    print(f"   Client API Key Validation: {'Enabled' if config.api_key else 'Disabled'}")
    print("")

    asyncio.run(serve())


async def serve(host: str | None = None, port: int | None = None) -> None:
    """Load credentials, print the provider table and serve until signalled."""
    manager = app.state.manager
    await manager.startup(watch=False)
    manager.print_provider_summary()
    await app.state.server.run(host, port)


if __name__ == "__main__":
    main()
