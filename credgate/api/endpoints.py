import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, Response

from credgate.api.models.requests import ChatCompletionRequest, MessagesRequest, parse_pending_request
from credgate.api.services.streaming import streaming_response
from credgate.core.exceptions import Unauthorized
from credgate.core.logging import ConversationLogger, conversation_logger, logger

router = APIRouter()


async def validate_api_key(
    http_request: Request,
    x_api_key: str | None = Header(None),
    authorization: str | None = Header(None),
) -> None:
    """Validate the client's API key from either x-api-key header or Authorization header."""
    client_api_key = None

    if x_api_key:
        client_api_key = x_api_key
    elif authorization and authorization.startswith("Bearer "):
        client_api_key = authorization[len("Bearer ") :]

    if not http_request.app.state.config.validate_client_api_key(client_api_key):
        logger.warning("Invalid API key provided by client")
        raise Unauthorized()


async def _serve(
    http_request: Request, model_cls: type[ChatCompletionRequest] | type[MessagesRequest]
) -> Response:
    state = http_request.app.state
    # Counted once per authenticated request, before anything can fail
    state.request_counter.increment()
    request_id = str(uuid.uuid4())

    with ConversationLogger.correlation_context(request_id):
        pending = parse_pending_request(
            await http_request.body(), model_cls, state.config.default_max_tokens
        )
        conversation_logger.debug(
            f"📨 {pending.wire.value} request | model={pending.model} stream={pending.stream} "
            f"messages={len(pending.messages)}"
        )
        if pending.stream:
            frames, upstream = await state.gateway.stream(pending, request_id)
            return streaming_response(stream=frames, on_close=upstream.aclose)
        return JSONResponse(await state.gateway.complete(pending, request_id))


@router.post("/v1/chat/completions", response_model=None)
async def create_chat_completion(http_request: Request, _: None = Depends(validate_api_key)) -> Response:
    return await _serve(http_request, ChatCompletionRequest)


@router.post("/v1/messages", response_model=None)
async def create_message(http_request: Request, _: None = Depends(validate_api_key)) -> Response:
    return await _serve(http_request, MessagesRequest)


@router.get("/v1/models")
async def list_models(
    http_request: Request,
    refresh: bool = Query(False, description="Invalidate cached upstream model lists first"),
    _: None = Depends(validate_api_key),
) -> dict[str, Any]:
    """Union of the available providers' catalogs; the first provider listing a model owns it."""
    registry = http_request.app.state.manager.registry
    if refresh:
        registry.refresh_models()

    data: list[dict[str, Any]] = []
    seen: set[str] = set()
    for provider in registry.list():
        models = await registry.models_of(provider.key) if refresh else registry.catalog(provider.key)
        for model_id in models:
            if model_id in seen:
                continue
            seen.add(model_id)
            data.append({"id": model_id, "object": "model", "owned_by": provider.key})
    return {"object": "list", "data": data}


@router.get("/health")
async def health_check(http_request: Request) -> dict[str, Any]:
    """Process liveness; answers 200 whatever the listener status is."""
    server = http_request.app.state.server
    return {
        "status": "ok",
        "server_running": server.status().running,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
