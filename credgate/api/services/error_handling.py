"""Structured error bodies in the caller's wire format.

Chat-completion callers (and the model listing) get the OpenAI shape:
    {"error": {"message": ..., "type": ..., "code": ...}}
Everyone else gets the Anthropic shape:
    {"type": "error", "error": {"type": ..., "message": ...}}
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from fastapi.responses import JSONResponse

from credgate.conversion.canonical import WireFormat
from credgate.core.error_types import ErrorType
from credgate.core.exceptions import GatewayError

logger = logging.getLogger(__name__)

_OPENAI_SHAPED_PATHS = ("/v1/chat/completions", "/v1/models")


def wire_for_path(path: str) -> WireFormat:
    return WireFormat.CHAT if path.rstrip("/") in _OPENAI_SHAPED_PATHS else WireFormat.MESSAGES


@dataclass(frozen=True, slots=True)
class ErrorResponseBuilder:
    """Centralized builder for consistent error responses across all endpoints."""

    @staticmethod
    def body(wire: WireFormat, error_type: ErrorType | str, message: str, status_code: int) -> dict[str, Any]:
        type_value = error_type.value if isinstance(error_type, ErrorType) else error_type
        if wire is WireFormat.CHAT:
            return {"error": {"message": message, "type": type_value, "code": status_code}}
        return {"type": "error", "error": {"type": type_value, "message": message}}

    @staticmethod
    def from_exception(exc: GatewayError, wire: WireFormat) -> JSONResponse:
        """Render a GatewayError with the status its class carries."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponseBuilder.body(wire, exc.error_type, exc.message, exc.status_code),
        )

    @staticmethod
    def unauthorized(wire: WireFormat, message: str = "Invalid API key") -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content=ErrorResponseBuilder.body(wire, ErrorType.UNAUTHORIZED, message, 401),
        )

    @staticmethod
    def internal_error(wire: WireFormat, exc: Exception) -> JSONResponse:
        """Build a 500 response for an unexpected exception (logged with traceback)."""
        logger.exception(f"Unexpected error: {exc}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponseBuilder.body(
                wire, ErrorType.UNEXPECTED_ERROR, f"Unexpected error: {type(exc).__name__}", 500
            ),
        )

    @staticmethod
    def sse_error_event(wire: WireFormat, exc: Exception) -> str:
        """Final error event for a stream that fails after it started."""
        if isinstance(exc, GatewayError):
            error_type, message, status = exc.error_type, exc.message, exc.status_code
        else:
            error_type, message, status = ErrorType.STREAMING_ERROR, str(exc) or type(exc).__name__, 500
        body = ErrorResponseBuilder.body(wire, error_type, message, status)
        if wire is WireFormat.CHAT:
            return f"data: {json.dumps(body, ensure_ascii=False)}\n\ndata: [DONE]\n\n"
        return f"event: error\ndata: {json.dumps(body, ensure_ascii=False)}\n\n"
