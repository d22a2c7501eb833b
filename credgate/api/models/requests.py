"""Inbound wire request models.

Both public shapes are validated with pydantic and turned into the canonical
PendingRequest. Parsing is done from the raw body (not through FastAPI's
body binding) so that every malformed request maps to MalformedRequest and
the structured 400 body, not FastAPI's default 422.
"""

import json
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from credgate.conversion.canonical import CanonicalMessage, PendingRequest, WireFormat
from credgate.core.exceptions import MalformedRequest


class ContentPart(BaseModel):
    """One content part; only `text` parts carry content through the gateway."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: str | None = None


Content = str | list[ContentPart]


def content_text(content: Content | None) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "".join(part.text or "" for part in content if part.type == "text")


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Literal["system", "developer", "user", "assistant"]
    content: Content | None = None


class ChatCompletionRequest(BaseModel):
    """`POST /v1/chat/completions` body (OpenAI shape)."""

    model_config = ConfigDict(extra="allow")

    model: str = Field(min_length=1)
    messages: list[ChatMessage] = Field(min_length=1)
    stream: bool = False
    max_tokens: int | None = Field(default=None, ge=1)
    max_completion_tokens: int | None = Field(default=None, ge=1)
    temperature: float | None = None
    top_p: float | None = None
    stop: str | list[str] | None = None

    def to_pending(self, default_max_tokens: int) -> PendingRequest:
        system_parts = [
            content_text(msg.content) for msg in self.messages if msg.role in ("system", "developer")
        ]
        messages = tuple(
            CanonicalMessage(role=msg.role, content=content_text(msg.content))
            for msg in self.messages
            if msg.role in ("user", "assistant")
        )
        if not messages:
            raise MalformedRequest("messages must contain at least one user or assistant message")

        stop = (self.stop,) if isinstance(self.stop, str) else tuple(self.stop or ())
        return PendingRequest(
            wire=WireFormat.CHAT,
            model=self.model,
            messages=messages,
            max_tokens=self.max_tokens or self.max_completion_tokens or default_max_tokens,
            stream=self.stream,
            system="\n\n".join(part for part in system_parts if part) or None,
            temperature=self.temperature,
            top_p=self.top_p,
            stop_sequences=stop,
        )


class MessageParam(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Literal["user", "assistant"]
    content: Content


class MessagesRequest(BaseModel):
    """`POST /v1/messages` body (Anthropic shape)."""

    model_config = ConfigDict(extra="allow")

    model: str = Field(min_length=1)
    messages: list[MessageParam] = Field(min_length=1)
    max_tokens: int | None = Field(default=None, ge=1)
    system: Content | None = None
    stream: bool = False
    temperature: float | None = None
    top_p: float | None = None
    stop_sequences: list[str] | None = None

    def to_pending(self, default_max_tokens: int) -> PendingRequest:
        return PendingRequest(
            wire=WireFormat.MESSAGES,
            model=self.model,
            messages=tuple(
                CanonicalMessage(role=msg.role, content=content_text(msg.content))
                for msg in self.messages
            ),
            max_tokens=self.max_tokens or default_max_tokens,
            stream=self.stream,
            system=content_text(self.system) or None,
            temperature=self.temperature,
            top_p=self.top_p,
            stop_sequences=tuple(self.stop_sequences or ()),
        )


def _describe(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "body"
        problems.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(problems[:5])


def parse_pending_request(
    body: bytes, model_cls: type[ChatCompletionRequest] | type[MessagesRequest], default_max_tokens: int
) -> PendingRequest:
    """Validate a raw request body into a PendingRequest.

    Raises:
        MalformedRequest: On invalid JSON, wrong types, or missing fields
    """
    try:
        data = json.loads(body or b"null")
    except ValueError as e:
        raise MalformedRequest(f"Request body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedRequest("Request body must be a JSON object")

    try:
        parsed = model_cls.model_validate(data)
    except ValidationError as e:
        raise MalformedRequest(f"Invalid request: {_describe(e)}") from e
    return parsed.to_pending(default_max_tokens)
