"""Pydantic response models for the Image Proxy API.

The wire format uses camelCase keys (``processingTimeMs``, ``retryAfter``,
``availableEndpoints``) for compatibility with existing clients, while the
Python attributes stay snake_case.  Always serialise with :func:`to_body`,
which applies the aliases and drops unset optional fields.

Models
------
GenerationResponse
    Envelope returned by both generate endpoints: the success body of
    ``POST /generate`` and the failure body of both modes.
PromptErrorResponse
    400 body for a rejected prompt or malformed request.
RateLimitResponse
    429 body.
HealthResponse / PingResponse
    Liveness probes.
NotFoundResponse / InternalErrorResponse
    Router misses and unhandled exceptions.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    """Return the current UTC time as ISO-8601 with milliseconds and a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_body(model: BaseModel) -> dict[str, Any]:
    """Serialise *model* to a JSON-ready dict using wire (alias) names."""
    return model.model_dump(by_alias=True, exclude_none=True)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerationResponse(_WireModel):
    """Result envelope of an image generation request.

    Attributes:
        success: ``True`` if an image was produced.
        image: Base64-encoded image (success only).
        error: Human-readable failure description (failure only).
        prompt: The prompt as submitted (trimmed).
        timestamp: ISO-8601 response time.
        processing_time_ms: Wall-clock time spent handling the request.
        method: ``"GET"`` for direct-mode failures, otherwise omitted.
    """

    success: bool
    image: str | None = None
    error: str | None = None
    prompt: str | None = None
    timestamp: str = Field(default_factory=utc_timestamp)
    processing_time_ms: int = Field(..., alias="processingTimeMs")
    method: str | None = None


class PromptErrorResponse(_WireModel):
    """400 body for input that never reached the upstream provider."""

    success: bool = False
    error: str
    message: str
    timestamp: str = Field(default_factory=utc_timestamp)
    example: Any = None
    received: str | None = None
    prompt: str | None = None
    prompt_length: int | None = Field(default=None, alias="promptLength")
    min_length: int | None = Field(default=None, alias="minLength")
    max_length: int | None = Field(default=None, alias="maxLength")
    processing_time_ms: int | None = Field(default=None, alias="processingTimeMs")
    method: str | None = None


class RateLimitResponse(_WireModel):
    """429 body; ``method`` is ``"GET"`` for direct-mode denials."""

    success: bool = False
    error: str = "Rate limit exceeded"
    message: str
    retry_after: int = Field(..., alias="retryAfter")
    prompt: str | None = None
    timestamp: str = Field(default_factory=utc_timestamp)
    processing_time_ms: int | None = Field(default=None, alias="processingTimeMs")
    method: str | None = None


class HealthResponse(BaseModel):
    """``GET /health`` body."""

    status: str = "OK"
    timestamp: str = Field(default_factory=utc_timestamp)


class PingResponse(BaseModel):
    """``GET /ping`` body; ``uptime`` is in seconds."""

    ping: str = "pong"
    uptime: float
    timestamp: str = Field(default_factory=utc_timestamp)


class NotFoundResponse(_WireModel):
    """404 body listing the routes that do exist."""

    error: str = "Endpoint not found"
    message: str
    available_endpoints: list[str] = Field(..., alias="availableEndpoints")


class InternalErrorResponse(BaseModel):
    """500 body for unhandled exceptions; never carries internal detail."""

    error: str = "Internal server error"
    message: str = "An unexpected error occurred while processing your request."
    timestamp: str = Field(default_factory=utc_timestamp)
