"""Tests for cfimage.api.models — Pydantic response models.

Tests cover:
- camelCase wire names and omission of unset fields.
- ISO-8601 timestamps.
- Fixed default messages on error bodies.
"""

from __future__ import annotations

from datetime import datetime

from cfimage.api.models import (
    GenerationResponse,
    HealthResponse,
    InternalErrorResponse,
    NotFoundResponse,
    PromptErrorResponse,
    RateLimitResponse,
    to_body,
    utc_timestamp,
)


class TestTimestamp:
    """Test utc_timestamp."""

    def test_iso8601_utc_with_millis(self):
        """Timestamps look like 2024-01-01T12:00:00.000Z."""
        ts = utc_timestamp()
        assert ts.endswith("Z")
        assert len(ts.split(".")[1]) == 4  # three digits of milliseconds plus "Z"
        datetime.fromisoformat(ts.replace("Z", "+00:00"))


class TestGenerationResponse:
    """Test GenerationResponse serialisation."""

    def test_success_body(self):
        body = to_body(
            GenerationResponse(success=True, image="aGk=", prompt="a cat", processing_time_ms=12)
        )
        assert body["success"] is True
        assert body["image"] == "aGk="
        assert body["prompt"] == "a cat"
        assert body["processingTimeMs"] == 12
        assert "timestamp" in body
        assert "error" not in body
        assert "method" not in body

    def test_failure_body_with_method(self):
        body = to_body(
            GenerationResponse(
                success=False,
                error="boom",
                prompt="a cat",
                processing_time_ms=3,
                method="GET",
            )
        )
        assert body["success"] is False
        assert body["error"] == "boom"
        assert body["method"] == "GET"
        assert "image" not in body

    def test_populate_by_alias(self):
        model = GenerationResponse(success=True, processingTimeMs=5)
        assert model.processing_time_ms == 5


class TestErrorBodies:
    """Test the error response models."""

    def test_prompt_error_aliases(self):
        body = to_body(
            PromptErrorResponse(
                error="Invalid prompt",
                message="too short",
                prompt_length=2,
                min_length=3,
                max_length=2000,
            )
        )
        assert body["success"] is False
        assert body["promptLength"] == 2
        assert body["minLength"] == 3
        assert body["maxLength"] == 2000
        assert "received" not in body

    def test_rate_limit_body(self):
        body = to_body(RateLimitResponse(message="slow down", retry_after=30))
        assert body["error"] == "Rate limit exceeded"
        assert body["retryAfter"] == 30

    def test_not_found_body(self):
        body = to_body(NotFoundResponse(message="nope", available_endpoints=["GET /health"]))
        assert body["error"] == "Endpoint not found"
        assert body["availableEndpoints"] == ["GET /health"]

    def test_internal_error_defaults(self):
        body = InternalErrorResponse().model_dump()
        assert body["error"] == "Internal server error"
        assert body["message"] == "An unexpected error occurred while processing your request."

    def test_health_defaults(self):
        assert HealthResponse().status == "OK"
