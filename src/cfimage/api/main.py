"""Cloudflare Image Proxy — FastAPI Application.

This module is the single entry point for the web application.  It defines
the :func:`create_app` factory, the module-level ``app`` instance, all REST
routes, and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
Every generation request runs the same pipeline:

1. **Validation**: :func:`~cfimage.core.validation.validate_prompt` (JSON
   mode) or an inline length check (direct mode).  Failures answer 400.
2. **Rate limiting**: the application's
   :class:`~cfimage.core.rate_limiter.SlidingWindowRateLimiter`, keyed by
   client address.  Denials answer 429.
3. **Upstream call**: :class:`~cfimage.core.upstream.CloudflareImageClient`
   returns a success or a classified failure; failures map to 401/502/500.
4. **Response shaping**: a JSON envelope with a base64 image, or the raw
   PNG bytes for direct mode.

The rate limiter and image client live on ``app.state`` and are injected
through :func:`create_app`, so tests can build isolated applications.

Endpoints
---------
========  =========================  ======================================
Method    Path                       Purpose
========  =========================  ======================================
POST      ``/generate``              JSON body in, JSON + base64 image out
GET       ``/generate/{prompt}``     Prompt in path, raw PNG out
GET       ``/health``                Health check
GET       ``/ping``                  Keep-alive / liveness probe
========  =========================  ======================================

Usage
-----
CLI (installed entry point)::

    cfimage

Direct invocation::

    python -m cfimage.api.main
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import string
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import quote

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from cfimage import __version__
from cfimage.api.models import (
    GenerationResponse,
    HealthResponse,
    InternalErrorResponse,
    NotFoundResponse,
    PingResponse,
    PromptErrorResponse,
    RateLimitResponse,
    to_body,
    utc_timestamp,
)
from cfimage.core.config import ProxyConfig, config
from cfimage.core.keep_alive import keep_alive_loop, ping_url
from cfimage.core.rate_limiter import SlidingWindowRateLimiter
from cfimage.core.upstream import (
    CloudflareImageClient,
    GenerationFailure,
    status_for_failure,
)
from cfimage.core.validation import (
    MAX_PROMPT_LENGTH,
    MIN_PROMPT_LENGTH,
    PromptRejection,
    RejectionReason,
    check_prompt_length,
    validate_prompt,
)

logging.basicConfig(
    level=config.logging_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

AVAILABLE_ENDPOINTS = [
    "POST /generate",
    "GET /generate/:prompt",
    "GET /health",
    "GET /ping",
]

EXAMPLE_PROMPT = "A beautiful landscape with mountains and a lake at sunset"

# Characters echoed verbatim in the X-Generated-Prompt header when the prompt
# has to be percent-encoded.
_HEADER_SAFE_CHARS = string.punctuation.replace("%", "") + " "


# ---------------------------------------------------------------------------
# Small helpers.
# ---------------------------------------------------------------------------


def _elapsed_ms(start: float) -> int:
    """Milliseconds since *start* (a ``time.perf_counter()`` reading)."""
    return int((time.perf_counter() - start) * 1000)


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _preview(prompt: str) -> str:
    """Shorten *prompt* for log lines."""
    return prompt if len(prompt) <= 50 else f"{prompt[:50]}..."


def _header_value(text: str) -> str:
    """Return *text* as a valid header value, percent-encoding it if needed."""
    if text.isascii() and text.isprintable():
        return text
    return quote(text, safe=_HEADER_SAFE_CHARS)


def _prompt_error(status_code: int = 400, **fields) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=to_body(PromptErrorResponse(**fields)))


def _rejection_response(
    rejection: PromptRejection,
    start: float,
    prompt: str | None = None,
) -> JSONResponse:
    """Build the 400 response for a :class:`PromptRejection`.

    *prompt* is the trimmed submitted text; it is echoed for length and
    content rejections, where the input was a string.
    """
    if rejection.reason is RejectionReason.MISSING_FIELD:
        return _prompt_error(
            error="Missing required field: prompt",
            message=rejection.message,
            example={"prompt": EXAMPLE_PROMPT},
            processing_time_ms=_elapsed_ms(start),
        )
    if rejection.reason is RejectionReason.WRONG_TYPE:
        return _prompt_error(
            error="Invalid prompt type",
            message=rejection.message,
            received=rejection.received_type,
            processing_time_ms=_elapsed_ms(start),
        )
    return _prompt_error(
        error="Invalid prompt",
        message=rejection.message,
        prompt=prompt,
        prompt_length=rejection.prompt_length,
        min_length=MIN_PROMPT_LENGTH,
        max_length=MAX_PROMPT_LENGTH,
        processing_time_ms=_elapsed_ms(start),
    )


def _rate_limit_response(
    request: Request,
    prompt: str,
    start: float,
    method: str | None = None,
) -> JSONResponse | None:
    """Record the request with the rate limiter; return a 429 response if denied."""
    limiter: SlidingWindowRateLimiter = request.app.state.rate_limiter
    decision = limiter.admit(_client_key(request))
    if decision.allowed:
        return None

    window = limiter.window_seconds
    per = "minute" if window == 60 else f"{window:g} seconds"
    body = RateLimitResponse(
        message=f"Too many requests. Maximum {limiter.max_requests} requests per {per} allowed.",
        retry_after=decision.retry_after_seconds,
        prompt=prompt,
        processing_time_ms=_elapsed_ms(start),
        method=method,
    )
    return JSONResponse(
        status_code=429,
        content=to_body(body),
        headers={"Retry-After": str(decision.retry_after_seconds)},
    )


def _failure_response(
    failure: GenerationFailure,
    prompt: str,
    start: float,
    method: str | None = None,
) -> JSONResponse:
    """Build the JSON error envelope for an upstream failure."""
    elapsed = _elapsed_ms(start)
    logger.error(f"Image generation failed after {elapsed}ms: {failure.message}")
    body = GenerationResponse(
        success=False,
        error=failure.public_message,
        prompt=prompt,
        processing_time_ms=elapsed,
        method=method,
    )
    return JSONResponse(status_code=status_for_failure(failure.kind), content=to_body(body))


def _payload_too_large(limit: int, start: float) -> JSONResponse:
    logger.warning(f"Request body exceeds {limit} bytes")
    return _prompt_error(
        status_code=413,
        error="Payload too large",
        message=f"Request body must not exceed {limit} bytes.",
        processing_time_ms=_elapsed_ms(start),
    )


async def _read_json_object(request: Request, start: float) -> dict | JSONResponse:
    """Parse the request body as a JSON object, or return a 400/413 response.

    The body is read in chunks and abandoned as soon as it grows past
    ``max_body_bytes``, so oversized uploads are never buffered whole.
    """
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type.lower():
        logger.warning(f"Invalid Content-Type: {content_type or 'none'}")
        return _prompt_error(
            error="Invalid Content-Type",
            message="Request must have Content-Type: application/json",
            received=content_type or "none",
            processing_time_ms=_elapsed_ms(start),
        )

    limit = request.app.state.settings.max_body_bytes
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        return _payload_too_large(limit, start)

    raw = bytearray()
    async for chunk in request.stream():
        raw.extend(chunk)
        if len(raw) > limit:
            return _payload_too_large(limit, start)

    try:
        body = json.loads(raw)
    except ValueError:
        body = None

    if not isinstance(body, dict):
        logger.warning("Request body is not a JSON object")
        return _prompt_error(
            error="Invalid JSON body",
            message="Request body must be a JSON object.",
            example={"prompt": EXAMPLE_PROMPT},
            processing_time_ms=_elapsed_ms(start),
        )
    return body


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------

router = APIRouter()


@router.post("/generate")
async def generate_image(request: Request) -> Response:
    """Generate an image from a JSON body ``{"prompt": "..."}``.

    Returns:
        200 with ``success``, ``image`` (base64), ``prompt``, ``timestamp``
        and ``processingTimeMs``; or a JSON error envelope with status
        400, 401, 413, 429, 500 or 502.
    """
    start = time.perf_counter()

    body = await _read_json_object(request, start)
    if isinstance(body, JSONResponse):
        return body

    raw_prompt = body.get("prompt")
    outcome = validate_prompt(raw_prompt)
    if isinstance(outcome, PromptRejection):
        submitted = raw_prompt.strip() if isinstance(raw_prompt, str) else None
        return _rejection_response(outcome, start, submitted)
    prompt = outcome

    limited = _rate_limit_response(request, prompt, start)
    if limited is not None:
        return limited

    logger.info(f'Generating image for prompt: "{_preview(prompt)}"')
    result = await request.app.state.image_client.generate(prompt)

    if isinstance(result, GenerationFailure):
        return _failure_response(result, prompt, start)

    response_body = GenerationResponse(
        success=True,
        image=result.image_base64,
        prompt=prompt,
        processing_time_ms=_elapsed_ms(start),
    )
    logger.info(f"Image generated successfully in {response_body.processing_time_ms}ms")
    return JSONResponse(content=to_body(response_body))


@router.get("/generate/{prompt:path}")
async def generate_image_direct(request: Request, prompt: str) -> Response:
    """Browser-friendly generation: prompt in the path, PNG bytes out.

    Only the prompt length is checked in this mode; the prohibited-terms
    filter applies to ``POST /generate`` alone.

    Example::

        GET /generate/a%20cute%20cat
    """
    start = time.perf_counter()
    prompt = prompt.strip()

    if check_prompt_length(prompt) is not None:
        logger.warning(f"Direct prompt rejected (length {len(prompt)})")
        return _prompt_error(
            error="Invalid prompt",
            message=(
                f"Prompt must be between {MIN_PROMPT_LENGTH} and "
                f"{MAX_PROMPT_LENGTH} characters long"
            ),
            example="GET /generate/a%20beautiful%20sunset",
            prompt=prompt,
            processing_time_ms=_elapsed_ms(start),
            method="GET",
        )

    limited = _rate_limit_response(request, prompt, start, method="GET")
    if limited is not None:
        return limited

    logger.info(f'Generating image for prompt (GET): "{_preview(prompt)}"')
    result = await request.app.state.image_client.generate(prompt)

    if isinstance(result, GenerationFailure):
        return _failure_response(result, prompt, start, method="GET")

    image = result.image_bytes
    elapsed = _elapsed_ms(start)
    logger.info(f"Image generated successfully in {elapsed}ms")
    return Response(
        content=image,
        media_type="image/png",
        headers={
            "X-Generated-Prompt": _header_value(prompt),
            "X-Processing-Time": str(elapsed),
        },
    )


@router.get("/health")
async def health() -> dict:
    """Health check."""
    return HealthResponse().model_dump()


@router.get("/ping")
async def ping(request: Request) -> dict:
    """Keep-alive endpoint; ``uptime`` is seconds since the app was created."""
    uptime = time.monotonic() - request.app.state.started_at
    return PingResponse(uptime=round(uptime, 3)).model_dump()


# ---------------------------------------------------------------------------
# Exception handlers.
# ---------------------------------------------------------------------------


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render router misses as the 404 catalogue and other HTTP errors as JSON."""
    if exc.status_code in (404, 405):
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        body = NotFoundResponse(
            message=f"The requested endpoint {path} does not exist.",
            available_endpoints=AVAILABLE_ENDPOINTS,
        )
        return JSONResponse(status_code=404, content=to_body(body))

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "timestamp": utc_timestamp()},
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the full error and return a generic 500 body."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content=InternalErrorResponse().model_dump())


# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown.

    On startup:
        Logs the available endpoints, warns about missing Cloudflare
        credentials, and starts the keep-alive task when an external URL is
        configured.

    On shutdown:
        Cancels the keep-alive task.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    settings: ProxyConfig = app.state.settings

    # --- Startup -----------------------------------------------------------
    logger.info("Available endpoints:")
    for endpoint in AVAILABLE_ENDPOINTS:
        logger.info(f"  {endpoint}")

    missing = settings.missing_credentials()
    if missing:
        logger.warning(f"Missing environment variables: {', '.join(missing)}")
        logger.warning("Please ensure these are set for the API to function properly")

    keep_alive_task: asyncio.Task | None = None
    if settings.external_url:
        interval = settings.keep_alive_interval_seconds
        logger.info(f"Keep-alive enabled: pinging {ping_url(settings.external_url)} every {interval:g}s")
        keep_alive_task = asyncio.create_task(
            keep_alive_loop(settings.external_url, interval)
        )

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    if keep_alive_task is not None:
        keep_alive_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await keep_alive_task
        logger.info("Keep-alive task stopped.")


def create_app(
    settings: ProxyConfig | None = None,
    *,
    rate_limiter: SlidingWindowRateLimiter | None = None,
    image_client: CloudflareImageClient | None = None,
) -> FastAPI:
    """Build a FastAPI application with its collaborators.

    Args:
        settings: Configuration; defaults to the global ``config``.
        rate_limiter: Rate limiter shared by both generate endpoints;
            defaults to one built from *settings*.
        image_client: Upstream client; defaults to a
            :class:`CloudflareImageClient` for *settings*.

    Returns:
        The configured application.
    """
    settings = settings or config
    if rate_limiter is None:
        rate_limiter = SlidingWindowRateLimiter(
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.rate_limit_max_requests,
        )
    if image_client is None:
        image_client = CloudflareImageClient(settings)

    app = FastAPI(
        title="Cloudflare Image Proxy",
        description="Text-to-image proxy for Cloudflare Workers AI Stable Diffusion.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter
    app.state.image_client = image_client
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Generated-Prompt", "X-Processing-Time", "Retry-After"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path} - {_client_key(request)}")
        return await call_next(request)

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
    app.include_router(router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~cfimage.core.config.config` (``HOST``
    and ``PORT`` environment variables).  Defaults to ``0.0.0.0:5000``.
    """
    import uvicorn

    logger.info(f"Server running on http://{config.host}:{config.port}")
    uvicorn.run(
        "cfimage.api.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
