"""Cloudflare Workers AI client for text-to-image generation.

This module provides :class:`CloudflareImageClient`, the only component that
talks to the upstream provider.  It builds the Workers AI request, sends it
with :mod:`httpx`, and classifies whatever comes back into a
:data:`GenerationResult`.

Result Variant
--------------
``generate()`` never raises for provider or network problems.  It returns
one of:

- :class:`GenerationSuccess`: base64-encoded image bytes.
- :class:`GenerationFailure` with a :class:`FailureKind`:

  ========================  =====================================  ======
  Kind                      Cause                                  Status
  ========================  =====================================  ======
  ``AUTHENTICATION``        Account ID or API token not configured  401
  ``UPSTREAM_REJECTED``     Provider answered with a non-2xx code   502
  ``UNEXPECTED``            Network error, timeout, bad response    500
  ========================  =====================================  ======

:func:`status_for_failure` maps every kind to its HTTP status.

Request Shape
-------------
::

    POST {base_url}/accounts/{account_id}/ai/run/{model}
    Authorization: Bearer {api_token}
    Content-Type: application/json

    {"prompt": "...", "num_steps": 20, "guidance_scale": 7.5, "seed": <0..999999>}

The seed is drawn fresh for every call, so the same prompt can produce a
different image each time.
"""

from __future__ import annotations

import base64
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Union

import httpx

from cfimage import __version__
from cfimage.core.config import ProxyConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fixed generation parameters.
# ---------------------------------------------------------------------------
NUM_STEPS = 20
GUIDANCE_SCALE = 7.5
SEED_UPPER_BOUND = 1_000_000


class FailureKind(str, Enum):
    """Classification of a failed generation."""

    AUTHENTICATION = "authentication"
    UPSTREAM_REJECTED = "upstream_rejected"
    UNEXPECTED = "unexpected"


_STATUS_BY_KIND: dict[FailureKind, int] = {
    FailureKind.AUTHENTICATION: 401,
    FailureKind.UPSTREAM_REJECTED: 502,
    FailureKind.UNEXPECTED: 500,
}

# Messages shown to API clients; the detailed failure message is only logged.
_PUBLIC_MESSAGE_BY_KIND: dict[FailureKind, str] = {
    FailureKind.AUTHENTICATION: "Invalid Cloudflare API credentials",
    FailureKind.UPSTREAM_REJECTED: "Failed to communicate with Cloudflare AI service",
    FailureKind.UNEXPECTED: "Failed to generate image due to an internal error",
}


@dataclass(frozen=True)
class GenerationSuccess:
    """A generated image.

    Attributes:
        image_base64: The raw image bytes, base64-encoded.
    """

    image_base64: str

    @property
    def image_bytes(self) -> bytes:
        """Decode :attr:`image_base64` back to raw bytes."""
        return base64.b64decode(self.image_base64)


@dataclass(frozen=True)
class GenerationFailure:
    """A failed generation.

    Attributes:
        kind: Failure classification.
        message: Detailed description (may contain provider text; log it,
            don't return it).
        http_status: Upstream HTTP status for ``UPSTREAM_REJECTED``,
            otherwise ``None``.
    """

    kind: FailureKind
    message: str
    http_status: int | None = None

    @property
    def public_message(self) -> str:
        """Client-safe description of this failure."""
        return _PUBLIC_MESSAGE_BY_KIND[self.kind]


GenerationResult = Union[GenerationSuccess, GenerationFailure]


def status_for_failure(kind: FailureKind) -> int:
    """Return the HTTP status code the API answers with for *kind*."""
    return _STATUS_BY_KIND[kind]


def extract_error_message(response: httpx.Response) -> str:
    """Pull the first provider error message out of a non-2xx response.

    Cloudflare error bodies look like ``{"errors": [{"message": "..."}]}``.
    Anything else falls back to a generic message naming the status code.

    Args:
        response: The failed upstream response.

    Returns:
        A human-readable error message.
    """
    fallback = f"Cloudflare API request failed with status {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        logger.warning("Failed to parse error response from Cloudflare API")
        return fallback

    errors = data.get("errors") if isinstance(data, dict) else None
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict) and first.get("message"):
            return str(first["message"])
    return fallback


class CloudflareImageClient:
    """Async client for the Workers AI text-to-image endpoint.

    Credentials are read from the configuration on every call rather than at
    construction, so a missing credential turns into a per-request
    ``AUTHENTICATION`` failure instead of a startup crash.

    Args:
        settings: Application configuration (credentials, model, timeout).
        transport: Optional httpx transport; tests pass an
            :class:`httpx.MockTransport` here.
        rng: Random source for seeds.
    """

    def __init__(
        self,
        settings: ProxyConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._rng = rng or random.Random()

    def endpoint_url(self, account_id: str) -> str:
        """Build the Workers AI run URL for *account_id*."""
        base = self._settings.cloudflare_base_url.rstrip("/")
        return f"{base}/accounts/{account_id}/ai/run/{self._settings.cloudflare_model}"

    def build_payload(self, prompt: str) -> dict:
        """Build the JSON request body for *prompt* with a fresh random seed."""
        return {
            "prompt": prompt.strip(),
            "num_steps": NUM_STEPS,
            "guidance_scale": GUIDANCE_SCALE,
            "seed": self._rng.randrange(SEED_UPPER_BOUND),
        }

    def _resolve_credentials(self) -> tuple[str, str] | GenerationFailure:
        account_id = self._settings.cloudflare_account_id
        api_token = self._settings.cloudflare_api_token
        if not account_id:
            return GenerationFailure(
                FailureKind.AUTHENTICATION,
                "CLOUDFLARE_ACCOUNT_ID environment variable is required",
            )
        if not api_token:
            return GenerationFailure(
                FailureKind.AUTHENTICATION,
                "CLOUDFLARE_API_TOKEN environment variable is required",
            )
        return account_id, api_token

    async def generate(self, prompt: str) -> GenerationResult:
        """Generate an image for an already validated *prompt*.

        Args:
            prompt: Canonical prompt text.

        Returns:
            :class:`GenerationSuccess` or :class:`GenerationFailure`.
        """
        credentials = self._resolve_credentials()
        if isinstance(credentials, GenerationFailure):
            logger.error(f"Cloudflare credentials unavailable: {credentials.message}")
            return credentials
        account_id, api_token = credentials

        url = self.endpoint_url(account_id)
        headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
            "User-Agent": f"cfimage-proxy/{__version__}",
        }
        payload = self.build_payload(prompt)

        logger.info(f"Making request to Cloudflare Workers AI: {url}")
        logger.debug(f"Request payload: {payload}")

        try:
            async with httpx.AsyncClient(
                timeout=self._settings.upstream_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, headers=headers, json=payload)

                if not response.is_success:
                    message = extract_error_message(response)
                    logger.error(f"Cloudflare API error ({response.status_code}): {message}")
                    return GenerationFailure(
                        FailureKind.UPSTREAM_REJECTED,
                        message,
                        http_status=response.status_code,
                    )

                image = response.content
        except httpx.TimeoutException:
            timeout = self._settings.upstream_timeout_seconds
            logger.error(f"Cloudflare request timed out after {timeout}s")
            return GenerationFailure(
                FailureKind.UNEXPECTED,
                f"Image generation failed: request timed out after {timeout}s",
            )
        except Exception as e:
            logger.exception("Unexpected error in generate")
            return GenerationFailure(
                FailureKind.UNEXPECTED,
                f"Image generation failed: {e}",
            )

        logger.info(f"Received image data: {round(len(image) / 1024)}KB")
        return GenerationSuccess(base64.b64encode(image).decode("ascii"))
