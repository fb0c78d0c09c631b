"""Framework-independent core of the Cloudflare Image Proxy.

Components, leaves first:

- **config**: ``ProxyConfig`` settings loaded from the environment, plus the
  global ``config`` instance.
- **validation**: ``validate_prompt`` returns the trimmed prompt or a
  ``PromptRejection``.
- **rate_limiter**: ``SlidingWindowRateLimiter``, an in-memory per-client
  sliding-window counter.
- **upstream**: ``CloudflareImageClient``, which calls Workers AI and returns a
  ``GenerationSuccess`` / ``GenerationFailure`` result.
- **keep_alive**: background self-ping for idle-evicting hosts.

Nothing here imports FastAPI; the HTTP layer lives in :mod:`cfimage.api`.
"""

from cfimage.core.config import ProxyConfig, config
from cfimage.core.rate_limiter import RateLimitDecision, SlidingWindowRateLimiter
from cfimage.core.upstream import (
    CloudflareImageClient,
    FailureKind,
    GenerationFailure,
    GenerationResult,
    GenerationSuccess,
    status_for_failure,
)
from cfimage.core.validation import PromptRejection, RejectionReason, validate_prompt

__all__ = [
    "CloudflareImageClient",
    "FailureKind",
    "GenerationFailure",
    "GenerationResult",
    "GenerationSuccess",
    "PromptRejection",
    "ProxyConfig",
    "RateLimitDecision",
    "RejectionReason",
    "SlidingWindowRateLimiter",
    "config",
    "status_for_failure",
    "validate_prompt",
]
