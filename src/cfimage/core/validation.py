"""Prompt validation for the image generation endpoints.

Validation never raises.  :func:`validate_prompt` returns either the canonical
(trimmed) prompt string or a :class:`PromptRejection` describing why the input
was refused, so the HTTP layer can turn the outcome into a 400 response without
try/except control flow.

Rules
-----
1. The prompt must be present (``None`` and ``""`` count as absent).
2. The prompt must be a string.
3. After trimming, its length must be within ``[MIN_PROMPT_LENGTH, MAX_PROMPT_LENGTH]``.
4. It must not contain any of :data:`PROHIBITED_TERMS` (case-insensitive
   substring match).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

MIN_PROMPT_LENGTH = 3
MAX_PROMPT_LENGTH = 2000

PROHIBITED_TERMS: frozenset[str] = frozenset({"nsfw", "explicit", "gore", "violence"})

# Python types as they appear to a JSON client.
_JSON_TYPE_NAMES: dict[type, str] = {
    bool: "boolean",
    int: "number",
    float: "number",
    list: "array",
    dict: "object",
}


class RejectionReason(str, Enum):
    """Why a prompt was refused."""

    MISSING_FIELD = "missing_field"
    WRONG_TYPE = "wrong_type"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    PROHIBITED_CONTENT = "prohibited_content"


@dataclass(frozen=True)
class PromptRejection:
    """A refused prompt.

    Attributes:
        reason: Machine-readable rejection category.
        message: Human-readable explanation, safe to return to the client.
        received_type: JSON type name of the input (``WRONG_TYPE`` only).
        prompt_length: Trimmed length of the input (length/content reasons only).
    """

    reason: RejectionReason
    message: str
    received_type: str | None = None
    prompt_length: int | None = field(default=None)


def json_type_name(value: Any) -> str:
    """Return the JSON type name of *value* (``"number"``, ``"array"``, ...)."""
    return _JSON_TYPE_NAMES.get(type(value), type(value).__name__)


def contains_prohibited_term(text: str) -> bool:
    """Return ``True`` if *text* contains any prohibited term, ignoring case."""
    lowered = text.lower()
    return any(term in lowered for term in PROHIBITED_TERMS)


def check_prompt_length(prompt: str) -> PromptRejection | None:
    """Check the trimmed length of *prompt* against the allowed range.

    Args:
        prompt: Raw prompt text (trimmed internally).

    Returns:
        ``None`` if the length is acceptable, otherwise a ``TOO_SHORT`` or
        ``TOO_LONG`` rejection.
    """
    length = len(prompt.strip())
    if length < MIN_PROMPT_LENGTH:
        return PromptRejection(
            reason=RejectionReason.TOO_SHORT,
            message=f"Prompt must be at least {MIN_PROMPT_LENGTH} characters long",
            prompt_length=length,
        )
    if length > MAX_PROMPT_LENGTH:
        return PromptRejection(
            reason=RejectionReason.TOO_LONG,
            message=f"Prompt must not exceed {MAX_PROMPT_LENGTH} characters",
            prompt_length=length,
        )
    return None


def validate_prompt(raw: Any) -> str | PromptRejection:
    """Validate a raw prompt value taken from a request body.

    Args:
        raw: The value of the ``prompt`` field, or ``None`` if it was absent.

    Returns:
        The trimmed prompt on success, otherwise a :class:`PromptRejection`.
    """
    if raw is None or raw == "":
        logger.warning("Request missing prompt field")
        return PromptRejection(
            reason=RejectionReason.MISSING_FIELD,
            message=(
                'Request body must include a "prompt" field with the text '
                "description for image generation."
            ),
        )

    if not isinstance(raw, str):
        received = json_type_name(raw)
        logger.warning(f"Invalid prompt type: {received}")
        return PromptRejection(
            reason=RejectionReason.WRONG_TYPE,
            message='The "prompt" field must be a string.',
            received_type=received,
        )

    prompt = raw.strip()

    rejection = check_prompt_length(prompt)
    if rejection is None and contains_prohibited_term(prompt):
        rejection = PromptRejection(
            reason=RejectionReason.PROHIBITED_CONTENT,
            message="Prompt contains prohibited content or invalid characters",
            prompt_length=len(prompt),
        )

    if rejection is not None:
        logger.warning(f"Prompt validation failed: {rejection.message}")
        return rejection

    logger.debug("Prompt validation passed")
    return prompt
