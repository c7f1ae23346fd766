"""
Anthropic API client utilities for TestFlow AI.

Wraps the async Anthropic client and normalizes a messages response into a
ModelResponse (text + finish reason). Retrying is owned by the caller, which
also needs to react to unparseable output, see utils.test_generator.
"""

import logging
from typing import Optional

import anthropic

from config import get_anthropic_api_key, get_anthropic_model, settings
from models import FinishReason, ModelResponse

logger = logging.getLogger(__name__)

# Lazy initialization of Anthropic client
_anthropic_client: Optional[anthropic.AsyncAnthropic] = None

# Errors worth another attempt: network failures, timeouts, rate limits, 5xx
TRANSIENT_API_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


def get_anthropic_client() -> anthropic.AsyncAnthropic:
    """Get or create the Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = anthropic.AsyncAnthropic(
            api_key=get_anthropic_api_key() or None,
            base_url=settings.ANTHROPIC_BASE_URL or None,
        )
    return _anthropic_client


def to_model_response(message) -> ModelResponse:
    """Flatten the text blocks of a message and map its stop reason."""
    text = "".join(
        getattr(block, "text", "") or ""
        for block in (message.content or [])
        if getattr(block, "type", "text") == "text"
    )
    finish_reason = (
        FinishReason.LENGTH
        if getattr(message, "stop_reason", None) == "max_tokens"
        else FinishReason.STOP
    )
    return ModelResponse(text=text, finish_reason=finish_reason)


async def call_model(
    prompt: str,
    temperature: float,
    max_tokens: Optional[int] = None,
    client: Optional[anthropic.AsyncAnthropic] = None,
) -> ModelResponse:
    """
    Send a single-turn prompt to the model.

    Args:
        prompt: Full user prompt
        temperature: Sampling temperature for this attempt
        max_tokens: Response token ceiling (defaults to MAX_TOKENS)
        client: Optional client override

    Returns:
        ModelResponse with the concatenated text and finish reason

    Raises:
        anthropic.APIError: On transport or API failures (caller decides on retry)
    """
    client = client or get_anthropic_client()

    message = await client.messages.create(
        model=get_anthropic_model(),
        max_tokens=max_tokens or settings.MAX_TOKENS,
        temperature=temperature,
        messages=[
            {
                "role": "user",
                "content": prompt,
            }
        ],
    )

    return to_model_response(message)
