"""Token counting utility using tiktoken."""

from __future__ import annotations

from functools import lru_cache

import tiktoken

from om_intel.core.logging import get_logger

logger = get_logger(__name__)

# Context window sizes per model family
MODEL_TOKEN_LIMITS = {
    "gpt-4o": 128000,
    "gpt-4.1": 1000000,
    "gpt-4-turbo": 128000,
    "gpt-4": 8192,
    "gpt-3.5-turbo": 16385,
    "claude": 200000,
}

# Default tokens to reserve for response generation
DEFAULT_RESPONSE_RESERVE = 1500


@lru_cache(maxsize=8)
def get_encoding_for_model(model: str) -> tiktoken.Encoding:
    """Get the tokenizer encoding for a model.

    Anthropic models are approximated with ``cl100k_base``.
    """
    model_lower = model.lower()
    if model_lower.startswith(("gpt-", "o1", "o3")):
        try:
            return tiktoken.encoding_for_model(model_lower)
        except KeyError:
            return tiktoken.get_encoding("cl100k_base")
    return tiktoken.get_encoding("cl100k_base")


class TokenCounter:
    """Counts tokens of plain text for one model's tokenizer."""

    def __init__(self, model: str = "gpt-4o-mini"):
        self.model = model

    def __call__(self, text: str) -> int:
        if not text:
            return 0
        return len(get_encoding_for_model(self.model).encode(text))


def count_tokens(messages: list[dict], model: str = "gpt-4o-mini") -> int:
    """Count tokens for a list of chat messages."""
    counter = TokenCounter(model)
    total = sum(counter(m.get("role", "")) + counter(m.get("content", "")) for m in messages)
    return total + 2 if messages else 0


def get_model_token_limit(model: str) -> int:
    """Context window for a model, 8192 when unknown."""
    model_lower = model.lower()
    for model_prefix, limit in MODEL_TOKEN_LIMITS.items():
        if model_prefix in model_lower:
            return limit
    return 8192


def truncate_messages(
    messages: list[dict],
    max_tokens: int,
    model: str = "gpt-4o-mini",
    reserve_tokens: int = DEFAULT_RESPONSE_RESERVE,
) -> list[dict]:
    """Drop the oldest non-system messages until the list fits.

    Leading system messages are always kept; the newest message is kept even
    when it alone exceeds the budget.

    Args:
        messages: List of message dicts
        max_tokens: Context window of the model
        model: Model name for tokenizer selection
        reserve_tokens: Tokens to reserve for response generation

    Returns:
        Truncated list of messages
    """
    if not messages:
        return []

    budget = max_tokens - reserve_tokens
    if count_tokens(messages, model) <= budget:
        return list(messages)

    counter = TokenCounter(model)
    system = []
    for message in messages:
        if message.get("role") != "system":
            break
        system.append(message)
    rest = messages[len(system) :]

    budget -= sum(counter(m.get("content", "")) for m in system)
    kept: list[dict] = []
    used = 0
    for message in reversed(rest):
        size = counter(message.get("content", "")) + counter(message.get("role", ""))
        if kept and used + size > budget:
            break
        kept.insert(0, message)
        used += size

    logger.debug(
        "messages_truncated",
        original_count=len(messages),
        truncated_count=len(system) + len(kept),
    )
    return system + kept
