"""Token estimation utilities for directive previews.

Provides lightweight token estimation for dry runs without requiring a
full tokenizer library.
"""

from __future__ import annotations

import math

# Directives are mostly source code, which tokenizes denser than prose
CHARS_PER_TOKEN = 3.5


def estimate_tokens(text: str) -> int:
    """Estimate the number of tokens in a text string.

    Takes the larger of a word-based and a character-based estimate, so
    that both prose and dense code land in a sensible range.

    Args:
        text: The text to estimate tokens for.

    Returns:
        Estimated token count.
    """
    if not text:
        return 0

    by_words = len(text.split()) * 1.3
    by_chars = len(text) / CHARS_PER_TOKEN
    return int(math.ceil(max(by_words, by_chars)))


def format_token_count(tokens: int) -> str:
    """Format a token count for display.

    Args:
        tokens: Number of tokens.

    Returns:
        Human-readable string like "1.2K tokens" or "15 tokens".
    """
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}K tokens"
    return f"{tokens} tokens"
