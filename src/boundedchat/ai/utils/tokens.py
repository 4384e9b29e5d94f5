"""Token estimation utilities for context budgeting."""

from __future__ import annotations

from dataclasses import dataclass

# Rough estimation: one token is about 0.75 English words.
WORDS_PER_TOKEN = 0.75


@dataclass(frozen=True, slots=True)
class TokenEstimate:
    """Word and token counts for a block of text."""

    word_count: int
    estimated_token_count: int


def count_words(text: str) -> int:
    """Count whitespace/newline separated words, ignoring empty runs."""

    if not text:
        return 0
    return len(text.split())


def estimate(text: str) -> TokenEstimate:
    """Estimate the number of tokens in a text string.

    The estimate is ``floor(word_count / 0.75)``, computed with integer
    arithmetic so the same input always yields the same count.

    Args:
        text: The text to estimate tokens for.

    Returns:
        A :class:`TokenEstimate` (zero words and tokens for empty text).
    """
    words = count_words(text)
    return TokenEstimate(word_count=words, estimated_token_count=words * 4 // 3)


def estimate_tokens(text: str) -> int:
    """Shortcut returning only the estimated token count."""

    return estimate(text).estimated_token_count


__all__ = ["WORDS_PER_TOKEN", "TokenEstimate", "count_words", "estimate", "estimate_tokens"]
