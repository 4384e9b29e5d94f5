"""Context budget policy deciding between full-history and summary prompts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from ...chat.message_model import Conversation, Message
from ..ai_types import ContextMode
from ..utils.tokens import TokenEstimate, estimate

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4_096
DEFAULT_SAFE_TOKEN_LIMIT = 3_500


def render_history(messages: Sequence[Message]) -> str:
    """Serialize messages into the canonical ``Role:/Content:`` history string."""

    ordered = sorted(messages, key=lambda message: message.timestamp)
    return "\n\n".join(f"Role: {message.role}\nContent: {message.content}" for message in ordered)


@dataclass(frozen=True, slots=True)
class ContextEstimate:
    """Per-turn estimate of the canonical history and the chosen context mode."""

    word_count: int
    estimated_token_count: int
    mode: ContextMode

    def as_payload(self) -> dict[str, object]:
        """Return a telemetry-friendly dictionary for this estimate."""

        return {
            "word_count": self.word_count,
            "estimated_token_count": self.estimated_token_count,
            "mode": self.mode.value,
        }


class ContextSelector:
    """Chooses the context mode for the next backend call.

    The estimate is recomputed from the conversation on every call; the
    conversation mutates between turns so nothing is cached.
    """

    def __init__(
        self,
        *,
        safe_token_limit: int = DEFAULT_SAFE_TOKEN_LIMIT,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        if safe_token_limit > max_tokens:
            raise ValueError("safe_token_limit must not exceed max_tokens")
        self.safe_token_limit = safe_token_limit
        self.max_tokens = max_tokens

    def history(self, conversation: Conversation) -> str:
        return render_history(conversation.messages)

    def evaluate(self, conversation: Conversation) -> ContextEstimate:
        counts = estimate(self.history(conversation))
        mode = ContextMode.SUMMARY if counts.estimated_token_count >= self.safe_token_limit else ContextMode.FULL
        LOGGER.debug(
            "Context estimate: %s words, %s tokens (safe limit %s) -> %s",
            counts.word_count,
            counts.estimated_token_count,
            self.safe_token_limit,
            mode.value,
        )
        return ContextEstimate(
            word_count=counts.word_count,
            estimated_token_count=counts.estimated_token_count,
            mode=mode,
        )

    def select(self, conversation: Conversation) -> ContextMode:
        return self.evaluate(conversation).mode

    def prompt_estimate(self, prompt: str) -> TokenEstimate:
        return estimate(prompt)

    def fits_hard_limit(self, prompt: str) -> bool:
        """Return ``True`` when *prompt* is estimated below ``max_tokens``."""

        return estimate(prompt).estimated_token_count < self.max_tokens


__all__ = [
    "ContextEstimate",
    "ContextSelector",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_SAFE_TOKEN_LIMIT",
    "render_history",
]
