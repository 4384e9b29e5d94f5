"""Error types raised by the chat session engine."""

from __future__ import annotations

from typing import Any


class ChatEngineError(Exception):
    """Base class for engine failures surfaced to callers."""


class FinalizationError(ChatEngineError):
    """Raised when a turn cannot produce a valid message or summary.

    Nothing is written to the conversation when this is raised.
    """

    def __init__(self, reason: str, *, payload: Any | None = None) -> None:
        self.reason = reason
        self.payload = payload
        super().__init__(reason)


class ContextLimitExceededError(FinalizationError):
    """Raised when a rendered prompt is estimated at or above the hard token limit."""

    def __init__(self, estimated_tokens: int, max_tokens: int) -> None:
        self.estimated_tokens = estimated_tokens
        self.max_tokens = max_tokens
        super().__init__(f"Prompt estimated at {estimated_tokens} tokens exceeds the {max_tokens} token limit")


class ResponseTruncatedError(FinalizationError):
    """Raised when the backend stopped generating before the output was complete."""


class StreamCancelledError(ChatEngineError):
    """Raised when the result of a stream the caller already cancelled is requested."""


class StreamInterruptedError(ChatEngineError):
    """Raised when a backend stream fails after increments were already delivered."""


__all__ = [
    "ChatEngineError",
    "ContextLimitExceededError",
    "FinalizationError",
    "ResponseTruncatedError",
    "StreamCancelledError",
    "StreamInterruptedError",
]
