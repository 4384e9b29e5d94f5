"""Shared typing contracts for AI infrastructure."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Literal, Mapping, Protocol

from pydantic import BaseModel, Field

from ..chat.message_model import Attachment


class ContextMode(str, Enum):
    """Which slice of the conversation is sent to the backend."""

    FULL = "full"
    SUMMARY = "summary"


@dataclass(frozen=True, slots=True)
class BackendAvailability:
    """Result of probing whether the generative backend can serve requests."""

    available: bool
    reason: str | None = None

    @classmethod
    def ready(cls) -> BackendAvailability:
        return cls(available=True)

    @classmethod
    def unavailable(cls, reason: str) -> BackendAvailability:
        return cls(available=False, reason=reason)


class AttachmentGenerable(BaseModel):
    """Structured-output schema for a web page preview."""

    title: str = Field(description="Title of the analysed web page")
    thumbnail: str = Field(description="Thumbnail or icon URL of the analysed web page")
    description: str = Field(description="Short description of the analysed web page")


class MessageGenerable(BaseModel):
    """Structured-output schema the backend fills for a response turn."""

    role: Literal["user", "assistant", "system"] = Field(description="Author role of the message")
    content: str = Field(description="Message text")
    attachment: AttachmentGenerable | None = Field(
        default=None,
        description="Web page metadata, only when the user's message contained a URL",
    )


class GenerativeBackend(Protocol):
    """Streaming chat-completions service consumed by the engine."""

    async def check_availability(self) -> BackendAvailability:
        ...

    async def prewarm(self) -> None:
        ...

    def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        response_format: type[Any] | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[Any]:
        ...


class WebAnalyser(Protocol):
    """Fetches title/description/thumbnail metadata for a URL."""

    async def analyse(self, url: str) -> Attachment:
        ...


__all__ = [
    "AttachmentGenerable",
    "BackendAvailability",
    "ContextMode",
    "GenerativeBackend",
    "MessageGenerable",
    "WebAnalyser",
]
