"""Shared test helpers and stub classes.

Import from here instead of duplicating these stubs in individual test files.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Iterable, Mapping, Sequence

from boundedchat.ai.ai_types import BackendAvailability
from boundedchat.ai.client import AIStreamEvent
from boundedchat.chat.message_model import Attachment


def delta(parsed: Mapping[str, Any] | None, text: str = "") -> AIStreamEvent:
    """Structured ``content.delta`` carrying a partially parsed payload."""

    return AIStreamEvent(type="content.delta", content=text or "x", parsed=parsed)


def done(parsed: Mapping[str, Any] | None) -> AIStreamEvent:
    """Terminal ``content.done`` event for a structured response."""

    return AIStreamEvent(type="content.done", content=json.dumps(parsed), parsed=parsed)


def text_delta(text: str, snapshot: str) -> AIStreamEvent:
    return AIStreamEvent(type="content.delta", content=text, snapshot=snapshot)


def text_done(text: str) -> AIStreamEvent:
    return AIStreamEvent(type="content.done", content=text)


def reply_events(content: str, *, attachment: Mapping[str, str] | None = None) -> list[AIStreamEvent]:
    """Events for an assistant reply streamed word by word."""

    events = [delta({"role": "assistant"})]
    words = content.split(" ")
    for index in range(1, len(words) + 1):
        events.append(delta({"role": "assistant", "content": " ".join(words[:index])}))
    final: dict[str, Any] = {"role": "assistant", "content": content}
    if attachment is not None:
        events.append(delta({**final, "attachment": dict(attachment)}))
        final["attachment"] = dict(attachment)
    events.append(done(final))
    return events


class FakeBackend:
    """Scripted generative backend; each ``stream_chat`` call consumes one script."""

    def __init__(
        self,
        *scripts: Sequence[Any],
        availability: BackendAvailability | None = None,
    ) -> None:
        self.scripts = [list(script) for script in scripts]
        self.availability = availability or BackendAvailability.ready()
        self.calls: list[dict[str, Any]] = []
        self.availability_checks = 0
        self.prewarm_calls = 0
        self.closed_streams = 0

    async def check_availability(self) -> BackendAvailability:
        self.availability_checks += 1
        return self.availability

    async def prewarm(self) -> None:
        self.prewarm_calls += 1

    def stream_chat(self, messages: Iterable[Mapping[str, Any]], *, response_format: Any = None, **kwargs: Any):
        self.calls.append({"messages": list(messages), "response_format": response_format, **kwargs})
        script = self.scripts.pop(0) if self.scripts else []
        return self._stream(script)

    async def _stream(self, script: list[Any]):
        try:
            for event in script:
                if isinstance(event, BaseException):
                    raise event
                await asyncio.sleep(0)
                yield event
        finally:
            self.closed_streams += 1


class FakeAnalyser:
    """Web analyser stub returning a fixed attachment or raising."""

    def __init__(self, result: Attachment | BaseException | None = None, *, delay: float = 0.0) -> None:
        self.result = result
        self.delay = delay
        self.urls: list[str] = []

    async def analyse(self, url: str) -> Attachment:
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result  # type: ignore[return-value]


EXAMPLE_ATTACHMENT = Attachment(
    title="Example Domain",
    description="This domain is for use in illustrative examples.",
    thumbnail="https://example.com/favicon.ico",
)
