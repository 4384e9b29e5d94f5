"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from boundedchat.chat.message_model import Conversation, Message
from boundedchat.services import telemetry


@pytest.fixture
def make_conversation():
    """Build a conversation from ``(role, content)`` pairs with increasing timestamps."""

    def _factory(*turns: tuple[str, str], summary: str | None = None) -> Conversation:
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        messages = [
            Message(role=role, content=content, timestamp=start + timedelta(seconds=index))  # type: ignore[arg-type]
            for index, (role, content) in enumerate(turns)
        ]
        return Conversation(messages, summary=summary)

    return _factory


@pytest.fixture(autouse=True)
def _reset_telemetry_listeners():
    yield
    telemetry.clear_event_listeners()
