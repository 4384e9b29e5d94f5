"""Tests for context mode selection."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from boundedchat.ai.ai_types import ContextMode
from boundedchat.ai.services.context_policy import ContextSelector, render_history
from boundedchat.chat.message_model import Conversation, Message


def _single_message_conversation(content_words: int) -> Conversation:
    return Conversation([Message(role="user", content=" ".join(["w"] * content_words))])


def test_render_history_uses_role_content_blocks_in_timestamp_order() -> None:
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    later = Message(role="assistant", content="Hello!", timestamp=base + timedelta(seconds=5))
    earlier = Message(role="user", content="Hi", timestamp=base)

    assert render_history([later, earlier]) == "Role: user\nContent: Hi\n\nRole: assistant\nContent: Hello!"


def test_empty_conversation_is_full_mode_with_zero_estimate() -> None:
    estimate = ContextSelector().evaluate(Conversation())

    assert estimate.mode is ContextMode.FULL
    assert estimate.word_count == 0
    assert estimate.estimated_token_count == 0


def test_safe_limit_boundary_switches_to_summary() -> None:
    selector = ContextSelector()
    # "Role: user Content:" contributes three words to the rendered history.
    at_limit = selector.evaluate(_single_message_conversation(2622))
    below_limit = selector.evaluate(_single_message_conversation(2621))

    assert at_limit.estimated_token_count == 3500
    assert at_limit.mode is ContextMode.SUMMARY
    assert below_limit.estimated_token_count < 3500
    assert below_limit.mode is ContextMode.FULL


def test_estimate_is_recomputed_after_each_append(make_conversation) -> None:
    conversation = make_conversation(("user", "one two three four five"))
    selector = ContextSelector(safe_token_limit=12, max_tokens=100)

    assert selector.select(conversation) is ContextMode.FULL

    conversation.append(Message(role="assistant", content="six seven eight nine ten"))

    assert selector.select(conversation) is ContextMode.SUMMARY


def test_safe_limit_cannot_exceed_max_tokens() -> None:
    with pytest.raises(ValueError):
        ContextSelector(safe_token_limit=5000, max_tokens=4096)


def test_fits_hard_limit_is_strictly_below_max_tokens() -> None:
    selector = ContextSelector(safe_token_limit=3, max_tokens=4)

    assert selector.fits_hard_limit("a b")
    assert not selector.fits_hard_limit("a b c")


def test_estimate_payload_is_serializable() -> None:
    payload = ContextSelector().evaluate(Conversation()).as_payload()

    assert payload == {"word_count": 0, "estimated_token_count": 0, "mode": "full"}
