"""Tests for chat messages and conversations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from boundedchat.chat.message_model import (
    DEFAULT_SUMMARY,
    Attachment,
    Conversation,
    ConversationChange,
    Message,
)


def test_attachment_from_fields_is_all_or_nothing() -> None:
    assert Attachment.from_fields() is None
    assert Attachment.from_fields("t", "d", "th") == Attachment(title="t", description="d", thumbnail="th")
    with pytest.raises(ValueError):
        Attachment.from_fields("t", None, "th")


def test_message_rejects_unknown_role() -> None:
    with pytest.raises(ValueError):
        Message(role="tool", content="nope")  # type: ignore[arg-type]


def test_new_conversation_has_placeholder_summary() -> None:
    conversation = Conversation.new()

    assert conversation.summary == DEFAULT_SUMMARY
    assert len(conversation) == 0
    assert conversation.last_message is None
    assert conversation.last_message_timestamp is None


def test_append_preserves_order_and_rejects_older_timestamps() -> None:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    conversation = Conversation()
    first = conversation.append(Message(role="user", content="a", timestamp=now))
    second = conversation.append(Message(role="assistant", content="b", timestamp=now + timedelta(seconds=1)))

    with pytest.raises(ValueError):
        conversation.append(Message(role="user", content="late", timestamp=now - timedelta(seconds=1)))

    assert conversation.messages == [first, second]
    assert conversation.last_message_timestamp == second.timestamp


def test_messages_property_returns_a_copy(make_conversation) -> None:
    conversation = make_conversation(("user", "hi"))

    conversation.messages.clear()

    assert len(conversation) == 1


def test_listeners_receive_appends_and_summary_replacements() -> None:
    conversation = Conversation()
    changes: list[ConversationChange] = []
    conversation.subscribe(changes.append)

    message = conversation.append(Message(role="user", content="hello"))
    conversation.replace_summary("Greetings.")
    conversation.unsubscribe(changes.append)
    conversation.append(Message(role="assistant", content="ignored"))

    assert [change.kind for change in changes] == ["message_appended", "summary_replaced"]
    assert changes[0].message == message
    assert changes[1].summary == "Greetings."


def test_snapshot_reads_messages_and_summary_together(make_conversation) -> None:
    conversation = make_conversation(("user", "hi"), summary="Hi.")

    messages, summary = conversation.snapshot()

    assert [message.content for message in messages] == ["hi"]
    assert summary == "Hi."


def test_serialization_keeps_attachment_and_order(make_conversation) -> None:
    conversation = make_conversation(("user", "see https://example.com"), summary="Links.")
    conversation.append(
        Message(
            role="assistant",
            content="Here it is",
            attachment=Attachment(title="Example", description="Demo", thumbnail="https://example.com/i.png"),
        )
    )

    restored = Conversation.from_dict(conversation.to_dict())

    assert restored.id == conversation.id
    assert restored.summary == "Links."
    assert restored.messages == conversation.messages
    assert restored.sorted_messages == restored.messages
