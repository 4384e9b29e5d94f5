"""Tests for prompt rendering."""

from __future__ import annotations

from boundedchat.ai.ai_types import ContextMode
from boundedchat.ai.prompts import NO_MESSAGE, NO_SUMMARY, PromptBuilder, session_instructions
from boundedchat.chat.message_model import Attachment, Conversation

from tests.helpers import EXAMPLE_ATTACHMENT


def test_session_instructions_describe_roles() -> None:
    text = session_instructions()

    assert "helpful chatbot" in text
    assert "user, assistant or system" in text
    assert PromptBuilder().session_instructions() == text


def test_full_response_prompt_embeds_entire_history(make_conversation) -> None:
    conversation = make_conversation(("user", "What is Rust?"), ("assistant", "A language."), ("user", "Tell me more"))

    prompt = PromptBuilder().build_response_prompt(ContextMode.FULL, conversation)

    assert "Role: user\nContent: What is Rust?" in prompt
    assert "Role: assistant\nContent: A language." in prompt
    assert "Respond with the assistant role" in prompt
    assert "Don't include any attachment property" in prompt


def test_summary_response_prompt_uses_summary_and_last_message_only(make_conversation) -> None:
    conversation = make_conversation(
        ("user", "older question"),
        ("assistant", "older answer"),
        ("user", "newest question"),
        summary="Rust ownership basics.",
    )

    prompt = PromptBuilder().build_response_prompt(ContextMode.SUMMARY, conversation)

    assert "Rust ownership basics." in prompt
    assert "newest question" in prompt
    assert "older question" not in prompt
    assert "older answer" not in prompt


def test_summary_mode_on_empty_conversation_uses_placeholders() -> None:
    builder = PromptBuilder()

    response_prompt = builder.build_response_prompt(ContextMode.SUMMARY, Conversation())
    summary_prompt = builder.build_summary_prompt(ContextMode.SUMMARY, Conversation())

    for prompt in (response_prompt, summary_prompt):
        assert NO_SUMMARY in prompt
        assert NO_MESSAGE in prompt


def test_tool_result_is_offered_as_attachment(make_conversation) -> None:
    conversation = make_conversation(("user", "look at https://example.com"))

    prompt = PromptBuilder().build_response_prompt(ContextMode.FULL, conversation, EXAMPLE_ATTACHMENT)

    assert f"Title: {EXAMPLE_ATTACHMENT.title}" in prompt
    assert f"Description: {EXAMPLE_ATTACHMENT.description}" in prompt
    assert f"Thumbnail: {EXAMPLE_ATTACHMENT.thumbnail}" in prompt
    assert "Don't include any attachment property" not in prompt


def test_full_summary_prompt_asks_for_topic_first_summary(make_conversation) -> None:
    conversation = make_conversation(("user", "How do I handle errors in Swift?"))

    prompt = PromptBuilder().build_summary_prompt(ContextMode.FULL, conversation)

    assert "1-2 sentence summary" in prompt
    assert "Start directly with the topic itself." in prompt
    assert "The conversation is about" in prompt  # quoted as a phrase to avoid
    assert "Content: How do I handle errors in Swift?" in prompt


def test_incremental_summary_prompt_merges_previous_summary(make_conversation) -> None:
    conversation = make_conversation(
        ("user", "first"),
        ("assistant", "second"),
        summary="Swift error handling.",
    )

    prompt = PromptBuilder().build_summary_prompt(ContextMode.SUMMARY, conversation)

    assert "Previous summary:\nSwift error handling." in prompt
    assert "Latest message:\nsecond" in prompt
    assert "first" not in prompt


def test_builder_accepts_attachment_instances_from_any_source() -> None:
    attachment = Attachment(title="T", description="D", thumbnail="https://t/x.png")
    conversation = Conversation()

    prompt = PromptBuilder().build_response_prompt(ContextMode.FULL, conversation, attachment)

    assert "Title: T" in prompt
