"""Prompt templates for response and summary turns.

The builder only renders text. It never talks to the backend and accepts
any well-formed conversation, including an empty one.
"""

from __future__ import annotations

from ..chat.message_model import Attachment, Conversation
from .ai_types import ContextMode
from .services.context_policy import render_history

NO_SUMMARY = "No summary available"
NO_MESSAGE = "No message available"
SUMMARY_EXAMPLE = "Swift programming techniques and best practices for error handling."
META_PHRASE_WARNING = 'DO NOT start with phrases like "The conversation is about" or "The discussion covers".'


def session_instructions() -> str:
    """System prompt sent with every request of a session."""

    return """You're a helpful chatbot. The user will send you messages, and you'll respond to them.
Be short, it's a chat application.
You can also summarize the conversation when asked to.
Each message will have a role, either user, assistant or system for initial conversation configuration."""


def _attachment_section(tool_result: Attachment | None) -> str:
    if tool_result is None:
        return (
            "There is no analysed URL for this message.\n"
            "Don't include any attachment property in the response."
        )
    return f"""The user's message contains a URL that was analysed for you:
Title: {tool_result.title}
Description: {tool_result.description}
Thumbnail: {tool_result.thumbnail}
Add this web page as the attachment of the message, copying these values exactly."""


class PromptBuilder:
    """Renders the instructions for respond and summarize turns."""

    def session_instructions(self) -> str:
        return session_instructions()

    def build_response_prompt(
        self,
        mode: ContextMode,
        conversation: Conversation,
        tool_result: Attachment | None = None,
    ) -> str:
        messages, summary = conversation.snapshot()
        if mode is ContextMode.FULL:
            context = f"Here is the conversation history:\n{render_history(messages)}"
        else:
            last = messages[-1].content if messages else NO_MESSAGE
            context = (
                f"Here is the conversation summary:\n{summary or NO_SUMMARY}\n"
                f"And the last message from the user:\n{last}"
            )
        return (
            f"{context}\n"
            "Respond with the assistant role to the user last message.\n"
            f"{_attachment_section(tool_result)}"
        )

    def build_summary_prompt(self, mode: ContextMode, conversation: Conversation) -> str:
        messages, summary = conversation.snapshot()
        if mode is ContextMode.FULL:
            return f"""Write a 1-2 sentence summary of what was discussed.
Start directly with the topic itself.
Example: "{SUMMARY_EXAMPLE}"
{META_PHRASE_WARNING}

Conversation to summarize:
{render_history(messages)}"""
        last = messages[-1].content if messages else NO_MESSAGE
        return f"""Update the summary to include new information, keeping it to 1-2 sentences.
Start directly with the topic itself.
{META_PHRASE_WARNING}

Previous summary:
{summary or NO_SUMMARY}

Latest message:
{last}"""


__all__ = ["NO_MESSAGE", "NO_SUMMARY", "PromptBuilder", "session_instructions"]
