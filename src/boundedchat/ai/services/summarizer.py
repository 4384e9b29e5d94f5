"""Rolling conversation summary maintained through the generative backend."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Callable

from ...chat.message_model import Conversation
from ..ai_types import ContextMode, GenerativeBackend
from ..errors import FinalizationError
from ..streaming import AssemblyStream

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..prompts import PromptBuilder

LOGGER = logging.getLogger(__name__)

MAX_SUMMARY_SENTENCES = 2
_META_PREFIX_PATTERN = re.compile(
    r"^\s*(?:summary\s*:\s*|(?:this|the)\s+(?:conversation|discussion|chat|exchange)\s+"
    r"(?:is\s+about|was\s+about|covers|covered|discusses|discussed|focuses\s+on|revolves\s+around|concerns)\s*:?\s*)",
    re.IGNORECASE,
)
_SENTENCE_END = re.compile(r"""[.!?]['")\]”’]*$""")
# "e.g.", "i.e.", "a.m." and common titles do not end a sentence
_DOTTED_ABBREVIATION = re.compile(r"^\(?[a-z](?:\.[a-z])+\.$", re.IGNORECASE)
_ABBREVIATIONS = frozenset({"etc.", "vs.", "approx.", "mr.", "mrs.", "ms.", "dr.", "st.", "cf."})

SummaryStream = AssemblyStream[str, str]


def normalize_summary(text: str) -> str:
    """Trim backend output into a 1-2 sentence, topic-first summary."""

    condensed = " ".join((text or "").split()).strip().strip("\"'“”").strip()
    previous = None
    while previous != condensed:
        previous = condensed
        condensed = _META_PREFIX_PATTERN.sub("", condensed, count=1).strip()
    if not condensed:
        return ""
    sentences = _split_sentences(condensed)
    condensed = " ".join(sentences[:MAX_SUMMARY_SENTENCES])
    return condensed[0].upper() + condensed[1:]


def _split_sentences(text: str) -> list[str]:
    sentences: list[str] = []
    current: list[str] = []
    for word in text.split(" "):
        current.append(word)
        if _ends_sentence(word):
            sentences.append(" ".join(current))
            current = []
    if current:
        sentences.append(" ".join(current))
    return sentences


def _ends_sentence(word: str) -> bool:
    if not _SENTENCE_END.search(word):
        return False
    lowered = word.lower()
    return lowered not in _ABBREVIATIONS and not _DOTTED_ABBREVIATION.match(lowered)


class SummaryAssembler:
    """Accumulates streamed summary text; the trimmed text is the result."""

    def __init__(self) -> None:
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    def accept(self, event: Any) -> str | None:
        event_type = getattr(event, "type", None)
        if event_type == "content.delta":
            snapshot = getattr(event, "snapshot", None)
            delta = getattr(event, "content", None) or ""
            updated = snapshot if isinstance(snapshot, str) else self._text + delta
            if updated == self._text:
                return None
            self._text = updated
            return updated
        if event_type == "content.done":
            content = getattr(event, "content", None)
            if isinstance(content, str) and content != self._text:
                self._text = content
                return content
            return None
        if event_type == "refusal.done":
            raise FinalizationError(f"Backend refused to summarize: {getattr(event, 'content', '') or 'no reason'}")
        return None

    def finalize(self) -> str:
        summary = normalize_summary(self._text)
        if not summary:
            raise FinalizationError("Backend returned an empty summary")
        return summary

    def discard(self) -> None:
        self._text = ""


class SummaryUpdater:
    """Streams a new running summary and swaps it into the conversation.

    FULL mode re-summarizes the whole history; SUMMARY mode merges the
    previous summary with the latest message only. The conversation's
    summary is replaced in one step after the stream completes.
    """

    def __init__(self, backend: GenerativeBackend, prompt_builder: PromptBuilder) -> None:
        self._backend = backend
        self._prompts = prompt_builder

    def prompt(self, mode: ContextMode, conversation: Conversation) -> str:
        return self._prompts.build_summary_prompt(mode, conversation)

    def update(
        self,
        mode: ContextMode,
        conversation: Conversation,
        *,
        prompt: str | None = None,
        on_complete: Callable[[str], None] | None = None,
        on_failure: Callable[[BaseException], None] | None = None,
    ) -> SummaryStream:
        instructions = prompt if prompt is not None else self.prompt(mode, conversation)
        messages = [
            {"role": "system", "content": self._prompts.session_instructions()},
            {"role": "user", "content": instructions},
        ]

        def _commit(summary: str) -> None:
            conversation.replace_summary(summary)
            LOGGER.debug("Conversation %s summary replaced (%s mode)", conversation.id, mode.value)
            if on_complete is not None:
                on_complete(summary)

        return AssemblyStream(
            events=self._backend.stream_chat(messages),
            assembler=SummaryAssembler(),
            on_complete=_commit,
            on_failure=on_failure,
        )


__all__ = [
    "MAX_SUMMARY_SENTENCES",
    "SummaryAssembler",
    "SummaryStream",
    "SummaryUpdater",
    "normalize_summary",
]
