"""Chat session engine sequencing context selection, tools, and streaming."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping

from ...chat.message_model import Attachment, ChatRole, Conversation, Message
from ...services import telemetry
from ...services.settings import Settings
from ...services.telemetry import TelemetrySink, TurnEvent
from ..ai_types import BackendAvailability, ContextMode, GenerativeBackend, MessageGenerable, WebAnalyser
from ..client import AIClient
from ..errors import ContextLimitExceededError
from ..prompts import PromptBuilder
from ..services.context_policy import ContextEstimate, ContextSelector
from ..services.summarizer import SummaryStream, SummaryUpdater
from ..tools.invoker import ToolInvoker
from ..tools.web_analyser import WebAnalyserTool
from .assembler import AssemblyStream, ResponseStream, StreamingResponseAssembler

LOGGER = logging.getLogger(__name__)

TURN_EVENT = "chat.turn"


class ChatSessionEngine:
    """Owns one conversation and runs respond/summarize turns against a backend.

    Every generation-issuing call checks backend availability first and
    returns ``None`` when the backend cannot serve requests. The engine is
    the only writer of the conversation; messages and summaries are only
    committed once their stream finalizes.
    """

    def __init__(
        self,
        conversation: Conversation,
        *,
        backend: GenerativeBackend,
        web_analyser: WebAnalyser | None = None,
        settings: Settings | None = None,
        selector: ContextSelector | None = None,
        prompt_builder: PromptBuilder | None = None,
        telemetry_sink: TelemetrySink | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._conversation = conversation
        self._backend = backend
        self._selector = selector or ContextSelector(
            safe_token_limit=self._settings.safe_token_limit,
            max_tokens=self._settings.max_tokens,
        )
        self._prompts = prompt_builder or PromptBuilder()
        self._tools = ToolInvoker(web_analyser, timeout=self._settings.tool_timeout)
        self._summaries = SummaryUpdater(backend, self._prompts)
        self._telemetry = telemetry_sink
        self._prewarm_task: asyncio.Task[None] | None = None
        self.last_availability: BackendAvailability | None = None

    @classmethod
    def from_settings(cls, conversation: Conversation, settings: Settings, **kwargs: Any) -> ChatSessionEngine:
        """Build an engine with an :class:`AIClient` and web analyser from *settings*."""

        analyser = None
        if settings.web_analyser_enabled:
            analyser = WebAnalyserTool(timeout=settings.tool_timeout, user_agent=settings.user_agent)
        return cls(
            conversation,
            backend=AIClient(settings.client_settings()),
            web_analyser=analyser,
            settings=settings,
            **kwargs,
        )

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def history(self) -> str:
        return self._selector.history(self._conversation)

    def estimate(self) -> ContextEstimate:
        return self._selector.evaluate(self._conversation)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def prewarm(self) -> None:
        """Warm the backend connection in the background; failures are ignored."""

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running event loop; skipping backend prewarm")
            return
        self._prewarm_task = loop.create_task(self._prewarm())

    async def _prewarm(self) -> None:
        try:
            await self._backend.prewarm()
        except Exception as exc:  # pragma: no cover - best-effort optimization
            LOGGER.debug("Backend prewarm failed: %s", exc)

    async def is_available(self) -> bool:
        availability = await self._backend.check_availability()
        self.last_availability = availability
        if not availability.available:
            LOGGER.info("Backend unavailable: %s", availability.reason or "unknown reason")
        return availability.available

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------
    async def respond_to(self) -> ResponseStream | None:
        """Stream an assistant reply to the latest user message."""

        if not await self.is_available():
            self._record("respond", None, outcome="unavailable")
            return None
        estimate = self._selector.evaluate(self._conversation)
        candidate = await self._tools.maybe_invoke(self._latest_user_message())
        prompt = self._prompts.build_response_prompt(estimate.mode, self._conversation, candidate)
        self._ensure_within_hard_limit(prompt, "respond", estimate)
        assembler = StreamingResponseAssembler(attachment_candidate=candidate)
        events = self._backend.stream_chat(self._request(prompt), response_format=MessageGenerable)

        def _commit(message: Message) -> None:
            self._conversation.append(message)
            state = assembler.state
            self._record(
                "respond",
                estimate,
                outcome="completed",
                tool_used=candidate is not None,
                increments=state.sequence if state else 0,
            )

        return AssemblyStream(
            events=events,
            assembler=assembler,
            on_complete=_commit,
            on_failure=self._failure_recorder("respond", estimate),
        )

    async def summarize(self) -> SummaryStream | None:
        """Stream a new running summary of the conversation."""

        if not await self.is_available():
            self._record("summarize", None, outcome="unavailable")
            return None
        estimate = self._selector.evaluate(self._conversation)
        prompt = self._summaries.prompt(estimate.mode, self._conversation)
        self._ensure_within_hard_limit(prompt, "summarize", estimate)
        return self._summaries.update(
            estimate.mode,
            self._conversation,
            prompt=prompt,
            on_complete=lambda _summary: self._record("summarize", estimate, outcome="completed"),
            on_failure=self._failure_recorder("summarize", estimate),
        )

    # ------------------------------------------------------------------
    # Conversation writes
    # ------------------------------------------------------------------
    def send_message(self, role: ChatRole, content: str, attachment: Attachment | None = None) -> Message:
        """Append a message as any role, optionally with web page metadata."""

        message = Message(role=role, content=content, attachment=attachment)
        return self._conversation.append(message)

    def inject_system_message(self, content: str) -> Message:
        return self.send_message("system", content)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _latest_user_message(self) -> Message | None:
        for message in reversed(self._conversation.messages):
            if message.role == "user":
                return message
        return None

    def _request(self, prompt: str) -> list[Mapping[str, Any]]:
        return [
            {"role": "system", "content": self._prompts.session_instructions()},
            {"role": "user", "content": prompt},
        ]

    def _ensure_within_hard_limit(self, prompt: str, kind: str, estimate: ContextEstimate) -> None:
        if self._selector.fits_hard_limit(prompt):
            return
        prompt_tokens = self._selector.prompt_estimate(prompt).estimated_token_count
        LOGGER.warning(
            "%s prompt estimated at %s tokens exceeds the %s token limit (%s mode)",
            kind,
            prompt_tokens,
            self._selector.max_tokens,
            estimate.mode.value,
        )
        self._record(kind, estimate, outcome="context_limit_exceeded")
        raise ContextLimitExceededError(prompt_tokens, self._selector.max_tokens)

    def _failure_recorder(self, kind: str, estimate: ContextEstimate) -> Callable[[BaseException], None]:
        def _on_failure(exc: BaseException) -> None:
            LOGGER.warning("%s turn failed: %s", kind, exc)
            self._record(kind, estimate, outcome="failed")

        return _on_failure

    def _record(
        self,
        kind: str,
        estimate: ContextEstimate | None,
        *,
        outcome: str,
        tool_used: bool = False,
        increments: int = 0,
    ) -> None:
        event = TurnEvent(
            conversation_id=self._conversation.id,
            kind=kind,
            mode=(estimate.mode if estimate else ContextMode.FULL).value,
            estimated_tokens=estimate.estimated_token_count if estimate else 0,
            outcome=outcome,
            tool_used=tool_used,
            increments=increments,
        )
        if self._telemetry is not None:
            self._telemetry.record(event)
        telemetry.emit(TURN_EVENT, event.as_payload())


__all__ = ["ChatSessionEngine", "TURN_EVENT"]
