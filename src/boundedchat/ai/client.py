"""Async generative backend client for OpenAI-compatible chat endpoints."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, cast

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncOpenAI,
    ContentFilterFinishReasonError,
    LengthFinishReasonError,
    RateLimitError,
)
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from openai.types.chat import ChatCompletionMessageParam
from openai.types.chat.completion_create_params import ResponseFormat
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .ai_types import BackendAvailability
from .errors import FinalizationError, ResponseTruncatedError, StreamInterruptedError

LOGGER = logging.getLogger(__name__)
_OPENAI_HOST = "api.openai.com"
_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)


@dataclass(slots=True)
class ClientSettings:
    """Connection options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    temperature: float | None = 0.2
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True)
class AIStreamEvent:
    """Backend-neutral streaming event.

    ``content.delta`` events carry the text delta in ``content``, the text
    received so far in ``snapshot`` and, for structured output, the
    partially parsed payload in ``parsed``. ``content.done`` carries the full
    text and the terminal parsed payload. ``refusal.done`` carries the
    refusal text in ``content``.
    """

    type: str
    content: str | None = None
    parsed: Any | None = None
    snapshot: str | None = None


class AIClient:
    """Streams chat completions and checks availability of one model."""

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
        )
        self._models: List[str] | None = None
        self._models_lock = asyncio.Lock()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        response_format: type[Any] | ResponseFormat | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Stream a chat completion as :class:`AIStreamEvent` objects.

        Connection failures are retried until the first event has been
        yielded; after that a failure surfaces as :class:`StreamInterruptedError`
        so callers never receive a replayed increment.
        """

        request = [cast(ChatCompletionMessageParam, dict(message)) for message in messages]
        if not request:
            raise ValueError("At least one message is required to start a chat")
        payload: Dict[str, Any] = {"model": self._settings.model, "messages": request, **extra_params}
        optional = {
            "response_format": response_format,
            "temperature": temperature if temperature is not None else self._settings.temperature,
            "max_tokens": max_tokens,
            "metadata": {**(self._settings.metadata or {}), **(metadata or {})} or None,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})

        LOGGER.debug("Streaming %s with %s message(s)", self._settings.model, len(request))
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        delivered = 0
        async for attempt in self._retrying():
            with attempt:
                try:
                    async with self._client.chat.completions.stream(**payload) as stream:
                        async for raw_event in stream:
                            event = self._normalize_stream_event(raw_event)
                            if event is None:
                                continue
                            delivered += 1
                            yield event
                except LengthFinishReasonError as exc:
                    raise ResponseTruncatedError("Response hit the completion token limit before it was complete") from exc
                except ContentFilterFinishReasonError as exc:
                    raise FinalizationError("Response was stopped by the content filter") from exc
                except ValidationError as exc:
                    raise FinalizationError(f"Final payload failed validation: {exc.error_count()} error(s)") from exc
                except _RETRYABLE_ERRORS as exc:
                    if delivered:
                        raise StreamInterruptedError(
                            f"Stream failed after {delivered} event(s): {exc}"
                        ) from exc
                    LOGGER.debug("Stream attempt %s failed: %s", attempt.retry_state.attempt_number, exc)
                    raise
                break

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        """Return the endpoint's model identifiers, cached after the first call."""

        async with self._models_lock:
            if self._models is None or force_refresh:
                response = await self._client.models.list()
                self._models = [item.id for item in response.data if getattr(item, "id", None)]
            return list(self._models)

    async def check_availability(self) -> BackendAvailability:
        """Report whether the configured model can serve requests right now."""

        if not self._settings.api_key and _OPENAI_HOST in (self._settings.base_url or ""):
            return BackendAvailability.unavailable("api-key-missing")
        try:
            models = await self.list_models()
        except (APIError, httpx.HTTPError) as exc:
            LOGGER.debug("Availability check failed: %s", exc)
            return BackendAvailability.unavailable("unreachable")
        if models and self._settings.model not in models:
            return BackendAvailability.unavailable("model-not-found")
        return BackendAvailability.ready()

    async def prewarm(self) -> None:
        """Open the HTTP connection pool and cache the model list."""

        await self.list_models()

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
        )

    @staticmethod
    def _normalize_stream_event(event: ChatCompletionStreamEvent[Any]) -> AIStreamEvent | None:
        event_type = getattr(event, "type", None)
        if event_type == "content.delta":
            text = getattr(event, "delta", None)
            if not text:
                return None
            return AIStreamEvent(
                type=event_type,
                content=str(text),
                parsed=getattr(event, "parsed", None),
                snapshot=getattr(event, "snapshot", None),
            )
        if event_type == "content.done":
            return AIStreamEvent(
                type=event_type,
                content=getattr(event, "content", None),
                parsed=getattr(event, "parsed", None),
            )
        if event_type == "refusal.delta":
            return AIStreamEvent(type=event_type, content=getattr(event, "delta", None))
        if event_type == "refusal.done":
            return AIStreamEvent(type=event_type, content=getattr(event, "refusal", None))
        # chunk, logprobs and tool-call events carry nothing the engine consumes
        return None

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2, default=repr)
        except (TypeError, ValueError):
            LOGGER.debug("Prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Prompt payload:\n%s", serialized)


__all__ = ["AIClient", "AIStreamEvent", "ClientSettings"]
