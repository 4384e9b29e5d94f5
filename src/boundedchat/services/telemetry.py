"""Per-turn telemetry records and an in-process event bus."""

from __future__ import annotations

import logging
import time
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any, Callable, Iterable, Mapping, Protocol

LOGGER = logging.getLogger(__name__)

EventListener = Callable[[dict[str, Any]], None]

_listeners: dict[str, list[EventListener]] = {}
_listeners_lock = Lock()


@dataclass(slots=True)
class TurnEvent:
    """Context decision and outcome of one respond or summarize turn."""

    conversation_id: str
    kind: str
    mode: str
    estimated_tokens: int
    outcome: str
    tool_used: bool = False
    increments: int = 0
    timestamp: float = field(default_factory=time.time)

    def as_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class TurnStats:
    """Aggregate view over a batch of :class:`TurnEvent` records."""

    turns: int
    outcomes: Mapping[str, int]
    summary_mode_turns: int
    tool_turns: int
    peak_estimated_tokens: int


class TelemetrySink(Protocol):
    def record(self, event: TurnEvent) -> None:  # pragma: no cover - protocol stub
        ...


class InMemoryTelemetrySink:
    """Bounded, thread-safe buffer of the most recent turn events."""

    def __init__(self, capacity: int = 200) -> None:
        self._events: deque[TurnEvent] = deque(maxlen=max(10, capacity))
        self._guard = Lock()

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    def record(self, event: TurnEvent) -> None:
        with self._guard:
            self._events.append(event)

    def tail(self, limit: int | None = None) -> list[TurnEvent]:
        """Return up to *limit* of the newest events, oldest first."""

        with self._guard:
            snapshot = list(self._events)
        if limit is None:
            return snapshot
        return snapshot[-limit:] if limit > 0 else []

    def for_conversation(self, conversation_id: str) -> list[TurnEvent]:
        return [event for event in self.tail() if event.conversation_id == conversation_id]

    def clear(self) -> None:
        with self._guard:
            self._events.clear()

    def __len__(self) -> int:
        with self._guard:
            return len(self._events)


def summarize_turns(events: Iterable[TurnEvent]) -> TurnStats:
    """Count outcomes, summary-mode turns, and tool use across *events*."""

    outcomes: Counter[str] = Counter()
    summary_turns = tool_turns = peak = 0
    for event in events:
        outcomes[event.outcome] += 1
        if event.mode == "summary":
            summary_turns += 1
        if event.tool_used:
            tool_turns += 1
        peak = max(peak, event.estimated_tokens)
    return TurnStats(
        turns=sum(outcomes.values()),
        outcomes=dict(outcomes),
        summary_mode_turns=summary_turns,
        tool_turns=tool_turns,
        peak_estimated_tokens=peak,
    )


def register_event_listener(event_name: str, callback: EventListener) -> None:
    """Call *callback* with the payload of every :func:`emit` of *event_name*."""

    if not event_name:
        return
    with _listeners_lock:
        registered = _listeners.setdefault(event_name, [])
        if callback not in registered:
            registered.append(callback)


def unregister_event_listener(event_name: str, callback: EventListener) -> None:
    with _listeners_lock:
        registered = _listeners.get(event_name, [])
        if callback in registered:
            registered.remove(callback)


def clear_event_listeners() -> None:
    with _listeners_lock:
        _listeners.clear()


def emit(event_name: str, payload: Mapping[str, Any] | None = None) -> None:
    """Deliver ``{"event": event_name, **payload}`` to each listener of *event_name*."""

    if not event_name:
        return
    message = {"event": event_name, **(payload or {})}
    with _listeners_lock:
        targets = tuple(_listeners.get(event_name, ()))
    LOGGER.debug("Telemetry %s -> %s listener(s): %s", event_name, len(targets), message)
    for callback in targets:
        try:
            callback(dict(message))
        except Exception:
            LOGGER.debug("Telemetry listener %r failed", callback, exc_info=True)


__all__ = [
    "EventListener",
    "InMemoryTelemetrySink",
    "TelemetrySink",
    "TurnEvent",
    "TurnStats",
    "clear_event_listeners",
    "emit",
    "register_event_listener",
    "summarize_turns",
    "unregister_event_listener",
]
