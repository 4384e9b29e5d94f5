"""Turns a stream of partial structured payloads into one finalized message."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, cast

from ...chat.message_model import CHAT_ROLES, Attachment, ChatRole, Message
from ..errors import FinalizationError
from ..streaming import AssemblyStream

LOGGER = logging.getLogger(__name__)

ATTACHMENT_FIELDS: tuple[str, ...] = ("title", "description", "thumbnail")


@dataclass(frozen=True, slots=True)
class PartialAssembly:
    """Live snapshot of a structured response while it streams."""

    payload: Mapping[str, Any]
    sequence: int
    finalized: bool = False

    @property
    def role(self) -> str | None:
        return self.payload.get("role")

    @property
    def content(self) -> str | None:
        return self.payload.get("content")


def coerce_payload(value: Any) -> dict[str, Any] | None:
    """Return a plain dict for parsed payloads (mappings or pydantic models)."""

    if value is None:
        return None
    dump = getattr(value, "model_dump", None)
    if callable(dump):
        value = dump()
    if isinstance(value, Mapping):
        return dict(value)
    return None


def validate_partial(payload: Any) -> str | None:
    """Return a reason when *payload* does not fit the message schema, else ``None``."""

    if not isinstance(payload, Mapping):
        return "payload is not an object"
    role = payload.get("role")
    if role is not None:
        if not isinstance(role, str):
            return "role is not a string"
        if not any(candidate.startswith(role) for candidate in CHAT_ROLES):
            return f"unknown role {role!r}"
    content = payload.get("content")
    if content is not None and not isinstance(content, str):
        return "content is not a string"
    attachment = payload.get("attachment")
    if attachment is not None:
        if not isinstance(attachment, Mapping):
            return "attachment is not an object"
        for name in ATTACHMENT_FIELDS:
            value = attachment.get(name)
            if value is not None and not isinstance(value, str):
                return f"attachment {name} is not a string"
    return None


def is_refinement(previous: Mapping[str, Any] | None, current: Mapping[str, Any]) -> bool:
    """Return ``True`` when *current* keeps and extends every field of *previous*."""

    if previous is None:
        return True
    for key, old in previous.items():
        if old is None:
            continue
        new = current.get(key)
        if new is None:
            return False
        if isinstance(old, Mapping):
            if not isinstance(new, Mapping) or not is_refinement(old, new):
                return False
        elif isinstance(old, str):
            if not isinstance(new, str) or not new.startswith(old):
                return False
        elif new != old:
            return False
    return True


class StreamingResponseAssembler:
    """Validates structured increments and builds the final :class:`Message`.

    ``content.delta`` events carry partial payloads; ``content.done`` carries
    the terminal payload. Increments that fail validation, or that drop or
    rewrite fields an earlier increment already delivered, are dropped from
    the live updates. A terminal payload that fails validation fails the turn.
    """

    def __init__(self, *, attachment_candidate: Attachment | None = None) -> None:
        self._candidate = attachment_candidate
        self._latest: dict[str, Any] | None = None
        self._sequence = 0
        self._finalized = False
        self.dropped = 0

    @property
    def state(self) -> PartialAssembly | None:
        if self._latest is None:
            return None
        return PartialAssembly(payload=dict(self._latest), sequence=self._sequence, finalized=self._finalized)

    def accept(self, event: Any) -> PartialAssembly | None:
        if self._finalized:
            raise RuntimeError("Assembler already finalized")
        event_type = getattr(event, "type", None)
        if event_type == "content.delta":
            payload = coerce_payload(getattr(event, "parsed", None))
            if payload is None:
                return None
            return self._admit(payload, terminal=False)
        if event_type == "content.done":
            payload = coerce_payload(getattr(event, "parsed", None))
            if payload is None:
                payload = self._parse_text(getattr(event, "content", None))
            return self._admit(payload, terminal=True)
        if event_type == "refusal.done":
            raise FinalizationError(f"Backend refused to respond: {getattr(event, 'content', '') or 'no reason'}")
        return None

    def finalize(self) -> Message:
        payload = self._latest
        if payload is None:
            raise FinalizationError("Stream ended without a valid increment")
        role = payload.get("role")
        content = payload.get("content")
        if role not in CHAT_ROLES:
            raise FinalizationError("Final payload is missing a valid role", payload=payload)
        if not isinstance(content, str):
            raise FinalizationError("Final payload is missing content", payload=payload)
        message = Message(role=cast(ChatRole, role), content=content, attachment=self._resolve_attachment(payload))
        self._finalized = True
        LOGGER.debug(
            "Finalized %s message after %s increment(s) (%s dropped)",
            role,
            self._sequence,
            self.dropped,
        )
        return message

    def discard(self) -> None:
        self._latest = None
        self._sequence = 0

    def _admit(self, payload: dict[str, Any] | None, *, terminal: bool) -> PartialAssembly | None:
        reason = validate_partial(payload) if payload is not None else "terminal payload is not valid JSON"
        if reason is None and not is_refinement(self._latest, payload or {}):
            reason = "increment does not refine the previous one"
        if reason is not None:
            if terminal:
                raise FinalizationError(f"Invalid terminal increment: {reason}", payload=payload)
            self.dropped += 1
            LOGGER.debug("Dropping malformed increment: %s", reason)
            return None
        assert payload is not None
        if payload == self._latest:
            return None
        self._latest = payload
        self._sequence += 1
        return PartialAssembly(payload=dict(payload), sequence=self._sequence)

    def _resolve_attachment(self, payload: Mapping[str, Any]) -> Attachment | None:
        raw = payload.get("attachment")
        if not isinstance(raw, Mapping) or all(raw.get(name) is None for name in ATTACHMENT_FIELDS):
            return None
        if self._candidate is None:
            LOGGER.warning("Discarding attachment emitted without an analysed URL")
            return None
        # Attachment values always come from the analysed page, never from the model.
        return self._candidate

    @staticmethod
    def _parse_text(text: str | None) -> dict[str, Any] | None:
        if not text:
            return None
        try:
            return coerce_payload(json.loads(text))
        except json.JSONDecodeError:
            return None


ResponseStream = AssemblyStream[PartialAssembly, Message]


__all__ = [
    "ATTACHMENT_FIELDS",
    "AssemblyStream",
    "PartialAssembly",
    "ResponseStream",
    "StreamingResponseAssembler",
    "coerce_payload",
    "is_refinement",
    "validate_partial",
]
