"""Chat message and conversation data models."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Protocol, cast, get_args

LOGGER = logging.getLogger(__name__)

ChatRole = Literal["user", "assistant", "system"]
CHAT_ROLES: tuple[str, ...] = get_args(ChatRole)
DEFAULT_SUMMARY = "New conversation"
ChangeKind = Literal["message_appended", "summary_replaced"]


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Attachment:
    """Web page preview attached to a message."""

    title: str
    description: str
    thumbnail: str

    @classmethod
    def from_fields(
        cls,
        title: str | None = None,
        description: str | None = None,
        thumbnail: str | None = None,
    ) -> Attachment | None:
        """Build an attachment when all fields are present, ``None`` when none are."""

        values = (title, description, thumbnail)
        present = [value is not None for value in values]
        if not any(present):
            return None
        if not all(present):
            raise ValueError("Attachment fields must be all present or all absent")
        return cls(title=str(title), description=str(description), thumbnail=str(thumbnail))

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "description": self.description, "thumbnail": self.thumbnail}


@dataclass(frozen=True, slots=True)
class Message:
    """Single immutable chat turn owned by a :class:`Conversation`."""

    role: ChatRole
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    attachment: Optional[Attachment] = None

    def __post_init__(self) -> None:
        if self.role not in CHAT_ROLES:
            raise ValueError(f"Unknown chat role: {self.role!r}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        payload: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.attachment is not None:
            payload["attachment"] = self.attachment.to_dict()
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Message:
        raw_timestamp = payload.get("timestamp")
        timestamp = datetime.fromisoformat(raw_timestamp) if isinstance(raw_timestamp, str) else _utcnow()
        attachment_payload = payload.get("attachment")
        attachment = None
        if isinstance(attachment_payload, Mapping):
            attachment = Attachment.from_fields(
                attachment_payload.get("title"),
                attachment_payload.get("description"),
                attachment_payload.get("thumbnail"),
            )
        return cls(
            role=cast(ChatRole, payload.get("role", "user")),
            content=str(payload.get("content", "")),
            timestamp=timestamp,
            attachment=attachment,
        )


@dataclass(frozen=True, slots=True)
class ConversationChange:
    """Notification delivered to conversation listeners after a mutation."""

    kind: ChangeKind
    conversation_id: str
    message: Message | None = None
    summary: str | None = None


ConversationListener = Callable[[ConversationChange], None]


class Conversation:
    """Ordered, append-only message list plus a replaceable rolling summary.

    The message list and summary are the only mutable state. Writers go
    through :meth:`append` and :meth:`replace_summary`; both run under a
    per-conversation lock so readers always observe a consistent snapshot.
    """

    def __init__(
        self,
        messages: list[Message] | None = None,
        *,
        summary: str | None = None,
        conversation_id: str | None = None,
    ) -> None:
        self.id = conversation_id or uuid.uuid4().hex
        self._lock = Lock()
        self._messages: list[Message] = []
        self._summary = summary
        self._listeners: list[ConversationListener] = []
        for message in messages or ():
            self._append_locked(message)

    @classmethod
    def new(cls) -> Conversation:
        """Create an empty conversation with the default placeholder summary."""

        return cls(summary=DEFAULT_SUMMARY)

    @property
    def messages(self) -> list[Message]:
        with self._lock:
            return list(self._messages)

    @property
    def sorted_messages(self) -> list[Message]:
        return sorted(self.messages, key=lambda message: message.timestamp)

    @property
    def summary(self) -> str | None:
        with self._lock:
            return self._summary

    @property
    def last_message(self) -> Message | None:
        with self._lock:
            return self._messages[-1] if self._messages else None

    @property
    def last_message_timestamp(self) -> datetime | None:
        last = self.last_message
        return last.timestamp if last is not None else None

    def snapshot(self) -> tuple[list[Message], str | None]:
        """Return messages and summary read under a single lock acquisition."""

        with self._lock:
            return list(self._messages), self._summary

    def append(self, message: Message) -> Message:
        with self._lock:
            self._append_locked(message)
        self._notify(ConversationChange(kind="message_appended", conversation_id=self.id, message=message))
        return message

    def replace_summary(self, summary: str | None) -> None:
        with self._lock:
            self._summary = summary
        self._notify(ConversationChange(kind="summary_replaced", conversation_id=self.id, summary=summary))

    def subscribe(self, listener: ConversationListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ConversationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def to_dict(self) -> Dict[str, Any]:
        messages, summary = self.snapshot()
        return {
            "id": self.id,
            "summary": summary,
            "messages": [message.to_dict() for message in messages],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Conversation:
        messages = [Message.from_dict(item) for item in payload.get("messages", []) if isinstance(item, Mapping)]
        messages.sort(key=lambda message: message.timestamp)
        summary = payload.get("summary")
        return cls(
            messages,
            summary=str(summary) if summary is not None else None,
            conversation_id=payload.get("id"),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def _append_locked(self, message: Message) -> None:
        if self._messages and message.timestamp < self._messages[-1].timestamp:
            raise ValueError("Messages must be appended in timestamp order")
        self._messages.append(message)

    def _notify(self, change: ConversationChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:  # pragma: no cover - listeners must not break writers
                LOGGER.debug("Conversation listener %s failed", listener, exc_info=True)


class ConversationStore(Protocol):
    """Persistence collaborator owning conversation lifetimes."""

    def insert(self, conversation: Conversation) -> None:
        ...

    def delete(self, conversation: Conversation) -> None:
        ...

    def save(self) -> None:
        ...


__all__ = [
    "Attachment",
    "CHAT_ROLES",
    "ChatRole",
    "Conversation",
    "ConversationChange",
    "ConversationListener",
    "ConversationStore",
    "DEFAULT_SUMMARY",
    "Message",
]
