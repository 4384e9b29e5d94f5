"""Detects URLs in user messages and resolves them into attachment candidates."""

from __future__ import annotations

import asyncio
import logging
import re
from urllib.parse import urlsplit

import httpx

from ...chat.message_model import Attachment, Message
from ..ai_types import WebAnalyser
from .errors import ToolError

LOGGER = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https?://[^\s<>\"'`]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?)]}'\""


def find_url(text: str) -> str | None:
    """Return the first syntactically valid absolute http(s) URL in *text*."""

    if not text:
        return None
    for match in _URL_PATTERN.finditer(text):
        candidate = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        try:
            parts = urlsplit(candidate)
        except ValueError:
            continue
        if parts.scheme.lower() in {"http", "https"} and parts.hostname:
            return candidate
    return None


class ToolInvoker:
    """Runs the web analyser for a message that references a URL.

    Every failure is recovered here: the caller only ever sees an
    attachment candidate or ``None``.
    """

    def __init__(self, analyser: WebAnalyser | None, *, timeout: float | None = None) -> None:
        self._analyser = analyser
        self._timeout = timeout

    async def maybe_invoke(self, message: Message | None) -> Attachment | None:
        if message is None or message.role != "user" or self._analyser is None:
            return None
        url = find_url(message.content)
        if url is None:
            return None
        try:
            if self._timeout is not None:
                result = await asyncio.wait_for(self._analyser.analyse(url), timeout=self._timeout)
            else:
                result = await self._analyser.analyse(url)
        except (ToolError, httpx.HTTPError, asyncio.TimeoutError) as exc:
            LOGGER.warning("Web analysis of %s failed; continuing without attachment: %s", url, exc)
            return None
        except Exception:
            LOGGER.warning("Web analyser crashed on %s; continuing without attachment", url, exc_info=True)
            return None
        if not isinstance(result, Attachment):
            LOGGER.warning("Web analyser returned %r for %s; ignoring", type(result).__name__, url)
            return None
        LOGGER.debug("Web analysis of %s produced attachment %r", url, result.title)
        return result


__all__ = ["ToolInvoker", "find_url"]
