"""Web page analyser producing attachment metadata for a URL."""

from __future__ import annotations

import logging
from html.parser import HTMLParser
from typing import Any, Mapping
from urllib.parse import urljoin

import httpx

from ...chat.message_model import Attachment
from .errors import ErrorCode, WebAnalyserError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "boundedchat-web-analyser/0.1"
_MAX_DESCRIPTION_CHARS = 300
_ICON_RELS = {"icon", "shortcut icon", "apple-touch-icon"}


class _MetadataParser(HTMLParser):
    """Collects ``<title>``, description, and image hints from an HTML document."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.meta: dict[str, str] = {}
        self.title_parts: list[str] = []
        self.icon: str | None = None
        self._in_title = False

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attributes = {name.lower(): (value or "") for name, value in attrs}
        if tag == "title":
            self._in_title = True
        elif tag == "meta":
            key = (attributes.get("property") or attributes.get("name") or "").strip().lower()
            content = attributes.get("content", "").strip()
            if key and content and key not in self.meta:
                self.meta[key] = content
        elif tag == "link" and self.icon is None:
            rel = attributes.get("rel", "").strip().lower()
            if rel in _ICON_RELS and attributes.get("href"):
                self.icon = attributes["href"].strip()

    def handle_endtag(self, tag: str) -> None:
        if tag == "title":
            self._in_title = False

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self.title_parts.append(data)


def extract_metadata(html: str, url: str) -> Attachment:
    """Extract title/description/thumbnail from *html* fetched at *url*."""

    parser = _MetadataParser()
    parser.feed(html)
    parser.close()
    meta = parser.meta
    title = meta.get("og:title") or " ".join("".join(parser.title_parts).split()) or meta.get("twitter:title")
    description = meta.get("og:description") or meta.get("description") or meta.get("twitter:description") or ""
    thumbnail = meta.get("og:image") or meta.get("twitter:image") or parser.icon or "/favicon.ico"
    if not title:
        raise WebAnalyserError(url, "page has no title", error_code=ErrorCode.INVALID_CONTENT)
    description = " ".join(description.split())
    if len(description) > _MAX_DESCRIPTION_CHARS:
        description = f"{description[: _MAX_DESCRIPTION_CHARS - 1].rstrip()}…"
    return Attachment(title=title.strip(), description=description, thumbnail=_resolve_thumbnail(url, thumbnail))


def _resolve_thumbnail(url: str, thumbnail: str) -> str:
    try:
        return urljoin(url, thumbnail)
    except ValueError:
        LOGGER.debug("Malformed thumbnail %r on %s; using favicon", thumbnail, url)
        return urljoin(url, "/favicon.ico")


class WebAnalyserTool:
    """Fetches a web page and returns its preview metadata."""

    name = "WebAnalyser"
    description = "Analyse a web page URL and return its title, description and thumbnail."

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent, "Accept": "text/html,application/xhtml+xml"}

    async def analyse(self, url: str) -> Attachment:
        LOGGER.debug("Analysing web page %s", url)
        try:
            response = await self._get_client().get(url, headers=self._headers)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise WebAnalyserError(url, "request timed out", error_code=ErrorCode.TIMEOUT) from exc
        except httpx.HTTPError as exc:
            raise WebAnalyserError(url, f"fetch failed: {exc}") from exc
        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type.lower():
            raise WebAnalyserError(url, f"unsupported content type {content_type!r}", error_code=ErrorCode.INVALID_CONTENT)
        try:
            return extract_metadata(response.text, str(response.url))
        except ValueError as exc:
            raise WebAnalyserError(url, f"unparseable page: {exc}", error_code=ErrorCode.INVALID_CONTENT) from exc

    def tool_spec(self) -> Mapping[str, Any]:
        """Describe the analyser as a callable function for tool-calling backends."""

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {"url": {"type": "string", "description": "Absolute URL to analyse"}},
                    "required": ["url"],
                },
            },
        }

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client


__all__ = ["WebAnalyserTool", "extract_metadata"]
