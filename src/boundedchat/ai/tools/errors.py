"""Error types for AI tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..errors import ChatEngineError


class ErrorCode:
    """Constants for error codes used in tool results."""

    FETCH_FAILED = "fetch_failed"
    INVALID_URL = "invalid_url"
    TIMEOUT = "timeout"
    INVALID_CONTENT = "invalid_content"


@dataclass
class ToolError(ChatEngineError):
    """Base exception class for tool errors with a serializable payload."""

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class WebAnalyserError(ToolError):
    """Raised when a URL cannot be fetched or yields no usable metadata."""

    def __init__(self, url: str, reason: str, *, error_code: str = ErrorCode.FETCH_FAILED) -> None:
        super().__init__(error_code=error_code, message=f"Unable to analyse {url}: {reason}", details={"url": url})
        self.url = url
        self.reason = reason


__all__ = ["ErrorCode", "ToolError", "WebAnalyserError"]
