"""Tools available to the chat session engine."""

from .errors import ErrorCode, ToolError, WebAnalyserError
from .invoker import ToolInvoker, find_url
from .web_analyser import WebAnalyserTool, extract_metadata

__all__ = [
    "ErrorCode",
    "ToolError",
    "ToolInvoker",
    "WebAnalyserError",
    "WebAnalyserTool",
    "extract_metadata",
    "find_url",
]
