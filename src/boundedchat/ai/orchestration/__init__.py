"""Chat session orchestration: response assembly and the session engine."""

from .assembler import (
    AssemblyStream,
    PartialAssembly,
    ResponseStream,
    StreamingResponseAssembler,
)
from .engine import TURN_EVENT, ChatSessionEngine

__all__ = [
    "AssemblyStream",
    "ChatSessionEngine",
    "PartialAssembly",
    "ResponseStream",
    "StreamingResponseAssembler",
    "TURN_EVENT",
]
