"""Async stream wrapper shared by response and summary turns."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Generic, Protocol, TypeVar

from .errors import StreamCancelledError

LOGGER = logging.getLogger(__name__)

S = TypeVar("S")
R = TypeVar("R")


class Assembler(Protocol[S, R]):
    """Per-stream state machine fed one backend event at a time."""

    def accept(self, event: Any) -> S | None:
        ...

    def finalize(self) -> R:
        ...

    def discard(self) -> None:
        ...


@dataclass
class AssemblyStream(Generic[S, R]):
    """Async iterator over live snapshots that commits the result on success.

    The result is handed to ``on_complete`` only after the backend stream
    finished and the assembler finalized. Closing the stream early (via
    :meth:`aclose`, ``async with`` exit, or task cancellation) discards all
    partial state and commits nothing.
    """

    events: AsyncIterator[Any]
    assembler: Assembler[S, R]
    on_complete: Callable[[R], None] | None = None
    on_failure: Callable[[BaseException], None] | None = None
    _result: R | None = field(default=None, init=False, repr=False)
    _error: BaseException | None = field(default=None, init=False, repr=False)
    _done: bool = field(default=False, init=False, repr=False)
    _cancelled: bool = field(default=False, init=False, repr=False)
    _iterator: AsyncIterator[S] | None = field(default=None, init=False, repr=False)

    def __aiter__(self) -> AssemblyStream[S, R]:
        return self

    async def __anext__(self) -> S:
        if self._cancelled or self._done:
            raise StopAsyncIteration
        if self._iterator is None:
            self._iterator = self._run()
        return await self._iterator.__anext__()

    async def __aenter__(self) -> AssemblyStream[S, R]:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if not self._done:
            await self.aclose()
        return False

    @property
    def done(self) -> bool:
        return self._done

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def result(self) -> R:
        """Drain any remaining increments and return the finalized result."""

        async for _ in self:
            pass
        if self._error is not None:
            raise self._error
        if self._cancelled or self._result is None:
            raise StreamCancelledError("Stream was cancelled before completion")
        return self._result

    async def aclose(self) -> None:
        """Abandon the stream; nothing is committed."""

        if self._done or self._cancelled:
            return
        self._cancelled = True
        if self._iterator is not None:
            await self._iterator.aclose()  # type: ignore[attr-defined]
        else:
            await self._close_events()
        self.assembler.discard()
        LOGGER.debug("Stream cancelled; partial state discarded")

    async def _run(self) -> AsyncIterator[S]:
        try:
            async for event in self.events:
                snapshot = self.assembler.accept(event)
                if snapshot is not None:
                    yield snapshot
            result = self.assembler.finalize()
        except Exception as exc:
            self._error = exc
            self.assembler.discard()
            if self.on_failure is not None:
                self.on_failure(exc)
            raise
        finally:
            await self._close_events()
        if self.on_complete is not None:
            self.on_complete(result)
        self._result = result
        self._done = True

    async def _close_events(self) -> None:
        close = getattr(self.events, "aclose", None)
        if close is not None:
            await close()



__all__ = ["Assembler", "AssemblyStream"]
