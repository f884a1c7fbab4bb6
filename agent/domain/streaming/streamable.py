"""Single-writer, multi-reader incremental values.

A producer appends to (or replaces) the value and finally seals it; any number
of consumers observe snapshots, either through a synchronous callback or by
iterating ``updates()``. Late subscribers receive the current state at once,
so nothing is missed after completion.
"""

from typing import Any, AsyncIterator, Callable, Dict, Generic, Optional, TypeVar
from dataclasses import dataclass
import asyncio

import structlog

from domain.errors import InvalidStateError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StreamSnapshot(Generic[T]):
    """State of a stream as seen by a subscriber"""
    value: T
    done: bool
    delta: Optional[str] = None
    error: Optional[BaseException] = None


Subscriber = Callable[[StreamSnapshot[Any]], None]


class Streamable(Generic[T]):
    """Shared subscriber mechanics for streamed values"""

    def __init__(self, initial: T):
        self._value = initial
        self._done = False
        self._error: Optional[BaseException] = None
        self._subscribers: Dict[int, Subscriber] = {}
        self._next_token = 0

    @property
    def value(self) -> T:
        return self._value

    @property
    def done(self) -> bool:
        return self._done

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def snapshot(self, delta: Optional[str] = None) -> StreamSnapshot[T]:
        return StreamSnapshot(value=self._value, done=self._done, delta=delta, error=self._error)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Attach a subscriber; returns a callable that detaches it"""

        callback(self.snapshot())
        if self._done:
            return lambda: None

        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = callback

        def unsubscribe():
            self._subscribers.pop(token, None)

        return unsubscribe

    async def updates(self) -> AsyncIterator[StreamSnapshot[T]]:
        """Iterate snapshots until the terminal one; leaving early unsubscribes"""

        queue: "asyncio.Queue[StreamSnapshot[T]]" = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            while True:
                snapshot = await queue.get()
                yield snapshot
                if snapshot.done:
                    break
        finally:
            unsubscribe()

    def fail(self, error: BaseException):
        """Seal the stream with an error"""

        self._ensure_open("fail")
        self._error = error
        self._done = True
        self._publish()

    def _ensure_open(self, operation: str):
        if self._done:
            state = "failed" if self._error is not None else "completed"
            raise InvalidStateError(f"Cannot {operation}: stream already {state}")

    def _publish(self, delta: Optional[str] = None):
        snapshot = self.snapshot(delta)
        for callback in list(self._subscribers.values()):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error("Stream subscriber failed", error=str(e))
        if self._done:
            self._subscribers.clear()


class StreamableValue(Streamable[str]):
    """Text that grows by appended deltas until completed"""

    def __init__(self, initial: str = ""):
        super().__init__(initial)

    def append(self, delta: str):
        """Concatenate a delta and notify subscribers synchronously"""

        self._ensure_open("append")
        self._value += delta
        self._publish(delta)

    def complete(self, final_value: Optional[str] = None):
        """Seal the value, optionally replacing the buffer with the final text"""

        self._ensure_open("complete")
        if final_value is not None:
            self._value = final_value
        self._done = True
        self._publish()


class StreamableUI(Streamable[Any]):
    """Render handle whose fragment is replaced as the turn progresses"""

    def update(self, fragment: Any):
        """Replace the displayed fragment"""

        self._ensure_open("update")
        self._value = fragment
        self._publish()

    def complete(self, fragment: Any = None):
        """Seal the handle, optionally with a final fragment"""

        self._ensure_open("complete")
        if fragment is not None:
            self._value = fragment
        self._done = True
        self._publish()
