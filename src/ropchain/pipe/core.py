"""Core definitions for ropchain

This module contains the value that travels through a chain (Result), the
holder of the most recently written Result (ResultTracker), and the handler
abstraction that adapted steps are linked through.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class Result(BaseModel):
    """The value carried end to end through a chain.

    A Result holds the current success payload plus two independent,
    append-only ledgers: diagnostic messages and failures.  A non-empty
    failure ledger is the short-circuit signal: non-supervisory steps do not
    run once it holds anything.

    The payload is always present, but once a failure has been recorded it
    may be stale (it is whatever the last successful step left behind).

    Examples:
        r = Result(42)
        r.add_message("checked").add_failure(ValueError("too big"))
        assert r.failed
        assert r.messages == ["checked"]
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: Any = None
    messages: List[Any] = Field(default_factory=list)
    failures: List[BaseException] = Field(default_factory=list)

    def __init__(self, value: Any = None, **data):
        super().__init__(value=value, **data)

    def get_value(self) -> Any:
        return self.value

    def set_value(self, value: Any) -> 'Result':
        self.value = value
        return self

    def add_failure(self, *failures: Optional[BaseException]) -> 'Result':
        """Append failures to the failure ledger.

        None entries are ignored.  Messages recorded so far are left intact.
        """
        for failure in failures:
            if failure is not None:
                self.failures.append(failure)
        return self

    def add_message(self, *messages: Any) -> 'Result':
        """Append messages to the message ledger.  None entries are ignored."""
        for message in messages:
            if message is not None:
                self.messages.append(message)
        return self

    def has_failures(self) -> bool:
        return len(self.failures) > 0

    @property
    def failed(self) -> bool:
        return self.has_failures()

    def clear_failures(self) -> List[BaseException]:
        """Remove and return every recorded failure.

        Only supervisory recovery steps should call this.
        """
        cleared = list(self.failures)
        self.failures.clear()
        return cleared

    def clone(self) -> 'Result':
        """Copy the Result, giving the copy its own ledgers."""
        return Result(self.value, messages=list(self.messages), failures=list(self.failures))

    @field_serializer("failures", when_used="json")
    def serialize_failures(self, failures: List[BaseException]):
        return [{"type": type(f).__name__, "message": str(f)} for f in failures]

    @field_serializer("messages", when_used="json")
    def serialize_messages(self, messages: List[Any]):
        return [str(m) if isinstance(m, BaseException) else m for m in messages]


def new_result(value: Any = None) -> Result:
    return Result(value)


class ResultTracker:
    """Holds the most recently written Result for one chain invocation.

    Every step downstream of a write sees the written Result through last().
    A tracker belongs to exactly one in-flight invocation and is not safe
    for concurrent mutation.
    """

    def __init__(self, initial: Optional[Result] = None):
        self._last = initial if initial is not None else Result()

    def last(self) -> Result:
        return self._last

    def write(self, result: Optional[Result]):
        """Replace the last Result.  Writing None leaves the tracker unchanged."""
        if result is None:
            return
        self._last = result


class AbstractHandler(ABC):
    """A unit of the linked chain.

    Adapted steps are middlewares: functions from "the next handler" to a
    handler.  Handlers may be invoked directly; calling one is the same as
    calling handle().
    """

    @abstractmethod
    def handle(self, result: Result, tracker: ResultTracker) -> None:
        """Process the Result, reading and writing state through the tracker."""

    def __call__(self, result: Result, tracker: ResultTracker) -> None:
        self.handle(result, tracker)


class HandlerFunc(AbstractHandler):
    """Adapts a plain function taking (result, tracker) to a handler."""

    def __init__(self, func: Callable[[Result, ResultTracker], None]):
        self.func = func

    def handle(self, result: Result, tracker: ResultTracker) -> None:
        self.func(result, tracker)

    def __repr__(self):
        return f"HandlerFunc({getattr(self.func, '__name__', self.func)!r})"


class NoopHandler(AbstractHandler):
    """Terminal handler.  Does nothing."""

    def handle(self, result: Result, tracker: ResultTracker) -> None:
        pass


NOOP_HANDLER = NoopHandler()

HandlerLike = Union[AbstractHandler, Callable[[Result, ResultTracker], None]]
Middleware = Callable[[AbstractHandler], HandlerLike]


def as_handler(obj: Optional[HandlerLike]) -> AbstractHandler:
    """Normalize a handler-like object.

    Handlers are returned unchanged, plain callables are wrapped in a
    HandlerFunc and None becomes the terminal no-op handler.
    """
    if obj is None:
        return NOOP_HANDLER
    if isinstance(obj, AbstractHandler):
        return obj
    if callable(obj):
        return HandlerFunc(obj)
    raise TypeError(f"Cannot use {type(obj).__name__} as a handler")
