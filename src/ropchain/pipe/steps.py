"""Step kinds and their adaptation into middlewares.

Every step placed in a chain belongs to exactly one StepKind.  Steps can be
tagged explicitly with the decorators in this module (``@transform``,
``@check``, ...) or passed untagged, in which case classify() decides the kind
once, when the chain is built.  Anything that cannot be classified becomes an
INVALID step, which records a failure when run instead of breaking the build.

adapt() turns a Step into a middleware: a function that receives the next
handler of the chain and returns the handler for this step.
"""
import inspect
import logging
import types
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from ropchain.pipe.core import (
    AbstractHandler, HandlerFunc, Result, ResultTracker, as_handler
)
from ropchain.pipe.errors import InvalidStepError

logger = logging.getLogger(__name__)


class StepKind(Enum):
    """The closed set of step shapes a chain accepts."""
    RESULT = "result"                # Result -> Result
    MIDDLEWARE = "middleware"        # handler -> handler
    HANDLER = "handler"              # (Result, tracker) -> None
    FACTORY = "factory"              # () -> handler
    MANUAL = "manual"                # (Result, tracker, next) -> None
    HANDLER_VALUE = "handler_value"  # AbstractHandler instance
    TRY = "try"                      # value -> (value, failure)
    CHECK = "check"                  # value -> failure
    TRANSFORM = "transform"          # value -> value
    TAP = "tap"                      # value -> None
    INVALID = "invalid"              # anything else

    @property
    def supervisory(self) -> Optional[bool]:
        """True if the kind runs regardless of prior failures.

        MIDDLEWARE returns None: whether it runs after a failure is up to the
        middleware itself.
        """
        if self is StepKind.MIDDLEWARE:
            return None
        return self in (StepKind.RESULT, StepKind.INVALID)


@dataclass(frozen=True)
class Step:
    """A step tagged with its kind.

    Calling a Step calls the wrapped function, so decorated functions can
    still be used directly.
    """
    kind: StepKind
    func: Any
    name: str = ""

    def __post_init__(self):
        if not self.name:
            object.__setattr__(self, "name", _step_name(self.func))

    def __call__(self, *args, **kwargs):
        return self.func(*args, **kwargs)


def _step_name(func: Any) -> str:
    return getattr(func, "__name__", type(func).__name__)


def _tagger(kind: StepKind) -> Callable[[Any], Step]:
    def tag(func: Any) -> Step:
        return Step(kind, func)
    tag.__name__ = kind.value
    tag.__doc__ = f"Tag a function as a {kind.name} step."
    return tag


result_step = _tagger(StepKind.RESULT)
middleware = _tagger(StepKind.MIDDLEWARE)
handler = _tagger(StepKind.HANDLER)
handler_factory = _tagger(StepKind.FACTORY)
manual = _tagger(StepKind.MANUAL)
try_step = _tagger(StepKind.TRY)
check = _tagger(StepKind.CHECK)
transform = _tagger(StepKind.TRANSFORM)
tap = _tagger(StepKind.TAP)


def _is_subclass(tp: Any, base: type) -> bool:
    return isinstance(tp, type) and issubclass(tp, base)


def _is_exception_annotation(tp: Any) -> bool:
    if _is_subclass(tp, BaseException):
        return True
    # Optional[SomeError] and unions of error types
    args = typing.get_args(tp)
    if typing.get_origin(tp) in (typing.Union, types.UnionType):
        others = [a for a in args if a is not type(None)]
        return len(others) > 0 and all(_is_subclass(a, BaseException) for a in others)
    return False


def _is_tuple_annotation(tp: Any) -> bool:
    return tp is tuple or typing.get_origin(tp) is tuple


def _type_hints(func: Any) -> dict:
    try:
        target = func if inspect.isroutine(func) else type(func).__call__
        return typing.get_type_hints(target)
    except Exception:
        return {}


def _classify_callable(func: Any) -> StepKind:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return StepKind.INVALID

    params = [
        p for p in sig.parameters.values()
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    ]
    if any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in sig.parameters.values()):
        return StepKind.INVALID

    if len(params) == 0:
        return StepKind.FACTORY
    if len(params) == 2:
        return StepKind.HANDLER
    if len(params) == 3:
        return StepKind.MANUAL
    if len(params) != 1:
        return StepKind.INVALID

    hints = _type_hints(func)
    param_type = hints.get(params[0].name)
    if "return" in hints:
        return_type = hints["return"]
    elif sig.return_annotation is inspect.Signature.empty:
        return_type = inspect.Signature.empty
    else:
        return_type = sig.return_annotation

    if _is_subclass(param_type, Result):
        return StepKind.RESULT
    if _is_subclass(param_type, AbstractHandler) or _is_subclass(return_type, AbstractHandler):
        return StepKind.MIDDLEWARE
    if return_type is None or return_type is type(None):
        return StepKind.TAP
    if _is_tuple_annotation(return_type):
        return StepKind.TRY
    if _is_exception_annotation(return_type):
        return StepKind.CHECK
    return StepKind.TRANSFORM


def classify(obj: Any) -> Step:
    """Decide the kind of an untagged step.

    Steps are returned as they are.  Handler instances become HANDLER_VALUE
    steps.  Plain callables are classified by their positional arity and,
    for single-argument callables, by their annotations:

    - no parameters: FACTORY
    - two parameters: HANDLER
    - three parameters: MANUAL
    - one parameter annotated Result: RESULT
    - one parameter annotated as a handler, or returning one: MIDDLEWARE
    - returns None: TAP
    - returns a tuple: TRY
    - returns an exception type (or Optional of one): CHECK
    - anything else, including no annotation: TRANSFORM

    Everything else is INVALID.  This function never raises.
    """
    if isinstance(obj, Step):
        return obj
    if isinstance(obj, AbstractHandler):
        return Step(StepKind.HANDLER_VALUE, obj)
    if isinstance(obj, type) or not callable(obj):
        kind = StepKind.INVALID
    else:
        kind = _classify_callable(obj)
    if kind is StepKind.INVALID:
        logger.warning(f"Step of type {type(obj).__name__} does not match any step shape")
    return Step(kind, obj)


def _guarded(nxt: AbstractHandler, body: Callable[[Result, ResultTracker], None]) -> AbstractHandler:
    """Build a non-supervisory handler: skip body once a failure is recorded,
    then invoke the next handler with the latest Result."""
    def handle(result: Result, tracker: ResultTracker):
        if not tracker.last().failed:
            body(tracker.last(), tracker)
        nxt(tracker.last(), tracker)
    return HandlerFunc(handle)


def _adapt_result(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        def handle(result: Result, tracker: ResultTracker):
            tracker.write(func(tracker.last()))
            nxt(tracker.last(), tracker)
        return HandlerFunc(handle)
    return mw


def _adapt_middleware(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        return as_handler(func(nxt))
    return mw


def _adapt_handler(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        return _guarded(nxt, func)
    return mw


def _adapt_factory(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        def body(result: Result, tracker: ResultTracker):
            as_handler(func())(result, tracker)
        return _guarded(nxt, body)
    return mw


def _adapt_manual(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        def handle(result: Result, tracker: ResultTracker):
            if tracker.last().failed:
                nxt(tracker.last(), tracker)
                return
            func(tracker.last(), tracker, nxt)
        return HandlerFunc(handle)
    return mw


def _adapt_try(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        def body(result: Result, tracker: ResultTracker):
            value, failure = func(result.value)
            if failure is not None:
                result.add_failure(failure)
            else:
                result.set_value(value)
        return _guarded(nxt, body)
    return mw


def _adapt_check(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        def body(result: Result, tracker: ResultTracker):
            result.add_failure(func(result.value))
        return _guarded(nxt, body)
    return mw


def _adapt_transform(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        def body(result: Result, tracker: ResultTracker):
            result.set_value(func(result.value))
        return _guarded(nxt, body)
    return mw


def _adapt_tap(func):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        def body(result: Result, tracker: ResultTracker):
            func(result.value)
        return _guarded(nxt, body)
    return mw


def _adapt_invalid(obj):
    def mw(nxt: AbstractHandler) -> AbstractHandler:
        def handle(result: Result, tracker: ResultTracker):
            error = InvalidStepError(obj)
            tracker.last().add_message(str(error)).add_failure(error)
            nxt(tracker.last(), tracker)
        return HandlerFunc(handle)
    return mw


_ADAPTERS = {
    StepKind.RESULT: _adapt_result,
    StepKind.MIDDLEWARE: _adapt_middleware,
    StepKind.HANDLER: _adapt_handler,
    StepKind.FACTORY: _adapt_factory,
    StepKind.MANUAL: _adapt_manual,
    StepKind.HANDLER_VALUE: _adapt_handler,
    StepKind.TRY: _adapt_try,
    StepKind.CHECK: _adapt_check,
    StepKind.TRANSFORM: _adapt_transform,
    StepKind.TAP: _adapt_tap,
    StepKind.INVALID: _adapt_invalid,
}


def adapt(step: Any) -> Callable[[AbstractHandler], AbstractHandler]:
    """Turn a step (tagged or not) into a middleware."""
    step = classify(step)
    return _ADAPTERS[step.kind](step.func)
