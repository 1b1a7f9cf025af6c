"""Standard steps for chains.

These cover the supervisory jobs a chain usually needs: logging what happened,
recovering from exceptions raised by steps, and turning recorded failures into
messages once they have been dealt with.  Recovery is always opt-in: a chain
without recover() or supervised() lets exceptions propagate to the caller.
"""
import logging
from typing import Any, Callable, Optional, Union, Annotated

from ropchain.pipe.chain import link_steps
from ropchain.pipe.core import AbstractHandler, HandlerFunc, Result, ResultTracker
from ropchain.pipe.errors import RecoveredError
from ropchain.pipe.steps import Step, StepKind

logger = logging.getLogger(__name__)


def recover(label: Annotated[Optional[str], "Message of the recorded RecoveredError"] = None) -> Step:
    """Middleware that runs the rest of the chain and records any exception it raises.

    The exception is caught, wrapped in a RecoveredError and added to the
    tracker's last Result.  Steps placed before recover() still see the
    Result once the remainder of the chain has unwound.

    Examples:
        c = Chain(log_result(), recover(), divide_by_zero)
        out = c(Result(1))
        # out.failures == [RecoveredError(ZeroDivisionError(...))]
    """
    def wrap(nxt: AbstractHandler) -> AbstractHandler:
        def handle(result: Result, tracker: ResultTracker):
            try:
                nxt(tracker.last(), tracker)
            except Exception as e:
                logger.warning(f"Recovered from {type(e).__name__}: {e}")
                tracker.last().add_failure(RecoveredError(e, label))
        return HandlerFunc(handle)
    return Step(StepKind.MIDDLEWARE, wrap, name="recover")


def supervised(*steps: Any, label: Optional[str] = None) -> Step:
    """Run steps as a sub-chain, record any exception they raise, then continue.

    Unlike recover(), which guards everything after it, supervised() guards
    only the steps it is given.  The remainder of the chain always runs
    afterwards, subject to the usual short-circuit rules.
    """
    def wrap(nxt: AbstractHandler) -> AbstractHandler:
        sub = link_steps(steps)

        def handle(result: Result, tracker: ResultTracker):
            try:
                sub(tracker.last(), tracker)
            except Exception as e:
                logger.warning(f"Supervised steps raised {type(e).__name__}: {e}")
                tracker.last().add_failure(RecoveredError(e, label))
            nxt(tracker.last(), tracker)
        return HandlerFunc(handle)
    return Step(StepKind.MIDDLEWARE, wrap, name="supervised")


def passthrough() -> Step:
    """Supervisory identity step."""
    return Step(StepKind.RESULT, lambda r: r, name="passthrough")


def noop() -> Step:
    """Middleware that only invokes the next handler."""
    def wrap(nxt: AbstractHandler) -> AbstractHandler:
        return nxt
    return Step(StepKind.MIDDLEWARE, wrap, name="noop")


def log_result(logger_name: Annotated[str, "Name of the logger to write to"] = "ropchain.trace",
               level: Annotated[str, "Logging level name"] = "INFO",
               label: Annotated[Optional[str], "Optional label prefixed to each line"] = None) -> Step:
    """Supervisory step that logs the current Result and passes it on unchanged.

    Runs whether or not failures have been recorded, so it can be placed at
    the end of a chain to report how a run went.
    """
    target = logging.getLogger(logger_name)
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown logging level: {level}")
    prefix = f"[{label}] " if label else ""

    def log(result: Result) -> Result:
        target.log(log_level,
                   f"{prefix}value={result.value!r} messages={len(result.messages)} "
                   f"failures={[str(f) for f in result.failures]}")
        return result
    return Step(StepKind.RESULT, log, name="log_result")


def annotate(message: Any) -> Step:
    """Supervisory step that appends a message to the Result."""
    def add(result: Result) -> Result:
        return result.add_message(message)
    return Step(StepKind.RESULT, add, name="annotate")


def require(predicate: Callable[[Any], bool],
            failure: Union[BaseException, Callable[[Any], BaseException]]) -> Step:
    """Non-supervisory check recording failure when predicate(value) is false.

    failure may be an exception instance or a function building one from the
    rejected value.
    """
    def test(value: Any) -> Optional[BaseException]:
        if predicate(value):
            return None
        if isinstance(failure, BaseException):
            return failure
        return failure(value)
    return Step(StepKind.CHECK, test, name="require")


def clear_failures(prefix: str = "recovered") -> Step:
    """Supervisory step that moves every recorded failure into the message ledger.

    Use it after a failure has been handled so later non-supervisory steps
    run again.  Each cleared failure is kept as a "<prefix>: <failure>" message.
    """
    def clear(result: Result) -> Result:
        for failure in result.clear_failures():
            result.add_message(f"{prefix}: {failure}")
        return result
    return Step(StepKind.RESULT, clear, name="clear_failures")
