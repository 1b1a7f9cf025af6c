"""Chain builder

A Chain folds an ordered list of steps into one callable from Result to
Result.  Steps are adapted into middlewares and linked right to left, starting
from the terminal no-op handler, so the first declared step is the first to
run.
"""
import logging
from typing import Any, Callable, Iterable, Iterator, List

from ropchain.pipe.core import NOOP_HANDLER, AbstractHandler, Result, ResultTracker
from ropchain.pipe.errors import NoProcessorError
from ropchain.pipe.steps import Step, adapt, classify

logger = logging.getLogger(__name__)


def link_steps(steps: Iterable[Any], terminal: AbstractHandler = NOOP_HANDLER) -> AbstractHandler:
    """Adapt steps and link them, last to first, ending at terminal.

    Returns the head handler.  None steps are skipped.
    """
    linked = terminal
    for step in reversed([s for s in steps if s is not None]):
        linked = adapt(step)(linked)
    return linked


class Chain:
    """An immutable, ordered sequence of adapted steps.

    Each invocation seeds a fresh ResultTracker with the input, runs the head
    handler (which transitively runs every linked handler) and returns the
    tracker's last Result.

    None steps are skipped and pass the Result through.  A chain built with
    no steps at all records a NoProcessorError on the input and returns it
    without running anything.

    Examples:
        c = Chain(parse, validate, log_result())
        out = c(Result("1st"))

        # Chains compose with the | operator
        longer = c | enrich
    """

    def __init__(self, *steps: Any):
        self._empty = len(steps) == 0
        self._steps: List[Step] = [classify(s) for s in steps if s is not None]
        self._head: AbstractHandler = link_steps(self._steps)
        logger.debug(f"Built chain of {len(self._steps)} steps: {[s.name for s in self._steps]}")

    @property
    def steps(self) -> List[Step]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def process(self, result: Any = None) -> Result:
        """Run the chain once.

        Args:
            result: The input Result.  Any other value is wrapped as the payload
                of a new Result.

        Returns:
            The last Result written during the run.
        """
        if not isinstance(result, Result):
            result = Result(result)
        if self._empty:
            logger.debug("Chain has no steps")
            return result.add_failure(NoProcessorError())

        tracker = ResultTracker(result)
        self._head(result, tracker)
        return tracker.last()

    def __call__(self, result: Any = None) -> Result:
        return self.process(result)

    def stream(self, inputs: Iterable[Any]) -> Iterator[Result]:
        """Lazily apply the chain to each input, yielding results in order."""
        for item in inputs:
            yield self.process(item)

    def as_function(self) -> Callable[[Any], Result]:
        """Convert the chain to a function taking a bare payload value."""
        def func(value: Any = None) -> Result:
            return self.process(Result(value))
        return func

    def __or__(self, other: Any) -> 'Chain':
        """Append a step, or every step of another chain, returning a new Chain."""
        if isinstance(other, Chain):
            if self._empty and other._empty:
                return Chain()
            # the leading None keeps a combination of None-only chains non-empty
            return Chain(None, *self._steps, *other._steps)
        return Chain(*self._steps, other)

    def __repr__(self):
        return f"Chain({', '.join(s.name for s in self._steps)})"


def chain(*steps: Any) -> Chain:
    """Build a Chain from the given steps."""
    return Chain(*steps)


def run(steps: Iterable[Any], result: Any = None) -> Result:
    """Build a chain from steps and run it once on result."""
    return Chain(*steps).process(result)
