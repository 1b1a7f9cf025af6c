"""Streaming a chain over items that arrive on a channel.

pipe_chain() starts one background worker that takes each input in arrival
order, runs the chain on it and puts the Result on an output Channel.  The
output is closed once the input is exhausted and every Result has been put.

parallel_pipe_chain() does the same with a pool of workers.  Results are
still emitted in input order: submitted work is kept in a bounded FIFO and
each Result is written as soon as it and every earlier one are done.
"""
from typing import Any, Iterable, Optional
from concurrent.futures import Future, ThreadPoolExecutor
import logging
import queue
import threading

from ropchain.pipe.chain import Chain
from ropchain.pipe.errors import ChannelClosedError
from ropchain.util.config import get_config
from ropchain.util.constants import (
    ROPCHAIN_PARALLEL_WINDOW, ROPCHAIN_PARALLEL_WORKERS, ROPCHAIN_STREAM_QUEUE_SIZE
)

logger = logging.getLogger(__name__)

_END_OF_INPUT = object()


class Channel:
    """
    A closable FIFO of items between one producer and one consumer.

    put() blocks while the channel is full.  close() marks the end of the
    stream; the consumer's iteration stops once every item put before the
    close has been taken.  close() may be called more than once but the end
    marker is only enqueued the first time.  A producer that stopped because
    of an exception passes it to close(), and the consumer finds it on
    ``error`` after iteration ends.
    """
    def __init__(self, maxsize: int = 1):
        self._queue = queue.Queue(maxsize=maxsize)
        self._sentinel = object()
        self._lock = threading.Lock()
        self._closed = False
        self._drained = False
        self.error: Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item: Any):
        if self._closed:
            raise ChannelClosedError("Cannot put on a closed channel")
        self._queue.put(item)

    def close(self, error: Optional[BaseException] = None) -> bool:
        """Close the channel.  Returns False if it was already closed."""
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            self.error = error
        self._queue.put(self._sentinel)
        return True

    def __iter__(self):
        return self

    def __next__(self):
        if self._drained:
            raise StopIteration
        item = self._queue.get()
        if item is self._sentinel:
            self._drained = True
            raise StopIteration
        return item


def _default_queue_size() -> int:
    return int(get_config().get(ROPCHAIN_STREAM_QUEUE_SIZE, 1))


class StreamWorker:
    """
    Applies one compiled chain to every item of an inbound iterable on a
    single background thread, writing the Results to ``output`` in order.
    """
    def __init__(self, inbound: Iterable[Any], compiled: Chain, maxsize: Optional[int] = None):
        self.inbound = inbound
        self.chain = compiled
        self.output = Channel(maxsize=maxsize if maxsize is not None else _default_queue_size())
        self.processed = 0
        self._thread = threading.Thread(target=self._worker, daemon=True, name="ropchain-stream")

    @property
    def error(self) -> Optional[BaseException]:
        return self.output.error

    def start(self) -> 'StreamWorker':
        self._thread.start()
        return self

    def join(self, timeout: Optional[float] = None):
        self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _worker(self):
        logger.debug(f"Stream worker started for {self.chain!r}")
        error = None
        try:
            self._process_all()
        except Exception as e:
            logger.exception(f"Stream worker failed after {self.processed} items: {e}")
            error = e
        finally:
            self.output.close(error)
            logger.debug(f"Stream worker finished after {self.processed} items")

    def _process_all(self):
        for item in self.inbound:
            self.output.put(self.chain.process(item))
            self.processed += 1

    def __iter__(self):
        return iter(self.output)


class ParallelStreamWorker(StreamWorker):
    """
    A StreamWorker that runs up to ``workers`` chain invocations at once.

    A feeder thread submits inputs as they arrive while the worker thread
    writes each Result as soon as it and every earlier one are done, so output
    order matches input order and no finished Result waits for later input.
    At most ``window`` submitted inputs wait to be written.  Steps that keep
    state between invocations must not be used here.
    """
    def __init__(self, inbound: Iterable[Any], compiled: Chain, workers: int, window: Optional[int] = None,
                 maxsize: Optional[int] = None):
        super().__init__(inbound, compiled, maxsize=maxsize)
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.workers = workers
        self.window = max(window or workers * 2, 1)

    def _process_all(self):
        pending = queue.Queue(maxsize=self.window)
        stop = threading.Event()
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="ropchain-worker") as executor:
            feeder = threading.Thread(target=self._feed, args=(executor, pending, stop),
                                      daemon=True, name="ropchain-feeder")
            feeder.start()
            try:
                while True:
                    entry = pending.get()
                    if entry is _END_OF_INPUT:
                        break
                    if isinstance(entry, BaseException):
                        raise entry
                    self._emit(entry)
            finally:
                stop.set()
                self._cancel_pending(pending)

    def _feed(self, executor, pending, stop):
        try:
            for item in self.inbound:
                if stop.is_set():
                    return
                pending.put(executor.submit(self.chain.process, item))
        except Exception as e:
            pending.put(e)
            return
        pending.put(_END_OF_INPUT)

    @staticmethod
    def _cancel_pending(pending):
        while True:
            try:
                entry = pending.get_nowait()
            except queue.Empty:
                return
            if isinstance(entry, Future):
                entry.cancel()

    def _emit(self, future):
        self.output.put(future.result())
        self.processed += 1


def _compile(steps) -> Chain:
    if len(steps) == 1 and isinstance(steps[0], Chain):
        return steps[0]
    return Chain(*steps)


def pipe_chain(inbound: Iterable[Any], *steps: Any, maxsize: Optional[int] = None) -> Channel:
    """Run a chain over every inbound item on one background worker.

    Args:
        inbound: A Channel or any iterable of Results (or bare payloads).
        *steps: The steps of the chain, or a single prebuilt Chain.
        maxsize: Capacity of the output channel.  Defaults to the
            ``stream_queue_size`` config value, or 1.

    Returns:
        The output Channel.  It yields one Result per input, in input order,
        and is closed after the input is exhausted.
    """
    return StreamWorker(inbound, _compile(steps), maxsize=maxsize).start().output


def parallel_pipe_chain(inbound: Iterable[Any], *steps: Any, workers: Optional[int] = None,
                        window: Optional[int] = None, maxsize: Optional[int] = None) -> Channel:
    """Like pipe_chain(), but runs the chain for several inputs at once.

    Output order still equals input order.  ``workers`` and ``window``
    default to the ``parallel_workers`` and ``parallel_window`` config
    values.
    """
    config = get_config()
    if workers is None:
        workers = int(config.get(ROPCHAIN_PARALLEL_WORKERS, 4))
    if window is None and ROPCHAIN_PARALLEL_WINDOW in config:
        window = int(config[ROPCHAIN_PARALLEL_WINDOW])
    worker = ParallelStreamWorker(inbound, _compile(steps), workers=workers, window=window, maxsize=maxsize)
    return worker.start().output
