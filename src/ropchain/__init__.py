from ropchain.pipe.core import Result, ResultTracker, AbstractHandler, HandlerFunc, new_result
from ropchain.pipe.errors import RopError, NoProcessorError, InvalidStepError, RecoveredError, ChannelClosedError
from ropchain.pipe.steps import (
    Step, StepKind, classify, adapt,
    result_step, middleware, handler, handler_factory, manual, try_step, check, transform, tap,
)
from ropchain.pipe.chain import Chain, chain, run
from ropchain.pipe.basic import recover, supervised, passthrough, noop, log_result, annotate, require, clear_failures
from ropchain.operations.thread_ops import Channel, pipe_chain, parallel_pipe_chain
