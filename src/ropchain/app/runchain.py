"""Stream lines of input through a chain defined in a Python module."""
from typing import List, Optional
import argparse
import logging
import sys

from ropchain.operations.thread_ops import parallel_pipe_chain, pipe_chain
from ropchain.pipe.chain import Chain
from ropchain.pipe.core import Result
from ropchain.util import config
from ropchain.util.config import load_module_file

logger = logging.getLogger(__name__)

DEFAULT_STEPS_ATTRIBUTE = "STEPS"


def load_chain(steps_spec: str) -> Chain:
    """Load a chain from a "path/to/module.py[:ATTRIBUTE]" reference.

    The attribute (STEPS by default) must be a Chain or a list of steps.

    Raises:
        FileNotFoundError: If the module file does not exist
        ValueError: If the attribute is missing or is not a chain or list of steps
    """
    path, sep, attribute = steps_spec.rpartition(":")
    if not sep or not attribute.isidentifier():
        path, attribute = steps_spec, DEFAULT_STEPS_ATTRIBUTE

    module = load_module_file(path, fail_on_missing=True)
    if not hasattr(module, attribute):
        raise ValueError(f"Module {path} has no attribute '{attribute}'")

    steps = getattr(module, attribute)
    if isinstance(steps, Chain):
        return steps
    if isinstance(steps, (list, tuple)):
        return Chain(*steps)
    raise ValueError(f"'{attribute}' in {path} must be a Chain or a list of steps, not {type(steps).__name__}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run a chain over input lines from the command line.

    Command Line Arguments:
        --steps: Module file defining the chain, as "module.py[:ATTRIBUTE]"
        --input: File with one input per line (defaults to stdin)
        --parallel: Number of workers; more than 1 uses the parallel stream
        --logger_levels: Logger levels in format 'logger:level,logger:level,...'
        --logger_files: Logger files in format 'logger:file,logger:file,...'

    Each input line becomes the payload of a Result.  Every output Result is
    printed as one line of JSON, in input order.

    Returns:
        0 if no Result recorded a failure, 1 otherwise
    """
    parser = argparse.ArgumentParser(description='Stream lines of input through a chain defined in a Python module.')
    parser.add_argument('--steps', type=str, required=True, help='Module file defining the chain, as module.py[:ATTRIBUTE]. ATTRIBUTE defaults to STEPS.')
    parser.add_argument('--input', type=str, default=None, help='File with one input per line. Reads stdin if omitted.')
    parser.add_argument('--parallel', type=int, default=1, help='Number of worker threads. Output order is preserved.')
    parser.add_argument("--logger_levels", type=str, help="Logger levels in format 'logger:level,logger:level,...'")
    parser.add_argument("--logger_files", type=str, help="Logger files in format 'logger:file,logger:file,...'")
    args = parser.parse_args(argv)

    config.configure_logger(args.logger_levels, logger_files=args.logger_files)
    compiled = load_chain(args.steps)
    logger.info(f"Running {compiled!r}")

    source = open(args.input, encoding="utf-8") if args.input else sys.stdin
    failed = 0
    try:
        inputs = (Result(line.rstrip("\n")) for line in source)
        if args.parallel > 1:
            output = parallel_pipe_chain(inputs, compiled, workers=args.parallel)
        else:
            output = pipe_chain(inputs, compiled)
        for result in output:
            print(result.model_dump_json(), flush=True)
            if result.failed:
                failed += 1
    finally:
        if source is not sys.stdin:
            source.close()

    if output.error is not None:
        raise output.error
    logger.info(f"{failed} results recorded failures")
    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
