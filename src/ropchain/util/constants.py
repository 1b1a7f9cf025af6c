"""Config keys used with get_config().

Set via ~/.ropchain.toml or ROPCHAIN_* environment variables.
"""
# Streaming (used by ropchain.operations.thread_ops)
ROPCHAIN_STREAM_QUEUE_SIZE = "stream_queue_size"
ROPCHAIN_PARALLEL_WORKERS = "parallel_workers"
ROPCHAIN_PARALLEL_WINDOW = "parallel_window"

# Logging (used by ropchain.util.config.configure_logger)
ROPCHAIN_LOGGER_LEVELS = "logger_levels"
ROPCHAIN_LOGGER_FILES = "logger_files"
