"""Configuration and logging setup for ropchain.

Settings come from ``~/.ropchain.toml`` overlaid with ``ROPCHAIN_*``
environment variables and are cached after the first read.  The keys used by
the package are listed in ropchain.util.constants.
"""
import importlib.util
import logging
import os
import sys
import tomllib
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Dict, Optional

from ropchain.util.constants import ROPCHAIN_LOGGER_FILES, ROPCHAIN_LOGGER_LEVELS

logger = logging.getLogger(__name__)

ENV_PREFIX = "ROPCHAIN_"
DEFAULT_CONFIG_PATH = "~/.ropchain.toml"
LOG_FORMAT = '%(asctime)s - %(levelname)s:%(name)s:%(message)s'

_config = None


def parse_key_value_str(field_list: str, require_value: bool = False) -> Dict[str, str]:
    """Parse ``"name:value,name:value"`` into a dict.

    Only the first colon separates name from value, so values may be paths.
    A bare name maps to its last dotted component unless require_value is
    set, in which case it is a ValueError.
    """
    pairs = {}
    for item in field_list.split(","):
        name, sep, value = item.partition(":")
        name = name.strip()
        if sep:
            pairs[name] = value.strip()
        elif require_value:
            raise ValueError(f"Value required for property '{name}'")
        else:
            pairs[name] = name.rsplit(".", 1)[-1]
    return pairs


def reset_config():
    global _config
    _config = None


def _read_toml(path: str) -> Dict[str, Any]:
    config_path = os.path.expanduser(path)
    if not os.path.exists(config_path):
        logger.debug(f"No config file at {config_path}")
        return {}
    logger.info(f"Reading config from {config_path}")
    with open(config_path, 'rb') as f:
        return tomllib.load(f)


def _env_settings() -> Dict[str, str]:
    return {name[len(ENV_PREFIX):].lower(): value
            for name, value in os.environ.items() if name.startswith(ENV_PREFIX)}


def get_config(reload=False, path=DEFAULT_CONFIG_PATH, ignore_env=False):
    """Return the cached settings, loading them on first use or when reload is set.

    ``ROPCHAIN_STREAM_QUEUE_SIZE=4`` in the environment overrides
    ``stream_queue_size`` from the file.  Environment values stay strings.
    """
    global _config
    if _config is None or reload:
        _config = _read_toml(path)
        if not ignore_env:
            _config.update(_env_settings())
        logger.debug(f"Loaded config keys: {sorted(_config)}")
    return _config


def _named_logger(name: str) -> logging.Logger:
    return logging.getLogger(None if name == "root" else name)


def configure_logger(logger_levels: Optional[str] = None, base_level="WARNING", logger_files: Optional[str] = None):
    """Set up logging for a run.

    logger_levels is ``"logger:LEVEL,..."`` and logger_files is
    ``"logger:path,..."``; either falls back to its config key when omitted.
    Each leveled logger gets its own console handler, replacing any it had.
    Log files rotate at midnight and keep a week of backups.

    Example:
        configure_logger("ropchain.trace:INFO", logger_files="ropchain.trace:/tmp/trace.log")
    """
    config = get_config()
    logger_levels = logger_levels or config.get(ROPCHAIN_LOGGER_LEVELS)
    logger_files = logger_files or config.get(ROPCHAIN_LOGGER_FILES)

    logging.basicConfig(level=base_level.upper())
    formatter = logging.Formatter(LOG_FORMAT)

    levels = parse_key_value_str(logger_levels) if logger_levels else {}
    for name, level in levels.items():
        target = _named_logger(name)
        target.setLevel(level.upper())
        target.handlers.clear()
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        target.addHandler(console)

    files = parse_key_value_str(logger_files, require_value=True) if logger_files else {}
    for name, file_name in files.items():
        target = _named_logger(name)
        file_handler = TimedRotatingFileHandler(file_name, when="midnight", backupCount=7)
        file_handler.setLevel(target.getEffectiveLevel())
        file_handler.setFormatter(formatter)
        target.addHandler(file_handler)


def load_module_file(fname: str, fail_on_missing=False) -> Optional[Any]:
    """
    Load a Python module from a file, typically one defining chain steps.
    Supports ~ notation for home directory.

    Args:
        fname: Path to the module file (absolute, relative, or with ~)
        fail_on_missing: Raise instead of returning None if the file does not exist

    Returns:
        The loaded module, or None if the file does not exist

    Raises:
        FileNotFoundError: If the module file doesn't exist and fail_on_missing is True
        ImportError: If the module cannot be imported
    """
    module_path = os.path.abspath(os.path.expanduser(fname))

    if not os.path.exists(module_path):
        logger.warning(f"Module file not found: {module_path}")
        if fail_on_missing:
            raise FileNotFoundError(f"Module file not found: {module_path}")
        return None

    module_dir = os.path.dirname(module_path)
    module_name = f"ropchain_steps_{os.path.splitext(os.path.basename(module_path))[0]}"

    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load module from {module_path}")

    module = importlib.util.module_from_spec(spec)

    # The module's own directory is importable while it executes
    sys.path.insert(0, module_dir)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise ImportError(f"Error loading module file {module_path}: {e}") from e
    finally:
        sys.path.remove(module_dir)
    return module
