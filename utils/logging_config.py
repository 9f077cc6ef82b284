# Directory: utils
# Filename: logging_config.py

import logging
import os
import sys
from typing import Dict, Optional, Union

NODE_LOG_FORMAT = '%(asctime)s.%(msecs)03d  %(levelname)-8s  %(name)-18s  %(message)s'
NODE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Per-logger levels. 'root' applies to everything not listed.
NODE_LOG_LEVELS: Dict[str, Union[int, str]] = {
    "root": logging.INFO,
    "NodeToolkit": logging.INFO,
    "NodeFSM": logging.INFO,
    "NodeFSM.Attempts": logging.INFO,
    "ConfigStore": logging.INFO,
    "ConfigStore.Storage": logging.WARNING,
    "AccessLog": logging.INFO, # Mirrors every access history entry
    "Pairing": logging.INFO,
    "transitions": logging.WARNING, # Library callback noise
}

LOG_FILE_ENV = "SMARTNODE_LOG_FILE"
LOG_LEVEL_ENV = "SMARTNODE_LOG_LEVEL"


def resolve_level(level: Union[int, str]) -> int:
    """
    Converts 'debug', 'INFO', 20, ... to a numeric logging level.

    Raises:
        ValueError: if `level` names no logging level.
    """
    if isinstance(level, int):
        return level
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")
    return numeric_level


def _report_setup_problem(root_logger: logging.Logger, has_console: bool, msg: str, exc_info: bool = False):
    # Before a console handler exists nothing would see a log record.
    if has_console:
        root_logger.error(msg, exc_info=exc_info)
    else:
        print(msg, file=sys.stderr)


def setup_logging(
    root_level: Optional[Union[int, str]] = None,
    level_overrides: Optional[Dict[str, Union[int, str]]] = None,
    log_to_console: bool = True,
    log_file_path: Optional[str] = None,
    log_file_mode: str = "a",
    log_format: str = NODE_LOG_FORMAT,
    date_format: str = NODE_DATE_FORMAT,
) -> logging.Logger:
    """
    Configures stdlib logging for a node process. Call once at start-up.

    Existing root handlers are replaced, so calling it again reconfigures
    cleanly. A file handler that cannot be created is reported and skipped.

    Returns:
        The root logger.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    levels = dict(NODE_LOG_LEVELS)
    if level_overrides:
        levels.update(level_overrides)
    if root_level is not None:
        levels["root"] = root_level
    requested_root = levels.pop("root", logging.INFO)
    try:
        root_logger.setLevel(resolve_level(requested_root))
        bad_root_level = None
    except ValueError as e:
        root_logger.setLevel(logging.INFO)
        bad_root_level = e

    formatter = logging.Formatter(log_format, datefmt=date_format)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file_path:
        try:
            log_dir = os.path.dirname(log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file_path, mode=log_file_mode, encoding='utf-8')
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            _report_setup_problem(root_logger, log_to_console,
                                  f"Error setting up file logging to '{log_file_path}': {e}", exc_info=True)

    if bad_root_level is not None:
        _report_setup_problem(root_logger, log_to_console,
                              f"Could not set root log level to '{requested_root}': {bad_root_level}. Using INFO.")

    for logger_name, level in levels.items():
        try:
            logging.getLogger(logger_name).setLevel(resolve_level(level))
        except ValueError as e:
            _report_setup_problem(root_logger, log_to_console,
                                  f"Could not set log level for '{logger_name}' to '{level}': {e}")

    file_status = f"'{log_file_path}'" if log_file_path else "Disabled"
    logging.getLogger("LoggingConfig").info(
        f"Logging configured. Root level: {logging.getLevelName(root_logger.level)}. "
        f"Console: {log_to_console}, File: {file_status}.")
    return root_logger


def setup_logging_from_env(**kwargs) -> logging.Logger:
    """setup_logging() with SMARTNODE_LOG_FILE / SMARTNODE_LOG_LEVEL taken from the environment."""
    kwargs.setdefault('log_file_path', os.environ.get(LOG_FILE_ENV) or None)
    env_level = os.environ.get(LOG_LEVEL_ENV)
    if env_level and 'root_level' not in kwargs:
        kwargs['root_level'] = env_level
    return setup_logging(**kwargs)
