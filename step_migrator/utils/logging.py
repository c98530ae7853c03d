"""
Logging module for the step migration tool
"""

import json
import logging
import os
from typing import Any, Optional

LOGGER_NAME = "step_migrator"


class JsonFormatter(logging.Formatter):
    def format(self, record):
        data = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        # Include any additional attributes from the record
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS:
                data[key] = value
        return json.dumps(data, default=str)


_STANDARD_RECORD_ATTRS = frozenset(
    (
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "id",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    )
)


class EnhancedFormatter(logging.Formatter):
    """
    Formatter that supports verbose mode (module and line information)
    and appends the step name when a record carries one.
    """

    def __init__(self, fmt=None, datefmt=None, style="%", verbose=False):
        if verbose:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"
        elif not fmt:
            fmt = "%(asctime)s - %(levelname)s - %(message)s"

        super().__init__(fmt, datefmt, style)
        self.verbose = verbose

    def format(self, record):
        result = super().format(record)

        step = getattr(record, "step", None)
        if self.verbose and step:
            result += f" [step={step}]"

        return result


def setup_main_log_file(output_dir: str, json_format: bool = False) -> logging.FileHandler:
    """
    Set up a file handler for the main log file of a migration run.

    Args:
        output_dir: The output directory path
        json_format: If True, write one JSON object per line instead of text

    Returns:
        The file handler for the main log file
    """
    os.makedirs(output_dir, exist_ok=True)
    log_file = os.path.join(output_dir, "migration.log")

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setLevel(logging.DEBUG)  # Always use DEBUG level for file handlers

    if json_format:
        file_handler.setFormatter(JsonFormatter())
    else:
        file_handler.setFormatter(
            EnhancedFormatter("%(asctime)s - %(levelname)s - %(message)s")
        )

    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(file_handler)

    logger.info(f"Main log file created at: {log_file}")
    return file_handler


def setup_step_logger(output_dir: str, step: str, verbose: bool = False) -> logging.FileHandler:
    """
    Set up a file handler that only receives records for one step.

    Args:
        output_dir: The output directory path
        step: The step name
        verbose: If True, use the verbose format

    Returns:
        The file handler for the step log
    """
    logs_dir = os.path.join(output_dir, "step_logs")
    os.makedirs(logs_dir, exist_ok=True)

    log_file = os.path.join(logs_dir, f"{step}.log")

    file_handler = logging.FileHandler(log_file, mode="a")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(EnhancedFormatter(verbose=verbose))

    # Sub-steps are named "<step>_<collection>" and share the step's file
    class StepFilter(logging.Filter):
        def filter(self, record):
            record_step = getattr(record, "step", None)
            if not record_step:
                return False
            return record_step == step or record_step.startswith(f"{step}_")

    file_handler.addFilter(StepFilter())

    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(file_handler)

    logger.debug(f"Step log file created at: {log_file}", extra={"step": step})
    return file_handler


def remove_handler(handler: logging.Handler) -> None:
    """Detach and close a handler previously added to the tool logger."""
    logging.getLogger(LOGGER_NAME).removeHandler(handler)
    handler.close()


def setup_logger(
    verbose: bool = False, output_dir: Optional[str] = None, json_format: bool = False
) -> logging.Logger:
    """
    Set up and return the logger with appropriate formatting.

    Args:
        verbose: If True, set console handler to DEBUG level; otherwise INFO level
        output_dir: Optional output directory for the main log file
        json_format: Write the main log file as JSON lines

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to prevent duplicate messages
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG)  # Always set logger to DEBUG to capture all logs

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(EnhancedFormatter(verbose=verbose))
    logger.addHandler(console_handler)

    if output_dir:
        setup_main_log_file(output_dir, json_format=json_format)

    return logger


def log_with_context(level: int, message: str, **kwargs: Any) -> None:
    """
    Log a message with additional context information.

    Args:
        level: The logging level (e.g., logging.INFO)
        message: The log message
        **kwargs: Additional context to include in the log record
    """
    exc_info = kwargs.pop("exc_info", None)

    # Filter out None values from kwargs
    extras = {k: v for k, v in kwargs.items() if v is not None}

    logger = logging.getLogger(LOGGER_NAME)
    logger.log(level, message, extra=extras, exc_info=exc_info)


def dry_run_prefix(dry_run: bool) -> str:
    """Return the prefix prepended to log messages emitted in dry-run mode."""
    return "[DRY RUN] " if dry_run else ""


def get_logger() -> logging.Logger:
    """Get the step_migrator logger, creating it with defaults if needed."""
    tool_logger = logging.getLogger(LOGGER_NAME)
    if not tool_logger.handlers:
        tool_logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(EnhancedFormatter())
        tool_logger.addHandler(handler)
    return tool_logger


# Module logger - will be properly initialized when setup_logger is called
logger = get_logger()
