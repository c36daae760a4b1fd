"""
Logging for agentgate.

All modules log through the single ``logger`` defined here. User-facing
output (model text, tool error lines, API errors) is written directly to
stdout/stderr by the turn controller and never goes through this logger.
"""

import json
import logging
import sys
from typing import Any, Optional

LOGGER_NAME = "agentgate"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

logger = logging.getLogger(LOGGER_NAME)
logger.addHandler(logging.NullHandler())


def setup_logging(debug: bool = False, stream=None) -> logging.Logger:
    """
    Install a single stderr handler on the package logger.

    Args:
        debug: Log at DEBUG level when True, WARNING otherwise
        stream: Optional stream override (defaults to sys.stderr)

    Returns:
        The configured package logger
    """
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    logger.propagate = False

    # LiteLLM is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)
    return logger


def _shorten(value: Any, limit: int = 200) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def log_tool_call(name: str, arguments: Any, display: Optional[str], error: Optional[str] = None) -> None:
    """Log one executed tool call."""
    if error:
        logger.info(f"[tools] {name}({_shorten(arguments)}) failed: {_shorten(error)}")
    else:
        logger.info(f"[tools] {name}({_shorten(arguments)}) -> {_shorten(display or '')}")
