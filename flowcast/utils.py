"""
Utility functions for flowcast.
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional

from rich.console import Console
from rich.logging import RichHandler


# Configure logging with Rich handler
def setup_logger(name: str = "flowcast", level: str = "INFO") -> logging.Logger:
    """Set up a logger with Rich formatting.

    Log records go to stderr so JSON written to stdout stays parseable.
    """
    logger = logging.getLogger(name)

    # Clear existing handlers
    logger.handlers = []

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    return logger


# Global logger instance
logger = setup_logger()


def set_log_level(level: str) -> None:
    """Change the level of the package logger."""
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))


def merge_dicts(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in update.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def find_upwards(filenames, start: Optional[Path] = None) -> Optional[Path]:
    """Return the first of ``filenames`` found in ``start`` or its parents."""
    current = start or Path.cwd()

    for parent in [current] + list(current.parents):
        for name in filenames:
            candidate = parent / name
            if candidate.exists():
                return candidate

    return None


def clamp(value, lower, upper=None):
    """Clamp ``value`` into ``[lower, upper]``; ``upper`` may be omitted."""
    if value < lower:
        return lower
    if upper is not None and value > upper:
        return upper
    return value
