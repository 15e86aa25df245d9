"""
Project context logger.

Provides logging interface for project context with automatic [project] prefix.
All project modules should import from this module, not from loguru directly.
"""

from loguru import logger

CONTEXT_PREFIX = "[project]"


def _log_info(message: str) -> None:
    """Log info message with [project] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [project] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [project] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")
