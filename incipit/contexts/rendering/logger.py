"""
Rendering context logger.

Provides logging interface for rendering context with automatic [render] prefix.
All rendering modules should import from this module, not from loguru directly.
"""

from loguru import logger

CONTEXT_PREFIX = "[render]"


# Wrapper functions with automatic [render] prefix


def _log_info(message: str) -> None:
    """Log info message with [render] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [render] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [render] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [render] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [render] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level rendering-specific logging helpers


def log_compilation_start(target_file: str, project_root, sequence: int, has_buffer: bool) -> None:
    """Log start of compilation with context."""
    _log_info(f"Starting compilation #{sequence}: {target_file}")
    _log_debug(f"  Project: {project_root}")
    _log_debug(f"  Source: {'unsaved buffer' if has_buffer else 'disk'}")


def log_compilation_result(
    target_file: str,
    outcome,  # CompileOutcome
    elapsed_time: float,
    page_count=None,
    verbose: bool = False,
) -> None:
    """
    Log compilation outcome with diagnostics.

    Args:
        target_file: Project-relative target document
        outcome: CompileOutcome from the orchestrator
        elapsed_time: Time taken to compile
        page_count: Page count of the produced artifact, when known
        verbose: Show more error lines and the full compiler transcript
    """
    if outcome.success:
        pages = f", {page_count} pages" if page_count else ""
        _log_success(f"{target_file}: compiled ({elapsed_time:.2f}s{pages})")
        if outcome.artifact is not None:
            _log_debug(f"  PDF: {outcome.artifact.path}")
        return

    error = outcome.error
    _log_error(f"{target_file}: {error.kind.value} ({elapsed_time:.2f}s)")
    _log_error(f"  {error.message}")

    error_limit = 10 if verbose else 5
    for i, err in enumerate(error.errors[:error_limit], 1):
        _log_error(f"  Error {i}: {err}")
    if len(error.errors) > error_limit:
        _log_error(f"  ... and {len(error.errors) - error_limit} more errors")

    # Use opt(raw=True) to keep the compiler transcript formatting intact
    if error.diagnostics:
        logger.opt(raw=True).debug(
            f"\n{'=' * 80}\nCOMPILER OUTPUT:\n{'=' * 80}\n{error.diagnostics}\n"
        )
