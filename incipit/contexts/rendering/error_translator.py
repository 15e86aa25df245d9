"""Translate raised failures into CompileError values. Pure, no I/O."""

from incipit.contexts.rendering.models import CompileError, ErrorKind
from incipit.exceptions import (
    BusyError,
    EngineFailure,
    MalformedMetadataError,
    MissingDependencyError,
    PathEscapeError,
    ProjectIOError,
)


def translate(error: BaseException) -> CompileError:
    """
    Map an exception to the error taxonomy.

    Raw OSErrors count as IO errors. Anything else is taken to come from the
    engine, whose failure modes are opaque, and is reported as an engine error.
    """
    if isinstance(error, PathEscapeError):
        return CompileError(
            kind=ErrorKind.SECURITY_ERROR,
            message=error.message,
            path=error.path,
            requested_by=error.requested_by,
        )

    if isinstance(error, MissingDependencyError):
        return CompileError(
            kind=ErrorKind.MISSING_DEPENDENCY,
            message=error.message,
            path=error.path,
            requested_by=error.requested_by,
        )

    if isinstance(error, EngineFailure):
        return CompileError(
            kind=ErrorKind.ENGINE_ERROR,
            message=error.message,
            diagnostics=error.diagnostics,
            errors=list(error.errors),
        )

    if isinstance(error, BusyError):
        return CompileError(kind=ErrorKind.BUSY, message=error.message, path=error.path)

    if isinstance(error, MalformedMetadataError):
        return CompileError(kind=ErrorKind.MALFORMED_METADATA, message=error.message, path=error.path)

    if isinstance(error, ProjectIOError):
        return CompileError(kind=ErrorKind.IO_ERROR, message=error.message, path=error.path)

    if isinstance(error, OSError):
        return CompileError(
            kind=ErrorKind.IO_ERROR,
            message=error.strerror or str(error),
            path=str(error.filename) if error.filename is not None else None,
        )

    return CompileError(
        kind=ErrorKind.ENGINE_ERROR,
        message=f"Engine raised {type(error).__name__}",
        diagnostics=str(error),
    )
