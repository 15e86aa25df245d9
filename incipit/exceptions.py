"""Exceptions for project access and compilation, one class per error kind."""

from pathlib import Path
from typing import List, Optional, Union

PathLike = Union[str, Path]


class IncipitError(Exception):
    """
    Base class for every failure the command surface reports.

    Attributes:
        message: Error description
        path: Offending path, relative to the project root where known
    """

    def __init__(self, message: str, path: Optional[PathLike] = None):
        self.message = message
        self.path = str(path) if path is not None else None

        parts = [message]
        if self.path and self.path not in message:
            parts.append(f"({self.path})")

        super().__init__(" ".join(parts))


class ProjectIOError(IncipitError):
    """Filesystem entry unreadable or unwritable."""


class PathEscapeError(IncipitError):
    """
    A path resolves outside the project root.

    Raised for `..` segments, absolute paths and symlinks that leave the root.

    Attributes:
        requested_by: Document that referenced the path (None for direct requests)
    """

    def __init__(
        self,
        message: str,
        path: Optional[PathLike] = None,
        requested_by: Optional[str] = None,
    ):
        self.requested_by = requested_by
        if requested_by:
            message = f"{message} (referenced from {requested_by})"
        super().__init__(message, path)


class MissingDependencyError(IncipitError):
    """
    A referenced file does not exist inside the project.

    Attributes:
        requested_by: Document containing the reference
    """

    def __init__(
        self,
        message: str,
        path: Optional[PathLike] = None,
        requested_by: Optional[str] = None,
    ):
        self.requested_by = requested_by
        if requested_by:
            message = f"{message} (referenced from {requested_by})"
        super().__init__(message, path)


class EngineFailure(IncipitError):
    """
    The typesetting engine ran and reported diagnostics instead of output.

    Attributes:
        diagnostics: Compiler transcript, verbatim
        errors: Individual error lines parsed from the compiler log
    """

    def __init__(
        self,
        message: str,
        diagnostics: str = "",
        errors: Optional[List[str]] = None,
    ):
        self.diagnostics = diagnostics
        self.errors = list(errors or [])
        super().__init__(message)


class BusyError(IncipitError):
    """A compile for the same target is already in flight."""


class MalformedMetadataError(IncipitError):
    """A persisted metadata record could not be parsed."""
