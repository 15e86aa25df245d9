"""Request, state and outcome types shared by the rendering context."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from incipit.contexts.rendering.build_cache import BuildArtifact


@dataclass(frozen=True)
class CompileRequest:
    """
    One compile attempt. Immutable once submitted.

    Attributes:
        project_root: Project directory (sandbox boundary)
        target_file: Project-relative path of the document to compile
        unsaved_buffer: Editor content replacing the target's on-disk content
    """

    project_root: Union[str, Path]
    target_file: str
    unsaved_buffer: Optional[str] = None


class CompileState(Enum):
    """Lifecycle of the most recent compile for a target."""

    IDLE = "idle"
    RESOLVING = "resolving"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ErrorKind(Enum):
    """Closed error taxonomy surfaced to callers."""

    IO_ERROR = "IoError"
    SECURITY_ERROR = "SecurityError"
    MISSING_DEPENDENCY = "MissingDependency"
    ENGINE_ERROR = "EngineError"
    BUSY = "Busy"
    MALFORMED_METADATA = "MalformedMetadata"


@dataclass(frozen=True)
class CompileError:
    """
    Structured failure, returned as a value.

    Attributes:
        kind: Taxonomy entry
        message: One-line description for display
        path: Offending path, when there is one
        requested_by: Document that referenced `path`
        diagnostics: Engine transcript, verbatim (ENGINE_ERROR only)
        errors: Individual error lines parsed from the engine log
    """

    kind: ErrorKind
    message: str
    path: Optional[str] = None
    requested_by: Optional[str] = None
    diagnostics: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def retryable(self) -> bool:
        """Whether the caller may retry without user intervention (after a debounce)."""
        return self.kind is ErrorKind.BUSY


@dataclass(frozen=True)
class CompileOutcome:
    """
    Result of a compile: an artifact on success, a CompileError otherwise.

    Attributes:
        success: Whether an artifact is available
        artifact: Cached artifact (success only)
        error: Structured failure (failure only)
        from_cache: True when the artifact was reused without running the engine
    """

    success: bool
    artifact: Optional[BuildArtifact] = None
    error: Optional[CompileError] = None
    from_cache: bool = False

    @classmethod
    def succeeded(cls, artifact: BuildArtifact, from_cache: bool = False) -> "CompileOutcome":
        return cls(success=True, artifact=artifact, from_cache=from_cache)

    @classmethod
    def failed(cls, error: CompileError) -> "CompileOutcome":
        return cls(success=False, error=error)
