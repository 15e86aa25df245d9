"""
Command surface consumed by a UI layer.

Every command is a typed request dataclass. IncipitSession.dispatch() looks up
the handler for the request's type and returns a CommandResponse; failures
from the error taxonomy come back as `CommandResponse.error` and are never
raised to the caller.

Compiles can be dispatched without blocking through submit_compile(), which
returns a future resolving to the CommandResponse.

Example:
    session = IncipitSession(LatexEngine())
    response = session.dispatch(OpenProject("~/thesis"))
    if response.ok:
        tree = response.value
"""

from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from incipit.contexts.project import (
    FileNode,
    GlobalSettings,
    MetadataStore,
    ProjectMeta,
    build_tree,
    create_skeleton,
)
from incipit.contexts.project.logger import _log_info, _log_warning
from incipit.contexts.rendering import (
    BuildCache,
    CompilationOrchestrator,
    CompileError,
    CompileOutcome,
    CompileRequest,
    Engine,
    translate,
)
from incipit.exceptions import IncipitError, MissingDependencyError, ProjectIOError
from incipit.utils.fs import atomic_write_text
from incipit.utils.paths import PathLike, canonical_root, normalize_relative, resolve_within


@dataclass(frozen=True)
class OpenProject:
    path: PathLike


@dataclass(frozen=True)
class CreateNewProject:
    path: PathLike


@dataclass(frozen=True)
class ReadFile:
    project_root: PathLike
    file_path: str


@dataclass(frozen=True)
class SaveFile:
    project_root: PathLike
    file_path: str
    content: str


@dataclass(frozen=True)
class LoadProjectMeta:
    project_root: PathLike


@dataclass(frozen=True)
class SaveProjectMeta:
    project_root: PathLike
    meta: ProjectMeta


@dataclass(frozen=True)
class LoadGlobalSettings:
    pass


@dataclass(frozen=True)
class SaveGlobalSettings:
    settings: GlobalSettings


@dataclass(frozen=True)
class CheckPdfExists:
    project_root: PathLike
    file_path: str


@dataclass(frozen=True)
class LoadPdf:
    project_root: PathLike
    file_path: str


@dataclass(frozen=True)
class CompileLatexProject:
    project_root: PathLike
    file_path: str
    unsaved_buffer: Optional[str] = None


Command = Union[
    OpenProject,
    CreateNewProject,
    ReadFile,
    SaveFile,
    LoadProjectMeta,
    SaveProjectMeta,
    LoadGlobalSettings,
    SaveGlobalSettings,
    CheckPdfExists,
    LoadPdf,
    CompileLatexProject,
]


@dataclass(frozen=True)
class CommandResponse:
    """
    Result of a command.

    Attributes:
        ok: Whether the command succeeded
        value: Command output (FileNode, str, bytes, bool, records or None)
        error: Structured failure when ok is False
    """

    ok: bool
    value: Any = None
    error: Optional[CompileError] = None

    @classmethod
    def success(cls, value: Any = None) -> "CommandResponse":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: CompileError) -> "CommandResponse":
        return cls(ok=False, error=error)

    @classmethod
    def from_outcome(cls, outcome: CompileOutcome) -> "CommandResponse":
        if outcome.success:
            return cls.success(outcome.artifact.data)
        return cls.failure(outcome.error)


class IncipitSession:
    """
    Owns the stores and the compile pipeline behind the command surface.

    Args:
        engine: Typesetting backend (used when no orchestrator is given)
        store: Metadata store (default: a store in the user config directory)
        orchestrator: Compile pipeline (default: one built around `engine`)
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        store: Optional[MetadataStore] = None,
        orchestrator: Optional[CompilationOrchestrator] = None,
    ):
        if orchestrator is None:
            if engine is None:
                raise ValueError("Either an engine or an orchestrator is required")
            orchestrator = CompilationOrchestrator(engine)

        self.store = store or MetadataStore()
        self.orchestrator = orchestrator

        self._handlers: Dict[type, Callable[[Any], Any]] = {
            OpenProject: self._open_project,
            CreateNewProject: self._create_new_project,
            ReadFile: self._read_file,
            SaveFile: self._save_file,
            LoadProjectMeta: lambda c: self.store.load_project_meta(c.project_root),
            SaveProjectMeta: lambda c: self.store.save_project_meta(c.project_root, c.meta),
            LoadGlobalSettings: lambda c: self.store.load_global(),
            SaveGlobalSettings: lambda c: self.store.save_global(c.settings),
            CheckPdfExists: lambda c: self.cache.exists(c.project_root, c.file_path),
            LoadPdf: self._load_pdf,
            CompileLatexProject: self._compile,
        }

    @property
    def cache(self) -> BuildCache:
        return self.orchestrator.cache

    def __enter__(self) -> "IncipitSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.orchestrator.shutdown()

    def dispatch(self, command: Command) -> CommandResponse:
        """
        Run a command and wrap its result.

        CompileLatexProject blocks until the compile finishes; use
        submit_compile() from an interactive thread.

        Raises:
            TypeError: If `command` is not a known command type
        """
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unknown command: {type(command).__name__}")

        try:
            result = handler(command)
        except (IncipitError, OSError) as e:
            error = translate(e)
            _log_warning(f"{type(command).__name__} failed: [{error.kind.value}] {error.message}")
            return CommandResponse.failure(error)

        if isinstance(result, CommandResponse):
            return result
        return CommandResponse.success(result)

    def submit_compile(self, command: CompileLatexProject) -> "Future[CommandResponse]":
        """Dispatch a compile without blocking; the future never raises taxonomy errors."""
        response: Future = Future()
        compile_future = self.orchestrator.submit(self._request(command))

        def _done(finished: Future) -> None:
            if finished.cancelled():
                response.cancel()
            elif finished.exception() is not None:
                response.set_exception(finished.exception())
            else:
                response.set_result(CommandResponse.from_outcome(finished.result()))

        compile_future.add_done_callback(_done)
        return response

    @staticmethod
    def _request(command: CompileLatexProject) -> CompileRequest:
        return CompileRequest(command.project_root, command.file_path, command.unsaved_buffer)

    def _remember_project(self, project_root: Path) -> None:
        # Read-modify-write; the store never merges partial updates
        settings = self.store.load_global()
        settings.add_recent_project(str(project_root))
        try:
            self.store.save_global(settings)
        except ProjectIOError as e:
            _log_warning(f"Could not update recent projects: {e}")

    def _open_project(self, command: OpenProject) -> FileNode:
        tree = build_tree(command.path)
        self._remember_project(tree.absolute_path)
        return tree

    def _create_new_project(self, command: CreateNewProject) -> FileNode:
        tree = create_skeleton(command.path)
        self.store.initialize_project(tree.absolute_path)
        self._remember_project(tree.absolute_path)
        # The metadata record is hidden, so the tree built before it is still current
        return tree

    def _read_file(self, command: ReadFile) -> str:
        root = canonical_root(command.project_root)
        path = resolve_within(root, normalize_relative(command.file_path))
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ProjectIOError(f"Failed to read file: {e}", command.file_path) from e

    def _save_file(self, command: SaveFile) -> None:
        root = canonical_root(command.project_root)
        path = resolve_within(root, normalize_relative(command.file_path))
        if path.is_dir():
            raise ProjectIOError("Path is a directory", command.file_path)
        try:
            atomic_write_text(path, command.content)
        except OSError as e:
            raise ProjectIOError(f"Failed to save file: {e}", command.file_path) from e
        _log_info(f"Saved {normalize_relative(command.file_path)}")

    def _load_pdf(self, command: LoadPdf) -> bytes:
        artifact = self.cache.lookup(command.project_root, command.file_path)
        if artifact is None:
            raise MissingDependencyError("No compiled PDF for this file", command.file_path)
        return artifact.data

    def _compile(self, command: CompileLatexProject) -> CommandResponse:
        outcome = self.orchestrator.compile(self._request(command))
        return CommandResponse.from_outcome(outcome)
