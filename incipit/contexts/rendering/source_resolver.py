"""
Virtual source resolution.

Turns a CompileRequest into a SourceView: a read-only view of the project in
which the target document's content comes from the editor's unsaved buffer
and every other path is read from disk, sandboxed to the project root.

The view offers two ways in for an engine:

- read(path): in-process virtual read, buffer for the exact target path and
  disk for everything else, with the sandbox check applied to every path
- materialize(): a private scratch copy of the project with the buffer written
  over the target, for engines that need real files; removed on exit

Before an engine runs, the resolver scans the target and the documents it
includes for file references so that escaping or missing references fail
fast, attributed to the document that contains them.
"""

import os
import re
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from incipit.contexts.rendering.logger import _log_debug
from incipit.contexts.rendering.models import CompileRequest
from incipit.exceptions import MissingDependencyError, ProjectIOError
from incipit.utils.paths import (
    BUILD_DIR_NAME,
    META_FILE_NAME,
    canonical_root,
    is_within,
    normalize_relative,
    relative_to_root,
    resolve_within,
)

# File references followed by the dependency scan
REFERENCE_PATTERN = re.compile(
    r"\\(?P<command>input|include|subfile|includegraphics|bibliography|addbibresource)\*?"
    r"\s*(?:\[[^\]]*\])?\s*\{(?P<argument>[^{}]*)\}"
)
GRAPHICSPATH_PATTERN = re.compile(r"\\graphicspath\s*\{(?P<paths>(?:\s*\{[^{}]*\}\s*)*)\}")
GRAPHICSPATH_ENTRY = re.compile(r"\{([^{}]*)\}")
COMMENT_PATTERN = re.compile(r"(?<!\\)%.*$", re.MULTILINE)

# Extensions tried, in order, when a reference has none
DEFAULT_EXTENSIONS: Dict[str, Tuple[str, ...]] = {
    "input": (".tex",),
    "include": (".tex",),
    "subfile": (".tex",),
    "includegraphics": (".pdf", ".png", ".jpg", ".jpeg", ".eps"),
    "bibliography": (".bib",),
    "addbibresource": (),
}

# References whose targets are themselves scanned
DOCUMENT_COMMANDS = {"input", "include", "subfile"}
DOCUMENT_SUFFIXES = {".tex", ".ltx"}

# Commands whose argument is a comma-separated list
LIST_COMMANDS = {"bibliography"}


@dataclass(frozen=True)
class Dependency:
    """
    A file reference found by the dependency scan.

    Attributes:
        command: LaTeX command name (e.g., "input")
        reference: Argument as written in the document
        path: Logical project-relative path it resolved to
        requested_by: Logical path of the document containing the reference
    """

    command: str
    reference: str
    path: str
    requested_by: str


def strip_comments(text: str) -> str:
    """Remove `%` comments, keeping escaped `\\%`."""
    return COMMENT_PATTERN.sub("", text)


def is_hidden(logical_path: str) -> bool:
    """Whether any segment of a logical path is a dot-entry (`..` excepted)."""
    return any(part.startswith(".") and part != ".." for part in logical_path.split("/"))


def encode_buffer(buffer: Optional[Union[str, bytes]], target_file: str) -> Optional[bytes]:
    """
    UTF-8 bytes of an unsaved buffer.

    Raises:
        ProjectIOError: If the text cannot be encoded (e.g. lone surrogates)
    """
    if buffer is None or isinstance(buffer, bytes):
        return buffer
    try:
        return buffer.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ProjectIOError(f"Unsaved buffer is not valid text: {e.reason}", target_file) from e


def _candidates(reference: str, extensions: Tuple[str, ...], prefixes: List[str]) -> List[str]:
    """Logical paths tried for a reference, in lookup order."""
    if PurePosixPath(reference).suffix.lower() in extensions or not extensions:
        names = [reference]
    else:
        names = [f"{reference}{ext}" for ext in extensions] + [reference]

    candidates = []
    for prefix in [""] + prefixes:
        for name in names:
            candidate = normalize_relative(f"{prefix}{name}" if prefix else name)
            if candidate not in candidates:
                candidates.append(candidate)
    return candidates


class SourceView:
    """
    Read-only view of a project with one document overlaid by an unsaved buffer.

    The buffer is served for the exact logical target path only; other paths
    that alias the target (symlinks, `dir/../main.tex`) are read from disk.

    Args:
        root: Canonical project root
        target_file: Normalized logical target path
        unsaved_buffer: Editor content for the target (str or UTF-8 bytes), or None to read it from disk
        build_dir_name: Build directory excluded from materialization
    """

    def __init__(
        self,
        root: Path,
        target_file: str,
        unsaved_buffer: Optional[Union[str, bytes]] = None,
        build_dir_name: str = BUILD_DIR_NAME,
    ):
        self.root = root
        self.target_file = target_file
        self.build_dir_name = build_dir_name
        self.dependencies: List[Dependency] = []
        self._buffer = encode_buffer(unsaved_buffer, target_file)

    @property
    def has_buffer(self) -> bool:
        return self._buffer is not None

    def is_target(self, logical_path: str) -> bool:
        return normalize_relative(logical_path) == self.target_file

    def resolve(self, logical_path: str, requested_by: Optional[str] = None) -> Path:
        """Canonical disk path for a logical path; PathEscapeError outside the root."""
        return resolve_within(self.root, normalize_relative(logical_path), requested_by=requested_by)

    def exists(self, logical_path: str, requested_by: Optional[str] = None) -> bool:
        """Whether a logical path can be read through this view."""
        logical = normalize_relative(logical_path)
        path = self.resolve(logical, requested_by)
        if is_hidden(logical):
            return False
        if self.is_target(logical) and self.has_buffer:
            return True
        return path.is_file()

    def read(self, logical_path: str, requested_by: Optional[str] = None) -> bytes:
        """
        Read a logical path: the buffer for the target, disk for anything else.

        Raises:
            PathEscapeError: If the path resolves outside the project root
            MissingDependencyError: If the file does not exist or is hidden
            ProjectIOError: If the file exists but cannot be read
        """
        logical = normalize_relative(logical_path)
        path = self.resolve(logical, requested_by)

        if is_hidden(logical):
            # Hidden entries are never copied into the scratch directory
            raise MissingDependencyError(
                "Hidden files are not part of the project", logical, requested_by=requested_by
            )
        if self.is_target(logical) and self.has_buffer:
            return self._buffer

        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise MissingDependencyError(
                "Referenced file not found", logical, requested_by=requested_by
            ) from e
        except OSError as e:
            raise ProjectIOError(f"Failed to read file: {e}", logical) from e

    def read_text(self, logical_path: str, requested_by: Optional[str] = None) -> str:
        return self.read(logical_path, requested_by).decode("utf-8", errors="replace")

    def iter_disk_files(self) -> Iterator[Tuple[str, Path]]:
        """
        Yield (logical path, disk path) for every project file an engine may read.

        Skips the build directory, the metadata record, hidden entries and
        anything whose canonical path leaves the root. Symlinked directories
        inside the root are followed once.
        """
        visited: Set[Path] = {self.root}
        for dirpath, dirnames, filenames in os.walk(self.root, followlinks=True):
            current = Path(dirpath)
            at_root = current == self.root

            kept = []
            for name in sorted(dirnames):
                if name.startswith(".") or (at_root and name == self.build_dir_name):
                    continue
                canonical = (current / name).resolve()
                if not is_within(canonical, self.root) or canonical in visited:
                    continue
                visited.add(canonical)
                kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                if name.startswith(".") or (at_root and name == META_FILE_NAME):
                    continue
                path = current / name
                if not is_within(path.resolve(), self.root):
                    continue
                yield relative_to_root(path, self.root), path

    @contextmanager
    def materialize(self) -> Iterator[Path]:
        """
        Copy the view into a private temporary directory and yield its path.

        The target is written from the buffer when one is present. The directory
        is removed on every exit path.

        Raises:
            ProjectIOError: If project files cannot be copied
        """
        with tempfile.TemporaryDirectory(prefix="incipit-") as scratch:
            scratch_root = Path(scratch)
            try:
                copied = 0
                for logical, source in self.iter_disk_files():
                    destination = scratch_root / logical
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(source, destination)
                    copied += 1

                if self.has_buffer:
                    destination = scratch_root / self.target_file
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    destination.write_bytes(self._buffer)
            except OSError as e:
                raise ProjectIOError(f"Failed to prepare sources: {e}", self.root) from e

            _log_debug(f"Materialized {copied} files into {scratch_root}")
            yield scratch_root


def scan_dependencies(view: SourceView) -> List[Dependency]:
    """
    Collect file references reachable from the view's target.

    Follows \\input, \\include and \\subfile transitively (each document once, so
    inclusion cycles terminate) and checks \\includegraphics, \\bibliography
    and \\addbibresource targets. References containing macros are skipped
    because only the engine can expand them.

    Raises:
        PathEscapeError: For the first reference resolving outside the root
        MissingDependencyError: For the first reference that does not exist
    """
    dependencies: List[Dependency] = []
    graphics_dirs: List[str] = []
    visited: Set[str] = set()
    queue = [view.target_file]

    while queue:
        document = queue.pop(0)
        if document in visited:
            continue
        visited.add(document)

        text = strip_comments(view.read_text(document))

        for match in GRAPHICSPATH_PATTERN.finditer(text):
            for entry in GRAPHICSPATH_ENTRY.findall(match.group("paths")):
                entry = entry.strip()
                if entry and entry not in graphics_dirs:
                    graphics_dirs.append(entry if entry.endswith("/") else f"{entry}/")

        for match in REFERENCE_PATTERN.finditer(text):
            command = match.group("command")
            argument = match.group("argument")
            references = argument.split(",") if command in LIST_COMMANDS else [argument]

            for reference in references:
                reference = reference.strip()
                if not reference or "\\" in reference or "#" in reference:
                    continue

                prefixes = graphics_dirs if command == "includegraphics" else []
                logical = _locate(view, reference, DEFAULT_EXTENSIONS[command], prefixes, document)
                dependencies.append(Dependency(command, reference, logical, document))

                if command in DOCUMENT_COMMANDS and PurePosixPath(logical).suffix in DOCUMENT_SUFFIXES:
                    queue.append(logical)

    _log_debug(f"Resolved {len(dependencies)} references from {view.target_file}")
    return dependencies


def _locate(
    view: SourceView,
    reference: str,
    extensions: Tuple[str, ...],
    prefixes: List[str],
    requested_by: str,
) -> str:
    for candidate in _candidates(reference, extensions, prefixes):
        # Sandbox check runs before the existence check for every candidate
        if view.exists(candidate, requested_by=requested_by):
            return candidate
    raise MissingDependencyError("Referenced file not found", reference, requested_by=requested_by)


class VirtualSourceResolver:
    """
    Builds SourceViews for compile requests.

    Args:
        build_dir_name: Build directory excluded from views
        check_dependencies: Run the dependency scan during resolve()
    """

    def __init__(self, build_dir_name: str = BUILD_DIR_NAME, check_dependencies: bool = True):
        self.build_dir_name = build_dir_name
        self.check_dependencies = check_dependencies

    def resolve(self, request: CompileRequest) -> SourceView:
        """
        Canonicalize a request and return its SourceView.

        Raises:
            ProjectIOError: If the project root is invalid or the buffer is not encodable
            PathEscapeError: If the target or any scanned reference escapes the root
            MissingDependencyError: If the target (without buffer) or a reference is absent
        """
        root = canonical_root(request.project_root)
        target = normalize_relative(request.target_file)
        target_path = resolve_within(root, target)
        if is_hidden(target):
            raise MissingDependencyError("Hidden files are not part of the project", target)

        if request.unsaved_buffer is None and not target_path.is_file():
            raise MissingDependencyError("Target file not found", target)

        buffer = encode_buffer(request.unsaved_buffer, target)
        view = SourceView(root, target, buffer, self.build_dir_name)
        if self.check_dependencies:
            view.dependencies = scan_dependencies(view)
        return view
