"""
Project file tree.

Builds the hierarchical view of a project directory shown in the sidebar, and
creates skeleton projects. The tree is rebuilt on every open; nothing is cached.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from dotenv import load_dotenv

from incipit.contexts.project.logger import _log_debug, _log_info, _log_warning
from incipit.exceptions import ProjectIOError
from incipit.utils.paths import (
    BUILD_DIR_NAME,
    META_FILE_NAME,
    PathLike,
    canonical_root,
    is_within,
    relative_to_root,
)

load_dotenv()
DEFAULT_ROOT_FILE = os.getenv("INCIPIT_ROOT_FILE", "main.tex")

SKELETON_ROOT_DOCUMENT = r"""\documentclass{article}
\usepackage[utf8]{inputenc}
\usepackage{graphicx}
\graphicspath{{figures/}}

\title{Untitled Project}
\author{Your Name}
\date{\today}

\begin{document}

\maketitle

\input{chapters/introduction}

\end{document}
"""

SKELETON_INTRODUCTION = r"""\section{Introduction}

This is a new LaTeX project. Start editing to see live updates!
"""

SKELETON_CHAPTERS_DIR = "chapters"
SKELETON_FIGURES_DIR = "figures"


@dataclass
class FileNode:
    """
    One entry of a project tree.

    Attributes:
        name: Entry name (last path segment)
        absolute_path: Absolute path, always under the project root
        relative_path: Posix path relative to the project root ("" for the root)
        is_directory: Whether the entry is a directory
        children: Ordered child nodes for directories, None for files
    """

    name: str
    absolute_path: Path
    relative_path: str
    is_directory: bool
    children: Optional[List["FileNode"]] = field(default=None)

    def iter_files(self):
        """Yield every file node below (and including) this node, depth first."""
        if not self.is_directory:
            yield self
            return
        for child in self.children or []:
            yield from child.iter_files()

    def find(self, relative_path: str) -> Optional["FileNode"]:
        """Find a descendant by its root-relative path."""
        if self.relative_path == relative_path:
            return self
        for child in self.children or []:
            if child.relative_path == relative_path or relative_path.startswith(
                f"{child.relative_path}/"
            ):
                found = child.find(relative_path)
                if found is not None:
                    return found
        return None

    def to_dict(self) -> Dict[str, object]:
        """Serialize for a UI layer (files omit `children`)."""
        data: Dict[str, object] = {
            "name": self.name,
            "absolute_path": str(self.absolute_path),
            "path": self.relative_path,
            "is_directory": self.is_directory,
        }
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        return data


def _is_excluded(name: str, depth: int) -> bool:
    """Hidden entries (metadata record included) and the top-level build directory."""
    if name.startswith(".") or name == META_FILE_NAME:
        return True
    return depth == 0 and name == BUILD_DIR_NAME


def _sort_key(node: FileNode):
    # Directories first, then files, case-insensitive alphabetical
    return (not node.is_directory, node.name.lower(), node.name)


def _build_node(
    logical_path: Path, root: Path, depth: int, visited: Set[Path]
) -> Optional[FileNode]:
    """Build one node; None when the entry escapes the root or was already visited."""
    canonical = logical_path.resolve()
    if not is_within(canonical, root):
        _log_debug(f"Skipping {logical_path.name}: resolves outside project root")
        return None

    relative = relative_to_root(logical_path, root) if logical_path != root else ""

    if not canonical.is_dir():
        return FileNode(
            name=logical_path.name,
            absolute_path=logical_path,
            relative_path=relative,
            is_directory=False,
        )

    if canonical in visited:
        # In-root symlink loop
        _log_debug(f"Skipping {relative}: directory already visited")
        return None
    visited.add(canonical)

    children: List[FileNode] = []
    with os.scandir(logical_path) as entries:
        for entry in entries:
            if _is_excluded(entry.name, depth):
                continue
            try:
                child = _build_node(Path(entry.path), root, depth + 1, visited)
            except OSError as e:
                _log_warning(f"Skipping unreadable entry {entry.path}: {e}")
                continue
            if child is not None:
                children.append(child)

    children.sort(key=_sort_key)
    return FileNode(
        name=logical_path.name,
        absolute_path=logical_path,
        relative_path=relative,
        is_directory=True,
        children=children,
    )


def build_tree(root: PathLike) -> FileNode:
    """
    Recursively build the file tree of a project.

    Excludes hidden entries, the metadata record, the build directory and any
    entry whose canonical path leaves the root. Directory order is stable:
    directories first, then case-insensitive name.

    Args:
        root: Project root directory

    Returns:
        Root FileNode

    Raises:
        ProjectIOError: If the root is missing, not a directory or unreadable
    """
    project_root = canonical_root(root)

    try:
        tree = _build_node(project_root, project_root, depth=0, visited=set())
    except OSError as e:
        raise ProjectIOError(f"Failed to read directory: {e}", project_root) from e

    file_count = sum(1 for _ in tree.iter_files())
    _log_info(f"Loaded project tree {project_root} ({file_count} files)")
    return tree


def create_skeleton(root: PathLike, root_file: str = DEFAULT_ROOT_FILE) -> FileNode:
    """
    Create a minimal new project and return its tree.

    Writes a root document that inputs `chapters/introduction.tex`, the chapter
    itself and an empty `figures/` directory. Initial metadata is written by the
    caller (see MetadataStore.initialize_project).

    Args:
        root: Directory to create (may exist if empty)
        root_file: Name of the root document

    Raises:
        ProjectIOError: If the directory is non-empty or cannot be written
    """
    project_root = Path(root).expanduser()

    try:
        if project_root.exists():
            if not project_root.is_dir():
                raise ProjectIOError("Path is not a directory", project_root)
            if any(project_root.iterdir()):
                raise ProjectIOError("Directory is not empty", project_root)

        project_root.mkdir(parents=True, exist_ok=True)
        (project_root / SKELETON_CHAPTERS_DIR).mkdir(exist_ok=True)
        (project_root / SKELETON_FIGURES_DIR).mkdir(exist_ok=True)
        (project_root / root_file).write_text(SKELETON_ROOT_DOCUMENT, encoding="utf-8")
        (project_root / SKELETON_CHAPTERS_DIR / "introduction.tex").write_text(
            SKELETON_INTRODUCTION, encoding="utf-8"
        )
    except OSError as e:
        raise ProjectIOError(f"Failed to create project: {e}", project_root) from e

    _log_info(f"Created skeleton project at {project_root}")
    return build_tree(project_root)
