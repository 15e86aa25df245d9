"""
Sandboxed path resolution.

Every path handed to Incipit by a caller or found inside a document is joined
against the project root, canonicalized (symlinks followed, `..` collapsed) and
rejected if the canonical form leaves the root.
"""

import os
from pathlib import Path, PurePosixPath
from typing import Union

from dotenv import load_dotenv

from incipit.exceptions import PathEscapeError, ProjectIOError

load_dotenv()

# Project-scoped persisted state, both at the project root
META_FILE_NAME = os.getenv("INCIPIT_META_FILE", ".incipit")
BUILD_DIR_NAME = os.getenv("INCIPIT_BUILD_DIR", "build")

PathLike = Union[str, Path]


def canonical_root(project_root: PathLike) -> Path:
    """
    Canonicalize a project root directory.

    Raises:
        ProjectIOError: If the root does not exist or is not a directory
    """
    root = Path(project_root).expanduser()
    if not root.exists():
        raise ProjectIOError("Path does not exist", root)
    if not root.is_dir():
        raise ProjectIOError("Path is not a directory", root)
    try:
        return root.resolve(strict=True)
    except OSError as e:
        raise ProjectIOError(f"Invalid project path: {e}", root) from e


def is_within(path: Path, root: Path) -> bool:
    """Check whether canonical `path` equals or lies under canonical `root`."""
    return path == root or root in path.parents


def normalize_relative(relative_path: PathLike) -> str:
    """
    Normalize a project-relative path to its logical posix form.

    Drops empty and `.` segments and converts separators. `..` segments are
    kept so the sandbox check sees them.

    Examples:
        >>> normalize_relative("./chapters//intro.tex")
        'chapters/intro.tex'
    """
    raw = str(relative_path).replace(os.sep, "/")
    parts = [p for p in PurePosixPath(raw).parts if p not in ("", ".")]
    if raw.startswith("/"):
        return "/" + "/".join(parts[1:])
    return "/".join(parts)


def resolve_within(root: Path, relative_path: PathLike, requested_by: str = None) -> Path:
    """
    Join a path against the root and canonicalize it inside the sandbox.

    The path need not exist; existing prefixes are still resolved through symlinks.

    Args:
        root: Canonical project root (see canonical_root)
        relative_path: Project-relative (or absolute) path
        requested_by: Document that referenced the path, for diagnostics

    Returns:
        Canonical absolute path under root

    Raises:
        PathEscapeError: If the canonical path is outside root
    """
    logical = str(relative_path)
    if not logical.strip():
        raise PathEscapeError("Empty path", logical, requested_by=requested_by)

    try:
        candidate = (root / logical).resolve(strict=False)
    except (OSError, RuntimeError) as e:
        # RuntimeError: symlink loop on older interpreters
        raise PathEscapeError(f"Unresolvable path: {e}", logical, requested_by=requested_by) from e

    if not is_within(candidate, root):
        raise PathEscapeError(
            "Access denied: path is outside project directory",
            logical,
            requested_by=requested_by,
        )
    return candidate


def relative_to_root(path: Path, root: Path) -> str:
    """Return the posix form of `path` relative to `root`."""
    return path.relative_to(root).as_posix()
