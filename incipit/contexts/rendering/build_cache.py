"""
Build artifact cache.

One artifact per (project, target file), stored at
`<project>/<build dir>/<target dir>/<target file name>.pdf`, e.g. `build/main.tex.pdf`.
The full file name is kept so `main.tex` and `main.ltx` never share a slot.
The artifact is only reused when the caller has no unsaved edits for the target; any unsaved
buffer invalidates it unconditionally. On-disk dependency changes are not
tracked, so an external edit to an included file is not noticed until the
next compile with a buffer.

Writes go to a temporary file in the same directory and are renamed over the
final path, so lookup() never returns a partially written artifact.
"""

import hashlib
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Dict, Optional, Tuple

from incipit.contexts.rendering.logger import _log_debug, _log_warning
from incipit.exceptions import PathEscapeError, ProjectIOError
from incipit.utils.fs import atomic_write_bytes
from incipit.utils.paths import (
    BUILD_DIR_NAME,
    PathLike,
    canonical_root,
    is_within,
    normalize_relative,
    resolve_within,
)
from incipit.utils.timestamp import from_epoch

ARTIFACT_SUFFIX = ".pdf"


@dataclass(frozen=True)
class BuildArtifact:
    """
    A compiled document held by the cache.

    Attributes:
        data: PDF bytes
        fingerprint: Cache key (project root + target path)
        produced_at: Time the artifact was written
        path: Location of the artifact on disk
    """

    data: bytes
    fingerprint: str
    produced_at: datetime
    path: Path

    @property
    def size(self) -> int:
        return len(self.data)


class BuildCache:
    """
    Maps (project root, target file) to the last successfully compiled artifact.

    Writers are serialized per target; readers need no lock because artifacts
    are replaced by atomic rename.
    """

    def __init__(self, build_dir_name: str = BUILD_DIR_NAME):
        self.build_dir_name = build_dir_name
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @staticmethod
    def compute_fingerprint(project_root: Path, target_file: str) -> str:
        """Deterministic SHA-256 over the canonical root and logical target path."""
        raw_key = f"{project_root}|{target_file}"
        return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()

    def build_dir(self, project_root: PathLike) -> Path:
        return canonical_root(project_root) / self.build_dir_name

    def artifact_path(self, project_root: PathLike, target_file: str) -> Path:
        """
        Location of the artifact for a target, mirroring the target's directory.

        Raises:
            PathEscapeError: If the target escapes the project root
        """
        root = canonical_root(project_root)
        logical = normalize_relative(target_file)
        resolve_within(root, logical)

        relative = PurePosixPath(logical)
        artifact = root / self.build_dir_name / relative.parent / f"{relative.name}{ARTIFACT_SUFFIX}"
        build_dir = (root / self.build_dir_name).resolve(strict=False)
        if not is_within(build_dir, root) or not is_within(artifact.resolve(strict=False), build_dir):
            raise PathEscapeError("Artifact path escapes the build directory", logical)
        return artifact

    def _writer_lock(self, key: Tuple[str, str]) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    def lookup(self, project_root: PathLike, target_file: str) -> Optional[BuildArtifact]:
        """
        Return the cached artifact for a target, or None when there is none.

        Raises:
            ProjectIOError: If the project root is invalid or the artifact unreadable
            PathEscapeError: If the target escapes the project root
        """
        root = canonical_root(project_root)
        logical = normalize_relative(target_file)
        path = self.artifact_path(root, logical)

        try:
            stat = path.stat()
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ProjectIOError(f"Failed to read cached artifact: {e}", path) from e

        if not data:
            _log_warning(f"Ignoring empty cached artifact {path}")
            return None

        return BuildArtifact(
            data=data,
            fingerprint=self.compute_fingerprint(root, logical),
            produced_at=from_epoch(stat.st_mtime),
            path=path,
        )

    def exists(self, project_root: PathLike, target_file: str) -> bool:
        """Whether a non-empty artifact is cached for the target."""
        try:
            path = self.artifact_path(project_root, target_file)
            return path.is_file() and path.stat().st_size > 0
        except FileNotFoundError:
            return False

    @staticmethod
    def is_fresh(
        artifact: Optional[BuildArtifact], target_file: str, unsaved_buffer: Optional[str]
    ) -> bool:
        """
        Whether a cached artifact may be served for a request.

        Only when there are no unsaved edits; content is never compared.
        """
        return artifact is not None and unsaved_buffer is None

    def store(self, project_root: PathLike, target_file: str, data: bytes) -> BuildArtifact:
        """
        Replace the cached artifact for a target with `data`.

        Raises:
            ProjectIOError: If the build directory cannot be written
            PathEscapeError: If the target escapes the project root
        """
        root = canonical_root(project_root)
        logical = normalize_relative(target_file)
        path = self.artifact_path(root, logical)

        with self._writer_lock((str(root), logical)):
            try:
                atomic_write_bytes(path, data)
                stat = path.stat()
            except OSError as e:
                raise ProjectIOError(f"Failed to write artifact: {e}", path) from e

        _log_debug(f"Stored artifact {path} ({len(data)} bytes)")
        return BuildArtifact(
            data=data,
            fingerprint=self.compute_fingerprint(root, logical),
            produced_at=from_epoch(stat.st_mtime),
            path=path,
        )
