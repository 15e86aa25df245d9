"""
Project and global metadata persistence.

Two record kinds, both YAML documents read and written through OmegaConf:

- ProjectMeta: one per project, stored as `<project>/.incipit`
- GlobalSettings: one per user, stored as `<config dir>/settings.yaml`

Writes replace the whole record. The store never merges partial updates, so
callers must load, modify and save (read-modify-write); two writers racing on
the same record lose the earlier update.

Records are schema-tolerant: opaque `project_settings` / `editor_settings`
values and unknown top-level keys survive a load/save round trip. A corrupt
record is logged and replaced by defaults, never reported to the caller.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import OmegaConf
from omegaconf.errors import OmegaConfBaseException

from incipit.contexts.project.file_tree import DEFAULT_ROOT_FILE
from incipit.contexts.project.logger import _log_debug, _log_info, _log_warning
from incipit.exceptions import MalformedMetadataError, ProjectIOError
from incipit.utils.fs import atomic_write_text
from incipit.utils.paths import META_FILE_NAME, PathLike, canonical_root

load_dotenv()
MAX_RECENT_PROJECTS = int(os.getenv("INCIPIT_MAX_RECENT", "10"))
SETTINGS_FILE_NAME = "settings.yaml"


def default_config_dir() -> Path:
    """Resolve the per-user configuration directory (INCIPIT_CONFIG_DIR, then XDG)."""
    configured = os.getenv("INCIPIT_CONFIG_DIR")
    if configured:
        return Path(configured).expanduser()
    xdg = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / "incipit"


@dataclass
class ProjectMeta:
    """
    Per-project metadata.

    Attributes:
        last_opened_file: Project-relative path of the file open in the editor
        root_file: Project-relative path of the document compiled by default
        project_settings: Opaque settings, round-tripped untouched
        extra: Unknown top-level keys found on load, written back on save
    """

    last_opened_file: Optional[str] = None
    root_file: str = DEFAULT_ROOT_FILE
    project_settings: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "last_opened_file": self.last_opened_file,
            "root_file": self.root_file,
            "project_settings": self.project_settings,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectMeta":
        """Build from a parsed record; ill-typed known fields fall back to defaults."""
        meta = cls()
        known = {"last_opened_file", "root_file", "project_settings"}

        last_opened = data.get("last_opened_file")
        if last_opened is None or isinstance(last_opened, str):
            meta.last_opened_file = last_opened
        else:
            _log_warning(f"Ignoring non-string last_opened_file: {last_opened!r}")

        root_file = data.get("root_file", DEFAULT_ROOT_FILE)
        if isinstance(root_file, str) and root_file:
            meta.root_file = root_file
        else:
            _log_warning(f"Ignoring invalid root_file: {root_file!r}")

        settings = data.get("project_settings", {})
        if isinstance(settings, dict):
            meta.project_settings = settings
        elif settings is not None:
            _log_warning("Ignoring non-mapping project_settings")

        meta.extra = {k: v for k, v in data.items() if k not in known}
        return meta


@dataclass
class GlobalSettings:
    """
    Process-wide settings.

    Attributes:
        recent_projects: Absolute project paths, most recent first, unique, capped
        editor_settings: Opaque editor settings, round-tripped untouched
        extra: Unknown top-level keys found on load, written back on save
    """

    recent_projects: List[str] = field(default_factory=list)
    editor_settings: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    def add_recent_project(self, project_path: PathLike, limit: int = MAX_RECENT_PROJECTS) -> None:
        """
        Move `project_path` to the front of recent_projects.

        Duplicates are removed and the list is truncated to `limit` entries.
        """
        path = str(project_path)
        self.recent_projects = [path] + [p for p in self.recent_projects if p != path]
        del self.recent_projects[limit:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "recent_projects": list(self.recent_projects),
            "editor_settings": self.editor_settings,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalSettings":
        settings = cls()
        known = {"recent_projects", "editor_settings"}

        recent = data.get("recent_projects", [])
        if isinstance(recent, list):
            # Normalize on load so a hand-edited file still honours the invariants
            for path in reversed([p for p in recent if isinstance(p, str)]):
                settings.add_recent_project(path)
        else:
            _log_warning("Ignoring non-list recent_projects")

        editor = data.get("editor_settings", {})
        if isinstance(editor, dict):
            settings.editor_settings = editor
        elif editor is not None:
            _log_warning("Ignoring non-mapping editor_settings")

        settings.extra = {k: v for k, v in data.items() if k not in known}
        return settings


def _read_record(path: Path) -> Dict[str, Any]:
    """
    Parse a YAML (or JSON) record into plain containers.

    Raises:
        MalformedMetadataError: If the document is not UTF-8 or does not parse to a mapping
        OSError: If the file cannot be read
    """
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedMetadataError(f"Metadata is not valid UTF-8: {e}", path) from e
    if not text.strip():
        return {}
    try:
        conf = OmegaConf.create(text)
        data = OmegaConf.to_container(conf, resolve=False)
    except Exception as e:
        # OmegaConf surfaces YAML scanner/parser and its own errors here
        raise MalformedMetadataError(f"Failed to parse metadata: {e}", path) from e
    if not isinstance(data, dict):
        raise MalformedMetadataError("Metadata record is not a mapping", path)
    return data


def _write_record(path: Path, data: Dict[str, Any]) -> None:
    """
    Replace a record with the YAML form of `data`.

    Raises:
        ProjectIOError: If `data` holds values OmegaConf cannot represent
        OSError: If the file cannot be written
    """
    try:
        text = OmegaConf.to_yaml(OmegaConf.create(data))
    except OmegaConfBaseException as e:
        raise ProjectIOError(f"Metadata cannot be serialized: {e}", path) from e
    atomic_write_text(path, text)


class MetadataStore:
    """
    Loads and saves ProjectMeta and GlobalSettings records.

    Args:
        config_dir: Directory for the global settings record
                    (default: INCIPIT_CONFIG_DIR or the XDG config directory)
    """

    def __init__(self, config_dir: Optional[PathLike] = None):
        self.config_dir = Path(config_dir) if config_dir is not None else default_config_dir()

    @property
    def settings_path(self) -> Path:
        return self.config_dir / SETTINGS_FILE_NAME

    @staticmethod
    def project_meta_path(project_root: PathLike) -> Path:
        return canonical_root(project_root) / META_FILE_NAME

    def load_global(self) -> GlobalSettings:
        """Load global settings; defaults when absent, unreadable or malformed."""
        path = self.settings_path
        if not path.exists():
            _log_debug(f"No global settings at {path}, using defaults")
            return GlobalSettings()

        try:
            return GlobalSettings.from_dict(_read_record(path))
        except MalformedMetadataError as e:
            _log_warning(f"{e}; falling back to default settings")
        except OSError as e:
            _log_warning(f"Failed to read settings {path}: {e}; falling back to defaults")
        return GlobalSettings()

    def save_global(self, settings: GlobalSettings) -> None:
        """
        Replace the global settings record.

        Raises:
            ProjectIOError: If the record cannot be written
        """
        try:
            _write_record(self.settings_path, settings.to_dict())
        except OSError as e:
            raise ProjectIOError(f"Failed to write settings: {e}", self.settings_path) from e
        _log_debug(f"Saved global settings to {self.settings_path}")

    def load_project_meta(self, project_root: PathLike) -> ProjectMeta:
        """
        Load a project's metadata; defaults when absent or malformed.

        Raises:
            ProjectIOError: If the project root is invalid or the record is unreadable
        """
        path = self.project_meta_path(project_root)
        if not path.exists():
            return ProjectMeta()

        try:
            return ProjectMeta.from_dict(_read_record(path))
        except MalformedMetadataError as e:
            _log_warning(f"{e}; falling back to default project metadata")
            return ProjectMeta()
        except OSError as e:
            raise ProjectIOError(f"Failed to read project metadata: {e}", path) from e

    def save_project_meta(self, project_root: PathLike, meta: ProjectMeta) -> None:
        """
        Replace a project's metadata record.

        Raises:
            ProjectIOError: If the project root is invalid or the record cannot be written
        """
        path = self.project_meta_path(project_root)
        try:
            _write_record(path, meta.to_dict())
        except OSError as e:
            raise ProjectIOError(f"Failed to write metadata: {e}", path) from e
        _log_debug(f"Saved project metadata to {path}")

    def initialize_project(self, project_root: PathLike, root_file: str = DEFAULT_ROOT_FILE) -> ProjectMeta:
        """Write the initial metadata record of a freshly created project."""
        meta = ProjectMeta(last_opened_file=root_file, root_file=root_file)
        self.save_project_meta(project_root, meta)
        _log_info(f"Initialized project metadata for {project_root}")
        return meta
