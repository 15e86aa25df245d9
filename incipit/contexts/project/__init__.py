"""
Project Context

Responsibilities:
- Builds the file tree of a project directory
- Creates skeleton projects
- Persists per-project metadata and process-wide settings

Owns: project tree, .incipit records, global settings record
Never: Compiles documents or writes to the build directory
"""

from incipit.contexts.project.file_tree import FileNode, build_tree, create_skeleton
from incipit.contexts.project.metadata_store import GlobalSettings, MetadataStore, ProjectMeta

__all__ = [
    "FileNode",
    "GlobalSettings",
    "MetadataStore",
    "ProjectMeta",
    "build_tree",
    "create_skeleton",
]
