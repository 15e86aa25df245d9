"""
Incipit - multi-file LaTeX project editing backend

Compiles a LaTeX project from an in-progress, possibly unsaved edit buffer while
every other project file is read from disk.

Architecture:
- Project Context: file tree, skeleton projects, project and global metadata
- Rendering Context: sandboxed source overlay, build cache, engine invocation
  and compile orchestration
- Commands: typed request/response table consumed by a UI or the CLI
"""

__version__ = "0.1.0"
