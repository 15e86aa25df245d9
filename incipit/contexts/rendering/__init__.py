"""
Rendering Context

Responsibilities:
- Resolves a compile request into a sandboxed view of the project
- Compiles LaTeX to PDF on worker threads
- Caches the last artifact per target file
- Translates failures into the error taxonomy

Owns: compile requests, build directory, artifact cache, compile events
Never: Writes project sources or metadata records
"""

from incipit.contexts.rendering.build_cache import BuildArtifact, BuildCache
from incipit.contexts.rendering.engine import Engine, LatexEngine
from incipit.contexts.rendering.error_translator import translate
from incipit.contexts.rendering.models import (
    CompileError,
    CompileOutcome,
    CompileRequest,
    CompileState,
    ErrorKind,
)
from incipit.contexts.rendering.orchestrator import CompilationOrchestrator
from incipit.contexts.rendering.source_resolver import SourceView, VirtualSourceResolver

__all__ = [
    "BuildArtifact",
    "BuildCache",
    "CompilationOrchestrator",
    "CompileError",
    "CompileOutcome",
    "CompileRequest",
    "CompileState",
    "Engine",
    "ErrorKind",
    "LatexEngine",
    "SourceView",
    "VirtualSourceResolver",
    "translate",
]
