"""Shared fixtures: sample projects, an in-process engine and isolated stores."""

import re
import threading
from pathlib import Path, PurePosixPath

import pytest

from incipit.commands import IncipitSession
from incipit.contexts.project import MetadataStore
from incipit.contexts.rendering import CompilationOrchestrator, SourceView
from incipit.exceptions import EngineFailure

MAIN_TEX = r"""\documentclass{article}
\begin{document}
\input{chapters/intro}
\end{document}
"""

INTRO_TEX = r"""\section{Introduction}
Original introduction.
"""

INPUT_PATTERN = re.compile(r"\\input\{([^}]*)\}")


class FakeEngine:
    """
    In-process engine: expands \\input through SourceView.read and returns the
    expanded text prefixed with a PDF header.

    Call hold() to make compiles block until release().
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0
        self.started = threading.Event()
        self._gate = threading.Event()
        self._gate.set()
        self._lock = threading.Lock()

    def hold(self) -> None:
        self._gate.clear()

    def release(self) -> None:
        self._gate.set()

    def compile(self, view: SourceView) -> bytes:
        with self._lock:
            self.calls += 1
        self.started.set()
        assert self._gate.wait(timeout=10), "engine was never released"

        text = self._expand(view, view.target_file, set())
        if self.fail:
            raise EngineFailure(
                "LaTeX compilation failed",
                diagnostics=f"! Undefined control sequence.\n{text}",
                errors=["Undefined control sequence."],
            )
        return b"%PDF-1.4\n" + text.encode("utf-8")

    def _expand(self, view: SourceView, document: str, seen: set) -> str:
        seen.add(document)
        text = view.read_text(document)

        def replace(match):
            name = match.group(1)
            if not PurePosixPath(name).suffix:
                name = f"{name}.tex"
            if name in seen:
                return ""
            return self._expand(view, name, seen)

        return INPUT_PATTERN.sub(replace, text)


def write_files(root: Path, files: dict) -> Path:
    """Create `files` (relative path -> text) below `root`."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def project(tmp_path) -> Path:
    """Project whose main.tex inputs chapters/intro.tex."""
    root = tmp_path / "project"
    return write_files(root, {"main.tex": MAIN_TEX, "chapters/intro.tex": INTRO_TEX})


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def orchestrator(fake_engine):
    orch = CompilationOrchestrator(fake_engine, max_workers=2)
    yield orch
    # Unblock anything a failing test left waiting
    fake_engine.release()
    orch.shutdown()


@pytest.fixture
def store(tmp_path) -> MetadataStore:
    return MetadataStore(config_dir=tmp_path / "config")


@pytest.fixture
def session(store, orchestrator) -> IncipitSession:
    return IncipitSession(store=store, orchestrator=orchestrator)


@pytest.fixture
def make_files():
    """Factory writing a dict of relative path -> text below a root."""
    return write_files
