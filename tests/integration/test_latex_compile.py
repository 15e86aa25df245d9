"""
Integration tests for rendering context - tests real LaTeX compilation.
"""

import shutil

import pytest

from incipit.commands import CompileLatexProject, CreateNewProject, IncipitSession
from incipit.contexts.rendering import (
    CompilationOrchestrator,
    CompileRequest,
    ErrorKind,
    LatexEngine,
)
from incipit.utils.pdf_processing import looks_like_pdf, page_count

# Check if pdflatex is available
PDFLATEX_AVAILABLE = shutil.which("pdflatex") is not None
skip_if_no_pdflatex = pytest.mark.skipif(
    not PDFLATEX_AVAILABLE,
    reason="pdflatex not installed - install TeX Live, MiKTeX, or MacTeX"
)

EDITED_MAIN = r"""\documentclass{article}
\begin{document}
Edited but not saved.
\input{chapters/intro.tex}
\end{document}
"""

BROKEN_MAIN = r"""\documentclass{article}
\begin{document}
This has an \undefinedcommand{test} that should fail.
\end{document}
"""


@pytest.fixture
def latex_orchestrator():
    with CompilationOrchestrator(LatexEngine("pdflatex", num_passes=1)) as orchestrator:
        yield orchestrator


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_pdflatex
def test_compile_unsaved_root_with_included_chapter(project, latex_orchestrator):
    outcome = latex_orchestrator.compile(CompileRequest(project, "main.tex", EDITED_MAIN), timeout=120)

    assert outcome.success, outcome.error
    assert looks_like_pdf(outcome.artifact.data)
    assert page_count(outcome.artifact.data) == 1
    assert outcome.artifact.path == project.resolve() / "build" / "main.tex.pdf"
    # Auxiliary files stay in the scratch directory
    assert not (project / "main.aux").exists()


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_pdflatex
def test_compile_error_reports_diagnostics(project, latex_orchestrator):
    outcome = latex_orchestrator.compile(CompileRequest(project, "main.tex", BROKEN_MAIN), timeout=120)

    assert not outcome.success
    assert outcome.error.kind is ErrorKind.ENGINE_ERROR
    assert "Undefined control sequence" in outcome.error.diagnostics
    assert not (project / "build" / "main.tex.pdf").exists()


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_pdflatex
def test_skeleton_project_compiles(tmp_path, store):
    with IncipitSession(LatexEngine("pdflatex", num_passes=1), store=store) as session:
        created = session.dispatch(CreateNewProject(tmp_path / "paper"))
        assert created.ok

        response = session.dispatch(CompileLatexProject(tmp_path / "paper", "main.tex"))

    assert response.ok, response.error
    assert looks_like_pdf(response.value)
