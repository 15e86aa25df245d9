"""Unit tests for the LaTeX engine binding that need no TeX installation."""

import pytest

from incipit.contexts.rendering import LatexEngine, SourceView
from incipit.contexts.rendering.engine import OUTPUT_SUBDIR, _parse_latex_log
from incipit.exceptions import EngineFailure

SAMPLE_LOG = r"""This is pdfTeX, Version 3.141592653
./main.tex:4: Undefined control sequence.
l.4 \foo

! Emergency stop.
LaTeX Warning: Reference `fig:plot' on page 1 undefined on input line 7.
Overfull \hbox (12.0pt too wide) in paragraph at lines 9--10
"""


@pytest.mark.unit
def test_parse_latex_log():
    errors, warnings = _parse_latex_log(SAMPLE_LOG)

    assert "Emergency stop." in errors
    assert "main.tex:4: Undefined control sequence." in errors
    assert any("fig:plot" in w for w in warnings)
    assert "12.0pt too wide" in warnings


@pytest.mark.unit
def test_tex_command_is_sandboxed():
    command = LatexEngine("pdflatex")._command("chapters/main.tex")

    assert command[0] == "pdflatex"
    assert "-no-shell-escape" in command
    assert "-halt-on-error" in command
    assert f"-output-directory={OUTPUT_SUBDIR}" in command
    assert command[-1] == "chapters/main.tex"


@pytest.mark.unit
def test_tectonic_command():
    engine = LatexEngine("/usr/local/bin/tectonic")

    assert engine.is_tectonic
    assert "--untrusted" in engine._command("main.tex")


@pytest.mark.unit
def test_paranoid_file_access():
    env = LatexEngine._environment()

    assert env["openin_any"] == "p"
    assert env["openout_any"] == "p"


@pytest.mark.unit
def test_missing_compiler_is_engine_failure(project):
    engine = LatexEngine("definitely-not-a-tex-compiler")
    view = SourceView(project.resolve(), "main.tex")

    assert not engine.available()
    with pytest.raises(EngineFailure, match="compiler not found"):
        engine.compile(view)
