"""
LaTeX engine binding.

The orchestrator treats the engine as opaque: anything with a
`compile(view) -> bytes` method that raises EngineFailure with diagnostics
when the document does not typeset. LatexEngine drives a TeX compiler
(pdflatex, xelatex, lualatex or tectonic) as a subprocess inside the
scratch directory materialized from the SourceView.
"""

import os
import re
import shutil
import subprocess
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from typing_extensions import Protocol

from incipit.contexts.rendering.logger import _log_debug
from incipit.contexts.rendering.source_resolver import SourceView
from incipit.exceptions import EngineFailure

load_dotenv()
LATEX_COMPILER = os.getenv("LATEX_COMPILER", "pdflatex")
LATEX_PASSES = int(os.getenv("LATEX_PASSES", "2"))
LATEX_TIMEOUT = float(os.getenv("LATEX_TIMEOUT", "120"))

# Relative to the scratch directory; paranoid kpathsea rejects dot-directories
OUTPUT_SUBDIR = "_incipit_out"


class Engine(Protocol):
    """Typesetting backend: turns a source view into PDF bytes."""

    def compile(self, view: SourceView) -> bytes:
        """Return PDF bytes or raise EngineFailure with diagnostics."""
        ...


def _parse_latex_log(log_content: str) -> Tuple[List[str], List[str]]:
    """
    Parse LaTeX log file for errors and warnings.

    Args:
        log_content: Content of the .log file

    Returns:
        Tuple of (errors, warnings)
    """
    errors = []
    warnings = []

    # LaTeX error pattern: "! Error message"
    error_pattern = re.compile(r"^! (.+)$", re.MULTILINE)
    for match in error_pattern.finditer(log_content):
        errors.append(match.group(1).strip())

    # -file-line-error style: "./main.tex:12: Undefined control sequence."
    file_line_pattern = re.compile(r"^(?:\./)?([^\s:]+\.tex:\d+: .+)$", re.MULTILINE)
    for match in file_line_pattern.finditer(log_content):
        if match.group(1) not in errors:
            errors.append(match.group(1).strip())

    # Additional error patterns that don't start with "!"
    additional_error_patterns = [
        r"Undefined control sequence",
        r"File ended while scanning use of",
        r"Emergency stop",
    ]
    for pattern in additional_error_patterns:
        match = re.search(rf"({pattern}.*?)$", log_content, re.MULTILINE)
        if match and not any(match.group(1) in err for err in errors):
            errors.append(match.group(1))

    warning_patterns = [
        r"LaTeX Warning: (.+)",
        r"Package \w+ Warning: (.+)",
        r"Overfull \\hbox \((.+)\)",
        r"Underfull \\hbox \((.+)\)",
    ]
    for pattern in warning_patterns:
        for match in re.finditer(pattern, log_content, re.MULTILINE):
            warnings.append(match.group(1).strip())

    return errors, warnings


class LatexEngine:
    """
    Runs a TeX compiler against a materialized SourceView.

    Shell escape is disabled and kpathsea is put in paranoid mode, so the
    compiler can only open files below the scratch directory (plus its own
    distribution files).

    Args:
        compiler: Executable name or path (default: LATEX_COMPILER env, pdflatex)
        num_passes: Compiler passes for cross-references (ignored by tectonic)
        timeout: Per-pass timeout in seconds
    """

    def __init__(
        self,
        compiler: str = LATEX_COMPILER,
        num_passes: int = LATEX_PASSES,
        timeout: float = LATEX_TIMEOUT,
    ):
        self.compiler = compiler
        self.num_passes = max(1, num_passes)
        self.timeout = timeout

    @property
    def is_tectonic(self) -> bool:
        return Path(self.compiler).name.startswith("tectonic")

    def available(self) -> bool:
        return shutil.which(self.compiler) is not None

    def _command(self, target_file: str) -> List[str]:
        if self.is_tectonic:
            return [
                self.compiler,
                "--untrusted",
                "--keep-logs",
                "--outdir",
                OUTPUT_SUBDIR,
                target_file,
            ]
        return [
            self.compiler,
            "-interaction=nonstopmode",
            "-halt-on-error",
            "-file-line-error",
            "-no-shell-escape",
            f"-output-directory={OUTPUT_SUBDIR}",
            target_file,
        ]

    @staticmethod
    def _environment() -> dict:
        env = os.environ.copy()
        env["openin_any"] = "p"
        env["openout_any"] = "p"
        return env

    def compile(self, view: SourceView) -> bytes:
        """
        Compile the view's target and return the PDF bytes.

        Raises:
            EngineFailure: If the compiler is missing, times out, reports errors
                           or produces no PDF
        """
        if not self.available():
            raise EngineFailure(f"LaTeX compiler not found: {self.compiler}")

        stem = PurePosixPath(view.target_file).stem
        passes = 1 if self.is_tectonic else self.num_passes

        with view.materialize() as workdir:
            out_dir = workdir / OUTPUT_SUBDIR
            out_dir.mkdir(exist_ok=True)

            # \include writes one .aux per included file, mirrored under the output directory
            for directory in [p for p in workdir.rglob("*") if p.is_dir()]:
                if directory != out_dir and out_dir not in directory.parents:
                    (out_dir / directory.relative_to(workdir)).mkdir(parents=True, exist_ok=True)

            transcript = []
            returncode = 0
            # Multiple passes needed for cross-references, TOC, and page numbers
            for pass_number in range(1, passes + 1):
                _log_debug(f"Running {self.compiler} pass {pass_number}/{passes} on {view.target_file}")
                try:
                    result = subprocess.run(
                        self._command(view.target_file),
                        cwd=workdir,
                        capture_output=True,
                        text=True,
                        encoding="utf-8",
                        errors="replace",  # Replace invalid UTF-8 bytes instead of crashing
                        timeout=self.timeout,
                        env=self._environment(),
                    )
                except subprocess.TimeoutExpired as e:
                    output = e.stdout if isinstance(e.stdout, str) else ""
                    raise EngineFailure(
                        f"Compilation timed out after {self.timeout:.0f}s",
                        diagnostics="\n".join(transcript + [output]),
                    ) from e
                except OSError as e:
                    raise EngineFailure(f"Failed to invoke {self.compiler}: {e}") from e

                transcript.append(result.stdout)
                if result.stderr:
                    transcript.append(result.stderr)
                returncode = result.returncode
                if returncode != 0:
                    break

            diagnostics = "\n".join(transcript)

            errors: List[str] = []
            log_file = self._find_output(out_dir, stem, ".log")
            if log_file is not None:
                # TeX writes log files in latin-1 (font metadata contains non-UTF-8)
                errors, warnings = _parse_latex_log(log_file.read_text(encoding="latin-1"))
                if warnings:
                    _log_debug(f"{view.target_file}: {len(warnings)} LaTeX warnings")

            pdf_path = self._find_output(out_dir, stem, ".pdf")
            if returncode != 0 or errors or pdf_path is None:
                if not errors and pdf_path is None:
                    errors.append("PDF file was not generated")
                raise EngineFailure("LaTeX compilation failed", diagnostics=diagnostics, errors=errors)

            data = pdf_path.read_bytes()

        if not data:
            raise EngineFailure("Compilation produced no output", diagnostics=diagnostics)
        return data

    @staticmethod
    def _find_output(out_dir: Path, stem: str, suffix: str) -> Optional[Path]:
        candidate = out_dir / f"{stem}{suffix}"
        return candidate if candidate.exists() else None
