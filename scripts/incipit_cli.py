#!/usr/bin/env python3
"""
Incipit Project CLI

Opens, creates and compiles multi-file LaTeX projects through the same command
surface a desktop shell uses.

Commands:
    open    - Show the file tree of a project and add it to recent projects
    new     - Create a skeleton project
    compile - Compile a document (optionally from an unsaved buffer file)
    recent  - List recently opened projects
    meta    - Show or update a project's metadata
    events  - Show the compile history of a project

Examples:\n

    incipit_cli.py open ~/thesis                              # Show project tree

    incipit_cli.py new ~/paper                                # Create skeleton project

    incipit_cli.py compile ~/thesis                           # Compile the root file

    incipit_cli.py compile ~/thesis chapters/intro.tex -v     # Compile another target

    incipit_cli.py compile ~/thesis --buffer draft.tex        # Compile unsaved content

    incipit_cli.py meta ~/thesis --root-file thesis.tex       # Change the root file
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from incipit.commands import (
    CheckPdfExists,
    CompileLatexProject,
    CreateNewProject,
    IncipitSession,
    LoadGlobalSettings,
    LoadProjectMeta,
    OpenProject,
    SaveProjectMeta,
)
from incipit.contexts.project import FileNode
from incipit.contexts.rendering import CompileError, LatexEngine
from incipit.utils.event_logging import get_recent_events
from incipit.utils.logger import setup_logger
from incipit.utils.paths import BUILD_DIR_NAME
from incipit.utils.pdf_processing import looks_like_pdf, page_count
from incipit.utils.timestamp import format_timestamp, now

load_dotenv()
LOGS_PATH = os.getenv("LOGS_PATH")


app = typer.Typer(
    help="Open, create and compile multi-file LaTeX projects",
    add_completion=False,
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _session(compiler: Optional[str] = None, verbose: bool = False) -> IncipitSession:
    """Configure logging for this invocation and build a session."""
    log_dir = Path(LOGS_PATH) / f"cli_{now()}" if LOGS_PATH else None
    engine = LatexEngine(compiler) if compiler else LatexEngine()
    setup_logger(
        "cli",
        log_dir=log_dir,
        extra_provenance={"LaTeX compiler": engine.compiler},
        console_level="DEBUG" if verbose else "WARNING",
    )
    return IncipitSession(engine)


def _fail(error: CompileError, verbose: bool = False) -> None:
    typer.secho(f"✗ {error.kind.value}: {error.message}", fg=typer.colors.RED, bold=True, err=True)
    if error.path:
        typer.echo(f"  Path: {error.path}", err=True)
    for line in error.errors[:10]:
        typer.secho(f"  - {line}", fg=typer.colors.RED, err=True)
    if len(error.errors) > 10:
        typer.echo(f"  ... and {len(error.errors) - 10} more", err=True)
    if verbose and error.diagnostics:
        typer.echo(f"\n{error.diagnostics}", err=True)
    if error.retryable:
        typer.echo("  Another compile is running; retry shortly.", err=True)
    raise typer.Exit(code=1)


def _print_tree(node: FileNode, indent: int = 0) -> None:
    for child in node.children or []:
        if child.is_directory:
            typer.secho(f"{'  ' * indent}{child.name}/", fg=typer.colors.BLUE)
            _print_tree(child, indent + 1)
        else:
            typer.echo(f"{'  ' * indent}{child.name}")


@app.command("open")
def open_command(
    path: Annotated[Path, typer.Argument(help="Project directory")],
):
    """
    Show the file tree of a project and add it to the recent projects list.

    Examples:\n

        $ incipit_cli.py open ~/thesis
    """
    with _session() as session:
        response = session.dispatch(OpenProject(path))
    if not response.ok:
        _fail(response.error)

    tree = response.value
    typer.secho(f"\n{tree.absolute_path}", fg=typer.colors.BLUE, bold=True)
    _print_tree(tree)
    typer.echo("")


@app.command("new")
def new_command(
    path: Annotated[Path, typer.Argument(help="Directory to create (must be empty or absent)")],
):
    """
    Create a skeleton project with a root document, a chapter and a figures folder.

    Examples:\n

        $ incipit_cli.py new ~/paper
    """
    with _session() as session:
        response = session.dispatch(CreateNewProject(path))
    if not response.ok:
        _fail(response.error)

    tree = response.value
    typer.secho(f"\n✓ Created project {tree.absolute_path}", fg=typer.colors.GREEN, bold=True)
    _print_tree(tree, indent=1)
    typer.echo("")


@app.command("compile")
def compile_command(
    project: Annotated[Path, typer.Argument(help="Project directory")],
    target: Annotated[
        Optional[str],
        typer.Argument(help="Project-relative document (default: the project's root file)"),
    ] = None,
    buffer: Annotated[
        Optional[Path],
        typer.Option(
            "--buffer",
            "-b",
            help="File whose content replaces the target's on-disk content for this compile",
        ),
    ] = None,
    compiler: Annotated[
        Optional[str],
        typer.Option("--compiler", "-c", help="LaTeX compiler (default: LATEX_COMPILER env)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show detailed compilation output (compiler stdout/stderr)",
        ),
    ] = False,
):
    """
    Compile a project document to PDF.

    Without --buffer a previously compiled PDF is reused.

    Examples:\n

        $ incipit_cli.py compile ~/thesis                            # Compile root file

        $ incipit_cli.py compile ~/thesis --buffer /tmp/main.tex     # Compile unsaved edits
    """
    unsaved_buffer = None
    if buffer is not None:
        try:
            unsaved_buffer = buffer.read_text(encoding="utf-8")
        except OSError as e:
            typer.secho(f"Error: cannot read buffer file: {e}\n", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

    with _session(compiler, verbose) as session:
        if target is None:
            meta_response = session.dispatch(LoadProjectMeta(project))
            if not meta_response.ok:
                _fail(meta_response.error)
            target = meta_response.value.root_file

        typer.secho(f"\nCompiling: {target}", fg=typer.colors.BLUE, bold=True)
        if unsaved_buffer is not None:
            typer.echo(f"Source: {buffer} (unsaved buffer)")
        typer.echo("")

        response = session.dispatch(CompileLatexProject(project, target, unsaved_buffer))
        if not response.ok:
            _fail(response.error, verbose)

        artifact = session.cache.lookup(project, target)

    data = response.value
    typer.secho("✓ Compilation succeeded", fg=typer.colors.GREEN, bold=True)
    if not looks_like_pdf(data):
        typer.secho("  Warning: output does not look like a PDF", fg=typer.colors.YELLOW)
    pages = page_count(data)
    typer.echo(f"  Size: {len(data)} bytes" + (f", {pages} pages" if pages else ""))
    if artifact is not None:
        typer.echo(f"  PDF: {artifact.path}")
        typer.echo(f"  Built: {format_timestamp(artifact.produced_at, relative=True)}")
    typer.echo("")


@app.command("recent")
def recent_command():
    """List recently opened projects, most recent first."""
    with _session() as session:
        settings = session.dispatch(LoadGlobalSettings()).value

    if not settings.recent_projects:
        typer.echo("No recent projects.")
        return

    typer.secho("\nRecent projects:", fg=typer.colors.BLUE, bold=True)
    for i, path in enumerate(settings.recent_projects, 1):
        missing = "" if Path(path).is_dir() else " (missing)"
        typer.echo(f"  {i:>2}. {path}{missing}")
    typer.echo("")


@app.command("meta")
def meta_command(
    project: Annotated[Path, typer.Argument(help="Project directory")],
    root_file: Annotated[
        Optional[str],
        typer.Option("--root-file", "-r", help="Set the document compiled by default"),
    ] = None,
):
    """
    Show a project's metadata, or update its root file.

    Examples:\n

        $ incipit_cli.py meta ~/thesis

        $ incipit_cli.py meta ~/thesis --root-file thesis.tex
    """
    with _session() as session:
        response = session.dispatch(LoadProjectMeta(project))
        if not response.ok:
            _fail(response.error)
        meta = response.value

        if root_file is not None:
            meta.root_file = root_file
            saved = session.dispatch(SaveProjectMeta(project, meta))
            if not saved.ok:
                _fail(saved.error)
            typer.secho(f"✓ Root file set to {root_file}", fg=typer.colors.GREEN)

        has_pdf = session.dispatch(CheckPdfExists(project, meta.root_file)).value

    typer.echo(f"  Root file: {meta.root_file}")
    typer.echo(f"  Last opened: {meta.last_opened_file or '-'}")
    typer.echo(f"  Compiled PDF: {'yes' if has_pdf else 'no'}")
    if meta.project_settings:
        typer.echo("  Settings:")
        for key, value in meta.project_settings.items():
            typer.echo(f"    {key}: {value}")


@app.command("events")
def events_command(
    project: Annotated[Path, typer.Argument(help="Project directory")],
    count: Annotated[int, typer.Option("--count", "-n", help="Number of events", min=1)] = 10,
    target: Annotated[
        Optional[str], typer.Option("--target", "-t", help="Only events for this document")
    ] = None,
):
    """Show the most recent compile events of a project."""
    events = get_recent_events(project.expanduser() / BUILD_DIR_NAME, n=count, target_file=target)
    if not events:
        typer.echo("No compile events.")
        return

    for event in events:
        when = format_timestamp(datetime.fromisoformat(event["timestamp"]), relative=True)
        colour = typer.colors.RED if event["event_type"] == "compile_failed" else None
        detail = event.get("error_kind") or event.get("compilation_time_s", "")
        typer.secho(
            f"  {when:>10}  {event['event_type']:<20} {event['target_file']}  {detail}", fg=colour
        )


if __name__ == "__main__":
    app()
