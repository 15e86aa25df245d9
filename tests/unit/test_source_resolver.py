"""Unit tests for virtual source resolution and the dependency scan."""

import pytest

from incipit.contexts.rendering import CompileRequest, SourceView, VirtualSourceResolver
from incipit.contexts.rendering.source_resolver import (
    encode_buffer,
    is_hidden,
    scan_dependencies,
    strip_comments,
)
from incipit.exceptions import MissingDependencyError, PathEscapeError, ProjectIOError


@pytest.fixture
def resolver() -> VirtualSourceResolver:
    return VirtualSourceResolver()


@pytest.mark.unit
class TestSourceView:
    def test_buffer_served_for_target_only(self, project):
        view = SourceView(project.resolve(), "main.tex", unsaved_buffer="buffer text")

        assert view.read("main.tex") == b"buffer text"
        assert view.read("./main.tex") == b"buffer text"
        assert b"Original introduction." in view.read("chapters/intro.tex")

    def test_disk_read_without_buffer(self, project):
        view = SourceView(project.resolve(), "main.tex")

        assert view.read_text("main.tex") == (project / "main.tex").read_text()

    def test_read_outside_root_raises(self, project, tmp_path):
        (tmp_path / "secret.tex").write_text("secret")
        view = SourceView(project.resolve(), "main.tex")

        with pytest.raises(PathEscapeError):
            view.read("../secret.tex")

    def test_read_missing_file_raises(self, project):
        view = SourceView(project.resolve(), "main.tex")

        with pytest.raises(MissingDependencyError):
            view.read("chapters/absent.tex", requested_by="main.tex")

    def test_materialize_writes_buffer_and_cleans_up(self, project, make_files):
        make_files(project, {".incipit": "root_file: main.tex\n", "build/main.pdf": "old"})
        view = SourceView(project.resolve(), "main.tex", unsaved_buffer="edited")

        with view.materialize() as workdir:
            assert (workdir / "main.tex").read_text() == "edited"
            assert (workdir / "chapters" / "intro.tex").exists()
            assert not (workdir / ".incipit").exists()
            assert not (workdir / "build").exists()
            scratch = workdir

        assert not scratch.exists()
        assert (project / "main.tex").read_text() != "edited"

    def test_hidden_files_are_not_readable_or_copied(self, project, make_files):
        make_files(project, {".drafts/notes.tex": "draft", ".hidden.tex": "secret"})
        view = SourceView(project.resolve(), "main.tex")

        assert not view.exists(".drafts/notes.tex")
        with pytest.raises(MissingDependencyError):
            view.read(".hidden.tex", requested_by="main.tex")
        with view.materialize() as workdir:
            assert not (workdir / ".drafts").exists()
            assert not (workdir / ".hidden.tex").exists()

    def test_materialize_skips_symlinks_leaving_root(self, project, tmp_path):
        (tmp_path / "secret.tex").write_text("secret")
        (project / "leak.tex").symlink_to(tmp_path / "secret.tex")
        view = SourceView(project.resolve(), "main.tex")

        with view.materialize() as workdir:
            assert not (workdir / "leak.tex").exists()


@pytest.mark.unit
class TestDependencyScan:
    def test_collects_transitive_inputs(self, project, make_files):
        make_files(project, {"chapters/intro.tex": "\\input{chapters/details}\n", "chapters/details.tex": "x"})
        view = SourceView(project.resolve(), "main.tex")

        paths = [dep.path for dep in scan_dependencies(view)]
        assert paths == ["chapters/intro.tex", "chapters/details.tex"]

    def test_dependency_attributed_to_referencing_document(self, project, make_files):
        make_files(project, {"chapters/intro.tex": "\\include{chapters/absent}\n"})
        view = SourceView(project.resolve(), "main.tex")

        with pytest.raises(MissingDependencyError) as excinfo:
            scan_dependencies(view)
        assert excinfo.value.requested_by == "chapters/intro.tex"
        assert excinfo.value.path == "chapters/absent"

    def test_inclusion_cycle_terminates(self, project, make_files):
        make_files(project, {"a.tex": "\\input{b}\n", "b.tex": "\\input{a}\n"})
        view = SourceView(project.resolve(), "a.tex")

        assert [dep.path for dep in scan_dependencies(view)] == ["b.tex", "a.tex"]

    def test_graphicspath_and_default_extensions(self, project, make_files):
        make_files(project, {"figures/plot.png": "png"})
        buffer = "\\graphicspath{{figures/}}\n\\includegraphics[width=3cm]{plot}\n"
        view = SourceView(project.resolve(), "main.tex", unsaved_buffer=buffer)

        [dependency] = scan_dependencies(view)
        assert dependency.command == "includegraphics"
        assert dependency.path == "figures/plot.png"

    def test_bibliography_list(self, project, make_files):
        make_files(project, {"refs.bib": "", "more.bib": ""})
        view = SourceView(project.resolve(), "main.tex", unsaved_buffer="\\bibliography{refs, more}\n")

        assert [dep.path for dep in scan_dependencies(view)] == ["refs.bib", "more.bib"]

    def test_comments_and_macro_arguments_are_ignored(self, project):
        buffer = "% \\input{missing}\n\\input{\\chapterdir/intro}\n50\\% done\n"
        view = SourceView(project.resolve(), "main.tex", unsaved_buffer=buffer)

        assert scan_dependencies(view) == []

    def test_strip_comments_keeps_escaped_percent(self):
        assert strip_comments("100\\% sure % note") == "100\\% sure "


@pytest.mark.unit
class TestResolver:
    def test_resolve_normalizes_target(self, project, resolver):
        view = resolver.resolve(CompileRequest(project, "./main.tex"))

        assert view.root == project.resolve()
        assert view.target_file == "main.tex"
        assert [dep.path for dep in view.dependencies] == ["chapters/intro.tex"]

    def test_new_target_needs_buffer(self, project, resolver):
        with pytest.raises(MissingDependencyError):
            resolver.resolve(CompileRequest(project, "draft.tex"))

        view = resolver.resolve(CompileRequest(project, "draft.tex", "\\input{chapters/intro}"))
        assert view.has_buffer

    def test_scan_can_be_disabled(self, project):
        resolver = VirtualSourceResolver(check_dependencies=False)
        view = resolver.resolve(CompileRequest(project, "main.tex", "\\input{absent}"))

        assert view.dependencies == []

    def test_hidden_target_rejected(self, project, make_files, resolver):
        make_files(project, {".drafts/main.tex": "draft"})

        with pytest.raises(MissingDependencyError):
            resolver.resolve(CompileRequest(project, ".drafts/main.tex"))
        with pytest.raises(MissingDependencyError):
            resolver.resolve(CompileRequest(project, ".drafts/main.tex", "buffer"))

    def test_reference_to_hidden_file_is_missing(self, project, make_files, resolver):
        make_files(project, {".drafts/intro.tex": "draft"})

        with pytest.raises(MissingDependencyError) as excinfo:
            resolver.resolve(CompileRequest(project, "main.tex", "\\input{.drafts/intro}"))
        assert excinfo.value.requested_by == "main.tex"


@pytest.mark.unit
@pytest.mark.parametrize(
    "path, hidden",
    [(".incipit", True), (".drafts/main.tex", True), ("chapters/.notes.tex", True),
     ("main.tex", False), ("../main.tex", False)],
)
def test_is_hidden(path, hidden):
    assert is_hidden(path) is hidden


@pytest.mark.unit
class TestBufferEncoding:
    def test_text_is_utf8_encoded(self):
        assert encode_buffer("café", "main.tex") == "café".encode("utf-8")
        assert encode_buffer(None, "main.tex") is None

    def test_lone_surrogate_is_io_error(self):
        with pytest.raises(ProjectIOError) as excinfo:
            encode_buffer("bad \udc80 text", "main.tex")
        assert excinfo.value.path == "main.tex"
