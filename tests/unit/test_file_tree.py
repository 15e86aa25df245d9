"""Unit tests for the project file tree and skeleton creation."""

import pytest

from incipit.contexts.project import build_tree, create_skeleton
from incipit.exceptions import ProjectIOError


@pytest.mark.unit
class TestBuildTree:
    def test_nested_relative_paths(self, project):
        tree = build_tree(project)

        assert tree.relative_path == ""
        assert tree.absolute_path == project.resolve()
        intro = tree.find("chapters/intro.tex")
        assert intro is not None
        assert not intro.is_directory
        assert intro.children is None

    def test_directories_first_then_case_insensitive(self, tmp_path, make_files):
        root = make_files(
            tmp_path / "p",
            {"b.tex": "", "A.tex": "", "zeta/x.tex": "", "Alpha/y.tex": ""},
        )

        names = [child.name for child in build_tree(root).children]
        assert names == ["Alpha", "zeta", "A.tex", "b.tex"]

    def test_hidden_entries_and_build_dir_skipped(self, project, make_files):
        make_files(
            project,
            {
                ".incipit": "root_file: main.tex\n",
                ".git/HEAD": "ref",
                "build/main.pdf": "pdf",
                "chapters/build/keep.tex": "",
            },
        )

        tree = build_tree(project)
        paths = sorted(node.relative_path for node in tree.iter_files())
        assert paths == ["chapters/build/keep.tex", "chapters/intro.tex", "main.tex"]

    def test_symlink_outside_root_skipped(self, project, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret.tex").write_text("secret")
        (project / "linked").symlink_to(outside, target_is_directory=True)

        assert build_tree(project).find("linked") is None

    def test_symlink_loop_inside_root_terminates(self, project):
        (project / "chapters" / "loop").symlink_to(project / "chapters", target_is_directory=True)

        tree = build_tree(project)
        assert tree.find("chapters/intro.tex") is not None
        assert tree.find("chapters/loop") is None

    def test_missing_root(self, tmp_path):
        with pytest.raises(ProjectIOError, match="does not exist"):
            build_tree(tmp_path / "absent")

    def test_file_root(self, project):
        with pytest.raises(ProjectIOError, match="not a directory"):
            build_tree(project / "main.tex")

    def test_to_dict(self, project):
        data = build_tree(project).to_dict()

        assert data["is_directory"] is True
        assert [child["name"] for child in data["children"]] == ["chapters", "main.tex"]
        assert "children" not in data["children"][1]


@pytest.mark.unit
class TestCreateSkeleton:
    def test_creates_compilable_layout(self, tmp_path):
        tree = create_skeleton(tmp_path / "paper")

        assert [child.name for child in tree.children] == ["chapters", "figures", "main.tex"]
        assert tree.find("chapters/introduction.tex") is not None
        main = (tmp_path / "paper" / "main.tex").read_text()
        assert "\\input{chapters/introduction}" in main

    def test_existing_empty_directory_allowed(self, tmp_path):
        (tmp_path / "empty").mkdir()

        assert create_skeleton(tmp_path / "empty").find("main.tex") is not None

    def test_non_empty_directory_refused(self, project):
        with pytest.raises(ProjectIOError, match="not empty"):
            create_skeleton(project)

        assert "\\input{chapters/intro}" in (project / "main.tex").read_text()
