"""Unit tests for project metadata and global settings persistence."""

import pytest

from incipit.contexts.project import GlobalSettings, MetadataStore, ProjectMeta
from incipit.contexts.project.metadata_store import default_config_dir
from incipit.exceptions import ProjectIOError


@pytest.mark.unit
class TestProjectMeta:
    def test_defaults_when_record_absent(self, project, store):
        meta = store.load_project_meta(project)

        assert meta == ProjectMeta()
        assert meta.root_file == "main.tex"

    def test_round_trip_keeps_unknown_fields(self, project, store):
        meta = ProjectMeta(
            last_opened_file="chapters/intro.tex",
            root_file="main.tex",
            project_settings={"spellcheck": True, "zoom": 1.25, "macros": {"R": "\\mathbb{R}"}},
            extra={"theme": "dark", "layout": ["editor", "preview"]},
        )
        store.save_project_meta(project, meta)

        assert store.load_project_meta(project) == meta

    def test_record_is_written_at_project_root(self, project, store):
        store.save_project_meta(project, ProjectMeta())

        assert (project / ".incipit").is_file()

    def test_interpolation_syntax_is_kept_verbatim(self, project, store):
        meta = ProjectMeta(project_settings={"output": "${root_file}.pdf"})
        store.save_project_meta(project, meta)

        assert store.load_project_meta(project).project_settings["output"] == "${root_file}.pdf"

    def test_json_record_is_accepted(self, project, store):
        (project / ".incipit").write_text('{"root_file": "thesis.tex", "last_opened_file": null}')

        meta = store.load_project_meta(project)
        assert meta.root_file == "thesis.tex"
        assert meta.last_opened_file is None

    @pytest.mark.parametrize("content", ["root_file: [unclosed\n", "- a\n- b\n"])
    def test_malformed_record_falls_back_to_defaults(self, project, store, content):
        (project / ".incipit").write_text(content)

        assert store.load_project_meta(project) == ProjectMeta()

    def test_non_utf8_record_falls_back_to_defaults(self, project, store):
        (project / ".incipit").write_bytes(b"root_file: th\xe9se.tex\n")

        assert store.load_project_meta(project) == ProjectMeta()

    def test_unserializable_setting_is_io_error(self, project, store):
        store.save_project_meta(project, ProjectMeta(root_file="thesis.tex"))

        with pytest.raises(ProjectIOError):
            store.save_project_meta(project, ProjectMeta(project_settings={"tags": {"a", "b"}}))

        assert store.load_project_meta(project).root_file == "thesis.tex"

    def test_ill_typed_fields_fall_back_individually(self, project, store):
        (project / ".incipit").write_text("root_file: 42\nlast_opened_file: notes.tex\n")

        meta = store.load_project_meta(project)
        assert meta.root_file == "main.tex"
        assert meta.last_opened_file == "notes.tex"

    def test_invalid_project_root(self, tmp_path, store):
        with pytest.raises(ProjectIOError):
            store.load_project_meta(tmp_path / "absent")

    def test_initialize_project(self, project, store):
        meta = store.initialize_project(project)

        assert meta.root_file == meta.last_opened_file == "main.tex"
        assert store.load_project_meta(project) == meta


@pytest.mark.unit
class TestGlobalSettings:
    def test_recent_projects_dedup_most_recent_first(self):
        settings = GlobalSettings()
        for path in ["/a", "/b", "/a"]:
            settings.add_recent_project(path)

        assert settings.recent_projects == ["/a", "/b"]

    def test_recent_projects_capped(self):
        settings = GlobalSettings()
        for i in range(12):
            settings.add_recent_project(f"/p{i}")

        assert len(settings.recent_projects) == 10
        assert settings.recent_projects[0] == "/p11"
        assert "/p0" not in settings.recent_projects

    def test_defaults_when_absent(self, store):
        assert store.load_global() == GlobalSettings()

    def test_round_trip(self, store):
        settings = GlobalSettings(
            recent_projects=["/b", "/a"],
            editor_settings={"font_size": 14, "vim": False},
            extra={"window": {"width": 1200}},
        )
        store.save_global(settings)

        assert store.settings_path.is_file()
        assert store.load_global() == settings

    def test_malformed_settings_fall_back_to_defaults(self, store):
        store.config_dir.mkdir(parents=True)
        store.settings_path.write_text("recent_projects: {unclosed\n")

        assert store.load_global() == GlobalSettings()

    def test_non_utf8_settings_fall_back_to_defaults(self, store):
        store.config_dir.mkdir(parents=True)
        store.settings_path.write_bytes(b"recent_projects:\n- /caf\xe9\n")

        assert store.load_global() == GlobalSettings()

    def test_hand_edited_duplicates_normalized_on_load(self, store):
        store.config_dir.mkdir(parents=True)
        store.settings_path.write_text("recent_projects:\n- /a\n- /b\n- /a\n- 7\n")

        assert store.load_global().recent_projects == ["/a", "/b"]


@pytest.mark.unit
class TestConfigDir:
    def test_explicit_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("INCIPIT_CONFIG_DIR", str(tmp_path / "cfg"))

        assert default_config_dir() == tmp_path / "cfg"
        assert MetadataStore().settings_path == tmp_path / "cfg" / "settings.yaml"

    def test_xdg_fallback(self, tmp_path, monkeypatch):
        monkeypatch.delenv("INCIPIT_CONFIG_DIR", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

        assert default_config_dir() == tmp_path / "incipit"
