"""Tests for Settings and settings loading."""

from __future__ import annotations

import json

import pytest

from vaultlink.config import Settings, load_settings


class TestSettingsFromDict:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        settings = Settings.from_dict({})
        assert settings == Settings()
        assert settings.results_count == 30
        assert settings.embedding_model == "text-embedding-ada-002"
        assert settings.embeddings_path == ".smart-connections/embeddings-3.json"

    def test_comma_separated_lists(self):
        settings = Settings.from_dict(
            {
                "file_exclusions": "drafts, templates ,",
                "header_exclusions": ["Private", " Secret "],
                "path_only": "journal/",
            }
        )
        assert settings.file_exclusions == ("drafts", "templates")
        assert settings.header_exclusions == ("Private", "Secret")
        assert settings.path_only == ("journal/",)

    def test_folder_exclusions_merged_with_slash(self):
        settings = Settings.from_dict(
            {"file_exclusions": "a.md", "folder_exclusions": "archive, inbox/"}
        )
        assert settings.file_exclusions == ("a.md", "archive/", "inbox/")

    def test_scalar_fields(self):
        settings = Settings.from_dict(
            {
                "skip_sections": True,
                "results_count": "10",
                "save_delay": 5,
                "log_render": 1,
                "folder_path": "data",
                "file_name": "vectors.json",
            }
        )
        assert settings.skip_sections is True
        assert settings.results_count == 10
        assert settings.save_delay == 5.0
        assert settings.log_render is True
        assert settings.embeddings_path == "data/vectors.json"

    def test_results_count_floor(self):
        assert Settings.from_dict({"results_count": 0}).results_count == 1

    def test_unknown_keys_kept(self):
        settings = Settings.from_dict({"view_open": True})
        assert settings.extra == {"view_open": True}

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert Settings.from_dict({}).api_key == "sk-env"
        assert Settings.from_dict({"api_key": "sk-file"}).api_key == "sk-file"

    def test_bad_list_type(self):
        with pytest.raises(TypeError):
            Settings.from_dict({"file_exclusions": 42})


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert load_settings(tmp_path / "data.json") == Settings()

    def test_load_file(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({"results_count": 5, "skip_sections": True}))
        settings = load_settings(path)
        assert settings.results_count == 5
        assert settings.skip_sections

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("[]")
        with pytest.raises(ValueError):
            load_settings(path)
