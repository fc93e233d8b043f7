"""Tests for extraction configuration and the provenance gate."""

import json
import logging

import pytest

from exgraph.config import (
    DEFAULT_BASE_IRI,
    ExtractionConfig,
    load_config,
    project_file,
    should_extract_full,
)
from exgraph.errors import ConfigError


def write_config(project, data):
    config_dir = project / ".exgraph"
    config_dir.mkdir()
    (config_dir / "config.json").write_text(json.dumps(data))


class TestExtractionConfig:
    """Defaults, merging and validation."""

    def test_defaults(self):
        config = ExtractionConfig.default()
        assert config.base_iri == DEFAULT_BASE_IRI
        assert config.include_source_text is False
        assert config.include_git_info is True
        assert config.output_format == "turtle"
        assert config.include_expressions is False
        assert config.structural_cache is False
        assert config.validate() == []

    def test_from_dict(self):
        config = ExtractionConfig.from_dict({"include_expressions": True})
        assert config.include_expressions is True
        assert config.base_iri == DEFAULT_BASE_IRI

    def test_merge_ignores_unknown_keys(self):
        config = ExtractionConfig.default().merge({"bogus": 1, "output_format": "jsonld"})
        assert config.output_format == "jsonld"
        assert not hasattr(config, "bogus")

    def test_merge_returns_copy(self):
        original = ExtractionConfig.default()
        merged = original.merge({"include_expressions": True})
        assert original.include_expressions is False
        assert merged.include_expressions is True

    def test_validate_reports_every_problem(self):
        config = ExtractionConfig(base_iri="", output_format="xml", include_expressions="yes")
        errors = config.validate()
        assert len(errors) == 3
        assert any("base_iri" in e for e in errors)
        assert any("output_format" in e for e in errors)
        assert any("include_expressions" in e for e in errors)

    def test_validate_strict(self):
        with pytest.raises(ConfigError) as exc_info:
            ExtractionConfig(output_format="xml").validate_strict()
        assert exc_info.value.errors
        assert isinstance(exc_info.value, ValueError)

        config = ExtractionConfig()
        assert config.validate_strict() is config

    def test_to_dict_round_trip(self):
        config = ExtractionConfig(include_expressions=True, structural_cache=True)
        assert ExtractionConfig.from_dict(config.to_dict()) == config


class TestLoadConfig:
    """Reading .exgraph/config.json."""

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path) == ExtractionConfig.default()

    def test_extraction_section_is_merged(self, tmp_path):
        write_config(
            tmp_path,
            {"extraction": {"base_iri": "https://myapp.org/code#", "include_expressions": True}},
        )
        config = load_config(tmp_path)
        assert config.base_iri == "https://myapp.org/code#"
        assert config.include_expressions is True
        assert config.include_git_info is True

    def test_accepts_string_path(self, tmp_path):
        write_config(tmp_path, {"extraction": {"structural_cache": True}})
        assert load_config(str(tmp_path)).structural_cache is True

    def test_malformed_json_gives_defaults(self, tmp_path, caplog):
        config_dir = tmp_path / ".exgraph"
        config_dir.mkdir()
        (config_dir / "config.json").write_text("{not json")

        with caplog.at_level(logging.WARNING, logger="exgraph.config"):
            config = load_config(tmp_path)

        assert config == ExtractionConfig.default()
        assert "Failed to load exgraph config" in caplog.text

    def test_invalid_values_give_defaults(self, tmp_path, caplog):
        write_config(tmp_path, {"extraction": {"output_format": "xml"}})
        with caplog.at_level(logging.WARNING, logger="exgraph.config"):
            config = load_config(tmp_path)
        assert config == ExtractionConfig.default()
        assert "output_format" in caplog.text

    def test_missing_section_gives_defaults(self, tmp_path):
        write_config(tmp_path, {"other": {"include_expressions": True}})
        assert load_config(tmp_path) == ExtractionConfig.default()

    def test_non_object_document_gives_defaults(self, tmp_path):
        write_config(tmp_path, [1, 2, 3])
        assert load_config(tmp_path) == ExtractionConfig.default()


class TestProvenanceGate:
    """Project code versus dependencies."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("lib/my_app/user.ex", True),
            ("test/user_test.exs", True),
            ("/home/dev/app/lib/app.ex", True),
            ("deps/jason/lib/jason.ex", False),
            ("/home/dev/app/deps/plug/lib/plug.ex", False),
            ("deps\\jason\\lib\\jason.ex", False),
            ("C:\\app\\deps\\plug\\lib\\plug.ex", False),
            ("lib/deps_helper.ex", True),
            (None, False),
        ],
    )
    def test_project_file(self, path, expected):
        assert project_file(path) is expected

    def test_should_extract_full(self):
        enabled = ExtractionConfig(include_expressions=True)
        disabled = ExtractionConfig()
        assert should_extract_full("lib/a.ex", enabled)
        assert not should_extract_full("deps/x/lib/a.ex", enabled)
        assert not should_extract_full("lib/a.ex", disabled)
        assert not should_extract_full(None, enabled)
