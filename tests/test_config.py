"""
Unit Tests — Configuration
==========================
Settings defaults, remediator.yaml layering and validation errors.
"""
import os

import pytest

from remediator.core.config import RemediationSettings, load_settings, read_project_config
from remediator.core.exceptions import ConfigError


class TestRemediationSettings:

    def test_paths_resolved_against_project(self, tmp_path):
        settings = RemediationSettings(project_path=str(tmp_path), backup_dir=".backups",
                                       report_path="out/report.json")
        assert settings.backup_root == os.path.join(str(tmp_path), ".backups")
        assert settings.report_file == os.path.join(str(tmp_path), "out", "report.json")

    def test_absolute_paths_kept(self, tmp_path):
        target = str(tmp_path / "elsewhere")
        assert RemediationSettings(project_path=str(tmp_path), backup_dir=target).backup_root == target

    def test_snapshot_provider_normalised(self, tmp_path):
        assert RemediationSettings(project_path=str(tmp_path), snapshot_provider=" Git ").snapshot_provider == "git"

    def test_unknown_snapshot_provider(self, tmp_path):
        with pytest.raises(ValueError):
            RemediationSettings(project_path=str(tmp_path), snapshot_provider="svn")


class TestLoadSettings:

    def test_missing_project(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(str(tmp_path / "missing"))

    def test_yaml_layered_under_overrides(self, tmp_path):
        (tmp_path / "remediator.yaml").write_text(
            "max_iterations: 3\n"
            "max_allowed_increase: 5\n"
            "disabled_categories: [unused-code]\n"
            "transforms:\n"
            "  syntax-errors:\n"
            "    command: node fix.js\n"
        )
        settings = load_settings(str(tmp_path), max_iterations=7, max_allowed_increase=None)

        assert settings.max_iterations == 7
        assert settings.max_allowed_increase == 5
        assert settings.disabled_categories == ["unused-code"]
        assert settings.transforms == {"syntax-errors": {"command": "node fix.js"}}
        assert settings.project_path == os.path.abspath(str(tmp_path))

    def test_explicit_config_path(self, tmp_path):
        config = tmp_path / "custom.yaml"
        config.write_text("phase_delay_seconds: 0\n")
        assert load_settings(str(tmp_path), str(config)).phase_delay_seconds == 0

    def test_invalid_value(self, tmp_path):
        (tmp_path / "remediator.yaml").write_text("max_iterations: 0\n")
        with pytest.raises(ConfigError):
            load_settings(str(tmp_path))

    def test_malformed_yaml(self, tmp_path):
        (tmp_path / "remediator.yaml").write_text("max_iterations: [1,\n")
        with pytest.raises(ConfigError):
            read_project_config(str(tmp_path))

    def test_non_mapping_yaml(self, tmp_path):
        (tmp_path / "remediator.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            read_project_config(str(tmp_path))

    def test_no_config_file(self, tmp_path):
        assert read_project_config(str(tmp_path)) == {}
