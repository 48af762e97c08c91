"""Tests for ConfigLoader priority resolution and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from terradeck.config.loader import ConfigLoader
from terradeck.lib.errors import ConfigError
from terradeck.models.config import LoginMode, RunnerType


@pytest.fixture
def loader() -> ConfigLoader:
    return ConfigLoader()


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a stray terradeck.yaml in the repo from leaking into tests."""
    monkeypatch.chdir(tmp_path)


@pytest.mark.unit
class TestParseYaml:
    """Tests for ConfigLoader.parse_yaml."""

    def test_empty_file_is_empty_mapping(
        self, loader: ConfigLoader, tmp_path: Path
    ) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert loader.parse_yaml(path) == {}

    def test_missing_file_raises(self, loader: ConfigLoader, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            loader.parse_yaml(tmp_path / "missing.yaml")
        assert exc_info.value.field == "config_file"

    def test_invalid_yaml_raises(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("runner: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            loader.parse_yaml(path)
        assert exc_info.value.field == "yaml_parse"

    def test_non_mapping_raises(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Expected a mapping"):
            loader.parse_yaml(path)


@pytest.mark.unit
class TestLoad:
    """Tests for ConfigLoader.load."""

    def test_defaults(self, loader: ConfigLoader) -> None:
        """With no sources the built-in defaults apply."""
        config = loader.load(env_vars={})
        assert config.terraform_binary == "terraform"
        assert config.azure_cli_binary == "az"
        assert config.plan_file == "tfplan"
        assert config.process_timeout is None
        assert config.login_mode == LoginMode.DEVICE_CODE
        assert config.runner == RunnerType.SUBPROCESS
        assert config.work_root == Path(".terradeck/work")

    def test_env_vars_apply(self, loader: ConfigLoader) -> None:
        """TERRADECK_* variables are coerced by validation."""
        config = loader.load(
            env_vars={
                "TERRADECK_PROCESS_TIMEOUT": "90",
                "TERRADECK_RUNNER": "simulated",
                "TERRADECK_LOGIN_MODE": "disabled",
            }
        )
        assert config.process_timeout == 90.0
        assert config.runner == RunnerType.SIMULATED
        assert config.login_mode == LoginMode.DISABLED

    def test_file_overrides_env(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text("terraform_binary: /opt/tf/terraform\n", encoding="utf-8")

        config = loader.load(
            config_file=path,
            env_vars={"TERRADECK_TERRAFORM_BINARY": "tofu"},
        )

        assert config.terraform_binary == "/opt/tf/terraform"

    def test_overrides_win(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text("plan_file: from-file.plan\n", encoding="utf-8")

        config = loader.load(
            config_file=path,
            overrides={"plan_file": "cli.plan", "work_root": None},
            env_vars={"TERRADECK_PLAN_FILE": "env.plan"},
        )

        assert config.plan_file == "cli.plan"
        assert config.work_root == Path(".terradeck/work")

    def test_default_file_is_discovered(
        self, loader: ConfigLoader, tmp_path: Path
    ) -> None:
        """terradeck.yaml in the working directory is read automatically."""
        (tmp_path / "terradeck.yaml").write_text("runner: simulated\n")
        assert loader.load(env_vars={}).runner == RunnerType.SIMULATED

    def test_unknown_keys_rejected(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text("terraform_bin: terraform\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="terraform_bin"):
            loader.load(config_file=path, env_vars={})

    def test_invalid_values_rejected(self, loader: ConfigLoader) -> None:
        with pytest.raises(ConfigError) as exc_info:
            loader.load(overrides={"plan_file": "../tfplan"}, env_vars={})
        assert exc_info.value.field == "orchestrator_validation"
        assert "plan_file (from command line)" in exc_info.value.message

    def test_non_positive_timeout_rejected(self, loader: ConfigLoader) -> None:
        with pytest.raises(ConfigError):
            loader.load(env_vars={"TERRADECK_PROCESS_TIMEOUT": "0"})

    def test_error_names_env_source(self, loader: ConfigLoader) -> None:
        with pytest.raises(ConfigError) as exc_info:
            loader.load(env_vars={"TERRADECK_LOGIN_MODE": "browser"})
        assert "login_mode (from TERRADECK_LOGIN_MODE)" in exc_info.value.message

    def test_error_names_file_source(
        self, loader: ConfigLoader, tmp_path: Path
    ) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text("process_timeout: -5\n", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            loader.load(config_file=path, env_vars={})
        assert f"process_timeout (from {path})" in exc_info.value.message
