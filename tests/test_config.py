from pathlib import Path

import pytest

from agentwire import config as config_module
from agentwire.config import (
    ConfigError,
    SessionSettings,
    load_config,
    load_settings,
    settings_from_config,
)


@pytest.fixture(autouse=True)
def _isolate(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("AGENTWIRE_CLAUDE_CMD", raising=False)
    monkeypatch.delenv("AGENTWIRE_MODEL", raising=False)
    monkeypatch.setattr(
        config_module, "HOME_CONFIG_PATH", tmp_path / "home" / "agentwire.toml"
    )
    monkeypatch.chdir(tmp_path)


class TestLoadConfig:
    def test_load_from_explicit_path(self, tmp_path: Path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text('[claude]\nmodel = "opus"\n')

        config, path = load_config(config_file)

        assert config == {"claude": {"model": "opus"}}
        assert path == config_file

    def test_missing_explicit_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Missing config file"):
            load_config(tmp_path / "nope.toml")

    def test_malformed_toml_raises(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.toml"
        bad.write_text("[claude\nmodel = ")

        with pytest.raises(ConfigError, match="Malformed TOML"):
            load_config(bad)

    def test_directory_path_raises(self, tmp_path: Path) -> None:
        folder = tmp_path / "cfg"
        folder.mkdir()

        with pytest.raises(ConfigError, match="Failed to read config file"):
            load_config(folder)

    def test_no_candidates_yields_empty_table(self) -> None:
        assert load_config() == ({}, None)

    def test_local_file_wins_over_home(self, tmp_path: Path) -> None:
        local = tmp_path / ".agentwire" / "agentwire.toml"
        local.parent.mkdir()
        local.write_text('[claude]\nmodel = "local"\n')
        home = config_module.HOME_CONFIG_PATH
        home.parent.mkdir(parents=True)
        home.write_text('[claude]\nmodel = "home"\n')

        config, path = load_config()

        assert config["claude"]["model"] == "local"
        assert path == local

    def test_home_file_used_without_local(self) -> None:
        home = config_module.HOME_CONFIG_PATH
        home.parent.mkdir(parents=True)
        home.write_text('[claude]\nclaude_cmd = "/opt/claude"\n')

        _, path = load_config()

        assert path == home


class TestSettingsFromConfig:
    def test_defaults_without_table(self) -> None:
        settings = settings_from_config({})

        assert settings == SessionSettings()
        assert settings.claude_cmd == "claude"
        assert settings.permission_mode == "acceptEdits"
        assert settings.disallowed_tools == ["AskUserQuestion"]
        assert settings.tool_params == "flat"
        assert settings.idle_timeout_s is None
        assert settings.log_io is False

    def test_table_values_are_applied(self) -> None:
        settings = settings_from_config(
            {
                "claude": {
                    "model": "sonnet",
                    "extra_args": ["--add-dir", "/srv"],
                    "env": {"FOO": "1"},
                    "idle_timeout_s": 30,
                    "tool_params": "structured",
                }
            }
        )

        assert settings.model == "sonnet"
        assert settings.extra_args == ["--add-dir", "/srv"]
        assert settings.env == {"FOO": "1"}
        assert settings.idle_timeout_s == 30
        assert settings.tool_params == "structured"

    def test_non_table_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="expected a table"):
            settings_from_config({"claude": "opus"}, tmp_path / "agentwire.toml")

    def test_unknown_key_raises(self) -> None:
        with pytest.raises(ConfigError, match="Invalid `claude` settings"):
            settings_from_config({"claude": {"modle": "opus"}})

    def test_wrong_type_raises(self) -> None:
        with pytest.raises(ConfigError, match="Invalid `claude` settings"):
            settings_from_config({"claude": {"tool_params": "nested"}})

    @pytest.mark.parametrize("value", [0, -5])
    def test_preview_chars_must_be_positive(self, value: int) -> None:
        with pytest.raises(ConfigError, match="preview_chars"):
            settings_from_config({"claude": {"preview_chars": value}})


class TestEnvOverrides:
    def test_env_overrides_file(self, monkeypatch, tmp_path: Path) -> None:
        config_file = tmp_path / "agentwire.toml"
        config_file.write_text('[claude]\nclaude_cmd = "claude"\nmodel = "haiku"\n')
        monkeypatch.setenv("AGENTWIRE_CLAUDE_CMD", " /usr/local/bin/claude ")
        monkeypatch.setenv("AGENTWIRE_MODEL", "opus")

        settings = load_settings(config_file)

        assert settings.claude_cmd == "/usr/local/bin/claude"
        assert settings.model == "opus"

    def test_blank_env_is_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("AGENTWIRE_MODEL", "   ")

        assert load_settings().model is None


class TestPaths:
    def test_working_dir_defaults_to_cwd(self) -> None:
        assert SessionSettings().working_dir() == Path.cwd()

    def test_working_dir_expands_user(self) -> None:
        settings = SessionSettings(cwd="~/project")

        assert settings.working_dir() == Path.home() / "project"

    def test_log_path_expands_user(self) -> None:
        assert SessionSettings().log_path() == Path.home() / ".agentwire" / "logs"
