"""Tests for configuration management."""

from __future__ import annotations

from pathlib import Path

import pytest

from selfpatch.config import (
    DEFAULT_MODEL,
    Config,
    GuardSpec,
    PipelineSettings,
    ProposerSettings,
)
from selfpatch.errors import ConfigError

ENV_VARS = [
    "OPENAI_API_KEY",
    "DISCORD_TOKEN",
    "DISCORD_CHANNEL_ID",
    "GITHUB_OUTPUT",
    "SELFPATCH_MODEL",
    "SELFPATCH_TIMEOUT",
    "SELFPATCH_MAX_OUTPUT_TOKENS",
    "SELFPATCH_WORKSPACE_DIR",
    "SELFPATCH_TASKS_DIR",
    "SELFPATCH_TEMPLATE",
    "SELFPATCH_REPORTS_FILE",
    "SELFPATCH_LOG_DIR",
    "SELFPATCH_LOG_LEVEL",
    "SELFPATCH_MOCK_MODE",
    "SELFPATCH_AUTO_COMMIT",
]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Clear selfpatch variables and keep .env files out of the picture."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("selfpatch.config.load_dotenv", lambda: None)
    return monkeypatch


class TestConfig:
    """Tests for Config class."""

    def test_from_env_defaults(self, clean_env, tmp_path: Path) -> None:
        config = Config.from_env(tmp_path)

        assert config.openai_api_key is None
        assert config.workspace_dir == tmp_path / "workspace"
        assert config.tasks_dir == tmp_path / "prompts" / "tasks"
        assert config.template_path == tmp_path / "prompts" / "source_prompt.txt"
        assert config.reports_path == tmp_path / "user_error_reports.json"
        assert config.github_output is None
        assert config.mock_mode is False
        assert config.pipeline.proposer.model == DEFAULT_MODEL
        assert config.discord_enabled is False

    def test_from_env_with_values(self, clean_env, tmp_path: Path) -> None:
        clean_env.setenv("OPENAI_API_KEY", "test-openai-key")
        clean_env.setenv("DISCORD_TOKEN", "bot-token")
        clean_env.setenv("DISCORD_CHANNEL_ID", "1234")
        clean_env.setenv("GITHUB_OUTPUT", str(tmp_path / "out"))
        clean_env.setenv("SELFPATCH_WORKSPACE_DIR", "bot")
        clean_env.setenv("SELFPATCH_MODEL", "gpt-5")
        clean_env.setenv("SELFPATCH_TIMEOUT", "90")
        clean_env.setenv("SELFPATCH_MOCK_MODE", "true")
        clean_env.setenv("SELFPATCH_AUTO_COMMIT", "1")

        config = Config.from_env(tmp_path)

        assert config.openai_api_key == "test-openai-key"
        assert config.discord_enabled is True
        assert config.github_output == tmp_path / "out"
        assert config.workspace_dir == tmp_path / "bot"
        assert config.pipeline.proposer.model == "gpt-5"
        assert config.pipeline.proposer.timeout == 90
        assert config.mock_mode is True
        assert config.auto_commit is True

    @pytest.mark.parametrize("name", ["SELFPATCH_TIMEOUT", "SELFPATCH_MAX_OUTPUT_TOKENS"])
    def test_non_integer_env_raises_config_error(self, clean_env, tmp_path: Path, name: str) -> None:
        clean_env.setenv(name, "ten minutes")

        with pytest.raises(ConfigError) as exc_info:
            Config.from_env(tmp_path)

        assert name in str(exc_info.value)

    def test_reads_yaml_settings(self, clean_env, tmp_path: Path) -> None:
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "selfpatch.yaml").write_text(
            "proposer:\n"
            "  model: gpt-5-nano\n"
            "  reasoning_effort: low\n"
            "workspace:\n"
            "  exclude: [.git, node_modules]\n"
            "notify:\n"
            "  max_message_length: 500\n"
            "guards:\n"
            "  - name: login\n"
            "    pattern: client\\.login\n"
            "    file: main.mjs\n"
        )

        config = Config.from_env(tmp_path)

        assert config.pipeline.proposer.model == "gpt-5-nano"
        assert config.pipeline.proposer.reasoning_effort == "low"
        assert config.pipeline.exclude == [".git", "node_modules"]
        assert config.pipeline.max_message_length == 500
        assert config.pipeline.guards == [
            GuardSpec(name="login", pattern="client\\.login", file="main.mjs")
        ]

    def test_validate_mock_mode(self, mock_config: Config) -> None:
        assert mock_config.validate() == []

    def test_validate_requires_api_key(self, mock_config: Config) -> None:
        mock_config.mock_mode = False

        errors = mock_config.validate()

        assert any("OPENAI_API_KEY" in e for e in errors)

    def test_dry_run_needs_no_api_key(self, mock_config: Config) -> None:
        mock_config.mock_mode = False
        mock_config.dry_run = True

        assert mock_config.validate() == []

    def test_validate_missing_paths(self, tmp_path: Path) -> None:
        config = Config(
            root=tmp_path,
            workspace_dir=tmp_path / "workspace",
            tasks_dir=tmp_path / "tasks",
            template_path=tmp_path / "template.txt",
            mock_mode=True,
        )

        errors = config.validate()

        assert len(errors) == 3
        assert any("Workspace" in e for e in errors)

    def test_validate_channel_id(self, mock_config: Config) -> None:
        mock_config.discord_channel_id = "general"

        assert any("DISCORD_CHANNEL_ID" in e for e in mock_config.validate())


class TestPipelineSettings:
    """Tests for PipelineSettings."""

    def test_defaults_without_file(self, tmp_path: Path) -> None:
        settings = PipelineSettings.load_from_file(tmp_path)

        assert settings.exclude == [".git"]
        assert settings.max_message_length == 1800
        assert settings.guards == []

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "selfpatch.yaml").write_text("proposer: [unclosed\n")

        with pytest.raises(ConfigError):
            PipelineSettings.load_from_file(tmp_path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        (tmp_path / "selfpatch.yaml").write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            PipelineSettings.load_from_file(tmp_path)

    def test_non_integer_yaml_timeout(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            ProposerSettings.from_dict({"timeout": "soon"})

        assert "proposer.timeout" in str(exc_info.value)

    def test_invalid_reasoning_effort(self) -> None:
        with pytest.raises(ConfigError):
            ProposerSettings.from_dict({"reasoning_effort": "extreme"})

    def test_guard_missing_fields(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            GuardSpec.from_dict({"name": "login"})

        assert "pattern" in str(exc_info.value)
