"""Configuration management for selfpatch."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError


# Type alias for reasoning effort accepted by the Responses API
ReasoningEffort = Literal["minimal", "low", "medium", "high"]

DEFAULT_MODEL = "gpt-5-mini"
DEFAULT_TIMEOUT = 600
DEFAULT_MAX_OUTPUT_TOKENS = 16384


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _to_int(value: object, name: str) -> int:
    """Convert a setting to int, naming the setting on failure."""
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None



@dataclass
class ProposerSettings:
    """Settings for the change proposer."""

    model: str = DEFAULT_MODEL
    reasoning_effort: Optional[ReasoningEffort] = "high"
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    timeout: int = DEFAULT_TIMEOUT

    @classmethod
    def from_dict(cls, data: dict) -> ProposerSettings:
        """Create ProposerSettings from dictionary."""
        effort = data.get("reasoning_effort", "high")
        if effort not in (None, "minimal", "low", "medium", "high"):
            raise ConfigError(f"Invalid reasoning_effort: {effort!r}")
        return cls(
            model=data.get("model", DEFAULT_MODEL),
            reasoning_effort=effort,
            max_output_tokens=_to_int(
                data.get("max_output_tokens", DEFAULT_MAX_OUTPUT_TOKENS), "proposer.max_output_tokens"
            ),
            timeout=_to_int(data.get("timeout", DEFAULT_TIMEOUT), "proposer.timeout"),
        )


@dataclass
class GuardSpec:
    """A regex that must keep matching a workspace file after patching."""

    name: str
    pattern: str
    file: str

    @classmethod
    def from_dict(cls, data: dict) -> GuardSpec:
        """Create GuardSpec from dictionary."""
        missing = [key for key in ("name", "pattern", "file") if not data.get(key)]
        if missing:
            raise ConfigError(f"Guard is missing fields: {', '.join(missing)}")
        return cls(name=data["name"], pattern=data["pattern"], file=data["file"])


@dataclass
class PipelineSettings:
    """Pipeline settings loaded from config/selfpatch.yaml."""

    proposer: ProposerSettings = field(default_factory=ProposerSettings)
    exclude: list[str] = field(default_factory=lambda: [".git"])
    guards: list[GuardSpec] = field(default_factory=list)
    max_message_length: int = 1800

    @classmethod
    def from_dict(cls, data: dict) -> PipelineSettings:
        """Create PipelineSettings from dictionary."""
        workspace_data = data.get("workspace", {}) or {}
        notify_data = data.get("notify", {}) or {}
        return cls(
            proposer=ProposerSettings.from_dict(data.get("proposer", {}) or {}),
            exclude=list(workspace_data.get("exclude", [".git"])),
            guards=[GuardSpec.from_dict(g) for g in data.get("guards", []) or []],
            max_message_length=_to_int(
                notify_data.get("max_message_length", 1800), "notify.max_message_length"
            ),
        )

    @classmethod
    def load_from_file(cls, config_dir: Path) -> PipelineSettings:
        """Load pipeline settings from YAML file."""
        settings_path = config_dir / "selfpatch.yaml"
        if settings_path.exists():
            with open(settings_path, encoding="utf-8") as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Invalid YAML in {settings_path}: {exc}") from exc
            if not isinstance(data, dict):
                raise ConfigError(f"{settings_path} must contain a mapping")
            return cls.from_dict(data)
        return cls()  # Defaults when the file doesn't exist


@dataclass
class Config:
    """Configuration settings for one pipeline run."""

    # Credentials
    openai_api_key: Optional[str] = None
    discord_token: Optional[str] = None
    discord_channel_id: Optional[str] = None

    # Paths
    root: Path = field(default_factory=Path.cwd)
    config_dir: Path = field(default_factory=lambda: Path.cwd() / "config")
    workspace_dir: Path = field(default_factory=lambda: Path.cwd() / "workspace")
    tasks_dir: Path = field(default_factory=lambda: Path.cwd() / "prompts" / "tasks")
    template_path: Path = field(default_factory=lambda: Path.cwd() / "prompts" / "source_prompt.txt")
    reports_path: Path = field(default_factory=lambda: Path.cwd() / "user_error_reports.json")
    log_dir: Path = field(default_factory=lambda: Path.cwd() / "logs" / "runs")
    github_output: Optional[Path] = None

    # Runtime Settings
    log_level: str = "INFO"
    mock_mode: bool = False
    dry_run: bool = False
    auto_commit: bool = False

    # Pipeline Settings (loaded from selfpatch.yaml)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)

    @classmethod
    def from_env(cls, root: Optional[Path] = None, config_dir: Optional[Path] = None) -> Config:
        """Load configuration from environment variables.

        Relative paths in the environment are resolved against ``root``.

        Args:
            root: Project root holding the workspace and prompts. Defaults to CWD.
            config_dir: Directory holding selfpatch.yaml. Defaults to root/config.

        Returns:
            Config instance populated from environment.
        """
        load_dotenv()

        base = Path(root) if root else Path.cwd()
        cfg_dir = Path(config_dir) if config_dir else base / "config"

        def resolve(env_name: str, default: str) -> Path:
            return base / os.getenv(env_name, default)

        pipeline = PipelineSettings.load_from_file(cfg_dir)
        model = os.getenv("SELFPATCH_MODEL")
        if model:
            pipeline.proposer.model = model
        if os.getenv("SELFPATCH_TIMEOUT"):
            pipeline.proposer.timeout = _to_int(os.environ["SELFPATCH_TIMEOUT"], "SELFPATCH_TIMEOUT")
        if os.getenv("SELFPATCH_MAX_OUTPUT_TOKENS"):
            pipeline.proposer.max_output_tokens = _to_int(
                os.environ["SELFPATCH_MAX_OUTPUT_TOKENS"], "SELFPATCH_MAX_OUTPUT_TOKENS"
            )

        github_output = os.getenv("GITHUB_OUTPUT")

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            discord_token=os.getenv("DISCORD_TOKEN"),
            discord_channel_id=os.getenv("DISCORD_CHANNEL_ID"),
            root=base,
            config_dir=cfg_dir,
            workspace_dir=resolve("SELFPATCH_WORKSPACE_DIR", "workspace"),
            tasks_dir=resolve("SELFPATCH_TASKS_DIR", "prompts/tasks"),
            template_path=resolve("SELFPATCH_TEMPLATE", "prompts/source_prompt.txt"),
            reports_path=resolve("SELFPATCH_REPORTS_FILE", "user_error_reports.json"),
            log_dir=resolve("SELFPATCH_LOG_DIR", "logs/runs"),
            github_output=Path(github_output) if github_output else None,
            log_level=os.getenv("SELFPATCH_LOG_LEVEL", "INFO"),
            mock_mode=_env_flag("SELFPATCH_MOCK_MODE"),
            auto_commit=_env_flag("SELFPATCH_AUTO_COMMIT"),
            pipeline=pipeline,
        )

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of validation error messages. Empty if valid.
        """
        errors = []

        # API key not required in mock or dry-run mode
        if not self.mock_mode and not self.dry_run and not self.openai_api_key:
            errors.append("OPENAI_API_KEY is required when not in mock mode")

        if not self.workspace_dir.is_dir():
            errors.append(f"Workspace directory does not exist: {self.workspace_dir}")

        if not self.tasks_dir.is_dir():
            errors.append(f"Task prompt directory does not exist: {self.tasks_dir}")

        if not self.template_path.is_file():
            errors.append(f"Template file does not exist: {self.template_path}")

        if self.discord_channel_id and not self.discord_channel_id.isdigit():
            errors.append(f"DISCORD_CHANNEL_ID must be numeric: {self.discord_channel_id}")

        return errors

    @property
    def discord_enabled(self) -> bool:
        """Whether Discord credentials are present."""
        return bool(self.discord_token and self.discord_channel_id)
