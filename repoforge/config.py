"""Three-layer config loading and merging."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .roster import FALLBACK_MODELS, PRIMARY_MODELS, ModelRoster

CONFIG_DIR = ".repoforge"


class ConfigError(ValueError):
    """Raised when a config file cannot be used."""


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------

@dataclass
class AIConfig:
    api_key: str = ""
    primary_models: list[str] = field(default_factory=lambda: list(PRIMARY_MODELS))
    fallback_models: list[str] = field(default_factory=lambda: list(FALLBACK_MODELS))
    timeout_sec: float = 120


@dataclass
class GitHubConfig:
    token: str = ""
    api_base: str = "https://api.github.com"


@dataclass
class ConcurrencyConfig:
    bulk_edit: int = 4
    generation: int = 4
    expansion: int = 8


@dataclass
class ContextConfig:
    max_characters: int = 1_000_000


@dataclass
class VerificationConfig:
    max_attempts: int = 3
    settle_delay_sec: float = 5
    poll_interval_sec: float = 5
    poll_timeout_sec: float = 1800  # 0 = wait forever
    deployment_url_template: str = "https://{owner}.github.io/{repo}/"


@dataclass
class NotifyConfig:
    webhook_url: str = ""
    events: list[str] = field(default_factory=lambda: [
        "workflow.completed", "workflow.failed",
    ])


@dataclass
class Config:
    ai: AIConfig = field(default_factory=AIConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    log_level: str = "INFO"
    project_root: str = ""

    def roster(self) -> ModelRoster:
        return ModelRoster(self.ai.primary_models, self.ai.fallback_models)


# ---------------------------------------------------------------------------
# Deep merge
# ---------------------------------------------------------------------------

def deep_merge(base: dict, override: dict) -> dict:
    """Field-level deep merge. Lists are replaced, None values ignored."""
    result = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# ---------------------------------------------------------------------------
# Dict → Config mapping
# ---------------------------------------------------------------------------

def _section(data: dict, name: str) -> dict:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _dict_to_config(data: dict, project_root: str) -> Config:
    cfg = Config(project_root=project_root)

    a = _section(data, "ai")
    cfg.ai = AIConfig(
        api_key=a.get("api_key", cfg.ai.api_key),
        primary_models=list(a.get("primary_models", cfg.ai.primary_models)),
        fallback_models=list(a.get("fallback_models", cfg.ai.fallback_models)),
        timeout_sec=float(a.get("timeout_sec", cfg.ai.timeout_sec)),
    )

    g = _section(data, "github")
    cfg.github = GitHubConfig(
        token=g.get("token", cfg.github.token),
        api_base=g.get("api_base", cfg.github.api_base),
    )

    c = _section(data, "concurrency")
    cfg.concurrency = ConcurrencyConfig(
        bulk_edit=int(c.get("bulk_edit", cfg.concurrency.bulk_edit)),
        generation=int(c.get("generation", cfg.concurrency.generation)),
        expansion=int(c.get("expansion", cfg.concurrency.expansion)),
    )

    x = _section(data, "context")
    cfg.context = ContextConfig(
        max_characters=int(x.get("max_characters", cfg.context.max_characters)),
    )

    v = _section(data, "verification")
    cfg.verification = VerificationConfig(
        max_attempts=int(v.get("max_attempts", cfg.verification.max_attempts)),
        settle_delay_sec=float(v.get("settle_delay_sec", cfg.verification.settle_delay_sec)),
        poll_interval_sec=float(v.get("poll_interval_sec", cfg.verification.poll_interval_sec)),
        poll_timeout_sec=float(v.get("poll_timeout_sec", cfg.verification.poll_timeout_sec)),
        deployment_url_template=v.get(
            "deployment_url_template", cfg.verification.deployment_url_template
        ) or "",
    )

    n = _section(data, "notify")
    cfg.notify = NotifyConfig(
        webhook_url=n.get("webhook_url", "") or "",
        events=n.get("events", cfg.notify.events),
    )

    if "log_level" in data:
        cfg.log_level = str(data["log_level"]).upper()

    return cfg


def _read_yaml(path: Path, strict: bool) -> dict:
    if not path.exists():
        return {}
    parsed = yaml.safe_load(path.read_text())
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        if strict:
            raise ConfigError(
                f"Invalid {path.name}: expected mapping, got {type(parsed).__name__}"
            )
        return {}
    return parsed


# ---------------------------------------------------------------------------
# Load config (3-layer)
# ---------------------------------------------------------------------------

def load_config(project_root: str | Path) -> Config:
    """Load and merge config from up to 3 layers.

    Priority (highest first):
      1. Environment variables (credentials)
      2. .repoforge/local.config.yaml
      3. .repoforge/config.yaml
    """
    project_root = Path(project_root)
    config_dir = project_root / CONFIG_DIR

    base_data = _read_yaml(config_dir / "config.yaml", strict=True)
    local_data = _read_yaml(config_dir / "local.config.yaml", strict=False)

    cfg = _dict_to_config(deep_merge(base_data, local_data), str(project_root))

    # Env vars override credentials (highest priority)
    env_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")
    if env_key:
        cfg.ai.api_key = env_key

    env_token = os.environ.get("GITHUB_TOKEN")
    if env_token:
        cfg.github.token = env_token

    return cfg
