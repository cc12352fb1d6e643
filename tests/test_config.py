"""Tests for three-layer config loading and merging."""

import pytest
from repoforge.config import ConfigError, deep_merge, load_config


# --- Three-layer merge ---

def test_load_config_file(tmp_project, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    config = load_config(tmp_project)
    assert config.ai.api_key == "file-key"
    assert list(config.roster()) == ["m1", "m2", "m3"]
    assert config.github.token == "ghp_filetoken"
    assert config.concurrency.bulk_edit == 2
    # Un-set fields keep defaults
    assert config.concurrency.expansion == 8
    assert config.verification.max_attempts == 2
    assert config.verification.poll_timeout_sec == 0
    assert config.verification.settle_delay_sec == 5


def test_defaults_without_files(tmp_path, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    config = load_config(tmp_path)
    assert config.ai.api_key == ""
    assert config.context.max_characters == 1_000_000
    assert config.verification.deployment_url_template == "https://{owner}.github.io/{repo}/"
    assert config.roster().primary == "gemini-3-pro-preview"
    assert config.log_level == "INFO"


def test_local_overrides_base(tmp_project):
    (tmp_project / ".repoforge" / "local.config.yaml").write_text("""\
ai:
  primary_models:
    - local-model
concurrency:
  expansion: 3
log_level: debug
""")
    config = load_config(tmp_project)
    # Lists are replaced, not merged
    assert config.ai.primary_models == ["local-model"]
    assert config.ai.fallback_models == ["m3"]
    assert config.concurrency.expansion == 3
    assert config.concurrency.bulk_edit == 2
    assert config.log_level == "DEBUG"


def test_env_var_overrides_all(tmp_project, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    monkeypatch.setenv("GITHUB_TOKEN", "env-token")
    config = load_config(tmp_project)
    assert config.ai.api_key == "env-key"
    assert config.github.token == "env-token"


def test_api_key_fallback_env(tmp_project, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("API_KEY", "plain-key")
    assert load_config(tmp_project).ai.api_key == "plain-key"


def test_invalid_base_config_raises(tmp_path):
    (tmp_path / ".repoforge").mkdir()
    (tmp_path / ".repoforge" / "config.yaml").write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_invalid_local_config_ignored(tmp_project):
    (tmp_project / ".repoforge" / "local.config.yaml").write_text("just a string")
    assert load_config(tmp_project).concurrency.bulk_edit == 2


def test_section_must_be_mapping(tmp_path):
    (tmp_path / ".repoforge").mkdir()
    (tmp_path / ".repoforge" / "config.yaml").write_text("verification: 3\n")
    with pytest.raises(ConfigError, match="verification"):
        load_config(tmp_path)


# --- deep_merge ---

def test_deep_merge_nested_and_none():
    base = {"a": {"x": 1, "y": 2}, "b": [1, 2]}
    result = deep_merge(base, {"a": {"y": 3}, "b": [9], "c": None})
    assert result == {"a": {"x": 1, "y": 3}, "b": [9]}
    assert base["a"]["y"] == 2
