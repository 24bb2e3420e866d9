"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, ModelConfig, PromptsConfig, load_config, load_exit_criteria


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    settings = {
        "defaults": {
            "rounds": 2,
            "max_rounds": 3,
            "mode": "socratic",
            "output_dir": "./output",
            "consensus_agent": "claude",
            "default_panel": ["claude"],
        },
        "exit_criteria": {"enabled": True, "consensus_threshold": 0.8, "convergence_rounds": 3},
        "retry": {"max_retries": 2, "base_delay_sec": 0.5, "retryable_errors": ["timeout"]},
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-opus-4-6",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 120,
                "max_tokens": 8192,
                "temperature": 0.2,
            }
        },
        "prompts": {"system": "You are {name}. Be concise."},
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _clear_exit_env(monkeypatch):
    for name in (
        "ROUNDTABLE_EXIT_ENABLED",
        "ROUNDTABLE_EXIT_CONSENSUS_THRESHOLD",
        "ROUNDTABLE_EXIT_CONVERGENCE_ROUNDS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_load_config_returns_app_config(minimal_settings):
    assert isinstance(load_config(minimal_settings), AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.rounds == 2
    assert config.defaults.max_rounds == 3
    assert config.defaults.mode == "socratic"
    assert config.defaults.consensus_agent == "claude"
    assert isinstance(config.defaults.output_dir, Path)


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    model = config.models["claude"]
    assert isinstance(model, ModelConfig)
    assert model.temperature == 0.2
    assert model.base_url is None
    assert model.native_search is False


def test_load_config_prompts_fall_back_to_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.prompts.system == "You are {name}. Be concise."
    assert config.prompts.user == PromptsConfig().user
    assert "{positions}" in config.prompts.consensus


def test_load_config_exit_criteria(minimal_settings):
    criteria = load_config(minimal_settings).exit_criteria
    assert criteria.max_rounds == 3
    assert criteria.consensus_threshold == 0.8
    assert criteria.convergence_rounds == 3
    assert criteria.enabled is True


def test_load_config_retry(minimal_settings):
    retry = load_config(minimal_settings).retry
    assert retry.max_retries == 2
    assert retry.base_delay == 0.5
    assert retry.retryable_errors == frozenset({"timeout"})
    assert retry.jitter is False


def test_env_overrides_exit_criteria(minimal_settings, monkeypatch):
    monkeypatch.setenv("ROUNDTABLE_EXIT_ENABLED", "false")
    monkeypatch.setenv("ROUNDTABLE_EXIT_CONSENSUS_THRESHOLD", "0.75")
    monkeypatch.setenv("ROUNDTABLE_EXIT_CONVERGENCE_ROUNDS", "1")
    criteria = load_config(minimal_settings).exit_criteria
    assert criteria.enabled is False
    assert criteria.consensus_threshold == 0.75
    assert criteria.convergence_rounds == 1


def test_out_of_range_threshold_override_is_ignored(monkeypatch, caplog):
    monkeypatch.setenv("ROUNDTABLE_EXIT_CONSENSUS_THRESHOLD", "1.5")
    criteria = load_exit_criteria({"consensus_threshold": 0.85}, max_rounds=5)
    assert criteria.consensus_threshold == 0.85
    assert "out of range" in caplog.text


def test_exit_criteria_defaults_when_block_missing():
    criteria = load_exit_criteria({}, max_rounds=4)
    assert (criteria.consensus_threshold, criteria.convergence_rounds, criteria.enabled) == (0.9, 2, True)


def test_load_config_available_providers_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test-key")
    assert "claude" in load_config(minimal_settings).available_providers


def test_load_config_no_available_providers_without_key(minimal_settings, monkeypatch):
    monkeypatch.delenv("TEST_CLAUDE_KEY", raising=False)
    assert "claude" not in load_config(minimal_settings).available_providers


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_shipped_settings_load():
    config = load_config()
    assert set(config.models) >= {"claude", "openai", "gemini", "grok"}
    assert config.models["grok"].base_url
    assert config.models["claude"].native_search is True
    assert config.models["gemini"].native_search is True
    assert config.models["openai"].native_search is False
    assert config.defaults.consensus_agent in config.models
