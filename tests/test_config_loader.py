"""Tests for vouch.providers.registry — TOML config loading and model registry."""

from functools import partial
from pathlib import Path

import pytest

from vouch.providers.litellm_provider import LiteLLMProvider
from vouch.providers.registry import build_worker_factories, load_config, load_models
from vouch.schemas.pipeline import ModelConfig, VouchConfig, WorkerRole
from vouch.schemas.validation import GateMode

# Path to the real config files shipped with the package
_CONFIG_DIR = Path(__file__).parent.parent / "vouch" / "config"

_ENV = "VOUCH_CONFIDENCE_THRESHOLD"


@pytest.fixture(autouse=True)
def _clear_threshold_env(monkeypatch):
    monkeypatch.delenv(_ENV, raising=False)


class TestLoadModels:
    def test_loads_real_config(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        assert {"claude-sonnet", "claude-haiku", "gpt-4o"} <= set(registry)

    def test_model_config_types(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        for key, model in registry.items():
            assert isinstance(model, ModelConfig), f"{key} is not ModelConfig"
            assert model.api_key_env != ""
            assert model.context_window > 0

    def test_default_path(self):
        assert load_models() == load_models(_CONFIG_DIR / "models.toml")

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_models(Path("/nonexistent/models.toml"))

    def test_no_models_section_raises(self, tmp_path):
        bad_toml = tmp_path / "no_models.toml"
        bad_toml.write_text('[other]\nkey = "value"\n')
        with pytest.raises(ValueError, match="No \\[models\\] section"):
            load_models(bad_toml)

    def test_custom_toml(self, tmp_path):
        custom = tmp_path / "models.toml"
        custom.write_text(
            "[models.local]\n"
            'provider = "ollama"\n'
            'model = "ollama/llama3"\n'
            'display_name = "Llama 3"\n'
            'api_key_env = "OLLAMA_KEY"\n'
            'api_base = "http://localhost:11434"\n'
            "context_window = 8192\n"
        )
        registry = load_models(custom)
        assert registry["local"].api_base == "http://localhost:11434"
        assert registry["local"].timeout == 120


class TestLoadConfig:
    def test_loads_real_defaults(self):
        config = load_config(_CONFIG_DIR / "defaults.toml")
        assert config.confidence_threshold == 0.85
        assert config.gate_mode == GateMode.STRICT
        assert config.retry.schedule() == [1.0, 2.0]
        assert config.workers[WorkerRole.INDEPENDENT_REVIEWER] == "gpt-4o"

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_config(Path("/nonexistent/defaults.toml"))

    def test_empty_toml_uses_defaults(self, tmp_path):
        empty = tmp_path / "defaults.toml"
        empty.write_text("")
        assert load_config(empty) == VouchConfig()

    def test_custom_config(self, tmp_path):
        custom = tmp_path / "defaults.toml"
        custom.write_text(
            "[pipeline]\n"
            'gate_mode = "advisory"\n'
            "confidence_threshold = 0.7\n"
            "escalation_timeout = 600\n"
            "[pipeline.retry]\n"
            "max_attempts = 5\n"
            "max_backoff = 3.0\n"
            "[pipeline.workers]\n"
            'generator = "gpt-4o"\n'
        )
        config = load_config(custom)
        assert config.gate_mode == GateMode.ADVISORY
        assert config.confidence_threshold == 0.7
        assert config.escalation_timeout == 600
        assert config.retry.schedule() == [1.0, 2.0, 3.0, 3.0]
        assert config.workers == {WorkerRole.GENERATOR: "gpt-4o"}

    def test_unknown_worker_role_rejected(self, tmp_path):
        custom = tmp_path / "defaults.toml"
        custom.write_text('[pipeline.workers]\nplanner = "gpt-4o"\n')
        with pytest.raises(ValueError):
            load_config(custom)

    def test_env_overrides_threshold(self, monkeypatch):
        monkeypatch.setenv(_ENV, "0.6")
        assert load_config(_CONFIG_DIR / "defaults.toml").confidence_threshold == 0.6

    @pytest.mark.parametrize("value", ["high", "0", "1.5", "-0.2"])
    def test_invalid_env_ignored(self, monkeypatch, value):
        monkeypatch.setenv(_ENV, value)
        assert load_config(_CONFIG_DIR / "defaults.toml").confidence_threshold == 0.85


class TestBuildWorkerFactories:
    def test_builds_litellm_factories(self):
        config = load_config(_CONFIG_DIR / "defaults.toml")
        factories = build_worker_factories(config, load_models(_CONFIG_DIR / "models.toml"))

        assert set(factories) == set(WorkerRole)
        factory = factories[WorkerRole.GENERATOR]
        assert isinstance(factory, partial)
        assert factory.func is LiteLLMProvider
        worker = factory()
        assert worker.model_id == "claude-sonnet-4-5-20250929"

    def test_unknown_model_key(self):
        config = VouchConfig(workers={WorkerRole.GENERATOR: "missing"})
        with pytest.raises(ValueError, match="unknown model"):
            build_worker_factories(config, {})

    def test_empty_key_skipped(self):
        config = VouchConfig(workers={WorkerRole.GENERATOR: ""})
        assert build_worker_factories(config, {}) == {}
