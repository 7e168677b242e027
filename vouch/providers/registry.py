"""Model registry and TOML configuration loader.

Loads model definitions from models.toml and pipeline defaults from
defaults.toml, and builds LiteLLM workers for the configured roles.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Callable
from functools import partial
from pathlib import Path

from vouch.providers.base import Capability
from vouch.providers.litellm_provider import LiteLLMProvider
from vouch.schemas.pipeline import ModelConfig, RetryPolicy, VouchConfig, WorkerRole

logger = logging.getLogger(__name__)

# Default config directory relative to the vouch package
_CONFIG_DIR = Path(__file__).parent.parent / "config"

# Environment override for the arbitration confidence threshold
_THRESHOLD_ENV = "VOUCH_CONFIDENCE_THRESHOLD"


def load_models(config_path: Path | None = None) -> dict[str, ModelConfig]:
    """Load the model registry from a TOML file.

    Args:
        config_path: Path to models.toml. Defaults to vouch/config/models.toml.

    Returns:
        Dictionary mapping model keys to ModelConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "models.toml"
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    models_section = raw.get("models")
    if not models_section or not isinstance(models_section, dict):
        raise ValueError(f"No [models] section found in {path}")

    return {
        key: ModelConfig(**entry)
        for key, entry in models_section.items()
        if isinstance(entry, dict)
    }


def load_config(config_path: Path | None = None) -> VouchConfig:
    """Load pipeline defaults from a TOML file.

    The ``VOUCH_CONFIDENCE_THRESHOLD`` environment variable overrides the
    file's threshold when it holds a number in (0, 1]; anything else is
    ignored with a warning.

    Args:
        config_path: Path to defaults.toml. Defaults to vouch/config/defaults.toml.

    Returns:
        VouchConfig with values from the TOML file.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    section = dict(raw.get("pipeline", {}))
    retry = RetryPolicy(**section.pop("retry", {}))
    workers = {WorkerRole(role): key for role, key in section.pop("workers", {}).items()}

    threshold = _threshold_from_env()
    if threshold is not None:
        section["confidence_threshold"] = threshold

    return VouchConfig(retry=retry, workers=workers, **section)


def _threshold_from_env() -> float | None:
    raw = os.environ.get(_THRESHOLD_ENV)
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", _THRESHOLD_ENV, raw)
        return None
    if not 0.0 < value <= 1.0:
        logger.warning("Ignoring %s=%s: must be in (0, 1]", _THRESHOLD_ENV, raw)
        return None
    return value


def build_worker_factories(
    config: VouchConfig, registry: dict[str, ModelConfig]
) -> dict[WorkerRole, Callable[[], Capability]]:
    """Map each configured worker role to a LiteLLM worker factory.

    Raises:
        ValueError: If a role names a model key missing from the registry.
    """
    factories: dict[WorkerRole, Callable[[], Capability]] = {}
    for role, key in config.workers.items():
        if not key:
            continue
        if key not in registry:
            raise ValueError(f"Worker '{role}' references unknown model '{key}'")
        factories[role] = partial(LiteLLMProvider, registry[key])
    return factories
