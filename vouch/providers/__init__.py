"""Worker layer — the Capability contract and its LiteLLM implementation.

Every generative worker is called through the Capability interface. The
LiteLLMProvider is the only adapter that talks to model APIs.
"""

from vouch.providers.base import Capability, ModelProvider
from vouch.providers.litellm_provider import LiteLLMProvider
from vouch.providers.parsing import parse_structured
from vouch.providers.registry import build_worker_factories, load_config, load_models

__all__ = [
    "Capability",
    "LiteLLMProvider",
    "ModelProvider",
    "build_worker_factories",
    "load_config",
    "load_models",
    "parse_structured",
]
