"""
Provider Registry — build one backend per capability from config.

Add a new provider? Just add an elif. No plugin systems, no metaclasses.
"""

from __future__ import annotations

from ondevice_ai.core.config import BackendConfig
from ondevice_ai.kernel.contracts import Capability
from ondevice_ai.providers.base import CapabilityBackend


def get_backend(capability: Capability, cfg: BackendConfig) -> CapabilityBackend:
    provider = cfg.provider.lower()
    model = cfg.model_for(capability.value)
    if provider == "ollama":
        from ondevice_ai.providers.ollama import OllamaModel

        return OllamaModel(model=model, base_url=cfg.base_url, timeout=cfg.request_timeout)
    elif provider == "openai":
        from ondevice_ai.providers.openai_compat import OpenAICompatModel

        return OpenAICompatModel(
            model=model,
            base_url=cfg.base_url,
            api_key=cfg.api_key,
            timeout=cfg.request_timeout,
        )
    elif provider == "scripted":
        from ondevice_ai.providers.scripted import ScriptedModel

        return ScriptedModel()
    raise ValueError(f"Unknown backend provider: {provider}")


def get_backends(cfg: BackendConfig) -> dict[Capability, CapabilityBackend]:
    """Independent backend instances for generate, summarize and rewrite."""
    return {capability: get_backend(capability, cfg) for capability in Capability}
