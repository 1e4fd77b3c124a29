"""
OnDevice AI Providers — the Capability interface and its backends.

ImplicitModel and ProvisionedModel define the two lifecycle families.
Concrete backends (Ollama, OpenAI-compatible, scripted) live alongside.
Swap backends by changing config.
"""

from ondevice_ai.providers.base import (
    CapabilityBackend,
    DownloadCompleted,
    DownloadFailed,
    DownloadProgress,
    ImplicitModel,
    ProvisionedModel,
)
from ondevice_ai.providers.registry import get_backend, get_backends

__all__ = [
    "CapabilityBackend",
    "ImplicitModel",
    "ProvisionedModel",
    "DownloadProgress",
    "DownloadCompleted",
    "DownloadFailed",
    "get_backend",
    "get_backends",
]
