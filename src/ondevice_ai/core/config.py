"""
OnDevice AI Configuration — single source of truth for all settings.

Reads from environment variables with sensible defaults (a local .env file
is loaded first). No config files, no YAML. Just env vars.

The module-level ``config`` is a convenience for the server entrypoint.
Library code takes an ``OnDeviceConfig`` explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

_DEFAULT_BASE_URLS = {
    "ollama": "http://localhost:11434",
    "openai": "http://localhost:1234/v1",
    "scripted": "",
}


@dataclass(frozen=True)
class BackendConfig:
    """Which local runtime backs the three capabilities."""

    provider: str = "ollama"  # ollama | openai | scripted
    base_url: str = "http://localhost:11434"
    api_key: str = "local"
    model: str = "llama3.2"
    summarize_model: str = ""  # empty → same as model
    rewrite_model: str = ""
    request_timeout: float = 120.0

    @classmethod
    def from_env(cls) -> BackendConfig:
        provider = os.getenv("ONDEVICE_BACKEND", "ollama").lower()
        model = os.getenv("ONDEVICE_MODEL", "llama3.2")
        return cls(
            provider=provider,
            base_url=os.getenv(
                "ONDEVICE_BASE_URL", _DEFAULT_BASE_URLS.get(provider, "")
            ),
            api_key=os.getenv("ONDEVICE_API_KEY", "local"),
            model=model,
            summarize_model=os.getenv("ONDEVICE_SUMMARIZE_MODEL", ""),
            rewrite_model=os.getenv("ONDEVICE_REWRITE_MODEL", ""),
            request_timeout=float(os.getenv("ONDEVICE_REQUEST_TIMEOUT", "120.0")),
        )

    def model_for(self, capability: str) -> str:
        """Model name for a capability, falling back to the generate model."""
        if capability == "summarize" and self.summarize_model:
            return self.summarize_model
        if capability == "rewrite" and self.rewrite_model:
            return self.rewrite_model
        return self.model


@dataclass(frozen=True)
class GenerationConfig:
    """Defaults for one-shot and streaming generation."""

    temperature: float = 0.7
    max_tokens: int = 256
    transform_temperature: float = 0.3
    # lazy: generation calls initialise a session on demand
    # strict: generation calls without init_session() fail fast
    session_policy: str = "lazy"

    @classmethod
    def from_env(cls) -> GenerationConfig:
        policy = os.getenv("ONDEVICE_SESSION_POLICY", "lazy").lower()
        if policy not in ("lazy", "strict"):
            raise ValueError(f"Unknown session policy: {policy}")
        return cls(
            temperature=float(os.getenv("ONDEVICE_TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv("ONDEVICE_MAX_TOKENS", "256")),
            transform_temperature=float(
                os.getenv("ONDEVICE_TRANSFORM_TEMPERATURE", "0.3")
            ),
            session_policy=policy,
        )


@dataclass(frozen=True)
class LifecycleConfig:
    """Bounds for availability probes and model downloads (seconds)."""

    probe_timeout: float = 5.0
    download_timeout: float = 600.0

    @classmethod
    def from_env(cls) -> LifecycleConfig:
        return cls(
            probe_timeout=float(os.getenv("ONDEVICE_PROBE_TIMEOUT", "5.0")),
            download_timeout=float(os.getenv("ONDEVICE_DOWNLOAD_TIMEOUT", "600.0")),
        )


@dataclass(frozen=True)
class ServerConfig:
    """HTTP binding settings."""

    host: str = "127.0.0.1"
    port: int = 8765
    event_queue_size: int = 1000

    @classmethod
    def from_env(cls) -> ServerConfig:
        return cls(
            host=os.getenv("ONDEVICE_HOST", "127.0.0.1"),
            port=int(os.getenv("ONDEVICE_PORT", "8765")),
            event_queue_size=int(os.getenv("ONDEVICE_EVENT_QUEUE_SIZE", "1000")),
        )


@dataclass(frozen=True)
class OnDeviceConfig:
    """Root configuration — one object to rule them all."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> OnDeviceConfig:
        return cls(
            backend=BackendConfig.from_env(),
            generation=GenerationConfig.from_env(),
            lifecycle=LifecycleConfig.from_env(),
            server=ServerConfig.from_env(),
        )


config = OnDeviceConfig.from_env()


def reload_config() -> OnDeviceConfig:
    """Re-read the environment and replace the module-level config."""
    global config
    config = OnDeviceConfig.from_env()
    return config
