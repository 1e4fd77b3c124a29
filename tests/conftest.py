"""Shared fakes for the session / streaming / lifecycle tests."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncGenerator

import pytest

from ondevice_ai.client import OnDeviceAI
from ondevice_ai.core.config import GenerationConfig, LifecycleConfig, OnDeviceConfig
from ondevice_ai.core.metrics import metrics
from ondevice_ai.kernel.contracts import Capability, InferenceRequest, InferenceResult
from ondevice_ai.kernel.event_bus import EventBus
from ondevice_ai.providers.base import (
    DownloadCompleted,
    DownloadProgress,
    DownloadStatus,
    ImplicitModel,
    ProvisionedModel,
)


# ─── Fake backends ───────────────────────────────────────────────


class FakeImplicitModel(ImplicitModel):
    """System-managed model with scripted replies and a controllable stream.

    ``hold_at``: the stream blocks on ``release`` before the token at this
    index, so a test can hold a stream open and stop it mid-flight.
    ``fail_after``: raise after this many tokens.
    """

    name = "fake-implicit"

    def __init__(
        self,
        status: Any = "available",
        reply: str | Exception = "Hello there!",
        tokens: list[str] | None = None,
    ) -> None:
        self.status = status
        self.reply = reply
        self.tokens = tokens if tokens is not None else ["Hello", " there", "!"]
        self.hold_at: int | None = None
        self.release = asyncio.Event()
        self.fail_after: int | None = None
        self.load_error: Exception | None = None
        self.probe_delay = 0.0
        self.requests: list[InferenceRequest] = []
        self.loaded: list[str | None] = []
        self.cancel_requests = 0
        self.closed = False

    async def probe(self) -> Any:
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if isinstance(self.status, Exception):
            raise self.status
        return self.status

    async def load(self, instructions: str | None) -> None:
        if self.load_error is not None:
            raise self.load_error
        self.loaded.append(instructions)

    async def respond(self, request: InferenceRequest) -> str:
        self.requests.append(request)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply

    async def respond_stream(self, request: InferenceRequest) -> AsyncGenerator[str, None]:
        self.requests.append(request)
        for i, token in enumerate(self.tokens):
            if self.fail_after is not None and i == self.fail_after:
                raise RuntimeError("backend exploded")
            if self.hold_at is not None and i >= self.hold_at:
                await self.release.wait()
            else:
                await asyncio.sleep(0)
            yield token

    def request_cancel(self) -> None:
        self.cancel_requests += 1

    async def close(self) -> None:
        self.closed = True


class FakeProvisionedModel(ProvisionedModel):
    """Feature-status backend: numeric status codes and a scripted download."""

    name = "fake-provisioned"

    def __init__(
        self,
        status: Any = 3,
        result: str = "A short summary.",
        steps: list[DownloadStatus] | None = None,
    ) -> None:
        self.status = status
        self.result = result
        self.steps = (
            steps
            if steps is not None
            else [
                DownloadProgress(bytes_downloaded=50, total_bytes=100),
                DownloadProgress(bytes_downloaded=100, total_bytes=100),
                DownloadCompleted(),
            ]
        )
        self.download_gate: asyncio.Event | None = None
        self.download_calls = 0
        self.requests: list[InferenceRequest] = []

    async def probe(self) -> Any:
        return self.status

    async def download(self) -> AsyncGenerator[DownloadStatus, None]:
        self.download_calls += 1
        self.status = 2
        for step in self.steps:
            if self.download_gate is not None:
                await self.download_gate.wait()
            else:
                await asyncio.sleep(0)
            if isinstance(step, DownloadCompleted):
                self.status = 3
            yield step

    async def run_inference(self, request: InferenceRequest) -> InferenceResult:
        self.requests.append(request)
        return InferenceResult(text=self.result)


class EventRecorder:
    """Collects every event published on a bus, in order."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list = []
        for event_type in ("onToken", "onComplete", "onError"):
            bus.add_listener(event_type, self.events.append)

    @property
    def tokens(self) -> list:
        return [e for e in self.events if e.type == "onToken"]

    @property
    def completions(self) -> list:
        return [e for e in self.events if e.type == "onComplete"]

    @property
    def errors(self) -> list:
        return [e for e in self.events if e.type == "onError"]

    @property
    def terminals(self) -> list:
        return [e for e in self.events if e.type != "onToken"]


async def wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)


# ─── Fixtures ─────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def implicit_model() -> FakeImplicitModel:
    return FakeImplicitModel()


@pytest.fixture
def summarize_model() -> FakeProvisionedModel:
    return FakeProvisionedModel(result="A short summary.")


@pytest.fixture
def rewrite_model() -> FakeImplicitModel:
    return FakeImplicitModel(reply="Rewritten text.")


@pytest.fixture
def make_client(implicit_model, summarize_model, rewrite_model):
    """Factory for an OnDeviceAI over the fake backends."""

    def _make(policy: str = "lazy", **overrides) -> OnDeviceAI:
        backends = {
            Capability.GENERATE: overrides.pop("generate", implicit_model),
            Capability.SUMMARIZE: overrides.pop("summarize", summarize_model),
            Capability.REWRITE: overrides.pop("rewrite", rewrite_model),
        }
        config = OnDeviceConfig(
            generation=GenerationConfig(session_policy=policy, max_tokens=256),
            lifecycle=LifecycleConfig(probe_timeout=0.5, download_timeout=2.0),
        )
        return OnDeviceAI(backends, config=config)

    return _make


class Fakes:
    Implicit = FakeImplicitModel
    Provisioned = FakeProvisionedModel
    Recorder = EventRecorder
    wait_until = staticmethod(wait_until)


@pytest.fixture
def fakes() -> type[Fakes]:
    """The fake classes and helpers, without importing conftest."""
    return Fakes
