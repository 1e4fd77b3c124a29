"""
OnDeviceAI — the client facade.

The one API surface UI-level code talks to. It composes, per instance:

- one AvailabilityProbe + ModelProvisioner per capability
- a SessionManager and GenerationCoordinator on the generate backend
- Summarizer / Rewriter on their own backends
- the EventBus that carries onToken / onComplete / onError

There is no module-level instance: whoever builds the application owns
the facade and passes it around.

Usage:
    ai = OnDeviceAI.from_config(OnDeviceConfig.from_env())
    ai.add_token_listener(lambda e: print(e.token, end=""))
    await ai.init_session({"instructions": "You are concise."})
    await ai.start_streaming("Tell me a story")
    ...
    ai.stop_streaming()
    await ai.aclose()
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, Callable, Mapping

from ondevice_ai.core.config import OnDeviceConfig
from ondevice_ai.core.errors import (
    ContextUnavailableError,
    ModelUnavailableError,
    SessionNotInitializedError,
)
from ondevice_ai.kernel.contracts import (
    Capability,
    GenerateOptions,
    ModelAvailability,
    ModelStatus,
    Session,
    SessionOptions,
    StreamEvent,
    StreamingOperation,
)
from ondevice_ai.kernel.coordinator import GenerationCoordinator, SupersedeListener
from ondevice_ai.kernel.event_bus import EventBus, Listener, Subscription
from ondevice_ai.kernel.session import SessionManager
from ondevice_ai.lifecycle.availability import AvailabilityProbe
from ondevice_ai.lifecycle.provisioner import ModelProvisioner, ProvisionEvent
from ondevice_ai.providers.base import CapabilityBackend
from ondevice_ai.providers.registry import get_backends
from ondevice_ai.transforms.rewriter import Rewriter, RewriteStyle
from ondevice_ai.transforms.summarizer import Summarizer, SummarizeStyle

logger = logging.getLogger(__name__)


class OnDeviceAI:
    """Facade over the session/streaming core for one set of backends."""

    def __init__(
        self,
        backends: Mapping[Capability, CapabilityBackend],
        config: OnDeviceConfig | None = None,
        bus: EventBus | None = None,
    ) -> None:
        missing = [c.value for c in Capability if c not in backends]
        if missing:
            raise ValueError(f"Missing backends for: {', '.join(missing)}")

        self.config = config or OnDeviceConfig()
        self._backends = dict(backends)
        self.bus = bus or EventBus(maxsize=self.config.server.event_queue_size)

        lifecycle = self.config.lifecycle
        self._probes = {
            c: AvailabilityProbe(c, b, timeout=lifecycle.probe_timeout)
            for c, b in self._backends.items()
        }
        self._provisioners = {
            c: ModelProvisioner(c, b, timeout=lifecycle.download_timeout)
            for c, b in self._backends.items()
        }

        generate_backend = self._backends[Capability.GENERATE]
        self.sessions = SessionManager(generate_backend)
        self.coordinator = GenerationCoordinator(
            self.sessions, generate_backend, self.bus, self.config.generation
        )
        self.summarizer = Summarizer(
            self._backends[Capability.SUMMARIZE],
            self.coordinator,
            self._probes[Capability.SUMMARIZE],
            self._provisioners[Capability.SUMMARIZE],
            temperature=self.config.generation.transform_temperature,
        )
        self.rewriter = Rewriter(
            self._backends[Capability.REWRITE],
            self.coordinator,
            self._probes[Capability.REWRITE],
            self._provisioners[Capability.REWRITE],
            temperature=self.config.generation.temperature,
        )

        self._session_options = SessionOptions()
        self._lazy_init_lock = asyncio.Lock()
        self._closed = False

    @classmethod
    def from_config(cls, config: OnDeviceConfig) -> "OnDeviceAI":
        return cls(get_backends(config.backend), config=config)

    # ─── Properties ───────────────────────────────────────────

    @property
    def session(self) -> Session | None:
        return self.sessions.active

    @property
    def is_streaming(self) -> bool:
        return self.coordinator.is_streaming

    @property
    def session_policy(self) -> str:
        return self.config.generation.session_policy

    @property
    def closed(self) -> bool:
        return self._closed

    # ─── Availability / provisioning ──────────────────────────

    async def check_availability(
        self, capability: Capability | str = Capability.GENERATE
    ) -> ModelAvailability:
        self._ensure_open()
        return await self._probes[Capability.parse(capability)].check()

    async def download_model(self, capability: Capability | str = Capability.GENERATE) -> bool:
        self._ensure_open()
        return await self._provisioners[Capability.parse(capability)].ensure()

    def download_progress(
        self, capability: Capability | str = Capability.GENERATE
    ) -> AsyncGenerator[ProvisionEvent, None]:
        """Start (or join) a download and follow its progress events."""
        self._ensure_open()
        return self._provisioners[Capability.parse(capability)].download()

    # ─── Session ──────────────────────────────────────────────

    async def init_session(self, options: SessionOptions | dict | None = None) -> Session:
        self._ensure_open()
        opts = SessionOptions.parse(options)
        session = await self.sessions.init_session(opts)
        self._session_options = opts
        return session

    def clear_session(self) -> None:
        self.sessions.clear_session()

    async def on_foreground(self) -> Session | None:
        """Re-create the session after the host returns from background.

        Some runtimes unload their model while backgrounded; the previous
        session's instructions are reused.
        """
        self._ensure_open()
        if self.sessions.active is None:
            return None
        logger.info("Host returned to foreground; re-initialising session")
        return await self.init_session(self._session_options)

    # ─── Generation ───────────────────────────────────────────

    async def generate(self, prompt: str, options: GenerateOptions | dict | None = None) -> str:
        self._ensure_open()
        opts = GenerateOptions.parse(options)
        await self._ensure_session()
        return await self.coordinator.generate(prompt, opts)

    async def start_streaming(
        self, prompt: str, options: GenerateOptions | dict | None = None
    ) -> StreamingOperation:
        self._ensure_open()
        opts = GenerateOptions.parse(options)
        await self._ensure_session()
        return await self.coordinator.start_streaming(prompt, opts)

    def stop_streaming(self) -> None:
        self.coordinator.stop_streaming()

    async def summarize(
        self, text: str, options: SummarizeStyle | str | dict | None = None
    ) -> str:
        self._ensure_open()
        return await self.summarizer.summarize(text, options)

    async def rewrite(self, text: str, style: RewriteStyle | str | None = None) -> str:
        self._ensure_open()
        return await self.rewriter.rewrite(text, style)

    # ─── Events ───────────────────────────────────────────────

    def add_token_listener(self, listener: Listener) -> Subscription:
        return self.bus.add_listener("onToken", listener)

    def add_completion_listener(self, listener: Listener) -> Subscription:
        return self.bus.add_listener("onComplete", listener)

    def add_error_listener(self, listener: Listener) -> Subscription:
        return self.bus.add_listener("onError", listener)

    def add_supersede_listener(self, listener: SupersedeListener) -> Callable[[], None]:
        """Be told when a session change drops a stream without a terminal event."""
        return self.coordinator.add_supersede_listener(listener)

    def subscribe(self) -> asyncio.Queue:
        self._ensure_open()
        return self.bus.subscribe()

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self.bus.unsubscribe(queue)

    def listen(self, queue: asyncio.Queue) -> AsyncGenerator[StreamEvent, None]:
        return self.bus.listen(queue)

    # ─── Lifecycle ────────────────────────────────────────────

    async def health(self) -> dict:
        backends = {}
        for capability, backend in self._backends.items():
            try:
                backends[capability.value] = await backend.health_check()
            except Exception as e:
                backends[capability.value] = {"status": "error", "error": str(e)}
        return {
            "session": self.session.session_id if self.session else None,
            "epoch": self.sessions.epoch,
            "streaming": self.is_streaming,
            "policy": self.session_policy,
            "backends": backends,
        }

    async def aclose(self) -> None:
        """Stop streaming and close backends and the bus.

        Later calls raise ContextUnavailableError; a second aclose() is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        await self.coordinator.aclose()
        for provisioner in self._provisioners.values():
            await provisioner.aclose()
        for backend in {id(b): b for b in self._backends.values()}.values():
            await backend.close()
        self.bus.close()

    async def __aenter__(self) -> "OnDeviceAI":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ─── Internal ─────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self._closed:
            raise ContextUnavailableError("OnDeviceAI client is closed")

    async def _ensure_session(self) -> None:
        """Apply the session policy when no session is live."""
        if self.sessions.active is not None:
            return
        if self.session_policy == "strict":
            raise SessionNotInitializedError()

        async with self._lazy_init_lock:
            if self.sessions.active is not None:
                return
            availability = await self.check_availability(Capability.GENERATE)
            if availability.status in (ModelStatus.DOWNLOADABLE, ModelStatus.DOWNLOADING):
                await self.download_model(Capability.GENERATE)
            elif availability.status is ModelStatus.UNAVAILABLE:
                raise ModelUnavailableError(
                    Capability.GENERATE.value,
                    availability.reason.value if availability.reason else None,
                )
            logger.info("Initialising session on demand")
            await self.init_session(self._session_options)
