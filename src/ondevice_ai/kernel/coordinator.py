"""
Generation Coordinator — one-shot and streaming generation.

One-shot:
    text = await coordinator.generate("Hi")
    Backend streaming, if any, stays internal. No events are emitted.

Streaming:
    op = await coordinator.start_streaming("Tell me a story")
    # events follow on the EventBus: onToken{index 0..N-1}, then exactly
    # one onComplete or onError
    coordinator.stop_streaming()

Invariants kept here:
- at most one StreamingOperation is active; starting another cancels the
  previous one first (its ``cancelled`` completion is published before the
  new operation exists)
- every token is gated on the operation still being live: not cancelled,
  still the active slot, still on the session's current epoch
- stop_streaming() is synchronous. It flips ``cancelled``, asks the backend
  to stop, publishes the ``cancelled`` completion and cancels the task, so
  a slow backend cannot deliver anything after it
- a session re-init or clear supersedes the active operation silently: no
  event reaches the bus, but supersede listeners are told which operation
  was dropped so its consumers can stop waiting for a terminal event
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, AsyncIterator, Callable

from ondevice_ai.core.config import GenerationConfig
from ondevice_ai.core.errors import GenerationFailedError, OnDeviceAIError
from ondevice_ai.core.metrics import metrics
from ondevice_ai.kernel.contracts import (
    FinishReason,
    GenerateOptions,
    InferenceRequest,
    Session,
    StreamingOperation,
)
from ondevice_ai.kernel.event_bus import EventBus, StreamChannel
from ondevice_ai.kernel.session import SessionManager

if TYPE_CHECKING:
    from ondevice_ai.providers.base import CapabilityBackend

logger = logging.getLogger(__name__)

STREAM_ERROR_CODE = "GENERATION_ERROR"

SupersedeListener = Callable[[StreamingOperation], None]


@dataclass
class _ActiveStream:
    """The operation slot: operation state, its channel and its task."""

    operation: StreamingOperation
    channel: StreamChannel | None = None
    task: asyncio.Task | None = field(default=None, repr=False)


class GenerationCoordinator:
    """Runs generation against the active session of a SessionManager."""

    def __init__(
        self,
        sessions: SessionManager,
        backend: CapabilityBackend,
        bus: EventBus,
        config: GenerationConfig | None = None,
    ) -> None:
        self._sessions = sessions
        self._backend = backend
        self._bus = bus
        self._config = config or GenerationConfig()
        self._active: _ActiveStream | None = None
        self._supersede_listeners: list[SupersedeListener] = []
        sessions.add_listener(self._on_session_changed)

    @property
    def is_streaming(self) -> bool:
        return self._active is not None

    @property
    def active_operation(self) -> StreamingOperation | None:
        return self._active.operation if self._active else None

    def add_supersede_listener(self, listener: SupersedeListener) -> Callable[[], None]:
        """Call ``listener`` with each operation a session change drops.

        Returns a function that removes the listener.
        """
        self._supersede_listeners.append(listener)

        def remove() -> None:
            if listener in self._supersede_listeners:
                self._supersede_listeners.remove(listener)

        return remove

    # ─── One-shot ─────────────────────────────────────────────

    async def generate(
        self, prompt: str, options: GenerateOptions | dict | None = None
    ) -> str:
        session = self._sessions.require()
        request = self._build_request(session, prompt, options)
        text = await self._one_shot(self._backend, request, operation="generate")
        if not text:
            raise GenerationFailedError("Failed to generate content")
        return text

    async def transform(self, backend: CapabilityBackend, request: InferenceRequest) -> str:
        """Shared one-shot path for summarize/rewrite. May return ""."""
        return await self._one_shot(backend, request, operation="transform")

    async def _one_shot(
        self,
        backend: CapabilityBackend,
        request: InferenceRequest,
        operation: str,
    ) -> str:
        started = time.monotonic()
        try:
            text = await backend.respond(request)
        except OnDeviceAIError:
            raise
        except Exception as e:
            metrics.inc("generation.errors", labels={"mode": operation})
            logger.error("%s failed: %s", operation, e, extra={"operation": operation})
            raise GenerationFailedError(f"Generation failed: {e}", cause=e) from e

        elapsed_ms = (time.monotonic() - started) * 1000
        metrics.inc("generation.requests", labels={"mode": operation})
        metrics.observe("generation.latency_ms", elapsed_ms, labels={"mode": operation})
        logger.debug(
            "%s finished in %.0fms",
            operation,
            elapsed_ms,
            extra={"operation": operation, "duration_ms": round(elapsed_ms)},
        )
        return (text or "").strip()

    # ─── Streaming ────────────────────────────────────────────

    async def start_streaming(
        self, prompt: str, options: GenerateOptions | dict | None = None
    ) -> StreamingOperation:
        """Register a new streaming operation and return without waiting for tokens."""
        async with self._sessions.lock:
            session = self._sessions.require()
            request = self._build_request(session, prompt, options)

            previous = self._active
            if previous is not None:
                logger.info("New stream supersedes operation %s", previous.operation.operation_id)
                self._cancel(previous, emit=True)

            active = _ActiveStream(
                StreamingOperation(
                    epoch=session.generation_epoch, max_tokens=request.max_tokens
                )
            )
            active.channel = self._bus.channel(
                active.operation.epoch,
                is_live=lambda: self._is_live(active),
                operation_id=active.operation.operation_id,
            )
            self._active = active
            active.task = asyncio.create_task(
                self._run_stream(active, request),
                name=f"stream-{active.operation.operation_id[:8]}",
            )
            metrics.gauge_set("stream.active", 1)
            return active.operation

    def stop_streaming(self) -> None:
        """Cancel the active operation. No-op when nothing is streaming."""
        active = self._active
        if active is None:
            return
        logger.info("Stopping stream %s", active.operation.operation_id)
        self._cancel(active, emit=True)

    async def aclose(self) -> None:
        """Stop any active stream and wait for its task to unwind."""
        active = self._active
        if active is None:
            return
        self._cancel(active, emit=True)
        if active.task is not None:
            try:
                await active.task
            except asyncio.CancelledError:
                pass

    async def _run_stream(self, active: _ActiveStream, request: InferenceRequest) -> None:
        operation = active.operation
        channel = active.channel
        assert channel is not None
        started = time.monotonic()
        reason = FinishReason.COMPLETE
        stream = self._backend.respond_stream(request)
        try:
            async for text in stream:
                if not self._is_live(active):
                    break
                if not text:
                    continue
                channel.token(text)
                operation.next_index = channel.forwarded
                if operation.max_tokens is not None and channel.forwarded >= operation.max_tokens:
                    reason = FinishReason.MAX_TOKENS
                    break
        except asyncio.CancelledError:
            channel.complete(FinishReason.CANCELLED)
            raise
        except Exception as e:
            if self._is_live(active):
                logger.error(
                    "Stream %s failed: %s",
                    operation.operation_id,
                    e,
                    extra={"epoch": operation.epoch, "operation": "stream"},
                )
                metrics.inc("stream.errors")
                channel.error(str(e) or e.__class__.__name__, STREAM_ERROR_CODE)
        else:
            if self._is_live(active):
                channel.complete(reason)
                metrics.inc("stream.completed", labels={"reason": reason.value})
                logger.info(
                    "Stream %s finished: %d tokens (%s)",
                    operation.operation_id,
                    channel.forwarded,
                    reason.value,
                    extra={
                        "epoch": operation.epoch,
                        "operation": "stream",
                        "status": reason.value,
                        "duration_ms": round((time.monotonic() - started) * 1000),
                    },
                )
        finally:
            await _close_stream(stream)
            if self._active is active:
                self._active = None
                metrics.gauge_set("stream.active", 0)

    # ─── Internal ─────────────────────────────────────────────

    def _is_live(self, active: _ActiveStream) -> bool:
        operation = active.operation
        return (
            self._active is active
            and not operation.cancelled
            and operation.epoch == self._sessions.epoch
        )

    def _cancel(self, active: _ActiveStream, emit: bool) -> None:
        """Flip the flag, notify the backend, close the channel, kill the task."""
        operation = active.operation
        operation.cancelled = True
        try:
            self._backend.request_cancel()
        except Exception as e:
            logger.warning("Backend cancel request failed: %s", e)

        if active.channel is not None:
            if emit:
                if active.channel.complete(FinishReason.CANCELLED):
                    metrics.inc("stream.completed", labels={"reason": "cancelled"})
            else:
                active.channel.discard()

        if active.task is not None and not active.task.done():
            active.task.cancel()
        if self._active is active:
            self._active = None
            metrics.gauge_set("stream.active", 0)

    def _on_session_changed(self, session: Session | None) -> None:
        active = self._active
        if active is None:
            return
        if session is None or session.generation_epoch != active.operation.epoch:
            logger.info(
                "Stream %s superseded by session change", active.operation.operation_id
            )
            self._cancel(active, emit=False)
            for listener in list(self._supersede_listeners):
                try:
                    listener(active.operation)
                except Exception:
                    logger.exception("Supersede listener failed")

    def _build_request(
        self,
        session: Session,
        prompt: str,
        options: GenerateOptions | dict | None,
    ) -> InferenceRequest:
        opts = GenerateOptions.parse(options).resolve(
            self._config.temperature, self._config.max_tokens
        )
        return InferenceRequest(
            text=prompt,
            instructions=session.instructions,
            temperature=opts.temperature,
            max_tokens=opts.max_tokens,
        )


async def _close_stream(stream: AsyncIterator[str]) -> None:
    """Close an async generator so the backend releases its resources."""
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug("Closing backend stream raised: %s", e)
