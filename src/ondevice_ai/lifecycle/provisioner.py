"""
Model provisioner — downloads one capability's model artifact.

download() is a lazy sequence of ProvisionEvents: progress events, then
exactly one terminal ``completed`` or ``failed``.

Concurrent callers share one attempt. A caller that arrives while a
download is in flight replays the progress seen so far, follows the rest
live, and sees the same terminal outcome. The backend download itself runs
in its own task, so a caller that stops iterating does not stop it.

A failed attempt is final for that attempt only; the next call retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import AsyncGenerator

from ondevice_ai.core.errors import DownloadFailedError
from ondevice_ai.core.metrics import metrics
from ondevice_ai.kernel.contracts import Capability
from ondevice_ai.providers.base import (
    CapabilityBackend,
    DownloadCompleted,
    DownloadFailed,
    DownloadProgress,
)

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_TIMEOUT = 600.0


@dataclass(frozen=True)
class ProvisionEvent:
    kind: str  # progress | completed | failed
    bytes_downloaded: int = 0
    total_bytes: int | None = None
    cause: str | None = None

    @property
    def terminal(self) -> bool:
        return self.kind in ("completed", "failed")

    @property
    def succeeded(self) -> bool:
        return self.kind == "completed"

    @property
    def fraction(self) -> float | None:
        if not self.total_bytes:
            return None
        return min(1.0, self.bytes_downloaded / self.total_bytes)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "bytesDownloaded": self.bytes_downloaded,
            "totalBytes": self.total_bytes,
            "fraction": self.fraction,
            "cause": self.cause,
        }

    @classmethod
    def progress(cls, downloaded: int, total: int | None) -> "ProvisionEvent":
        return cls("progress", bytes_downloaded=downloaded, total_bytes=total)

    @classmethod
    def completed(cls) -> "ProvisionEvent":
        return cls("completed")

    @classmethod
    def failed(cls, cause: BaseException | str) -> "ProvisionEvent":
        return cls("failed", cause=str(cause) or cause.__class__.__name__)


class _DownloadAttempt:
    """Event log of one underlying download, shared by every follower."""

    def __init__(self) -> None:
        self.events: list[ProvisionEvent] = []
        self.task: asyncio.Task | None = None
        self._changed = asyncio.Condition()

    @property
    def done(self) -> bool:
        return bool(self.events) and self.events[-1].terminal

    async def push(self, event: ProvisionEvent) -> None:
        if self.done:
            return
        async with self._changed:
            self.events.append(event)
            self._changed.notify_all()

    async def follow(self) -> AsyncGenerator[ProvisionEvent, None]:
        seen = 0
        while True:
            async with self._changed:
                await self._changed.wait_for(lambda: len(self.events) > seen)
                batch = self.events[seen:]
            seen += len(batch)
            for event in batch:
                yield event
                if event.terminal:
                    return


class ModelProvisioner:
    """Deduplicating, bounded download manager for one capability."""

    def __init__(
        self,
        capability: Capability,
        backend: CapabilityBackend,
        timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
    ) -> None:
        self.capability = capability
        self._backend = backend
        self._timeout = timeout
        self._attempt: _DownloadAttempt | None = None

    @property
    def in_flight(self) -> bool:
        return self._attempt is not None and not self._attempt.done

    async def download(self) -> AsyncGenerator[ProvisionEvent, None]:
        attempt = self._attempt
        if attempt is None or attempt.done:
            attempt = self._start()
        else:
            logger.info("Joining in-flight %s download", self.capability.value)
            metrics.inc("download.joined", labels={"capability": self.capability.value})

        async for event in attempt.follow():
            yield event

    async def ensure(self) -> bool:
        """Drive a download to its end. True on success, raises on failure."""
        last: ProvisionEvent | None = None
        async for event in self.download():
            last = event
        if last is None or not last.succeeded:
            raise DownloadFailedError(
                self.capability.value, last.cause if last else None
            )
        return True

    async def aclose(self) -> None:
        """Cancel an in-flight download."""
        attempt = self._attempt
        if attempt and attempt.task and not attempt.task.done():
            attempt.task.cancel()
            try:
                await attempt.task
            except asyncio.CancelledError:
                pass

    def _start(self) -> _DownloadAttempt:
        attempt = _DownloadAttempt()
        self._attempt = attempt
        attempt.task = asyncio.create_task(
            self._run(attempt), name=f"download-{self.capability.value}"
        )
        metrics.inc("download.started", labels={"capability": self.capability.value})
        logger.info(
            "Model download started for %s (%s backend)",
            self.capability.value,
            self._backend.lifecycle,
            extra={"capability": self.capability.value},
        )
        return attempt

    async def _run(self, attempt: _DownloadAttempt) -> None:
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._drive(attempt), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Model download for %s timed out after %.0fs",
                self.capability.value,
                self._timeout,
            )
            await attempt.push(ProvisionEvent.failed("download timed out"))
        except asyncio.CancelledError:
            await attempt.push(ProvisionEvent.failed("download cancelled"))
            raise
        except Exception as e:
            logger.error("Model download for %s failed: %s", self.capability.value, e)
            await attempt.push(ProvisionEvent.failed(e))
        finally:
            if not attempt.done:
                await attempt.push(ProvisionEvent.failed("download ended without completing"))
            outcome = attempt.events[-1].kind
            metrics.inc(
                f"download.{outcome}", labels={"capability": self.capability.value}
            )
            logger.info(
                "Model download for %s %s",
                self.capability.value,
                outcome,
                extra={
                    "capability": self.capability.value,
                    "status": outcome,
                    "duration_ms": round((time.monotonic() - started) * 1000),
                },
            )

    async def _drive(self, attempt: _DownloadAttempt) -> None:
        async for status in self._backend.download():
            if isinstance(status, DownloadProgress):
                await attempt.push(
                    ProvisionEvent.progress(status.bytes_downloaded, status.total_bytes)
                )
            elif isinstance(status, DownloadCompleted):
                await attempt.push(ProvisionEvent.completed())
                return
            elif isinstance(status, DownloadFailed):
                await attempt.push(ProvisionEvent.failed(status.cause))
                return
