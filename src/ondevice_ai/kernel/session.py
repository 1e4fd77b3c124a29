"""
Session manager — owns the single live Session.

init_session() replaces any existing session: new id, instructions
overwritten, generation epoch bumped. The epoch bump is what invalidates a
streaming operation started under the previous session; listeners (the
GenerationCoordinator) are told to supersede it before the new session is
published.

Session replacement and stream starts are serialised by ``lock``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable

from ondevice_ai.core.errors import (
    GenerationFailedError,
    OnDeviceAIError,
    SessionNotInitializedError,
)
from ondevice_ai.kernel.contracts import Session, SessionOptions

if TYPE_CHECKING:
    from ondevice_ai.providers.base import CapabilityBackend

logger = logging.getLogger(__name__)

SessionListener = Callable[[Session | None], None]


class SessionManager:
    """Single owner of the active Session."""

    def __init__(self, backend: CapabilityBackend) -> None:
        self._backend = backend
        self._session: Session | None = None
        self._epoch = 0
        self._listeners: list[SessionListener] = []
        self.lock = asyncio.Lock()

    @property
    def active(self) -> Session | None:
        return self._session

    @property
    def epoch(self) -> int:
        """Current generation epoch (survives clear_session)."""
        return self._epoch

    def require(self) -> Session:
        if self._session is None:
            raise SessionNotInitializedError()
        return self._session

    def add_listener(self, listener: SessionListener) -> None:
        """Called synchronously with the new session (None on clear)."""
        self._listeners.append(listener)

    async def init_session(self, options: SessionOptions | dict | None = None) -> Session:
        opts = SessionOptions.parse(options)
        async with self.lock:
            return await self._replace(opts)

    def clear_session(self) -> None:
        if self._session is None:
            return
        logger.info("Session %s cleared", self._session.session_id)
        self._epoch += 1
        self._session = None
        self._notify(None)

    async def _replace(self, options: SessionOptions) -> Session:
        started = time.monotonic()
        # Model load may block; the old session stays live until it succeeds.
        try:
            await self._backend.load(options.instructions)
        except OnDeviceAIError:
            raise
        except Exception as e:
            raise GenerationFailedError(f"Model load failed: {e}", cause=e) from e

        self._epoch += 1
        session = Session(instructions=options.instructions, generation_epoch=self._epoch)
        self._session = session
        self._notify(session)
        logger.info(
            "Session %s initialised (epoch %d)",
            session.session_id,
            session.generation_epoch,
            extra={
                "session_id": session.session_id,
                "epoch": session.generation_epoch,
                "duration_ms": round((time.monotonic() - started) * 1000),
            },
        )
        return session

    def _notify(self, session: Session | None) -> None:
        for listener in list(self._listeners):
            listener(session)
