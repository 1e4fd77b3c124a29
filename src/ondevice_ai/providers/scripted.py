"""
Scripted provider — deterministic, offline implicit model.

Useful for demos, UI development and smoke tests: no server, no download.
Replies are produced by a callable (default: echo the last paragraph of the
prompt) and streamed word by word with an optional delay.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, Callable

from ondevice_ai.kernel.contracts import InferenceRequest
from ondevice_ai.providers.base import ImplicitModel

logger = logging.getLogger(__name__)


def _echo_reply(request: InferenceRequest) -> str:
    body = request.text.strip().split("\n\n")[-1].strip()
    return body or "…"


class ScriptedModel(ImplicitModel):
    name = "scripted"

    def __init__(
        self,
        reply: Callable[[InferenceRequest], str] | str | None = None,
        status: str = "available",
        token_delay: float = 0.0,
    ) -> None:
        if isinstance(reply, str):
            text = reply
            reply = lambda _request: text  # noqa: E731
        self._reply: Callable[[InferenceRequest], str] = reply or _echo_reply
        self.status = status
        self._token_delay = token_delay
        self.instructions: str | None = None

    async def probe(self) -> str:
        return self.status

    async def load(self, instructions: str | None) -> None:
        self.instructions = instructions

    async def respond(self, request: InferenceRequest) -> str:
        return self._reply(request)

    async def respond_stream(self, request: InferenceRequest) -> AsyncGenerator[str, None]:
        words = self._reply(request).split(" ")
        for i, word in enumerate(words):
            if self._token_delay:
                await asyncio.sleep(self._token_delay)
            yield word if i == 0 else f" {word}"

    async def health_check(self) -> dict:
        return {"provider": self.name, "lifecycle": self.lifecycle, "status": self.status}
