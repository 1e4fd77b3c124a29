"""
OpenAI-compatible provider — implicit lifecycle.

Talks to a local OpenAI-compatible server (LM Studio, llama.cpp server,
vLLM) through the openai SDK. The server owns model loading, so there is
nothing to download. Readiness comes from /models:

    model listed        → "available"
    server up, no model → "modelNotReady"
    server unreachable  → probe raises → unavailable(unknown)
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from openai import AsyncOpenAI

from ondevice_ai.kernel.contracts import InferenceRequest
from ondevice_ai.providers.base import ImplicitModel

logger = logging.getLogger(__name__)


class OpenAICompatModel(ImplicitModel):
    name = "openai"

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str = "local",
        timeout: float = 120.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = timeout
        self.client: AsyncOpenAI | None = client

    def _ensure_client(self) -> AsyncOpenAI:
        if self.client is None:
            self.client = AsyncOpenAI(
                base_url=self._base_url, api_key=self._api_key, timeout=self._timeout
            )
            logger.info("OpenAI-compatible backend ready (model=%s, base_url=%s)", self.model, self._base_url)
        return self.client

    async def probe(self) -> str:
        models = await self._ensure_client().models.list()
        ids = {m.id for m in models.data}
        return "available" if self.model in ids else "modelNotReady"

    async def load(self, instructions: str | None) -> None:
        self._ensure_client()

    async def respond(self, request: InferenceRequest) -> str:
        response = await self._ensure_client().chat.completions.create(
            model=self.model,
            messages=_messages(request),
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def respond_stream(self, request: InferenceRequest) -> AsyncGenerator[str, None]:
        stream = await self._ensure_client().chat.completions.create(
            model=self.model,
            messages=_messages(request),
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            stream=True,
        )
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield delta.content
        finally:
            await stream.close()

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None

    async def health_check(self) -> dict:
        return {
            "provider": self.name,
            "lifecycle": self.lifecycle,
            "model": self.model,
            "status": "ready" if self.client else "not_started",
        }


def _messages(request: InferenceRequest) -> list[dict]:
    messages: list[dict] = []
    if request.instructions:
        messages.append({"role": "system", "content": request.instructions})
    messages.append({"role": "user", "content": request.text})
    return messages
