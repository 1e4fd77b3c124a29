"""
Ollama provider — provisioned lifecycle.

REST API (default http://localhost:11434):
    GET  /api/tags      → installed models (readiness)
    POST /api/pull      → NDJSON download progress
    POST /api/generate  → completion, streamed as NDJSON or one JSON object

Feature status:
    model installed      → AVAILABLE
    our pull in progress → DOWNLOADING
    otherwise            → DOWNLOADABLE

Ollama has no built-in summarizer/rewriter, so output-shape selectors are
realised as system prompts. Session instructions also travel in the
``system`` field rather than being folded into the prompt.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator

import httpx

from ondevice_ai.kernel.contracts import InferenceRequest, InferenceResult
from ondevice_ai.providers.base import (
    DownloadCompleted,
    DownloadFailed,
    DownloadProgress,
    DownloadStatus,
    ProvisionedModel,
)

logger = logging.getLogger(__name__)

SELECTOR_PROMPTS = {
    # summarization output types
    "ONE_BULLET": "Summarize the user's text as one short bullet point. Output only the bullet.",
    "THREE_BULLETS": "Summarize the user's text as exactly three bullet points. Output only the bullets.",
    "HEADLINE": "Write a headline of under 10 words for the user's text. Output only the headline.",
    # rewriting output types
    "PROFESSIONAL": "Rewrite the user's text in a professional, formal tone. Output only the rewritten text.",
    "FRIENDLY": "Rewrite the user's text in a friendly, casual tone. Output only the rewritten text.",
    "SHORTEN": "Rewrite the user's text to be shorter while keeping its meaning. Output only the rewritten text.",
    "ELABORATE": "Rewrite the user's text to be more detailed and elaborate. Output only the rewritten text.",
    "REPHRASE": "Rephrase the user's text using different words, keeping its meaning. Output only the rewritten text.",
}


class OllamaError(RuntimeError):
    """Error payload returned by the Ollama server."""


class OllamaModel(ProvisionedModel):
    name = "ollama"

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self.client: httpx.AsyncClient | None = client
        self._pulling = False

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self._base_url, timeout=httpx.Timeout(self._timeout)
            )
        return self.client

    # ─── Lifecycle ────────────────────────────────────────────

    async def probe(self) -> str:
        response = await self._ensure_client().get("/api/tags")
        response.raise_for_status()
        names = {m.get("name", "") for m in response.json().get("models", [])}
        if self.model in names or f"{self.model}:latest" in names:
            return "AVAILABLE"
        if self._pulling:
            return "DOWNLOADING"
        return "DOWNLOADABLE"

    async def download(self) -> AsyncGenerator[DownloadStatus, None]:
        self._pulling = True
        try:
            async with self._ensure_client().stream(
                "POST", "/api/pull", json={"model": self.model, "stream": True}
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    if "error" in data:
                        yield DownloadFailed(OllamaError(data["error"]))
                        return
                    if data.get("status") == "success":
                        logger.info("Ollama pull of %s complete", self.model)
                        yield DownloadCompleted()
                        return
                    if "total" in data:
                        yield DownloadProgress(
                            bytes_downloaded=int(data.get("completed", 0)),
                            total_bytes=int(data["total"]),
                        )
            yield DownloadFailed("pull stream ended without success")
        except httpx.HTTPError as e:
            yield DownloadFailed(e)
        finally:
            self._pulling = False

    async def load(self, instructions: str | None) -> None:
        # A generate request without a prompt loads the model into memory.
        response = await self._ensure_client().post(
            "/api/generate", json={"model": self.model}
        )
        response.raise_for_status()

    # ─── Inference ────────────────────────────────────────────

    @staticmethod
    def _with_instructions(request: InferenceRequest) -> InferenceRequest:
        return request

    async def run_inference(self, request: InferenceRequest) -> InferenceResult:
        response = await self._ensure_client().post(
            "/api/generate", json=self._payload(request, stream=False)
        )
        response.raise_for_status()
        data = response.json()
        if "error" in data:
            raise OllamaError(data["error"])
        return InferenceResult(
            text=data.get("response", ""),
            metadata={"eval_count": data.get("eval_count")},
        )

    async def run_inference_stream(
        self, request: InferenceRequest
    ) -> AsyncGenerator[str, None]:
        async with self._ensure_client().stream(
            "POST", "/api/generate", json=self._payload(request, stream=True)
        ) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                data = json.loads(line)
                if "error" in data:
                    raise OllamaError(data["error"])
                chunk = data.get("response", "")
                if chunk:
                    yield chunk
                if data.get("done"):
                    break

    def _payload(self, request: InferenceRequest, stream: bool) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": request.temperature}
        if request.max_tokens:
            options["num_predict"] = request.max_tokens
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": request.text,
            "stream": stream,
            "options": options,
        }
        system = SELECTOR_PROMPTS.get(request.selector) if request.selector else None
        if system is None:
            system = request.instructions
        if system:
            payload["system"] = system
        return payload

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    async def health_check(self) -> dict:
        return {
            "provider": self.name,
            "lifecycle": self.lifecycle,
            "model": self.model,
            "status": "pulling" if self._pulling else ("ready" if self.client else "not_started"),
        }
