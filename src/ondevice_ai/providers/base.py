"""
Provider base classes — the Capability interface.

Every backend, whatever its native lifecycle, honors one contract:
probe / download / load / respond / respond_stream / request_cancel.

Two families:
- ImplicitModel: the runtime manages its own model. download() is a no-op
  that completes at once.
- ProvisionedModel: the model artifact must be downloaded before use.
  Inference goes through run_inference(request).

The kernel only ever talks to CapabilityBackend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator

from ondevice_ai.kernel.contracts import InferenceRequest, InferenceResult


# ─── Download statuses (backend side) ────────────────────────────


@dataclass(frozen=True)
class DownloadProgress:
    bytes_downloaded: int = 0
    total_bytes: int | None = None


@dataclass(frozen=True)
class DownloadCompleted:
    pass


@dataclass(frozen=True)
class DownloadFailed:
    cause: BaseException | str


DownloadStatus = DownloadProgress | DownloadCompleted | DownloadFailed


# ─── Capability interface ────────────────────────────────────────


class CapabilityBackend(ABC):
    """One backend instance serves one capability."""

    lifecycle: str = ""
    name: str = "backend"

    @abstractmethod
    async def probe(self) -> Any:
        """Backend-native readiness status. Translated by AvailabilityProbe."""
        ...

    @abstractmethod
    def download(self) -> AsyncIterator[DownloadStatus]:
        """Provision the model. Yields progress, ends completed or failed."""
        ...

    async def load(self, instructions: str | None) -> None:
        """Prepare the model for a new session. Default: nothing to do."""

    @abstractmethod
    async def respond(self, request: InferenceRequest) -> str:
        ...

    @abstractmethod
    def respond_stream(self, request: InferenceRequest) -> AsyncIterator[str]:
        ...

    def request_cancel(self) -> None:
        """Best-effort request to stop in-flight native work."""

    async def close(self) -> None:
        pass

    async def health_check(self) -> dict:
        return {
            "provider": self.name,
            "lifecycle": self.lifecycle,
            "status": "unknown",
        }


class ImplicitModel(CapabilityBackend):
    """Backend whose model lifecycle is managed by the system."""

    lifecycle = "implicit"

    async def download(self) -> AsyncGenerator[DownloadStatus, None]:
        yield DownloadCompleted()


class ProvisionedModel(CapabilityBackend):
    """Backend with an explicit feature-status / download lifecycle."""

    lifecycle = "provisioned"

    @abstractmethod
    async def run_inference(self, request: InferenceRequest) -> InferenceResult:
        ...

    async def run_inference_stream(
        self, request: InferenceRequest
    ) -> AsyncGenerator[str, None]:
        """Default: the whole result as a single chunk."""
        result = await self.run_inference(request)
        if result.text:
            yield result.text

    async def respond(self, request: InferenceRequest) -> str:
        result = await self.run_inference(self._with_instructions(request))
        return result.text

    async def respond_stream(self, request: InferenceRequest) -> AsyncGenerator[str, None]:
        async for chunk in self.run_inference_stream(self._with_instructions(request)):
            yield chunk

    @staticmethod
    def _with_instructions(request: InferenceRequest) -> InferenceRequest:
        """Provisioned runtimes have no session object; prepend instructions."""
        if not request.instructions or request.selector:
            return request
        return InferenceRequest(
            text=f"{request.instructions}\n\n{request.text}",
            instructions=None,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            selector=request.selector,
        )
