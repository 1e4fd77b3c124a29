"""
Transformation adapter base — readiness plus dual-path dispatch.

Each adapter owns its capability's probe and provisioner. Before every call
it checks that capability's availability (never the generate capability's),
provisioning on demand:

    available     → run
    downloadable  → download, then run
    downloading   → join the download, then run
    unavailable   → ModelUnavailableError(reason)

Dispatch:
    provisioned backend → InferenceRequest with the style's selector
    implicit backend    → InferenceRequest with the style's prompt template
Both go through GenerationCoordinator.transform().
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from ondevice_ai.core.errors import ModelUnavailableError
from ondevice_ai.kernel.contracts import Capability, InferenceRequest, ModelStatus

if TYPE_CHECKING:
    from ondevice_ai.kernel.coordinator import GenerationCoordinator
    from ondevice_ai.lifecycle.availability import AvailabilityProbe
    from ondevice_ai.lifecycle.provisioner import ModelProvisioner
    from ondevice_ai.providers.base import CapabilityBackend

logger = logging.getLogger(__name__)

StyleT = TypeVar("StyleT", bound=Enum)


class TransformationAdapter(Generic[StyleT]):
    capability: Capability
    selectors: dict
    templates: dict

    def __init__(
        self,
        backend: "CapabilityBackend",
        coordinator: "GenerationCoordinator",
        probe: "AvailabilityProbe",
        provisioner: "ModelProvisioner",
        temperature: float,
    ) -> None:
        self._backend = backend
        self._coordinator = coordinator
        self._probe = probe
        self._provisioner = provisioner
        self._temperature = temperature

    async def ensure_ready(self) -> None:
        availability = await self._probe.check()
        if availability.status is ModelStatus.AVAILABLE:
            return
        if availability.status in (ModelStatus.DOWNLOADABLE, ModelStatus.DOWNLOADING):
            logger.info(
                "%s model is %s; provisioning before use",
                self.capability.value,
                availability.status.value,
                extra={"capability": self.capability.value},
            )
            await self._provisioner.ensure()
            return
        raise ModelUnavailableError(
            self.capability.value,
            availability.reason.value if availability.reason else None,
        )

    def build_request(self, text: str, style: StyleT) -> InferenceRequest:
        if self._backend.lifecycle == "provisioned":
            return InferenceRequest(
                text=text,
                temperature=self._temperature,
                selector=self.selectors[style],
            )
        return InferenceRequest(
            text=self.templates[style].format(text=text),
            temperature=self._temperature,
        )

    async def run(self, text: str, style: StyleT) -> str:
        await self.ensure_ready()
        request = self.build_request(text, style)
        logger.debug(
            "%s (%s) via %s backend",
            self.capability.value,
            style.value,
            self._backend.lifecycle,
            extra={"capability": self.capability.value},
        )
        return await self._coordinator.transform(self._backend, request)
