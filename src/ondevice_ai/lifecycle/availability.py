"""
Availability probe — canonical feature status for one capability.

Backends report readiness in their own vocabulary. The probe translates it
into ModelAvailability and never raises: timeouts, exceptions and unknown
codes all come back as unavailable(unknown).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from ondevice_ai.core.metrics import metrics
from ondevice_ai.kernel.contracts import (
    Capability,
    ModelAvailability,
    ModelStatus,
    UnavailableReason,
)
from ondevice_ai.providers.base import CapabilityBackend

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0

# Implicit runtimes answer "available" or an unavailability reason.
_IMPLICIT_STATUS: dict[str, ModelAvailability] = {
    "available": ModelAvailability.available(),
    "appleIntelligenceNotEnabled": ModelAvailability.unavailable(
        UnavailableReason.APPLE_INTELLIGENCE_NOT_ENABLED
    ),
    "deviceNotEligible": ModelAvailability.unavailable(
        UnavailableReason.DEVICE_NOT_ELIGIBLE
    ),
    "modelNotReady": ModelAvailability.unavailable(UnavailableReason.MODEL_NOT_READY),
}

# Provisioned runtimes use feature-status codes, numeric or named.
_PROVISIONED_STATUS: dict[Any, ModelAvailability] = {
    0: ModelAvailability.unavailable(UnavailableReason.DEVICE_NOT_SUPPORTED),
    1: ModelAvailability.downloadable(),
    2: ModelAvailability.downloading(),
    3: ModelAvailability.available(),
    "UNAVAILABLE": ModelAvailability.unavailable(UnavailableReason.DEVICE_NOT_SUPPORTED),
    "DOWNLOADABLE": ModelAvailability.downloadable(),
    "DOWNLOADING": ModelAvailability.downloading(),
    "AVAILABLE": ModelAvailability.available(),
}


def translate_status(lifecycle: str, raw: Any) -> ModelAvailability:
    """Map a backend-native status into the canonical variant set."""
    if isinstance(raw, ModelAvailability):
        return raw
    if lifecycle == "implicit":
        result = _IMPLICIT_STATUS.get(raw) if isinstance(raw, str) else None
    elif lifecycle == "provisioned":
        key = raw.upper() if isinstance(raw, str) else raw
        try:
            result = _PROVISIONED_STATUS.get(key)
        except TypeError:  # unhashable
            result = None
    else:
        result = None
    if result is None:
        logger.warning("Unrecognized %s status code %r → unknown", lifecycle, raw)
        return ModelAvailability.unavailable()
    return result


class AvailabilityProbe:
    """Bounded, side-effect-free readiness check for one capability."""

    def __init__(
        self,
        capability: Capability,
        backend: CapabilityBackend,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        self.capability = capability
        self._backend = backend
        self._timeout = timeout

    async def check(self) -> ModelAvailability:
        started = time.monotonic()
        try:
            raw = await asyncio.wait_for(self._backend.probe(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Availability probe for %s timed out after %.1fs",
                self.capability.value,
                self._timeout,
                extra={"capability": self.capability.value, "status": "timeout"},
            )
            metrics.inc("probe.timeouts", labels={"capability": self.capability.value})
            return ModelAvailability.unavailable()
        except Exception as e:
            logger.warning(
                "Availability probe for %s failed: %s", self.capability.value, e
            )
            metrics.inc("probe.errors", labels={"capability": self.capability.value})
            return ModelAvailability.unavailable()

        availability = translate_status(self._backend.lifecycle, raw)
        metrics.inc(
            "probe.results",
            labels={
                "capability": self.capability.value,
                "status": availability.status.value,
            },
        )
        metrics.observe(
            "probe.latency_ms",
            (time.monotonic() - started) * 1000,
            labels={"capability": self.capability.value},
        )
        if availability.status is ModelStatus.UNAVAILABLE:
            logger.info(
                "%s unavailable (%s)",
                self.capability.value,
                availability.reason.value if availability.reason else "unknown",
            )
        return availability
