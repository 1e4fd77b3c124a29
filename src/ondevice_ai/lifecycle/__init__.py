"""
Lifecycle Package — per-capability readiness and provisioning.

Each capability (generate, summarize, rewrite) gets its own
AvailabilityProbe / ModelProvisioner pair; state is never shared.

State machine per capability:
  unavailable → downloadable → downloading → available
  downloading → unavailable on failure (retriable)
"""

from ondevice_ai.lifecycle.availability import AvailabilityProbe, translate_status
from ondevice_ai.lifecycle.provisioner import ModelProvisioner, ProvisionEvent

__all__ = [
    "AvailabilityProbe",
    "translate_status",
    "ModelProvisioner",
    "ProvisionEvent",
]
