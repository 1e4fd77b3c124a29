"""
Kernel Package — session and streaming-generation core.

Architecture:
  OnDeviceAI (facade) → SessionManager → GenerationCoordinator
      → CapabilityBackend → EventBus → subscribers
"""

from ondevice_ai.kernel.contracts import (
    Capability,
    ChatMessage,
    CompleteEvent,
    ErrorEvent,
    FinishReason,
    GenerateOptions,
    InferenceRequest,
    InferenceResult,
    ModelAvailability,
    ModelStatus,
    Session,
    SessionOptions,
    StreamEvent,
    StreamingOperation,
    TokenEvent,
    UnavailableReason,
)
from ondevice_ai.kernel.coordinator import GenerationCoordinator
from ondevice_ai.kernel.event_bus import EventBus, StreamChannel, Subscription
from ondevice_ai.kernel.session import SessionManager

__all__ = [
    # Contracts
    "Capability",
    "ChatMessage",
    "CompleteEvent",
    "ErrorEvent",
    "FinishReason",
    "GenerateOptions",
    "InferenceRequest",
    "InferenceResult",
    "ModelAvailability",
    "ModelStatus",
    "Session",
    "SessionOptions",
    "StreamEvent",
    "StreamingOperation",
    "TokenEvent",
    "UnavailableReason",
    # Core
    "EventBus",
    "StreamChannel",
    "Subscription",
    "SessionManager",
    "GenerationCoordinator",
]
