"""
Kernel Contracts — data structures shared by the session/generation core.

These contracts define the interface between:
- Backends (report status, stream tokens)
- Kernel (probe, provision, session, generation)
- Consumers (facade, chat layer, HTTP binding)

Value objects are frozen dataclasses. StreamingOperation is the one
mutable record; it is only touched by the GenerationCoordinator.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union

from ondevice_ai.core.errors import InvalidOptionsError


class Capability(str, Enum):
    """The three independently probed and provisioned features."""

    GENERATE = "generate"
    SUMMARIZE = "summarize"
    REWRITE = "rewrite"

    @classmethod
    def parse(cls, value: "Capability | str | None") -> "Capability":
        if value is None:
            return cls.GENERATE
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())


class ModelStatus(str, Enum):
    AVAILABLE = "available"
    DOWNLOADING = "downloading"
    DOWNLOADABLE = "downloadable"
    UNAVAILABLE = "unavailable"


class UnavailableReason(str, Enum):
    APPLE_INTELLIGENCE_NOT_ENABLED = "appleIntelligenceNotEnabled"
    DEVICE_NOT_ELIGIBLE = "deviceNotEligible"
    MODEL_NOT_READY = "modelNotReady"
    DEVICE_NOT_SUPPORTED = "deviceNotSupported"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ModelAvailability:
    """Canonical feature status. ``reason`` is set only when unavailable."""

    status: ModelStatus
    reason: UnavailableReason | None = None

    @classmethod
    def available(cls) -> "ModelAvailability":
        return cls(ModelStatus.AVAILABLE)

    @classmethod
    def downloading(cls) -> "ModelAvailability":
        return cls(ModelStatus.DOWNLOADING)

    @classmethod
    def downloadable(cls) -> "ModelAvailability":
        return cls(ModelStatus.DOWNLOADABLE)

    @classmethod
    def unavailable(
        cls, reason: UnavailableReason = UnavailableReason.UNKNOWN
    ) -> "ModelAvailability":
        return cls(ModelStatus.UNAVAILABLE, reason)

    @property
    def is_available(self) -> bool:
        return self.status is ModelStatus.AVAILABLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason.value if self.reason else None,
        }


class FinishReason(str, Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    MAX_TOKENS = "maxTokens"


# ─── Options ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionOptions:
    instructions: str | None = None

    @classmethod
    def parse(cls, value: "SessionOptions | dict | None") -> "SessionOptions":
        """Accept an options object, a wire dict (``systemPrompt`` alias) or None."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise InvalidOptionsError(
                f"Session options must be a mapping, got {type(value).__name__}"
            )
        instructions = value.get("instructions", value.get("systemPrompt"))
        if instructions is not None and not isinstance(instructions, str):
            raise InvalidOptionsError("instructions must be a string")
        return cls(instructions=instructions or None)


@dataclass(frozen=True)
class GenerateOptions:
    """Per-call generation settings. None means "use the configured default"."""

    temperature: float | None = None
    max_tokens: int | None = None

    @classmethod
    def parse(cls, value: "GenerateOptions | dict | None") -> "GenerateOptions":
        """Accept an options object, a wire dict (``maxTokens`` alias) or None.

        Raises InvalidOptionsError for values that are not numbers or a
        ``max_tokens`` below 1.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return cls._checked(value.temperature, value.max_tokens)
        if not isinstance(value, Mapping):
            raise InvalidOptionsError(
                f"Generation options must be a mapping, got {type(value).__name__}"
            )
        return cls._checked(
            value.get("temperature"), value.get("max_tokens", value.get("maxTokens"))
        )

    @classmethod
    def _checked(cls, temperature: Any, max_tokens: Any) -> "GenerateOptions":
        try:
            temp = float(temperature) if temperature is not None else None
            limit = int(max_tokens) if max_tokens is not None else None
        except (TypeError, ValueError) as e:
            raise InvalidOptionsError(f"Invalid generation options: {e}") from e
        if limit is not None and limit < 1:
            raise InvalidOptionsError(f"max_tokens must be at least 1, got {limit}")
        return cls(temperature=temp, max_tokens=limit)

    def resolve(self, temperature: float, max_tokens: int) -> "GenerateOptions":
        """Fill in defaults and clamp temperature into [0, 1]."""
        temp = temperature if self.temperature is None else self.temperature
        return GenerateOptions(
            temperature=min(1.0, max(0.0, temp)),
            max_tokens=max_tokens if self.max_tokens is None else self.max_tokens,
        )


@dataclass(frozen=True)
class InferenceRequest:
    """The one request shape every backend receives.

    ``selector`` is the output-shape configuration picked by a
    transformation style (e.g. THREE_BULLETS, SHORTEN); None for plain
    generation.
    """

    text: str
    instructions: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None
    selector: str | None = None


@dataclass(frozen=True)
class InferenceResult:
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


# ─── Session / streaming state ───────────────────────────────────


@dataclass(frozen=True)
class Session:
    """The live configuration generation runs against.

    Replaced wholesale on re-init; ``generation_epoch`` only ever grows.
    """

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    instructions: str | None = None
    generation_epoch: int = 0
    created_at: float = field(default_factory=time.time)


@dataclass
class StreamingOperation:
    """One in-flight streaming generation."""

    epoch: int
    max_tokens: int | None = None
    next_index: int = 0
    cancelled: bool = False
    operation_id: str = field(default_factory=lambda: str(uuid.uuid4()))


# ─── Stream events (tagged union) ────────────────────────────────


@dataclass(frozen=True)
class TokenEvent:
    token: str
    index: int
    epoch: int = 0
    operation_id: str = ""
    type: str = field(default="onToken", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"token": self.token, "index": self.index}


@dataclass(frozen=True)
class CompleteEvent:
    total_tokens: int
    finish_reason: FinishReason
    epoch: int = 0
    operation_id: str = ""
    type: str = field(default="onComplete", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTokens": self.total_tokens,
            "finishReason": self.finish_reason.value,
        }


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    code: str
    epoch: int = 0
    operation_id: str = ""
    type: str = field(default="onError", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code}


StreamEvent = Union[TokenEvent, CompleteEvent, ErrorEvent]

EVENT_TYPES = ("onToken", "onComplete", "onError")


# ─── Chat ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChatMessage:
    role: str  # user | assistant
    content: str = ""
    message_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)

    def with_content(self, content: str) -> "ChatMessage":
        """Return a copy with replaced content."""
        return ChatMessage(
            role=self.role,
            content=content,
            message_id=self.message_id,
            timestamp=self.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
