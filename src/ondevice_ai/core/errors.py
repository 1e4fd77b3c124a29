"""
Error taxonomy — every failure the core surfaces carries a stable code.

One-shot operations raise these. Streaming failures after start are
reported as onError events with the same codes instead.
"""

from __future__ import annotations


class OnDeviceAIError(Exception):
    """Base class. ``code`` is stable, ``message`` is for humans."""

    code = "ON_DEVICE_AI_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class SessionNotInitializedError(OnDeviceAIError):
    code = "SESSION_NOT_INITIALIZED"

    def __init__(self, message: str = "Session not initialized. Call init_session() first.") -> None:
        super().__init__(message)


class ModelUnavailableError(OnDeviceAIError):
    code = "MODEL_UNAVAILABLE"

    def __init__(self, capability: str, reason: str | None = None) -> None:
        self.capability = capability
        self.reason = reason or "unknown"
        super().__init__(f"Model for '{capability}' is unavailable ({self.reason})")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "reason": self.reason}


class DownloadFailedError(OnDeviceAIError):
    code = "DOWNLOAD_FAILED"

    def __init__(self, capability: str, cause: BaseException | str | None = None) -> None:
        self.capability = capability
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Model download for '{capability}' failed{detail}")


class GenerationFailedError(OnDeviceAIError):
    code = "GENERATION_FAILED"

    def __init__(
        self,
        message: str = "Failed to generate content",
        cause: BaseException | None = None,
        code: str | None = None,
    ) -> None:
        self.cause = cause
        super().__init__(message, code=code)


class ContextUnavailableError(OnDeviceAIError):
    """The host environment (runtime connection, app context) is not ready."""

    code = "CONTEXT_UNAVAILABLE"

    def __init__(self, message: str = "Host context is not available") -> None:
        super().__init__(message)


class InvalidOptionsError(OnDeviceAIError):
    """Caller-supplied options could not be parsed or are out of range."""

    code = "INVALID_OPTIONS"
