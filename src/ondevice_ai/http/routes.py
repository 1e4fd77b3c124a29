"""
OnDevice API — REST endpoints over the client facade + SSE event streaming.

Endpoints:
    GET    /v1/availability/{capability}     → Feature status
    POST   /v1/models/{capability}/download  → Provision a model (blocks)
    GET    /v1/models/{capability}/progress  → SSE download progress
    POST   /v1/session                       → Create / replace the session
    DELETE /v1/session                       → Clear the session
    POST   /v1/generate                      → One-shot generation
    POST   /v1/stream                        → Start streaming (202, or SSE with follow)
    POST   /v1/stream/stop                   → Stop the active stream
    GET    /v1/events                        → SSE stream of onToken/onComplete/onError
    POST   /v1/summarize                     → Summarize text
    POST   /v1/rewrite                       → Rewrite text
    GET    /v1/health                        → Backend health + metrics
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, AsyncGenerator, Callable

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ondevice_ai.core.errors import (
    ContextUnavailableError,
    DownloadFailedError,
    GenerationFailedError,
    InvalidOptionsError,
    ModelUnavailableError,
    OnDeviceAIError,
    SessionNotInitializedError,
)
from ondevice_ai.core.metrics import metrics
from ondevice_ai.kernel.contracts import Capability, StreamEvent, StreamingOperation

if TYPE_CHECKING:
    from ondevice_ai.client import OnDeviceAI
    from ondevice_ai.lifecycle.provisioner import ProvisionEvent

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_ERROR_STATUS: list[tuple[type[OnDeviceAIError], int]] = [
    (SessionNotInitializedError, 400),
    (InvalidOptionsError, 400),
    (ModelUnavailableError, 503),
    (ContextUnavailableError, 503),
    (DownloadFailedError, 502),
    (GenerationFailedError, 502),
]


def error_response(error: OnDeviceAIError) -> JSONResponse:
    """Map a library error onto an HTTP status with its {code, message} body."""
    status = 500
    for error_type, code in _ERROR_STATUS:
        if isinstance(error, error_type):
            status = code
            break
    return JSONResponse({"error": error.to_dict()}, status_code=status)


def create_router(client: "OnDeviceAI") -> APIRouter:
    """Create the on-device generation router bound to one facade."""

    router = APIRouter(prefix="/v1", tags=["ondevice"])

    # ─── Availability / provisioning ──────────────────────────

    @router.get("/availability/{capability}")
    async def availability(capability: str) -> JSONResponse:
        cap = _parse_capability(capability)
        if cap is None:
            return _unknown_capability(capability)
        result = await client.check_availability(cap)
        return JSONResponse({"capability": cap.value, **result.to_dict()})

    @router.post("/models/{capability}/download")
    async def download(capability: str) -> JSONResponse:
        cap = _parse_capability(capability)
        if cap is None:
            return _unknown_capability(capability)
        try:
            success = await client.download_model(cap)
        except OnDeviceAIError as e:
            return error_response(e)
        return JSONResponse({"capability": cap.value, "success": success})

    @router.get("/models/{capability}/progress")
    async def download_progress(capability: str):
        cap = _parse_capability(capability)
        if cap is None:
            return _unknown_capability(capability)
        return StreamingResponse(
            _progress_events(client.download_progress(cap)),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    # ─── Session ──────────────────────────────────────────────

    @router.post("/session")
    async def init_session(request: Request) -> JSONResponse:
        body = await _json_body(request)
        try:
            session = await client.init_session(body)
        except OnDeviceAIError as e:
            return error_response(e)
        return JSONResponse(
            {
                "session_id": session.session_id,
                "epoch": session.generation_epoch,
                "instructions": session.instructions,
            },
            status_code=201,
        )

    @router.delete("/session")
    async def clear_session() -> JSONResponse:
        client.clear_session()
        return JSONResponse({"status": "cleared"})

    # ─── Generation ───────────────────────────────────────────

    @router.post("/generate")
    async def generate(request: Request) -> JSONResponse:
        body = await _json_body(request)
        prompt = body.get("prompt", "")
        if not prompt:
            return JSONResponse({"error": "Missing 'prompt' field"}, status_code=400)
        try:
            text = await client.generate(prompt, body)
        except OnDeviceAIError as e:
            return error_response(e)
        return JSONResponse({"text": text})

    @router.post("/stream")
    async def start_stream(request: Request):
        """
        Start a streaming generation. Returns 202 Accepted immediately.

        Tokens are delivered on GET /v1/events. With ``"follow": true`` the
        response itself is an SSE stream of this operation's events, ending
        after its completion or error, or when a session change drops it.
        """
        body = await _json_body(request)
        prompt = body.get("prompt", "")
        if not prompt:
            return JSONResponse({"error": "Missing 'prompt' field"}, status_code=400)

        queue = client.subscribe() if body.get("follow") else None
        try:
            operation = await client.start_streaming(prompt, body)
        except OnDeviceAIError as e:
            if queue is not None:
                client.unsubscribe(queue)
            return error_response(e)

        if queue is not None:
            return StreamingResponse(
                _follow(client, queue, operation.operation_id),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        return JSONResponse(
            {
                "operation_id": operation.operation_id,
                "epoch": operation.epoch,
                "status": "accepted",
                "events_url": "/v1/events",
            },
            status_code=202,
        )

    @router.post("/stream/stop")
    async def stop_stream() -> JSONResponse:
        was_streaming = client.is_streaming
        client.stop_streaming()
        return JSONResponse({"stopped": was_streaming})

    @router.get("/events")
    async def events() -> StreamingResponse:
        """SSE stream of every onToken / onComplete / onError event."""
        return StreamingResponse(
            _sse_events(client, client.subscribe()),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    # ─── Transformations ──────────────────────────────────────

    @router.post("/summarize")
    async def summarize(request: Request) -> JSONResponse:
        body = await _json_body(request)
        text = body.get("text", "")
        if not text:
            return JSONResponse({"error": "Missing 'text' field"}, status_code=400)
        try:
            summary = await client.summarize(text, body.get("style"))
        except OnDeviceAIError as e:
            return error_response(e)
        return JSONResponse({"text": summary})

    @router.post("/rewrite")
    async def rewrite(request: Request) -> JSONResponse:
        body = await _json_body(request)
        text = body.get("text", "")
        if not text:
            return JSONResponse({"error": "Missing 'text' field"}, status_code=400)
        try:
            rewritten = await client.rewrite(text, body.get("style"))
        except OnDeviceAIError as e:
            return error_response(e)
        return JSONResponse({"text": rewritten})

    # ─── Health ───────────────────────────────────────────────

    @router.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({**(await client.health()), "metrics": metrics.snapshot()})

    return router


# ─── Helpers ──────────────────────────────────────────────────


def _parse_capability(value: str) -> Capability | None:
    try:
        return Capability.parse(value)
    except ValueError:
        return None


def _unknown_capability(value: str) -> JSONResponse:
    return JSONResponse({"error": f"Unknown capability: {value}"}, status_code=404)


async def _json_body(request: Request) -> dict:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return body if isinstance(body, dict) else {}


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def _follow(
    client: "OnDeviceAI", queue: asyncio.Queue, operation_id: str
) -> AsyncGenerator[str, None]:
    """SSE for one operation. Also ends if a session change drops it."""

    def on_superseded(operation: StreamingOperation) -> None:
        if operation.operation_id == operation_id:
            client.bus.end(queue)

    # Registered before the response starts so no supersede is missed.
    remove = client.add_supersede_listener(on_superseded)
    return _sse_events(client, queue, operation_id=operation_id, on_close=remove)


async def _sse_events(
    client: "OnDeviceAI",
    queue: asyncio.Queue,
    operation_id: str | None = None,
    on_close: Callable[[], None] | None = None,
) -> AsyncGenerator[str, None]:
    """
    Format bus events as SSE.

    With an ``operation_id`` only that operation's events are sent and the
    stream ends after its terminal event. Without one it runs until the bus
    closes or the client disconnects.
    """
    try:
        async for event in client.listen(queue):
            if operation_id is not None and event.operation_id != operation_id:
                continue
            yield _sse(event.type, _event_payload(event))
            if operation_id is not None and event.type != "onToken":
                break
    finally:
        client.unsubscribe(queue)
        if on_close is not None:
            on_close()


def _event_payload(event: StreamEvent) -> dict:
    return {**event.to_dict(), "operationId": event.operation_id}


async def _progress_events(
    events: AsyncGenerator["ProvisionEvent", None],
) -> AsyncGenerator[str, None]:
    try:
        async for event in events:
            yield _sse(event.kind, event.to_dict())
    finally:
        await events.aclose()
