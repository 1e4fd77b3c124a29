"""
Conversation — chat-style state over the facade's event channel.

Keeps a list of ChatMessages. send_message() appends the user message and
an empty assistant message, then starts streaming; each token is appended
to the most recent assistant message. Completion or error ends the turn,
and so does a session change (clear(), re-init, on_foreground()) that drops
the turn's operation without a terminal event.
"""

from __future__ import annotations

import logging

from ondevice_ai.client import OnDeviceAI
from ondevice_ai.kernel.contracts import (
    ChatMessage,
    CompleteEvent,
    ErrorEvent,
    GenerateOptions,
    SessionOptions,
    StreamingOperation,
    TokenEvent,
)

logger = logging.getLogger(__name__)


class Conversation:
    def __init__(self, client: OnDeviceAI, system_prompt: str | None = None) -> None:
        self._client = client
        self.system_prompt = system_prompt
        self.messages: list[ChatMessage] = []
        self.is_generating = False
        self.error: str | None = None
        self._tokens: list[str] = []
        self._operation: StreamingOperation | None = None
        self._subscriptions = [
            client.add_token_listener(self._on_token),
            client.add_completion_listener(self._on_complete),
            client.add_error_listener(self._on_error),
        ]
        self._unwatch = client.add_supersede_listener(self._on_superseded)

    @property
    def current_streaming_text(self) -> str:
        return "".join(self._tokens)

    async def start(self) -> None:
        """Initialise the session with this conversation's system prompt."""
        await self._client.init_session(SessionOptions(instructions=self.system_prompt))

    async def send_message(
        self, content: str, options: GenerateOptions | dict | None = None
    ) -> StreamingOperation:
        if self._client.session is None:
            await self.start()

        self.messages.append(ChatMessage(role="user", content=content))
        self._tokens = []
        self.error = None
        self.is_generating = True
        self.messages.append(ChatMessage(role="assistant", content=""))

        # Starting a stream cancels the previous turn; its events are not ours.
        self._operation = None
        try:
            self._operation = await self._client.start_streaming(content, options)
        except Exception as e:
            self.is_generating = False
            self.error = str(e)
            raise
        return self._operation

    def stop(self) -> None:
        self._client.stop_streaming()
        self.is_generating = False

    async def clear(self) -> None:
        """Drop the history and start over with a fresh session."""
        self.messages = []
        self._tokens = []
        self.error = None
        self._client.clear_session()
        await self.start()

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.remove()
        self._subscriptions = []
        self._unwatch()

    # ─── Event handlers ───────────────────────────────────────

    def _owns(self, event: TokenEvent | CompleteEvent | ErrorEvent) -> bool:
        operation = self._operation
        return operation is not None and event.operation_id == operation.operation_id

    def _on_token(self, event: TokenEvent) -> None:
        if not self._owns(event):
            return
        self._tokens.append(event.token)
        if self.messages and self.messages[-1].role == "assistant":
            self.messages[-1] = self.messages[-1].with_content(self.current_streaming_text)

    def _on_complete(self, event: CompleteEvent) -> None:
        if not self._owns(event):
            return
        self.is_generating = False
        logger.debug("Assistant turn finished (%s)", event.finish_reason.value)

    def _on_error(self, event: ErrorEvent) -> None:
        if not self._owns(event):
            return
        self.error = event.message
        self.is_generating = False

    def _on_superseded(self, operation: StreamingOperation) -> None:
        if self._operation is None or operation.operation_id != self._operation.operation_id:
            return
        logger.debug("Assistant turn dropped by a session change")
        self._operation = None
        self.is_generating = False
