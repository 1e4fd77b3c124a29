"""
Tests for kernel contracts.

These tests verify that:
1. Option parsing accepts objects, wire dicts and None
2. Bad option values raise InvalidOptionsError with a stable code
3. Stream events serialise to their wire shape
"""

import pytest

from ondevice_ai.core.errors import InvalidOptionsError
from ondevice_ai.kernel.contracts import (
    CompleteEvent,
    FinishReason,
    GenerateOptions,
    SessionOptions,
    TokenEvent,
)


class TestGenerateOptions:
    """Tests for GenerateOptions.parse / resolve."""

    def test_wire_alias(self):
        opts = GenerateOptions.parse({"temperature": "0.2", "maxTokens": "16"})
        assert opts == GenerateOptions(temperature=0.2, max_tokens=16)

    def test_none_uses_defaults(self):
        opts = GenerateOptions.parse(None).resolve(0.7, 256)
        assert opts == GenerateOptions(temperature=0.7, max_tokens=256)

    def test_temperature_is_clamped(self):
        assert GenerateOptions.parse({"temperature": 3}).resolve(0.7, 256).temperature == 1.0
        assert GenerateOptions.parse({"temperature": -1}).resolve(0.7, 256).temperature == 0.0

    @pytest.mark.parametrize(
        "value",
        [
            {"maxTokens": "lots"},
            {"temperature": "hot"},
            {"max_tokens": [5]},
            {"maxTokens": 0},
            {"maxTokens": -2},
        ],
    )
    def test_invalid_values_rejected(self, value):
        with pytest.raises(InvalidOptionsError) as exc_info:
            GenerateOptions.parse(value)
        assert exc_info.value.to_dict()["code"] == "INVALID_OPTIONS"

    def test_options_object_is_checked_too(self):
        with pytest.raises(InvalidOptionsError):
            GenerateOptions.parse(GenerateOptions(max_tokens=0))

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidOptionsError):
            GenerateOptions.parse("fast")  # type: ignore[arg-type]


class TestSessionOptions:
    def test_system_prompt_alias(self):
        assert SessionOptions.parse({"systemPrompt": "Be brief."}).instructions == "Be brief."

    def test_empty_instructions_become_none(self):
        assert SessionOptions.parse({"instructions": ""}).instructions is None

    def test_non_string_instructions_rejected(self):
        with pytest.raises(InvalidOptionsError):
            SessionOptions.parse({"instructions": 42})


class TestStreamEvents:
    def test_wire_shapes(self):
        token = TokenEvent(token="Hi", index=0, epoch=1, operation_id="op")
        complete = CompleteEvent(total_tokens=1, finish_reason=FinishReason.COMPLETE)

        assert token.to_dict() == {"token": "Hi", "index": 0}
        assert token.type == "onToken"
        assert complete.to_dict() == {"totalTokens": 1, "finishReason": "complete"}
