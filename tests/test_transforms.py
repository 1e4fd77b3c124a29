"""Tests for the Summarizer / Rewriter adapters."""

import asyncio

import pytest

from ondevice_ai.core.errors import GenerationFailedError, ModelUnavailableError
from ondevice_ai.kernel.contracts import Capability, ModelStatus
from ondevice_ai.transforms.rewriter import RewriteStyle
from ondevice_ai.transforms.summarizer import SummarizeStyle

ARTICLE = "The city council met on Tuesday and approved the new bike lanes."


# ─── Style parsing ───────────────────────────────────────────────


class TestStyles:
    def test_summarize_style_from_dict(self):
        assert SummarizeStyle.parse({"style": "bullets"}) is SummarizeStyle.BULLETS

    @pytest.mark.parametrize("value", [None, "poem", {}])
    def test_summarize_style_fallback(self, value):
        assert SummarizeStyle.parse(value) is SummarizeStyle.CONCISE

    def test_rewrite_style_case_insensitive(self):
        assert RewriteStyle.parse("Friendly") is RewriteStyle.FRIENDLY

    def test_rewrite_style_fallback(self):
        assert RewriteStyle.parse("pirate") is RewriteStyle.REPHRASE


# ─── Summarizer ──────────────────────────────────────────────────


class TestSummarizer:
    @pytest.mark.asyncio
    async def test_provisioned_backend_gets_selector(self, make_client, summarize_model):
        client = make_client()

        result = await client.summarize(ARTICLE, {"style": "bullets"})

        assert result == "A short summary."
        request = summarize_model.requests[0]
        assert request.selector == "THREE_BULLETS"
        assert request.text == ARTICLE
        assert request.temperature == 0.3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "style, selector",
        [("concise", "ONE_BULLET"), ("headline", "HEADLINE")],
    )
    async def test_selector_per_style(self, make_client, summarize_model, style, selector):
        client = make_client()
        await client.summarize(ARTICLE, style)
        assert summarize_model.requests[0].selector == selector

    @pytest.mark.asyncio
    async def test_implicit_backend_gets_template(self, make_client, fakes):
        backend = fakes.Implicit(reply="Council approves bike lanes")
        client = make_client(summarize=backend)

        result = await client.summarize(ARTICLE, "headline")

        assert result == "Council approves bike lanes"
        request = backend.requests[0]
        assert request.selector is None
        assert "headline" in request.text
        assert request.text.endswith(ARTICLE)

    @pytest.mark.asyncio
    async def test_empty_summary_fails(self, make_client, summarize_model):
        summarize_model.result = ""
        client = make_client()

        with pytest.raises(GenerationFailedError) as exc_info:
            await client.summarize(ARTICLE)
        assert exc_info.value.code == "SUMMARIZATION_FAILED"

    @pytest.mark.asyncio
    async def test_downloadable_model_is_provisioned_first(self, make_client, summarize_model):
        summarize_model.status = 1
        client = make_client()

        result = await client.summarize(ARTICLE)

        assert result == "A short summary."
        assert summarize_model.download_calls == 1

    @pytest.mark.asyncio
    async def test_unavailable_model_raises(self, make_client, summarize_model):
        summarize_model.status = 0
        client = make_client()

        with pytest.raises(ModelUnavailableError) as exc_info:
            await client.summarize(ARTICLE)

        assert exc_info.value.reason == "deviceNotSupported"
        assert exc_info.value.to_dict()["code"] == "MODEL_UNAVAILABLE"
        assert summarize_model.requests == []

    @pytest.mark.asyncio
    async def test_does_not_need_a_session(self, make_client):
        client = make_client(policy="strict")
        assert await client.summarize(ARTICLE) == "A short summary."
        assert client.session is None

    @pytest.mark.asyncio
    async def test_checks_its_own_capability(self, make_client, implicit_model):
        implicit_model.status = "modelNotReady"
        client = make_client()

        assert (await client.check_availability(Capability.GENERATE)).status is ModelStatus.UNAVAILABLE
        assert await client.summarize(ARTICLE) == "A short summary."

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_download(self, make_client, summarize_model):
        summarize_model.status = 1
        summarize_model.download_gate = asyncio.Event()
        client = make_client()

        first = asyncio.create_task(client.summarize(ARTICLE))
        second = asyncio.create_task(client.summarize(ARTICLE))
        await asyncio.sleep(0.01)
        summarize_model.download_gate.set()

        assert await asyncio.gather(first, second) == ["A short summary.", "A short summary."]
        assert summarize_model.download_calls == 1


# ─── Rewriter ────────────────────────────────────────────────────


class TestRewriter:
    @pytest.mark.asyncio
    async def test_implicit_backend_gets_template(self, make_client, rewrite_model):
        client = make_client()

        result = await client.rewrite("hey, send the report", "professional")

        assert result == "Rewritten text."
        request = rewrite_model.requests[0]
        assert "professional" in request.text
        assert request.text.endswith("hey, send the report")
        assert request.temperature == 0.7

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "style, selector",
        [("shorter", "SHORTEN"), ("longer", "ELABORATE"), ("unknown", "REPHRASE")],
    )
    async def test_provisioned_backend_gets_selector(self, make_client, fakes, style, selector):
        backend = fakes.Provisioned(result="Done.")
        client = make_client(rewrite=backend)

        await client.rewrite("some text", style)

        assert backend.requests[0].selector == selector

    @pytest.mark.asyncio
    async def test_empty_rewrite_returns_input(self, make_client, rewrite_model):
        rewrite_model.reply = ""
        client = make_client()
        assert await client.rewrite("keep me", "friendly") == "keep me"

    @pytest.mark.asyncio
    async def test_unavailable_model_raises(self, make_client, rewrite_model):
        rewrite_model.status = "deviceNotEligible"
        client = make_client()

        with pytest.raises(ModelUnavailableError) as exc_info:
            await client.rewrite("text")
        assert exc_info.value.reason == "deviceNotEligible"
