"""Summarizer — concise / bullets / headline."""

from __future__ import annotations

from enum import Enum

from ondevice_ai.core.errors import GenerationFailedError
from ondevice_ai.kernel.contracts import Capability
from ondevice_ai.transforms.base import TransformationAdapter


class SummarizeStyle(str, Enum):
    CONCISE = "concise"
    BULLETS = "bullets"
    HEADLINE = "headline"

    @classmethod
    def parse(cls, value: "SummarizeStyle | str | dict | None") -> "SummarizeStyle":
        """Unknown or missing styles fall back to concise."""
        if isinstance(value, dict):
            value = value.get("style")
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.CONCISE


SUMMARY_SELECTORS = {
    SummarizeStyle.CONCISE: "ONE_BULLET",
    SummarizeStyle.BULLETS: "THREE_BULLETS",
    SummarizeStyle.HEADLINE: "HEADLINE",
}

SUMMARY_TEMPLATES = {
    SummarizeStyle.CONCISE: (
        "Summarize the following text in a concise manner (2-3 sentences). "
        "Output only the summary:\n\n{text}"
    ),
    SummarizeStyle.BULLETS: (
        "Summarize the following text as 3 bullet points. "
        "Output only the bullet points:\n\n{text}"
    ),
    SummarizeStyle.HEADLINE: (
        "Create a short headline (under 10 words) summarizing the following text. "
        "Output only the headline:\n\n{text}"
    ),
}


class Summarizer(TransformationAdapter[SummarizeStyle]):
    capability = Capability.SUMMARIZE
    selectors = SUMMARY_SELECTORS
    templates = SUMMARY_TEMPLATES

    async def summarize(self, text: str, style: SummarizeStyle | str | dict | None = None) -> str:
        result = await self.run(text, SummarizeStyle.parse(style))
        if not result:
            raise GenerationFailedError(
                "Failed to summarize content", code="SUMMARIZATION_FAILED"
            )
        return result
