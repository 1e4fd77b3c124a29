"""Rewriter — professional / friendly / shorter / longer / rephrase."""

from __future__ import annotations

from enum import Enum

from ondevice_ai.kernel.contracts import Capability
from ondevice_ai.transforms.base import TransformationAdapter


class RewriteStyle(str, Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    SHORTER = "shorter"
    LONGER = "longer"
    REPHRASE = "rephrase"

    @classmethod
    def parse(cls, value: "RewriteStyle | str | None") -> "RewriteStyle":
        """Unrecognized styles rewrite as rephrase instead of failing."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.REPHRASE


REWRITE_SELECTORS = {
    RewriteStyle.PROFESSIONAL: "PROFESSIONAL",
    RewriteStyle.FRIENDLY: "FRIENDLY",
    RewriteStyle.SHORTER: "SHORTEN",
    RewriteStyle.LONGER: "ELABORATE",
    RewriteStyle.REPHRASE: "REPHRASE",
}

_STYLE_INSTRUCTIONS = {
    RewriteStyle.PROFESSIONAL: "in a professional, formal tone",
    RewriteStyle.FRIENDLY: "in a friendly, casual tone",
    RewriteStyle.SHORTER: "to be more concise while keeping the meaning",
    RewriteStyle.LONGER: "to be more detailed and elaborate",
    RewriteStyle.REPHRASE: "using different words while keeping the same meaning",
}

REWRITE_TEMPLATES = {
    style: (
        f"Rewrite the following text {instruction}. "
        "Output only the rewritten text:\n\n{text}"
    )
    for style, instruction in _STYLE_INSTRUCTIONS.items()
}


class Rewriter(TransformationAdapter[RewriteStyle]):
    capability = Capability.REWRITE
    selectors = REWRITE_SELECTORS
    templates = REWRITE_TEMPLATES

    async def rewrite(self, text: str, style: RewriteStyle | str | None = None) -> str:
        result = await self.run(text, RewriteStyle.parse(style))
        # No candidate from the backend: hand the input back unchanged.
        return result or text
