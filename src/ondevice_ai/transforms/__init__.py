"""
Transforms Package — summarize and rewrite on top of the one-shot path.
"""

from ondevice_ai.transforms.base import TransformationAdapter
from ondevice_ai.transforms.rewriter import REWRITE_SELECTORS, Rewriter, RewriteStyle
from ondevice_ai.transforms.summarizer import SUMMARY_SELECTORS, Summarizer, SummarizeStyle

__all__ = [
    "TransformationAdapter",
    "Summarizer",
    "SummarizeStyle",
    "SUMMARY_SELECTORS",
    "Rewriter",
    "RewriteStyle",
    "REWRITE_SELECTORS",
]
