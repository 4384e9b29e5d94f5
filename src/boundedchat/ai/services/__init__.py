"""AI service helpers (context policy, summaries)."""

from .context_policy import ContextEstimate, ContextSelector, render_history
from .summarizer import SummaryAssembler, SummaryStream, SummaryUpdater, normalize_summary

__all__ = [
    "ContextEstimate",
    "ContextSelector",
    "SummaryAssembler",
    "SummaryStream",
    "SummaryUpdater",
    "normalize_summary",
    "render_history",
]
