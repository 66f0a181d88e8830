"""Article summarization through the Gemini API."""

from .interfaces import SummaryResult, SummaryStatus, AttemptOutcome, AttemptKind
from .gateway import SummarizationGateway, is_overloaded, extract_text, build_request_body
from .prompt import build_summary_prompt

__all__ = [
    "SummaryResult", "SummaryStatus", "AttemptOutcome", "AttemptKind",
    "SummarizationGateway", "is_overloaded", "extract_text", "build_request_body",
    "build_summary_prompt",
]
