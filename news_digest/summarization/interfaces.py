"""Result types for the summarization gateway."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SummaryStatus(Enum):
    """Final status of one summarization request."""
    OK = "ok"
    NO_CONTENT = "no_content"
    OVERLOADED = "overloaded"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    INTERRUPTED = "interrupted"


RATE_LIMITED_TEXT = "Error: Rate limit exceeded, please try again later"
OVERLOADED_TEXT = "Error: Gemini API is currently overloaded, please try again later"
INTERRUPTED_TEXT = "Error: Retry interrupted"
NO_CONTENT_TEXT = "No response generated"


@dataclass(frozen=True)
class SummaryResult:
    """What the gateway hands back: generated text or an error-tagged string."""
    status: SummaryStatus
    text: str
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is SummaryStatus.OK and bool(self.text.strip())

    def __str__(self) -> str:
        return self.text


class AttemptKind(Enum):
    """Classification of a single call to the remote service."""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptOutcome:
    """Tagged result of one HTTP attempt; the retry loop iterates over these."""
    kind: AttemptKind
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.kind is AttemptKind.RETRYABLE

    @classmethod
    def success(cls, text: Optional[str]) -> "AttemptOutcome":
        return cls(AttemptKind.SUCCESS, text=text)

    @classmethod
    def overloaded(cls, error: str) -> "AttemptOutcome":
        return cls(AttemptKind.RETRYABLE, error=error)

    @classmethod
    def fatal(cls, error: str) -> "AttemptOutcome":
        return cls(AttemptKind.FATAL, error=error)
