"""Gateway to the Gemini generateContent API.

Every summarization call in the process goes through one gateway instance so
that a single semaphore bounds the load on the remote service, whichever feed
the article came from. Calls never raise for remote failures: the caller gets a
``SummaryResult`` whose text is either the summary or an error-tagged string.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp
import structlog
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_exponential

from .interfaces import (
    AttemptKind, AttemptOutcome, SummaryResult, SummaryStatus,
    INTERRUPTED_TEXT, NO_CONTENT_TEXT, OVERLOADED_TEXT, RATE_LIMITED_TEXT,
)
from .prompt import NO_BODY_REPLY, build_summary_prompt
from ..config.settings import settings
from ..errors import ConfigurationError

logger = structlog.get_logger()

OVERLOAD_MARKERS = ("The model is overloaded", "model overloaded")


def is_overloaded(error_body: Optional[str]) -> bool:
    """Gemini reports overload only in the error text, not with a distinct code."""
    if not error_body:
        return False
    return any(marker in error_body for marker in OVERLOAD_MARKERS)


def build_request_body(prompt: str, thinking_budget: int = None) -> dict:
    """Request envelope for generateContent."""
    if thinking_budget is None:
        thinking_budget = settings.gemini_thinking_budget
    return {
        "contents": [{
            "parts": [{
                "text": prompt
            }]
        }],
        "generationConfig": {
            "thinkingConfig": {
                "thinkingBudget": thinking_budget
            }
        }
    }


def extract_text(payload) -> Optional[str]:
    """First candidate's first part text, or None for an empty or malformed envelope."""
    try:
        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        parts = candidates[0].get("content", {}).get("parts") or []
        if not parts:
            return None
        text = parts[0].get("text")
    except (AttributeError, TypeError, IndexError):
        return None
    return text if isinstance(text, str) else None


class _RetryInterrupted(Exception):
    """Backoff sleep was cancelled."""


class SummarizationGateway:
    """Bounded-concurrency, retrying client for article summaries."""

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        session: aiohttp.ClientSession = None,
        text_extractor=None,
        capacity: int = None,
        permit_timeout: float = None,
        max_retries: int = None,
        initial_backoff: float = None,
        backoff_multiplier: float = None,
        sleep=None,
    ):
        self.api_key = api_key or settings.gemini_api_key
        if not self.api_key:
            raise ConfigurationError("Gemini API key not configured. Set ND_GEMINI_API_KEY environment variable.")
        self.model = model or settings.gemini_model
        self.api_url = f"{settings.gemini_api_base}/{self.model}:generateContent"

        self.capacity = capacity or settings.gemini_max_concurrency
        self.permit_timeout = settings.gemini_permit_timeout_seconds if permit_timeout is None else permit_timeout
        self.max_retries = settings.gemini_max_retries if max_retries is None else max_retries
        self.initial_backoff = initial_backoff or settings.gemini_initial_backoff_seconds
        self.backoff_multiplier = backoff_multiplier or settings.gemini_backoff_multiplier

        self.semaphore = asyncio.Semaphore(self.capacity)
        self.text_extractor = text_extractor
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep or asyncio.sleep

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=settings.gemini_request_timeout_seconds),
                headers={"Content-Type": "application/json"}
            )
            self._owns_session = True
        return self._session

    async def close(self):
        """Close HTTP session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _acquire_permit(self) -> bool:
        """Wait up to permit_timeout for a permit.

        The acquire runs as its own task so a permit granted while the wait
        is being abandoned is either kept or handed back, never leaked.
        """
        acquire = asyncio.ensure_future(self.semaphore.acquire())
        try:
            done, _ = await asyncio.wait({acquire}, timeout=self.permit_timeout)
        except asyncio.CancelledError:
            acquire.cancel()
            acquire.add_done_callback(self._release_if_acquired)
            raise
        if done:
            return True

        acquire.cancel()
        try:
            await acquire
        except asyncio.CancelledError:
            if acquire.cancelled():
                return False
            # Caller cancelled while the acquire was winding down
            acquire.add_done_callback(self._release_if_acquired)
            raise
        # Granted while being cancelled
        return True

    def _release_if_acquired(self, acquire: asyncio.Future) -> None:
        if not acquire.cancelled() and acquire.exception() is None:
            self.semaphore.release()

    @asynccontextmanager
    async def _permit(self):
        """Yield True while holding a permit, False if none freed up in time."""
        if not await self._acquire_permit():
            yield False
            return
        logger.debug("summary_permit_acquired")
        try:
            yield True
        finally:
            self.semaphore.release()
            logger.debug("summary_permit_released")

    async def summarize(self, url: str, title: str) -> SummaryResult:
        """Summarize the article at url; falls back to the URL when its body can't be read."""
        body = None
        if self.text_extractor is not None:
            body = await self.text_extractor.extract(url)
        if body is None:
            logger.warning("article_body_unavailable", url=url)

        prompt = build_summary_prompt(title, body, url=url)
        return await self.generate(prompt)

    async def generate(self, prompt: str) -> SummaryResult:
        """Generate content for prompt under the concurrency budget."""
        async with self._permit() as acquired:
            if not acquired:
                logger.warning("summary_rate_limited", wait_seconds=self.permit_timeout)
                return SummaryResult(SummaryStatus.RATE_LIMITED, RATE_LIMITED_TEXT)
            return await self._generate_with_retry(prompt)

    async def _generate_with_retry(self, prompt: str) -> SummaryResult:
        attempts = 0

        async def attempt() -> AttemptOutcome:
            nonlocal attempts
            attempts += 1
            return await self._attempt(prompt)

        retrying = AsyncRetrying(
            retry=retry_if_result(lambda outcome: outcome.retryable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.initial_backoff, exp_base=self.backoff_multiplier),
            sleep=self._backoff,
            before_sleep=self._log_retry,
            retry_error_callback=lambda state: state.outcome.result(),
        )

        try:
            outcome = await retrying(attempt)
        except _RetryInterrupted:
            logger.error("summary_retry_interrupted", attempts=attempts)
            # Keep the cancellation pending for the caller's next await
            task = asyncio.current_task()
            if task is not None:
                task.cancel()
            return SummaryResult(SummaryStatus.INTERRUPTED, INTERRUPTED_TEXT, attempts)
        except Exception as e:
            logger.error("summary_unexpected_error", error=str(e))
            return SummaryResult(SummaryStatus.FAILED, f"Error generating content: {e}", attempts)

        if outcome.kind is AttemptKind.RETRYABLE:
            logger.error("summary_still_overloaded", retries=self.max_retries)
            return SummaryResult(SummaryStatus.OVERLOADED, OVERLOADED_TEXT, attempts)

        if outcome.kind is AttemptKind.FATAL:
            logger.error("summary_failed", error=outcome.error)
            return SummaryResult(
                SummaryStatus.FAILED, f"Error generating content: {outcome.error}", attempts
            )

        text = (outcome.text or "").strip()
        if not text:
            logger.warning("summary_no_content")
            return SummaryResult(SummaryStatus.NO_CONTENT, NO_CONTENT_TEXT, attempts)
        if text == NO_BODY_REPLY:
            return SummaryResult(SummaryStatus.NO_CONTENT, text, attempts)
        return SummaryResult(SummaryStatus.OK, text, attempts)

    async def _backoff(self, seconds: float) -> None:
        try:
            await self._sleep(seconds)
        except asyncio.CancelledError:
            raise _RetryInterrupted()

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            "summary_retry",
            attempt=retry_state.attempt_number,
            max_retries=self.max_retries,
            delay_ms=int(retry_state.next_action.sleep * 1000),
        )

    async def _attempt(self, prompt: str) -> AttemptOutcome:
        """One POST to the API, classified as success, retryable or fatal."""
        session = await self._get_session()
        try:
            async with session.post(
                self.api_url,
                params={"key": self.api_key},
                json=build_request_body(prompt),
            ) as response:
                if response.status != 200:
                    error_body = await response.text()
                    if is_overloaded(error_body):
                        return AttemptOutcome.overloaded(f"HTTP {response.status}")
                    return AttemptOutcome.fatal(f"HTTP {response.status}: {error_body[:200]}")

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    logger.error("summary_parse_error", error=str(e))
                    return AttemptOutcome.success(None)
                return AttemptOutcome.success(extract_text(data))

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return AttemptOutcome.fatal(str(e) or type(e).__name__)
