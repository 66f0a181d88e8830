"""Unit tests for the summarization gateway."""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock, MagicMock
from structlog.testing import capture_logs

from conftest import FakeGeminiSession, SleepRecorder, OVERLOADED_BODY, gemini_payload
from news_digest.errors import ConfigurationError
from news_digest.summarization.gateway import (
    SummarizationGateway, build_request_body, extract_text, is_overloaded,
)
from news_digest.summarization.interfaces import INTERRUPTED_TEXT, SummaryStatus
from news_digest.summarization.prompt import NO_BODY_REPLY, build_summary_prompt


def make_gateway(session, **kwargs):
    kwargs.setdefault("sleep", SleepRecorder())
    return SummarizationGateway(api_key="test-key", model="gemini-test", session=session, **kwargs)


class TestOverloadPredicate:
    """Tests for is_overloaded."""

    def test_detects_markers(self):
        assert is_overloaded(OVERLOADED_BODY)
        assert is_overloaded("upstream says: model overloaded")

    def test_other_errors_are_not_overload(self):
        assert not is_overloaded('{"error": {"code": 400, "message": "API key not valid"}}')
        assert not is_overloaded("")
        assert not is_overloaded(None)


class TestEnvelope:
    """Tests for request and response envelopes."""

    def test_request_body_shape(self):
        body = build_request_body("Summarize this", thinking_budget=0)
        assert body["contents"][0]["parts"][0]["text"] == "Summarize this"
        assert body["generationConfig"]["thinkingConfig"]["thinkingBudget"] == 0

    def test_extract_first_candidate_text(self):
        payload = json.loads(gemini_payload("Three sentences."))
        assert extract_text(payload) == "Three sentences."

    @pytest.mark.parametrize("payload", [
        {},
        {"candidates": []},
        {"candidates": [{}]},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"inlineData": {}}]}}]},
        {"candidates": "nonsense"},
        [],
        None,
    ])
    def test_missing_or_malformed_is_none(self, payload):
        assert extract_text(payload) is None


class TestPrompt:
    """Tests for the summary prompt."""

    def test_prompt_contains_title_and_body(self):
        prompt = build_summary_prompt("Rates rise", "The central bank raised rates.")
        assert "- Title: Rates rise" in prompt
        assert "- Body: The central bank raised rates." in prompt

    def test_prompt_requests_fixed_sentence_count(self):
        prompt = build_summary_prompt("T", "B", sentences=3)
        assert "exactly 3 complete sentences" in prompt

    def test_prompt_forbids_fabrication(self):
        prompt = build_summary_prompt("T", "B")
        assert "Never add facts that are not in the source" in prompt
        assert "opinions or speculation" in prompt

    def test_prompt_forbids_meta_commentary(self):
        prompt = build_summary_prompt("T", "B")
        assert "Output only the summary" in prompt
        assert "commentary" in prompt

    def test_url_fallback_when_body_missing(self):
        prompt = build_summary_prompt("T", None, url="https://news.example.com/1")
        assert "- Body: URL: https://news.example.com/1" in prompt
        assert NO_BODY_REPLY in prompt

    def test_braces_in_title_are_safe(self):
        prompt = build_summary_prompt("Index {up} 3%", "B")
        assert "Index {up} 3%" in prompt


class TestGatewayConfig:
    """Tests for gateway construction."""

    def test_missing_api_key_rejected(self, monkeypatch):
        from news_digest.config.settings import settings
        monkeypatch.setattr(settings, "gemini_api_key", None)
        with pytest.raises(ConfigurationError):
            SummarizationGateway()

    def test_endpoint_uses_model(self):
        gateway = make_gateway(FakeGeminiSession([(200, gemini_payload("x"))]))
        assert gateway.api_url.endswith("/gemini-test:generateContent")


@pytest.mark.asyncio
class TestGatewayGenerate:
    """Tests for generate with a scripted remote service."""

    async def test_success(self):
        session = FakeGeminiSession([(200, gemini_payload("A short summary."))])
        gateway = make_gateway(session)

        result = await gateway.generate("prompt")

        assert result.status is SummaryStatus.OK
        assert result.ok
        assert result.text == "A short summary."
        assert len(session.calls) == 1
        assert session.calls[0]["params"] == {"key": "test-key"}
        assert session.calls[0]["json"]["contents"][0]["parts"][0]["text"] == "prompt"

    async def test_overloaded_then_success(self):
        """N overloads then success: N+1 calls and the backoff schedule."""
        sleep = SleepRecorder()
        session = FakeGeminiSession([(503, OVERLOADED_BODY)] * 3 + [(200, gemini_payload("Done."))])
        gateway = make_gateway(session, sleep=sleep)

        result = await gateway.generate("prompt")

        assert result.ok
        assert result.text == "Done."
        assert len(session.calls) == 4
        assert result.attempts == 4
        assert sleep.delays == pytest.approx([1.0, 1.5, 2.25])

    async def test_always_overloaded_stops_after_six_attempts(self):
        """1 initial call + 5 retries, then a bounded overloaded result."""
        sleep = SleepRecorder()
        session = FakeGeminiSession([(503, OVERLOADED_BODY)])
        gateway = make_gateway(session, sleep=sleep)

        result = await gateway.generate("prompt")

        assert result.status is SummaryStatus.OVERLOADED
        assert result.text.startswith("Error")
        assert not result.ok
        assert len(session.calls) == 6
        assert sleep.delays == pytest.approx([1.0, 1.5, 2.25, 3.375, 5.0625])

    async def test_non_overload_error_not_retried(self):
        """Bad request or auth failures surface immediately."""
        session = FakeGeminiSession([(400, '{"error": {"message": "API key not valid"}}')])
        gateway = make_gateway(session)

        result = await gateway.generate("prompt")

        assert result.status is SummaryStatus.FAILED
        assert result.text.startswith("Error generating content: HTTP 400")
        assert len(session.calls) == 1

    async def test_client_error_not_retried(self):
        """Connection failures are fatal for this call."""
        import aiohttp

        session = MagicMock()
        session.closed = False
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("connection reset"))
        gateway = make_gateway(session)

        result = await gateway.generate("prompt")

        assert result.status is SummaryStatus.FAILED
        assert "connection reset" in result.text
        assert session.post.call_count == 1

    async def test_empty_candidates_is_no_content(self):
        session = FakeGeminiSession([(200, json.dumps({"candidates": []}))])
        gateway = make_gateway(session)

        result = await gateway.generate("prompt")

        assert result.status is SummaryStatus.NO_CONTENT
        assert result.text == "No response generated"
        assert not result.ok

    async def test_malformed_json_is_no_content(self):
        session = FakeGeminiSession([(200, "{not json")])
        gateway = make_gateway(session)

        result = await gateway.generate("prompt")

        assert result.status is SummaryStatus.NO_CONTENT

    async def test_no_body_reply_is_not_a_summary(self):
        session = FakeGeminiSession([(200, gemini_payload(NO_BODY_REPLY))])
        gateway = make_gateway(session)

        result = await gateway.generate("prompt")

        assert result.status is SummaryStatus.NO_CONTENT
        assert not result.ok

    async def test_interrupted_backoff_aborts(self):
        """A cancelled backoff sleep stops retrying and releases the permit."""
        async def cancelled_sleep(seconds):
            raise asyncio.CancelledError()

        session = FakeGeminiSession([(503, OVERLOADED_BODY)])
        gateway = make_gateway(session, sleep=cancelled_sleep)

        task = asyncio.create_task(gateway.generate("prompt"))
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(session.calls) == 1
        assert not gateway.semaphore.locked()

    async def test_interrupted_backoff_result(self):
        """The retry loop reports INTERRUPTED and re-arms the cancellation."""
        async def cancelled_sleep(seconds):
            raise asyncio.CancelledError()

        session = FakeGeminiSession([(503, OVERLOADED_BODY)])
        gateway = make_gateway(session, sleep=cancelled_sleep)
        results = []

        async def run():
            with capture_logs() as logs:
                results.append(await gateway._generate_with_retry("prompt"))
            results.append(logs)
            await asyncio.sleep(0)

        task = asyncio.create_task(run())
        with pytest.raises(asyncio.CancelledError):
            await task

        result, logs = results
        assert result.status is SummaryStatus.INTERRUPTED
        assert result.text == INTERRUPTED_TEXT
        assert result.attempts == 1
        assert task.cancelled()
        assert "summary_retry_interrupted" in [entry["event"] for entry in logs]


@pytest.mark.asyncio
class TestGatewayConcurrency:
    """Tests for the permit budget."""

    async def test_never_exceeds_capacity(self):
        """Peak in-flight calls stay within the configured capacity."""
        session = FakeGeminiSession([(200, gemini_payload("ok"))], delay=0.01)
        gateway = make_gateway(session, capacity=3)

        results = await asyncio.gather(*(gateway.generate(f"p{i}") for i in range(12)))

        assert all(r.ok for r in results)
        assert len(session.calls) == 12
        assert 1 <= session.peak <= 3

    async def test_permit_timeout_returns_rate_limited(self):
        """Callers give up after the wait ceiling instead of queuing forever."""
        session = FakeGeminiSession([(200, gemini_payload("ok"))], delay=0.2)
        gateway = make_gateway(session, capacity=1, permit_timeout=0.02)

        first = asyncio.create_task(gateway.generate("slow"))
        await asyncio.sleep(0.01)
        second = await gateway.generate("waiting")
        first_result = await first

        assert second.status is SummaryStatus.RATE_LIMITED
        assert second.text == "Error: Rate limit exceeded, please try again later"
        assert first_result.ok
        assert len(session.calls) == 1

    async def test_permit_granted_during_timeout_not_lost(self):
        """A permit that arrives as the wait gives up is used, then released."""
        class LateSemaphore(asyncio.Semaphore):
            async def acquire(self):
                try:
                    await asyncio.sleep(0.05)
                except asyncio.CancelledError:
                    pass
                return await super().acquire()

        session = FakeGeminiSession([(200, gemini_payload("ok"))])
        gateway = make_gateway(session, capacity=1, permit_timeout=0.01)
        gateway.semaphore = LateSemaphore(1)

        result = await gateway.generate("prompt")

        assert result.ok
        assert len(session.calls) == 1
        assert not gateway.semaphore.locked()

    async def test_cancelled_waiter_does_not_leak_permit(self):
        """Cancelling a caller queued for a permit leaves the budget intact."""
        session = FakeGeminiSession([(200, gemini_payload("ok"))], delay=0.05)
        gateway = make_gateway(session, capacity=1, permit_timeout=5)

        holder = asyncio.create_task(gateway.generate("first"))
        await asyncio.sleep(0.01)
        waiter = asyncio.create_task(gateway.generate("second"))
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert (await holder).ok
        await asyncio.sleep(0.01)
        assert not gateway.semaphore.locked()
        assert len(session.calls) == 1

    async def test_permit_released_on_every_path(self):
        """Success, error and overload all give the permit back."""
        for responses in (
            [(200, gemini_payload("ok"))],
            [(400, "bad request")],
            [(503, OVERLOADED_BODY)],
        ):
            gateway = make_gateway(FakeGeminiSession(responses), capacity=1)
            await gateway.generate("prompt")
            assert not gateway.semaphore.locked()


@pytest.mark.asyncio
class TestGatewaySummarize:
    """Tests for summarize with body extraction."""

    async def test_uses_extracted_body(self):
        session = FakeGeminiSession([(200, gemini_payload("Summary."))])
        extractor = MagicMock()
        extractor.extract = AsyncMock(return_value="Full article body text.")
        gateway = make_gateway(session, text_extractor=extractor)

        result = await gateway.summarize("https://news.example.com/1", "Rates rise")

        assert result.ok
        extractor.extract.assert_awaited_once_with("https://news.example.com/1")
        prompt = session.calls[0]["json"]["contents"][0]["parts"][0]["text"]
        assert "Full article body text." in prompt
        assert "Rates rise" in prompt

    async def test_falls_back_to_url(self):
        session = FakeGeminiSession([(200, gemini_payload("Summary."))])
        extractor = MagicMock()
        extractor.extract = AsyncMock(return_value=None)
        gateway = make_gateway(session, text_extractor=extractor)

        await gateway.summarize("https://news.example.com/1", "Rates rise")

        prompt = session.calls[0]["json"]["contents"][0]["parts"][0]["text"]
        assert "URL: https://news.example.com/1" in prompt
