"""Pytest configuration and shared fixtures."""

import asyncio
import json
import pytest
import tempfile
import os
from pathlib import Path

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))


SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Economy</title>
    <link>https://news.example.com</link>
    <description>Economy news</description>
    <item>
      <title>&lt;b&gt;Rates&lt;/b&gt;   rise
        again</title>
      <link>https://news.example.com/articles/1</link>
      <description>&lt;p&gt;The central bank&lt;br/&gt;   raised rates.&lt;/p&gt;</description>
      <pubDate>Mon, 06 Jan 2025 09:30:00 GMT</pubDate>
    </item>
    <item>
      <title>Exports climb</title>
      <link>https://news.example.com/articles/2</link>
    </item>
  </channel>
</rss>
"""


@pytest.fixture
def temp_db():
    """Provide a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield f"sqlite:///{db_path}"
    # Cleanup
    try:
        os.unlink(db_path)
    except FileNotFoundError:
        pass


@pytest.fixture
def storage(temp_db):
    """ArticleStorage on a temporary database."""
    from news_digest.storage.database import ArticleStorage
    return ArticleStorage(temp_db)


@pytest.fixture
def sample_descriptor():
    """Provide a sample feed descriptor."""
    from news_digest.ingestion.interfaces import FeedDescriptor
    return FeedDescriptor(
        url="https://news.example.com/rss/economy.xml",
        category="economy",
        source_name="Example News",
    )


@pytest.fixture
def sample_candidate():
    """Provide a sample ArticleCandidate."""
    from datetime import datetime
    from news_digest.ingestion.interfaces import ArticleCandidate
    return ArticleCandidate(
        source_name="Example News",
        title="Central bank raises rates to 3.5%",
        summary="The central bank raised its policy rate by a quarter point on Monday.",
        published_at=datetime(2025, 1, 6, 9, 30, 0),
        url="https://news.example.com/articles/1",
        category_id=1,
    )


class FakeResponse:
    """Minimal stand-in for an aiohttp response."""

    def __init__(self, status: int = 200, body: str = "", session=None):
        self.status = status
        self.body = body
        self.session = session

    async def __aenter__(self):
        if self.session is not None:
            await self.session.enter()
        return self

    async def __aexit__(self, *args):
        if self.session is not None:
            self.session.exit()

    async def text(self):
        return self.body

    async def read(self):
        return self.body.encode()

    async def json(self, content_type="application/json"):
        return json.loads(self.body)

    def raise_for_status(self):
        if self.status >= 400:
            raise RuntimeError(f"HTTP {self.status}")


def gemini_payload(text: str) -> str:
    """A generateContent response body carrying text."""
    return json.dumps({
        "candidates": [{
            "content": {"parts": [{"text": text}], "role": "model"},
            "finishReason": "STOP",
        }]
    })


OVERLOADED_BODY = json.dumps({
    "error": {"code": 503, "message": "The model is overloaded. Please try again later.", "status": "UNAVAILABLE"}
})


class FakeGeminiSession:
    """Replays scripted (status, body) responses for POSTs, repeating the last one."""

    def __init__(self, responses, delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.peak = 0
        self.closed = False

    def post(self, url, params=None, json=None):
        self.calls.append({"url": url, "params": params, "json": json})
        index = min(len(self.calls), len(self.responses)) - 1
        status, body = self.responses[index]
        return FakeResponse(status, body, session=self)

    async def enter(self):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        if self.delay:
            await asyncio.sleep(self.delay)

    def exit(self):
        self.in_flight -= 1


class FakeFeedSession:
    """Serves feed content by URL for GET requests."""

    def __init__(self, feeds):
        self.feeds = feeds
        self.requested = []
        self.closed = False

    def get(self, url):
        self.requested.append(url)
        status, body = self.feeds.get(url, (404, ""))
        return FakeResponse(status, body)


class SleepRecorder:
    """Records backoff delays without sleeping."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)
