"""Production worker for scheduled news collection.

Runs the ingestion pipeline every ND_COLLECT_INTERVAL_MINUTES (default 10)
and once at startup. A failing run is logged and alerted; the schedule
keeps going.

Usage:
    python scripts/worker.py

Environment Variables:
    DATABASE_URL: PostgreSQL connection string (SQLite under data/ otherwise)
    ND_GEMINI_API_KEY: Gemini API key
    SLACK_WEBHOOK_URL: Optional, for alerts
"""

import os
import sys
import asyncio
import signal
from datetime import datetime

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger()


class PipelineWorker:
    """Manages the scheduled collection job."""

    def __init__(self):
        from news_digest.config.settings import settings
        from news_digest.storage.factory import get_article_storage

        self.interval_minutes = settings.collect_interval_minutes
        self.storage = get_article_storage()
        self.scheduler = AsyncIOScheduler()
        self.running = True

    def setup_jobs(self):
        """Configure scheduled jobs."""
        self.scheduler.add_job(
            self.collect_news,
            IntervalTrigger(minutes=self.interval_minutes),
            id='collect_news',
            name='Collect and summarize news',
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("jobs_configured", count=len(self.scheduler.get_jobs()),
                    interval_minutes=self.interval_minutes)

    async def collect_news(self):
        """Run one ingestion batch; never lets an exception reach the scheduler."""
        logger.info("job_started", job="collect_news")
        start_time = datetime.now()

        try:
            from news_digest.pipeline.ingest import IngestionPipeline

            pipeline = IngestionPipeline(storage=self.storage)
            report = await pipeline.run()

            elapsed = (datetime.now() - start_time).total_seconds()
            logger.info("job_completed", job="collect_news",
                        stored=report.succeeded, errors=report.errored,
                        elapsed_seconds=elapsed)
            return report.to_dict()

        except Exception as e:
            logger.error("job_failed", job="collect_news", error=str(e))
            await self.send_alert(f"News collection failed: {e}", level="error")
            return {"error": str(e)}

    async def send_alert(self, message: str, level: str = "warning"):
        """Send alert via Slack webhook (if configured)."""
        webhook_url = os.environ.get('SLACK_WEBHOOK_URL')
        if not webhook_url:
            return

        try:
            import httpx

            emoji = {
                "info": "ℹ️",
                "warning": "⚠️",
                "error": "🚨"
            }.get(level, "📢")

            async with httpx.AsyncClient() as client:
                await client.post(webhook_url, json={
                    "text": f"{emoji} *News Digest*\n{message}"
                })
        except Exception as e:
            logger.error("alert_failed", error=str(e))

    def start(self):
        """Start the worker."""
        self.setup_jobs()
        self.scheduler.start()
        logger.info("worker_started", jobs=len(self.scheduler.get_jobs()))

    def stop(self):
        """Stop the worker gracefully."""
        self.running = False
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("worker_stopped")


async def main():
    """Main entry point."""
    worker = PipelineWorker()

    # Handle graceful shutdown
    def signal_handler(signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        worker.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    worker.start()

    # Run immediately on startup
    logger.info("running_initial_collection")
    await worker.collect_news()

    while worker.running:
        await asyncio.sleep(1)

    worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
