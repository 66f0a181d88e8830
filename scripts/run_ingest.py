#!/usr/bin/env python3
"""Run one ingestion batch by hand."""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from news_digest.pipeline.ingest import run_ingestion


def main():
    parser = argparse.ArgumentParser(description="Collect, summarize and store news articles")
    parser.add_argument("--category", help="Only poll feeds of this category (e.g. economy)")
    args = parser.parse_args()

    print("\n" + "=" * 50)
    print("NEWS DIGEST INGESTION")
    print("=" * 50 + "\n")

    stats = asyncio.run(run_ingestion(category=args.category))

    print("RESULTS:")
    print(f"  Feeds: {stats['feeds']} polled, {stats['feeds_failed']} failed")
    print(f"  Articles: {stats['fetched']} fetched, {stats['succeeded']} stored")
    print(f"  Summarized: {stats['summarized']}")
    print(f"  Skipped: {stats['skipped_duplicate']} duplicate, {stats['skipped_invalid']} invalid")
    print(f"  Errors: {stats['errored']}")
    print(f"TIME: {stats['elapsed_seconds']:.1f}s\n")


if __name__ == "__main__":
    main()
