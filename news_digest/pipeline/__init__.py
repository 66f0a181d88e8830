"""Pipeline orchestration - scheduled and manual ingestion runs."""

from .dedup import Deduplicator
from .ingest import IngestionPipeline, BatchReport, PipelineState, run_ingestion, COLLECTION_COMPLETE

__all__ = [
    "Deduplicator", "IngestionPipeline", "BatchReport", "PipelineState",
    "run_ingestion", "COLLECTION_COMPLETE",
]
