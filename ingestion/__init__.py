"""
Ingestion Module - source records to vector records

Normalizes issue-tracker rows, wiki pages, manual documents and conversation
turns into (text, flat metadata) and upserts them in isolated batches.

Quick Start:
    from ingestion import IngestionPipeline
    from vector_store import SourceType

    pipeline = IngestionPipeline(client, embedder)
    report = pipeline.ingest([{"id": "X-1", "title": "Banner fix"}], SourceType.YOUTRACK)
"""

from .models import (
    ConversationTurn,
    DirectoryIngestReport,
    FileIngestResult,
    IngestReport,
    ManualDocument,
    NormalizedDocument,
    TrackerIssue,
    WikiPage,
)
from .normalizer import DocumentNormalizer
from .pipeline import IngestionPipeline, check_required_fields
from .sources import DirectoryIngestor, SourceParser, wiki_page_id

__all__ = [
    "TrackerIssue",
    "WikiPage",
    "ManualDocument",
    "ConversationTurn",
    "NormalizedDocument",
    "IngestReport",
    "FileIngestResult",
    "DirectoryIngestReport",
    "DocumentNormalizer",
    "IngestionPipeline",
    "check_required_fields",
    "DirectoryIngestor",
    "SourceParser",
    "wiki_page_id",
]
