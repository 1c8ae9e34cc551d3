"""
Pytest fixtures for knowledge core tests.
"""

import uuid

import chromadb
import pytest

from knowledge.config import KnowledgeConfig
from knowledge.service import KnowledgeService
from vector_store.client import ChromaLocalClient
from vector_store.embedder import HashEmbedder
from vector_store.models import SearchResult

DIMENSIONS = 32


def make_result(record_id: str, distance: float, source: str = "youtrack", **metadata) -> SearchResult:
    """Build a SearchResult with a `source` tag."""
    return SearchResult(
        id=record_id,
        document=f"document {record_id}",
        distance=distance,
        metadata={"source": source, **metadata},
    )


@pytest.fixture
def embedder():
    """Deterministic offline embedder."""
    return HashEmbedder(dimensions=DIMENSIONS)


@pytest.fixture
def local_client():
    """In-memory chromadb client bound to a unique collection."""
    return ChromaLocalClient(
        collection_name=f"test_{uuid.uuid4().hex[:8]}",
        chroma_client=chromadb.EphemeralClient(),
    )


@pytest.fixture
def service(local_client, embedder):
    """KnowledgeService over an in-memory collection and the hash embedder."""
    config = KnowledgeConfig(
        backend="ephemeral",
        collection_name=local_client.collection_name,
        batch_size=2,
    )
    svc = KnowledgeService(config=config, client=local_client, embedder=embedder)
    yield svc
    svc.close()


@pytest.fixture
def tracker_rows():
    return [
        {
            "id": "X-1",
            "title": "Banner fix",
            "body": "The landing page banner overlaps the menu.",
            "comments": "[kim / 2024-05-02]: fixed in release 12",
            "priority": "Critical",
            "stage": "Staging",
            "requester": "lee",
            "assignee": "kim",
            "createdDate": "2024-05-01",
        },
        {"id": "X-2", "title": "Login timeout", "body": "Sessions expire after 5 minutes."},
        {"id": "X-3", "title": "Export to CSV", "body": "Add a CSV export to the report view."},
    ]


@pytest.fixture
def wiki_rows():
    return [
        {
            "id": "confluence-70451688",
            "title": "API guide",
            "breadcrumb": "IT Center > Spaces > TALKOOL",
            "content": "Authentication uses bearer tokens issued by the gateway.",
            "author": "park",
            "lastModified": "2024-04-30",
            "fileName": "01.API_70451688.html",
        },
    ]
