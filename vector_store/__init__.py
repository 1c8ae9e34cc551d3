"""
Vector Store Module - similarity store client and embedders

Holds the record model, the collection-aware client (REST or in-process
chromadb) and the embedders used by ingestion and retrieval.

Quick Start:
    from vector_store import StoreConfig, create_client, HashEmbedder

    client = create_client(StoreConfig(backend="ephemeral"))
    embedder = HashEmbedder()

    vector = embedder.embed("[id] X-1\\n[title] Banner fix\\n")
    client.upsert(["X-1"], [vector], ["[id] X-1\\n[title] Banner fix\\n"],
                  [{"source": "youtrack"}])
    hits = client.query(vector, k=3)
"""

__version__ = "1.0.0"

from .client import (
    ChromaHttpClient,
    ChromaLocalClient,
    VectorStoreClient,
    build_where,
    create_client,
)
from .embedder import Embedder, HashEmbedder, OllamaEmbedder
from .exceptions import (
    CollectionUnavailableError,
    DimensionMismatchError,
    EmbeddingError,
    EmptyDocumentError,
    KnowledgeCoreError,
    MissingFieldsError,
    RecordValidationError,
    VectorStoreError,
)
from .models import (
    KNOWLEDGE_BASE_SOURCES,
    CollectionHandle,
    CollectionState,
    ConversationMetadata,
    ManualMetadata,
    RecordMetadata,
    SearchResult,
    SourceType,
    StoreConfig,
    TrackerMetadata,
    VectorRecord,
    WikiMetadata,
)

__all__ = [
    "__version__",
    "VectorStoreClient",
    "ChromaHttpClient",
    "ChromaLocalClient",
    "create_client",
    "build_where",
    "Embedder",
    "OllamaEmbedder",
    "HashEmbedder",
    "StoreConfig",
    "SourceType",
    "KNOWLEDGE_BASE_SOURCES",
    "RecordMetadata",
    "TrackerMetadata",
    "WikiMetadata",
    "ConversationMetadata",
    "ManualMetadata",
    "VectorRecord",
    "SearchResult",
    "CollectionHandle",
    "CollectionState",
    "KnowledgeCoreError",
    "VectorStoreError",
    "CollectionUnavailableError",
    "RecordValidationError",
    "MissingFieldsError",
    "DimensionMismatchError",
    "EmptyDocumentError",
    "EmbeddingError",
]
