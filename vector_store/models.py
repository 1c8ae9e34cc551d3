"""
Data Models for the Vector Store

Defines:
1. StoreConfig - Backend, collection, embedding and timeout settings
2. SourceType - The `source` discriminator carried by every record
3. Per-source metadata (TrackerMetadata, WikiMetadata, ...) converted to the
   flat string map of the wire format only at the client boundary
4. VectorRecord - The unit of storage
5. SearchResult - A single query hit with distance/similarity
6. CollectionHandle / CollectionState - Lazily resolved collection binding

Design Principles:
- Pydantic v2 for validation
- Metadata on the wire is flat `str -> str`; None becomes "" and is never omitted
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceType(str, Enum):
    """Origin of a stored record."""
    YOUTRACK = "youtrack"
    CONFLUENCE = "confluence"
    CONVERSATION = "conversation"
    MANUAL = "manual"


KNOWLEDGE_BASE_SOURCES: frozenset[str] = frozenset(
    {SourceType.YOUTRACK.value, SourceType.CONFLUENCE.value}
)


class StoreConfig(BaseModel):
    """Configuration for the vector store and the embedder."""
    backend: Literal["http", "persistent", "ephemeral"] = Field(
        "http",
        description="Vector store backend: REST server, on-disk chromadb or in-memory chromadb",
    )
    chroma_host: str = Field(
        "localhost",
        description="ChromaDB server host (http backend)",
    )
    chroma_port: int = Field(
        8000,
        description="ChromaDB server port (http backend)",
    )
    collection_name: str = Field(
        "knowledge",
        description="Collection name",
    )
    persist_directory: str = Field(
        "./chroma_db",
        description="Directory for on-disk storage (persistent backend)",
    )
    distance_metric: str = Field(
        "cosine",
        description="Distance metric bound at collection creation",
    )
    embedding_model: str = Field(
        "bge-m3",
        description="Ollama embedding model name",
    )
    ollama_base_url: str = Field(
        "http://localhost:11434",
        description="Ollama API base URL",
    )
    embedding_dimension: Optional[int] = Field(
        None,
        ge=1,
        description="Expected embedding dimension; learned from the first write if unset",
    )
    request_timeout_seconds: float = Field(
        30.0,
        gt=0,
        description="Timeout for every vector store and embedder call",
    )

    @property
    def base_url(self) -> str:
        return f"http://{self.chroma_host}:{self.chroma_port}"


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

def to_metadata_value(value: Any) -> str:
    """Coerce a metadata value to the wire's string type."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return ",".join(to_metadata_value(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


def flatten_metadata(metadata: "RecordMetadata | Mapping[str, Any] | None") -> dict[str, str]:
    """
    Convert typed or loose metadata to the flat wire map.

    Nested values are flattened (lists to comma-separated strings, dicts to
    JSON) so the backend never sees a nested or null value.
    """
    if metadata is None:
        return {}
    if isinstance(metadata, RecordMetadata):
        return metadata.to_wire()
    return {str(key): to_metadata_value(value) for key, value in metadata.items()}


class RecordMetadata(BaseModel):
    """Base class for per-source metadata."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source: str

    def to_wire(self) -> dict[str, str]:
        dumped = self.model_dump(by_alias=True)
        return {key: to_metadata_value(value) for key, value in dumped.items()}


class TrackerMetadata(RecordMetadata):
    """Metadata of an issue-tracker record."""
    source: Literal["youtrack"] = "youtrack"
    issue_id: str = Field(..., alias="issueId")
    title: Optional[str] = None
    priority: Optional[str] = None
    stage: Optional[str] = None
    requester: Optional[str] = None
    assignee: Optional[str] = None
    created_date: Optional[str] = Field(None, alias="createdDate")


class WikiMetadata(RecordMetadata):
    """Metadata of a wiki page."""
    source: Literal["confluence"] = "confluence"
    document_id: str = Field(..., alias="documentId")
    title: Optional[str] = None
    breadcrumb: Optional[str] = None
    author: Optional[str] = None
    last_modified: Optional[str] = Field(None, alias="lastModified")
    file_name: Optional[str] = Field(None, alias="fileName")


class ConversationMetadata(RecordMetadata):
    """Metadata of one conversation turn."""
    source: Literal["conversation"] = "conversation"
    user_id: Optional[str] = Field(None, alias="userId")
    session_id: Optional[str] = Field(None, alias="sessionId")
    role: str


class ManualMetadata(RecordMetadata):
    """Metadata of an ad hoc document; extra keys never override source/userId."""
    source: str = SourceType.MANUAL.value
    user_id: Optional[str] = Field(None, alias="userId")
    extra: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, str]:
        wire = {key: to_metadata_value(value) for key, value in self.extra.items()}
        wire["userId"] = to_metadata_value(self.user_id)
        wire["source"] = to_metadata_value(self.source)
        return wire


# ---------------------------------------------------------------------------
# Records and results
# ---------------------------------------------------------------------------

class VectorRecord(BaseModel):
    """A single record: id, embedding, embedded text and flat metadata."""
    id: str = Field(..., min_length=1)
    embedding: list[float]
    document: str
    metadata: dict[str, str] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """A single search result from the vector store."""
    id: str = Field(
        ...,
        description="Record id",
    )
    document: str = Field(
        "",
        description="Stored document text",
    )
    distance: float = Field(
        0.0,
        description="Distance score (0 = identical, higher = less similar)",
    )
    metadata: dict[str, str] = Field(
        default_factory=dict,
        description="Flat record metadata",
    )

    @property
    def similarity(self) -> float:
        return round(1.0 - self.distance, 6)

    @property
    def source(self) -> str:
        return self.metadata.get("source", "")


class CollectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RESOLVING = "resolving"
    READY = "ready"


@dataclass(frozen=True)
class CollectionHandle:
    """Backend-internal binding of a collection name."""
    name: str
    id: str
    metric: str
    native: Any = None
