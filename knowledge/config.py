"""
Configuration for the knowledge core service.

All settings have defaults suitable for a single-host deployment (Chroma
server on localhost:8000, Ollama on localhost:11434). `from_env()` reads
KNOWLEDGE_* variables (plus OLLAMA_BASE_URL).
"""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

from vector_store.models import KNOWLEDGE_BASE_SOURCES, StoreConfig


class KnowledgeConfig(BaseModel):
    """Settings of the vector store, ingestion, retrieval and write-back."""

    # Vector store
    backend: Literal["http", "persistent", "ephemeral"] = Field(
        "http",
        description="Vector store backend",
    )
    chroma_host: str = Field("localhost", description="ChromaDB server host")
    chroma_port: int = Field(8000, description="ChromaDB server port")
    collection_name: str = Field("knowledge", description="Collection name")
    persist_directory: str = Field(
        "./chroma_db",
        description="Directory for the persistent backend",
    )
    distance_metric: str = Field("cosine", description="Collection distance metric")
    request_timeout_seconds: float = Field(
        30.0,
        gt=0,
        description="Timeout for every vector store and embedder call",
    )

    # Embedding
    embedding_model: str = Field("bge-m3", description="Ollama embedding model")
    ollama_base_url: str = Field("http://localhost:11434", description="Ollama API base URL")
    embedding_dimension: Optional[int] = Field(
        None,
        ge=1,
        description="Expected embedding dimension (learned from the first write if unset)",
    )

    # Ingestion
    batch_size: int = Field(50, ge=1, description="Records per upsert batch")
    min_wiki_content_length: int = Field(
        50,
        ge=0,
        description="Wiki pages without breadcrumb need at least this much content",
    )

    # Retrieval
    merge_factor: int = Field(2, ge=1, description="Multi-source results are capped at merge_factor * n")
    knowledge_sources: list[str] = Field(
        default_factory=lambda: sorted(KNOWLEDGE_BASE_SOURCES),
        description="Source types searched as the curated knowledge base",
    )
    search_cache_enabled: bool = Field(True, description="Cache multi-source searches")
    parallel_queries: bool = Field(False, description="Run multi-source sub-queries concurrently")
    max_context_tokens: int = Field(2048, ge=1, description="Token budget of built LLM context")

    # Conversation write-back
    relevance_threshold: float = Field(
        70,
        ge=0,
        le=100,
        description="Minimum relevance score for storing an exchange",
    )
    writeback_workers: int = Field(1, ge=1, description="Background write-back threads")

    # Logging
    log_level: str = Field("INFO", description="Log level name")
    log_file: Optional[str] = Field(None, description="Optional log file path")

    def store_config(self) -> StoreConfig:
        return StoreConfig(
            backend=self.backend,
            chroma_host=self.chroma_host,
            chroma_port=self.chroma_port,
            collection_name=self.collection_name,
            persist_directory=self.persist_directory,
            distance_metric=self.distance_metric,
            embedding_model=self.embedding_model,
            ollama_base_url=self.ollama_base_url,
            embedding_dimension=self.embedding_dimension,
            request_timeout_seconds=self.request_timeout_seconds,
        )

    @classmethod
    def from_env(cls) -> "KnowledgeConfig":
        defaults = cls()

        def _str(name: str, default: Optional[str]) -> Optional[str]:
            return os.environ.get(name) or default

        def _int(name: str, default: Optional[int]) -> Optional[int]:
            value = os.environ.get(name)
            return int(value) if value else default

        def _float(name: str, default: float) -> float:
            value = os.environ.get(name)
            return float(value) if value else default

        def _bool(name: str, default: bool) -> bool:
            value = os.environ.get(name)
            if not value:
                return default
            return value.strip().lower() in {"1", "true", "yes", "on"}

        def _list(name: str, default: list[str]) -> list[str]:
            value = os.environ.get(name)
            if not value:
                return default
            return [item.strip() for item in value.split(",") if item.strip()]

        return cls(
            backend=_str("KNOWLEDGE_BACKEND", defaults.backend),
            chroma_host=_str("KNOWLEDGE_CHROMA_HOST", defaults.chroma_host),
            chroma_port=_int("KNOWLEDGE_CHROMA_PORT", defaults.chroma_port),
            collection_name=_str("KNOWLEDGE_COLLECTION_NAME", defaults.collection_name),
            persist_directory=_str("KNOWLEDGE_PERSIST_DIRECTORY", defaults.persist_directory),
            distance_metric=_str("KNOWLEDGE_DISTANCE_METRIC", defaults.distance_metric),
            request_timeout_seconds=_float("KNOWLEDGE_REQUEST_TIMEOUT_SECONDS", defaults.request_timeout_seconds),
            embedding_model=_str("KNOWLEDGE_EMBEDDING_MODEL", defaults.embedding_model),
            ollama_base_url=_str("OLLAMA_BASE_URL", defaults.ollama_base_url),
            embedding_dimension=_int("KNOWLEDGE_EMBEDDING_DIMENSION", defaults.embedding_dimension),
            batch_size=_int("KNOWLEDGE_BATCH_SIZE", defaults.batch_size),
            min_wiki_content_length=_int("KNOWLEDGE_MIN_WIKI_CONTENT_LENGTH", defaults.min_wiki_content_length),
            merge_factor=_int("KNOWLEDGE_MERGE_FACTOR", defaults.merge_factor),
            knowledge_sources=_list("KNOWLEDGE_SOURCES", defaults.knowledge_sources),
            search_cache_enabled=_bool("KNOWLEDGE_SEARCH_CACHE_ENABLED", defaults.search_cache_enabled),
            parallel_queries=_bool("KNOWLEDGE_PARALLEL_QUERIES", defaults.parallel_queries),
            max_context_tokens=_int("KNOWLEDGE_MAX_CONTEXT_TOKENS", defaults.max_context_tokens),
            relevance_threshold=_float("KNOWLEDGE_RELEVANCE_THRESHOLD", defaults.relevance_threshold),
            writeback_workers=_int("KNOWLEDGE_WRITEBACK_WORKERS", defaults.writeback_workers),
            log_level=_str("KNOWLEDGE_LOG_LEVEL", defaults.log_level),
            log_file=_str("KNOWLEDGE_LOG_FILE", defaults.log_file),
        )
