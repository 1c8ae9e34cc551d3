"""
Knowledge Service - the operations the chat backend calls

Wires the embedder, vector store client, ingestion pipeline, retrieval
aggregator, search cache and conversation gate together. Every mutating
operation invalidates the search cache.

Usage:
    from knowledge import KnowledgeConfig, KnowledgeService

    service = KnowledgeService(KnowledgeConfig.from_env())
    doc_id = service.store_document("Release checklist ...", owner_id="u-1")
    hits = service.search_all_sources("release checklist", owner_id="u-1", n=5)
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from conversation.gate import ConversationMemoryGate
from conversation.models import CompletedExchange, GateDecision
from ingestion.models import ConversationTurn, DirectoryIngestReport, IngestReport, ManualDocument
from ingestion.normalizer import DocumentNormalizer
from ingestion.pipeline import IngestionPipeline, RecordInput
from ingestion.sources import DirectoryIngestor, SourceParser
from retrieval.aggregator import RetrievalAggregator
from retrieval.cache import SearchCache
from retrieval.context_builder import ContextBuildResult, build_context
from vector_store.client import VectorStoreClient, create_client
from vector_store.embedder import Embedder, OllamaEmbedder
from vector_store.exceptions import EmptyDocumentError, RecordValidationError
from vector_store.models import SearchResult, SourceType

from .config import KnowledgeConfig

logger = logging.getLogger(__name__)


class KnowledgeService:
    """Facade over the vector knowledge core."""

    def __init__(
        self,
        config: Optional[KnowledgeConfig] = None,
        client: Optional[VectorStoreClient] = None,
        embedder: Optional[Embedder] = None,
        parsers: Optional[Mapping[str, SourceParser]] = None,
    ):
        """
        Args:
            config: Service settings (read from the environment if None).
            client: Vector store client (built from config if None).
            embedder: Embedder (Ollama from config if None).
            parsers: Spreadsheet/HTML parsers for directory ingestion.
        """
        self.config = config or KnowledgeConfig.from_env()
        cfg = self.config

        self.client = client or create_client(cfg.store_config())
        self.embedder = embedder or OllamaEmbedder(
            model=cfg.embedding_model,
            base_url=cfg.ollama_base_url,
            timeout=cfg.request_timeout_seconds,
        )
        self.normalizer = DocumentNormalizer()
        self.cache = SearchCache(enabled=cfg.search_cache_enabled)

        self.pipeline = IngestionPipeline(
            self.client,
            self.embedder,
            batch_size=cfg.batch_size,
            normalizer=self.normalizer,
            on_write=self.cache.invalidate_all,
        )
        self.directory_ingestor = DirectoryIngestor(
            self.pipeline,
            parsers=parsers,
            min_wiki_content_length=cfg.min_wiki_content_length,
        )
        self.aggregator = RetrievalAggregator(
            self.client,
            self.embedder,
            cache=self.cache,
            merge_factor=cfg.merge_factor,
            knowledge_sources=cfg.knowledge_sources,
            parallel_queries=cfg.parallel_queries,
        )
        self.gate = ConversationMemoryGate(
            self,
            threshold=cfg.relevance_threshold,
            max_workers=cfg.writeback_workers,
        )

        self.client.initialize()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store_document(
        self,
        content: str,
        owner_id: Optional[str],
        source: str = SourceType.MANUAL.value,
        extra_metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Embed and add one ad hoc document under a fresh id.

        Raises:
            EmptyDocumentError: If the content is blank.
            EmbeddingError / VectorStoreError: On embed or store failure.
        """
        if not source or not str(source).strip():
            raise RecordValidationError("Document source must not be blank")

        document = self.normalizer.normalize_manual(ManualDocument(
            content=content,
            owner_id=owner_id,
            source=str(source),
            metadata=dict(extra_metadata or {}),
        ))
        self._add(document.id, document.text, document.metadata)
        logger.info("Document stored: %s (source: %s, owner: %s)", document.id, source, owner_id)
        return document.id

    def store_conversation_turn(self, session_id: str, owner_id: str, role: str, content: str) -> str:
        """Embed and add one conversation turn under a fresh `conv_` id."""
        turn = self.normalizer.normalize_turn(ConversationTurn(
            session_id=session_id,
            owner_id=owner_id,
            role=role,
            content=content,
        ))
        self._add(turn.id, turn.text, turn.metadata)
        logger.debug("Conversation turn stored: %s (session: %s, role: %s)", turn.id, session_id, role)
        return turn.id

    def _add(self, record_id: str, text: str, metadata: dict[str, str]) -> None:
        if not text:
            raise EmptyDocumentError(record_id)
        embedding = self.embedder.embed(text)
        try:
            self.client.add([record_id], [embedding], [text], [metadata])
        finally:
            self.cache.invalidate_all()

    def ingest(self, records: Iterable[RecordInput], source_type: SourceType | str) -> IngestReport:
        return self.pipeline.ingest(records, source_type)

    def upsert_record(self, record: RecordInput, source_type: SourceType | str) -> str:
        """Upsert one tracker issue or wiki page; errors propagate."""
        return self.pipeline.upsert_single(record, source_type)

    def ingest_directory(self, path: str | Path) -> DirectoryIngestReport:
        return self.directory_ingestor.ingest_directory(path)

    def stop_ingestion(self) -> None:
        self.pipeline.stop()

    def complete_exchange(
        self,
        session_id: str,
        owner_id: str,
        user_text: str,
        assistant_text: str,
        score: Optional[float],
    ) -> GateDecision:
        """Hand a finished, scored exchange to the memory gate. Never raises."""
        exchange = CompletedExchange(
            session_id=session_id,
            owner_id=owner_id,
            user_text=user_text,
            assistant_text=assistant_text,
        )
        return self.gate.on_exchange_completed(exchange, score)

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete_documents(self, ids: list[str]) -> None:
        try:
            self.client.delete_by_ids(ids)
        finally:
            self.cache.invalidate_all()
        logger.info("Deleted %d documents", len(ids))

    def delete_by_owner(self, owner_id: str) -> None:
        self._delete_where("userId", owner_id)

    def delete_by_session(self, session_id: str) -> None:
        self._delete_where("sessionId", session_id)

    def delete_by_source(self, source_type: SourceType | str) -> None:
        self._delete_where("source", SourceType(source_type).value)

    def _delete_where(self, key: str, value: Optional[str]) -> None:
        if not value or not str(value).strip():
            raise RecordValidationError(f"Refusing to delete by blank {key}")
        try:
            self.client.delete_by_filter({key: value})
        finally:
            self.cache.invalidate_all()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_relevant_context(self, query: str, owner_id: str, n: int = 5) -> list[SearchResult]:
        return self.aggregator.search_relevant_context(query, owner_id, n)

    def search_knowledge_base(
        self,
        query: str,
        n: int = 5,
        source_filter: Optional[str] = None,
    ) -> list[SearchResult]:
        return self.aggregator.search_knowledge_base(query, n, source_filter)

    def search_all_sources(self, query: str, owner_id: Optional[str], n: int = 5) -> list[SearchResult]:
        return self.aggregator.search_multi_source(query, owner_id, n)

    def build_context(
        self,
        query: str,
        owner_id: Optional[str],
        n: int = 5,
        max_tokens: Optional[int] = None,
    ) -> ContextBuildResult:
        results = self.search_all_sources(query, owner_id, n)
        return build_context(results, max_tokens or self.config.max_context_tokens)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def health_check(self) -> dict[str, Any]:
        store = self.client.health_check()
        embedder_health = {"healthy": True, "error": ""}
        health_fn = getattr(self.embedder, "health_check", None)
        if callable(health_fn):
            embedder_health = health_fn()

        return {
            "healthy": bool(store.get("vector_store_ok")) and bool(embedder_health.get("healthy")),
            "vector_store": store,
            "embedder": embedder_health,
            "cache_entries": len(self.cache),
            "pending_writebacks": self.gate.pending,
        }

    def close(self) -> None:
        self.gate.shutdown(wait=True)
