from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from ingestion.models import DirectoryIngestReport, IngestReport
from vector_store.exceptions import RecordValidationError, VectorStoreError

from .config import KnowledgeConfig
from .logging_config import setup_logging
from .models import (
    ConversationTurnRequest,
    DeleteDocumentsRequest,
    DeleteResponse,
    ExchangeRequest,
    ExchangeResponse,
    IngestDirectoryRequest,
    IngestRecordsRequest,
    RecordIdResponse,
    SearchHit,
    SearchRequest,
    SearchResponse,
    StoreDocumentRequest,
)
from .service import KnowledgeService


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (RecordValidationError, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, VectorStoreError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def create_app(
    config: KnowledgeConfig | None = None,
    service: KnowledgeService | None = None,
) -> FastAPI:
    if service is None:
        cfg = config or KnowledgeConfig.from_env()
        setup_logging(cfg.log_level, cfg.log_file)
        service = KnowledgeService(cfg)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        service.close()

    app = FastAPI(
        title="Knowledge Core",
        version="1.0.0",
        description="Vector knowledge store: ingestion, multi-source search and conversation memory.",
        lifespan=lifespan,
    )
    app.state.service = service

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", **service.health_check()}

    @app.post("/documents", response_model=RecordIdResponse)
    def store_document(request: StoreDocumentRequest) -> RecordIdResponse:
        try:
            doc_id = service.store_document(
                request.content, request.owner_id, request.source, request.metadata,
            )
        except Exception as exc:
            raise _http_error(exc) from exc
        return RecordIdResponse(id=doc_id)

    @app.post("/conversations/turns", response_model=RecordIdResponse)
    def store_turn(request: ConversationTurnRequest) -> RecordIdResponse:
        try:
            record_id = service.store_conversation_turn(
                request.session_id, request.owner_id, request.role, request.content,
            )
        except Exception as exc:
            raise _http_error(exc) from exc
        return RecordIdResponse(id=record_id)

    @app.post("/conversations/exchanges", response_model=ExchangeResponse)
    def complete_exchange(request: ExchangeRequest) -> ExchangeResponse:
        decision = service.complete_exchange(
            request.session_id,
            request.owner_id,
            request.user_text,
            request.assistant_text,
            request.score,
        )
        return ExchangeResponse.from_decision(decision)

    @app.post("/search/context", response_model=SearchResponse)
    def search_context(request: SearchRequest) -> SearchResponse:
        if not request.owner_id:
            raise HTTPException(status_code=400, detail="owner_id is required")
        results = service.search_relevant_context(request.query, request.owner_id, request.n_results)
        return SearchResponse(query=request.query, results=[SearchHit.from_result(r) for r in results])

    @app.post("/search/knowledge-base", response_model=SearchResponse)
    def search_knowledge_base(request: SearchRequest) -> SearchResponse:
        results = service.search_knowledge_base(request.query, request.n_results, request.source_filter)
        return SearchResponse(query=request.query, results=[SearchHit.from_result(r) for r in results])

    @app.post("/search/all", response_model=SearchResponse)
    def search_all(request: SearchRequest) -> SearchResponse:
        results = service.search_all_sources(request.query, request.owner_id, request.n_results)
        return SearchResponse(query=request.query, results=[SearchHit.from_result(r) for r in results])

    @app.post("/ingest/directory", response_model=DirectoryIngestReport)
    def ingest_directory(request: IngestDirectoryRequest) -> DirectoryIngestReport:
        try:
            return service.ingest_directory(request.path)
        except Exception as exc:
            raise _http_error(exc) from exc

    @app.post("/ingest/{source_type}", response_model=IngestReport)
    def ingest(source_type: str, request: IngestRecordsRequest) -> IngestReport:
        try:
            return service.ingest(request.records, source_type)
        except Exception as exc:
            raise _http_error(exc) from exc

    @app.post("/documents/delete", response_model=DeleteResponse)
    def delete_documents(request: DeleteDocumentsRequest) -> DeleteResponse:
        try:
            service.delete_documents(request.ids)
        except Exception as exc:
            raise _http_error(exc) from exc
        return DeleteResponse(deleted=f"{len(request.ids)} ids")

    @app.delete("/owners/{owner_id}/documents", response_model=DeleteResponse)
    def delete_by_owner(owner_id: str) -> DeleteResponse:
        try:
            service.delete_by_owner(owner_id)
        except Exception as exc:
            raise _http_error(exc) from exc
        return DeleteResponse(deleted=f"userId={owner_id}")

    @app.delete("/sessions/{session_id}/documents", response_model=DeleteResponse)
    def delete_by_session(session_id: str) -> DeleteResponse:
        try:
            service.delete_by_session(session_id)
        except Exception as exc:
            raise _http_error(exc) from exc
        return DeleteResponse(deleted=f"sessionId={session_id}")

    @app.delete("/sources/{source_type}/documents", response_model=DeleteResponse)
    def delete_by_source(source_type: str) -> DeleteResponse:
        try:
            service.delete_by_source(source_type)
        except Exception as exc:
            raise _http_error(exc) from exc
        return DeleteResponse(deleted=f"source={source_type}")

    return app
