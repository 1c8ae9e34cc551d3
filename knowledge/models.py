from typing import Any, Optional

from pydantic import BaseModel, Field

from conversation.models import GateDecision
from vector_store.models import SearchResult


class StoreDocumentRequest(BaseModel):
    content: str = Field(..., min_length=1)
    owner_id: Optional[str] = None
    source: str = Field("manual", min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConversationTurnRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class ExchangeRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    user_text: str
    assistant_text: str
    score: Optional[float] = Field(None, ge=0, le=100)


class RecordIdResponse(BaseModel):
    id: str


class ExchangeResponse(BaseModel):
    session_id: str
    state: str
    score: Optional[float] = None
    threshold: float

    @classmethod
    def from_decision(cls, decision: GateDecision) -> "ExchangeResponse":
        return cls(
            session_id=decision.exchange.session_id,
            state=decision.state.value,
            score=decision.score,
            threshold=decision.threshold,
        )


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    owner_id: Optional[str] = None
    n_results: int = Field(5, ge=1, le=50)
    source_filter: Optional[str] = None


class SearchHit(BaseModel):
    id: str
    document: str
    distance: float
    similarity: float
    source: str
    metadata: dict[str, str]

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchHit":
        return cls(
            id=result.id,
            document=result.document,
            distance=result.distance,
            similarity=result.similarity,
            source=result.source,
            metadata=result.metadata,
        )


class SearchResponse(BaseModel):
    query: str
    results: list[SearchHit] = Field(default_factory=list)


class IngestRecordsRequest(BaseModel):
    records: list[dict[str, Any]] = Field(default_factory=list)


class IngestDirectoryRequest(BaseModel):
    path: str = Field(..., min_length=1)


class DeleteDocumentsRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    deleted: str
