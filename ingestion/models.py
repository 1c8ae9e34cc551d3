"""
Data Models for the Ingestion Pipeline

Defines:
1. Source records - TrackerIssue, WikiPage, ManualDocument, ConversationTurn
2. NormalizedDocument - Linearized text + flat metadata ready for embedding
3. IngestReport - Outcome of one ingest run
4. DirectoryIngestReport - Outcome of a directory run (one entry per file)

Design Principles:
- Pydantic v2 for validation; the external field names of the exports
  (createdDate, lastModified, fileName, userId, sessionId) are accepted as aliases
- Scalar fields are coerced to str on input (spreadsheet cells and JSON
  numbers arrive untyped)
- Manual documents and conversation turns get generated ids
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_str(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return value


class SourceRecord(BaseModel):
    """Base class for records handed to the normalizer."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _scalars_to_str(cls, value: Any) -> Any:
        return _coerce_str(value)


class TrackerIssue(SourceRecord):
    """One issue exported from the issue tracker (one spreadsheet row)."""
    id: str = Field(..., description="Issue id, e.g. 'PATALK-1246'; the record key")
    title: Optional[str] = None
    body: Optional[str] = None
    comments: Optional[str] = Field(
        None,
        description="Raw comment thread text",
    )
    priority: Optional[str] = None
    stage: Optional[str] = None
    requester: Optional[str] = None
    assignee: Optional[str] = None
    created_date: Optional[str] = Field(None, alias="createdDate")


class WikiPage(SourceRecord):
    """One page exported from the wiki (one HTML file)."""
    id: str = Field(..., description="Page id taken from the export file name")
    title: Optional[str] = None
    breadcrumb: Optional[str] = Field(
        None,
        description="Location path, e.g. 'IT Center > Spaces > TALKOOL'",
    )
    content: Optional[str] = None
    author: Optional[str] = None
    last_modified: Optional[str] = Field(None, alias="lastModified")
    file_name: Optional[str] = Field(None, alias="fileName")


class ManualDocument(SourceRecord):
    """An ad hoc document (uploaded text, API call)."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: Optional[str] = None
    owner_id: Optional[str] = Field(None, alias="userId")
    source: str = "manual"
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, value: Any) -> Any:
        return value or {}


def new_conversation_id() -> str:
    return f"conv_{uuid.uuid4()}"


class ConversationTurn(SourceRecord):
    """One turn (user or assistant) of a chat session."""
    id: str = Field(default_factory=new_conversation_id)
    session_id: Optional[str] = Field(None, alias="sessionId")
    owner_id: Optional[str] = Field(None, alias="userId")
    role: str
    content: Optional[str] = None


@dataclass(frozen=True)
class NormalizedDocument:
    """Normalizer output: the embedded text and the flat wire metadata."""
    id: str
    text: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.text


class IngestReport(BaseModel):
    """
    Outcome of one ingest run.

    total counts distinct records after repeated ids are collapsed (see
    duplicates); records left unprocessed after stop() are neither
    succeeded nor failed.
    """
    source: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = Field(0, description="Empty documents dropped before embedding")
    duplicates: int = Field(0, description="Repeated ids collapsed within this run")
    failed_ids: list[str] = Field(default_factory=list)
    skipped_ids: list[str] = Field(default_factory=list)
    stopped: bool = False
    elapsed_seconds: float = 0.0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped


class FileIngestResult(BaseModel):
    """Result for one file of a directory run."""
    path: str
    source: Optional[str] = None
    report: Optional[IngestReport] = None
    error: str = ""


class DirectoryIngestReport(BaseModel):
    """Outcome of a directory run."""
    directory: str
    files: list[FileIngestResult] = Field(default_factory=list)
    ignored: list[str] = Field(
        default_factory=list,
        description="Files without a known source type",
    )

    @property
    def errors(self) -> dict[str, str]:
        return {f.path: f.error for f in self.files if f.error}

    @property
    def total(self) -> int:
        return sum(f.report.total for f in self.files if f.report)

    @property
    def succeeded(self) -> int:
        return sum(f.report.succeeded for f in self.files if f.report)

    @property
    def failed(self) -> int:
        return sum(f.report.failed for f in self.files if f.report)

    @property
    def skipped(self) -> int:
        return sum(f.report.skipped for f in self.files if f.report)
