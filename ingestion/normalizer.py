"""
Document Normalizer - source record to (text, flat metadata)

Pure and synchronous. Each source type has a fixed text layout:

    tracker:       [id] <id>\\n[title] <title>\\n[body]\\n<body>\\n[comments]\\n<comments>\\n
    wiki:          [id] <id>\\n[title] <title>\\n[path] <breadcrumb>\\n[content]\\n<content>\\n
    manual:        content verbatim
    conversation:  [<role>] <content>

A section whose content is blank is left out entirely, tag included. When
every optional section of a record is blank the document is empty (text "")
and must not be embedded.
"""

from typing import Any, Mapping, Union

from vector_store.models import (
    ConversationMetadata,
    ManualMetadata,
    SourceType,
    TrackerMetadata,
    WikiMetadata,
)

from .models import (
    ConversationTurn,
    ManualDocument,
    NormalizedDocument,
    SourceRecord,
    TrackerIssue,
    WikiPage,
)

RECORD_MODELS: dict[SourceType, type[SourceRecord]] = {
    SourceType.YOUTRACK: TrackerIssue,
    SourceType.CONFLUENCE: WikiPage,
    SourceType.MANUAL: ManualDocument,
    SourceType.CONVERSATION: ConversationTurn,
}


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def coerce_record(
    record: Union[SourceRecord, Mapping[str, Any]],
    source_type: SourceType | str,
) -> SourceRecord:
    """Validate a raw mapping into the record model of its source type."""
    model = RECORD_MODELS[SourceType(source_type)]
    if isinstance(record, model):
        return record
    if isinstance(record, SourceRecord):
        record = record.model_dump(by_alias=True)
    return model.model_validate(record)


class DocumentNormalizer:
    """Turns source records into NormalizedDocuments."""

    def normalize(
        self,
        record: Union[SourceRecord, Mapping[str, Any]],
        source_type: SourceType | str,
    ) -> NormalizedDocument:
        source = SourceType(source_type)
        coerced = coerce_record(record, source)

        if source is SourceType.YOUTRACK:
            return self.normalize_issue(coerced)
        if source is SourceType.CONFLUENCE:
            return self.normalize_page(coerced)
        if source is SourceType.CONVERSATION:
            return self.normalize_turn(coerced)
        return self.normalize_manual(coerced)

    def normalize_issue(self, issue: TrackerIssue) -> NormalizedDocument:
        metadata = TrackerMetadata(
            issue_id=issue.id,
            title=issue.title,
            priority=issue.priority,
            stage=issue.stage,
            requester=issue.requester,
            assignee=issue.assignee,
            created_date=issue.created_date,
        ).to_wire()

        if all(_blank(v) for v in (issue.title, issue.body, issue.comments)):
            return NormalizedDocument(id=issue.id, text="", metadata=metadata)

        parts = [f"[id] {issue.id}\n"]
        if not _blank(issue.title):
            parts.append(f"[title] {issue.title}\n")
        if not _blank(issue.body):
            parts.append(f"[body]\n{issue.body.strip()}\n")
        if not _blank(issue.comments):
            parts.append(f"[comments]\n{issue.comments.strip()}\n")
        return NormalizedDocument(id=issue.id, text="".join(parts), metadata=metadata)

    def normalize_page(self, page: WikiPage) -> NormalizedDocument:
        metadata = WikiMetadata(
            document_id=page.id,
            title=page.title,
            breadcrumb=page.breadcrumb,
            author=page.author,
            last_modified=page.last_modified,
            file_name=page.file_name,
        ).to_wire()

        if all(_blank(v) for v in (page.title, page.breadcrumb, page.content)):
            return NormalizedDocument(id=page.id, text="", metadata=metadata)

        parts = [f"[id] {page.id}\n"]
        if not _blank(page.title):
            parts.append(f"[title] {page.title}\n")
        if not _blank(page.breadcrumb):
            parts.append(f"[path] {page.breadcrumb}\n")
        if not _blank(page.content):
            parts.append(f"[content]\n{page.content.strip()}\n")
        return NormalizedDocument(id=page.id, text="".join(parts), metadata=metadata)

    def normalize_manual(self, document: ManualDocument) -> NormalizedDocument:
        metadata = ManualMetadata(
            source=document.source or SourceType.MANUAL.value,
            user_id=document.owner_id,
            extra=document.metadata,
        ).to_wire()
        text = "" if _blank(document.content) else document.content
        return NormalizedDocument(id=document.id, text=text, metadata=metadata)

    def normalize_turn(self, turn: ConversationTurn) -> NormalizedDocument:
        metadata = ConversationMetadata(
            user_id=turn.owner_id,
            session_id=turn.session_id,
            role=turn.role,
        ).to_wire()
        text = "" if _blank(turn.content) else f"[{turn.role}] {turn.content}"
        return NormalizedDocument(id=turn.id, text=text, metadata=metadata)
