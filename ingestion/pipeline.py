"""
Ingestion Pipeline - bulk upsert of normalized documents

Pipeline:
    records ──► required-field check ──► dedupe ids ──► batches of N
        per batch: normalize ──► drop empty ──► embed each ──► one upsert

A failing batch is logged and its ids collected into the report; later
batches still run. A blank id or an absent required key fails the whole
call before anything is processed.

Usage:
    from ingestion import IngestionPipeline

    pipeline = IngestionPipeline(client, embedder, batch_size=50)
    report = pipeline.ingest(rows, SourceType.YOUTRACK)
    print(f"{report.succeeded}/{report.total} stored, failed: {report.failed_ids}")
"""

import logging
import threading
import time
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from vector_store.client import VectorStoreClient
from vector_store.embedder import Embedder
from vector_store.exceptions import EmptyDocumentError, MissingFieldsError, format_error_chain
from vector_store.models import SourceType

from .models import IngestReport, NormalizedDocument, SourceRecord
from .normalizer import DocumentNormalizer

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

REQUIRED_FIELDS: dict[SourceType, tuple[str, ...]] = {
    SourceType.YOUTRACK: ("id", "title"),
    SourceType.CONFLUENCE: ("id", "title"),
}

RecordInput = Union[SourceRecord, Mapping[str, Any]]
ProgressCallback = Callable[[int, int, str], None]


def record_field(record: RecordInput, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _has_field(record: RecordInput, name: str) -> bool:
    if isinstance(record, Mapping):
        return name in record
    return hasattr(record, name)


def _blank_id(record: RecordInput) -> bool:
    record_id = record_field(record, "id")
    return record_id is None or not str(record_id).strip()


def check_required_fields(records: Sequence[RecordInput], source_type: SourceType) -> None:
    """
    Fail fast when mandatory fields are absent.

    Every required key must be present on every record, even if its value
    is empty; only the id must also carry a non-blank value. A record with
    a null title is an ordinary record that may normalize to an empty
    document.

    Raises:
        MissingFieldsError: Listing the missing field names and the
            positions of the offending records.
    """
    required = REQUIRED_FIELDS.get(source_type, ())
    if not required:
        return

    missing: set[str] = set()
    offenders: list[str] = []
    for position, record in enumerate(records):
        absent = [name for name in required if not _has_field(record, name)]
        if "id" not in absent and _blank_id(record):
            absent.append("id")
        if absent:
            missing.update(absent)
            offenders.append(f"#{position}")

    if missing:
        raise MissingFieldsError(sorted(missing), record_ids=offenders, source=source_type.value)


def dedupe_records(records: Sequence[RecordInput]) -> tuple[list[RecordInput], int]:
    """
    Collapse repeated ids: the first position is kept, the last content wins.

    Records without an explicit id (generated later) are never collapsed.
    """
    positions: dict[str, int] = {}
    unique: list[RecordInput] = []
    duplicates = 0

    for record in records:
        record_id = record_field(record, "id")
        if record_id is None:
            unique.append(record)
            continue
        key = str(record_id)
        if key in positions:
            unique[positions[key]] = record
            duplicates += 1
        else:
            positions[key] = len(unique)
            unique.append(record)

    return unique, duplicates


class IngestionPipeline:
    """
    Drives batched upserts of source records into the vector store.

    Safe to reuse across runs; one run at a time per instance.
    """

    def __init__(
        self,
        client: VectorStoreClient,
        embedder: Embedder,
        batch_size: int = DEFAULT_BATCH_SIZE,
        normalizer: Optional[DocumentNormalizer] = None,
        on_write: Optional[Callable[[], None]] = None,
    ):
        """
        Args:
            client: Vector store client (upsert target).
            embedder: Anything with embed(text) -> list[float].
            batch_size: Records per upsert call.
            normalizer: Document normalizer (default instance if None).
            on_write: Called after any run or single upsert that reached the
                store, failed or not; typically the search cache's invalidate_all.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.client = client
        self.embedder = embedder
        self.batch_size = batch_size
        self.normalizer = normalizer or DocumentNormalizer()
        self.on_write = on_write
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Stop issuing new batches; the in-flight batch completes."""
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def ingest(
        self,
        records: Iterable[RecordInput],
        source_type: SourceType | str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> IngestReport:
        """
        Normalize, embed and upsert records in batches.

        Args:
            records: Source records (models or raw mappings).
            source_type: Source type of every record in this call.
            progress_callback: Optional callback(current, total, status).

        Returns:
            IngestReport with per-run counts and failed ids.

        Raises:
            MissingFieldsError: If an identity field is missing (nothing processed).
        """
        start = time.time()
        source = SourceType(source_type)
        records = list(records)
        report = IngestReport(source=source.value)

        if not records:
            return report

        check_required_fields(records, source)
        unique, report.duplicates = dedupe_records(records)
        report.total = len(unique)
        if report.duplicates:
            logger.info("Collapsed %d duplicate ids in %s input", report.duplicates, source.value)

        self._stop_event.clear()
        wrote = False
        batch_count = (len(unique) + self.batch_size - 1) // self.batch_size
        logger.info(
            "Ingesting %d %s records in %d batches of %d",
            len(unique), source.value, batch_count, self.batch_size,
        )

        for batch_index, offset in enumerate(range(0, len(unique), self.batch_size)):
            if self._stop_event.is_set():
                report.stopped = True
                logger.warning(
                    "Ingestion stopped before batch %d/%d (%d records not processed)",
                    batch_index + 1, batch_count, len(unique) - offset,
                )
                break

            batch = unique[offset:offset + self.batch_size]
            wrote = self._process_batch(batch, source, report, offset) or wrote

            if progress_callback:
                progress_callback(
                    min(offset + len(batch), len(unique)),
                    len(unique),
                    f"Batch {batch_index + 1}/{batch_count}",
                )

        report.elapsed_seconds = round(time.time() - start, 2)
        logger.info(
            "Ingestion of %s finished: total=%d succeeded=%d failed=%d skipped=%d (%.2fs)",
            source.value, report.total, report.succeeded, report.failed,
            report.skipped, report.elapsed_seconds,
        )

        # a failed upsert may still have been applied by the backend
        if wrote:
            self._notify_write()
        return report

    def upsert_single(self, record: RecordInput, source_type: SourceType | str) -> str:
        """
        Normalize, embed and upsert one record; errors propagate.

        Returns:
            The stored record id.

        Raises:
            MissingFieldsError: If an identity field is missing.
            EmptyDocumentError: If the record normalizes to an empty document.
            EmbeddingError / VectorStoreError: On embed or store failure.
        """
        source = SourceType(source_type)
        check_required_fields([record], source)

        document = self.normalizer.normalize(record, source)
        if document.is_empty:
            raise EmptyDocumentError(document.id)

        embedding = self.embedder.embed(document.text)
        try:
            self.client.upsert([document.id], [embedding], [document.text], [document.metadata])
        finally:
            self._notify_write()
        logger.info("Upserted %s record %s", source.value, document.id)
        return document.id

    def _process_batch(
        self,
        batch: Sequence[RecordInput],
        source: SourceType,
        report: IngestReport,
        offset: int,
    ) -> bool:
        """Run one batch; returns True once an upsert has been attempted."""
        documents: list[NormalizedDocument] = []
        skipped: set[str] = set()
        attempted = False
        batch_ids = [
            str(record_field(record, "id")) if record_field(record, "id") is not None else f"#{offset + i}"
            for i, record in enumerate(batch)
        ]

        try:
            for record in batch:
                document = self.normalizer.normalize(record, source)
                if document.is_empty:
                    logger.info("Skipping empty %s document: %s", source.value, document.id)
                    skipped.add(document.id)
                    report.skipped += 1
                    report.skipped_ids.append(document.id)
                    continue
                documents.append(document)

            if not documents:
                return False

            embeddings = [self.embedder.embed(document.text) for document in documents]
            attempted = True
            self.client.upsert(
                [d.id for d in documents],
                embeddings,
                [d.text for d in documents],
                [d.metadata for d in documents],
            )
        except Exception as e:
            failed_ids = [record_id for record_id in batch_ids if record_id not in skipped]
            logger.error(
                "Batch at offset %d failed (%d records):\n%s",
                offset, len(failed_ids), format_error_chain(e),
            )
            report.failed += len(failed_ids)
            report.failed_ids.extend(failed_ids)
            return attempted

        report.succeeded += len(documents)
        logger.debug("Batch at offset %d stored %d records", offset, len(documents))
        return True

    def _notify_write(self) -> None:
        if self.on_write is None:
            return
        try:
            self.on_write()
        except Exception as e:
            logger.error("Post-write hook failed: %s", e)
