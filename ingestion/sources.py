"""
Directory ingestion - classify export files and feed them to the pipeline

File classification:
    *.xlsx          -> youtrack   (parsed by a registered parser)
    *.html, *.htm   -> confluence (parsed by a registered parser; index.html skipped)
    *.json          -> {"source": ..., "records": [...]} envelope, or a bare
                       list whose source comes from each record or the file name
    *.jsonl         -> one record per line, each carrying "source" (or the
                       file name gives it)

Binary spreadsheet and HTML extraction are not done here: callers register a
SourceParser (Path -> list of records) per source type. Every file yields its
own IngestReport; a bad file is recorded as an error and the run continues.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

from vector_store.models import SourceType

from .models import DirectoryIngestReport, FileIngestResult
from .pipeline import IngestionPipeline, RecordInput, record_field

logger = logging.getLogger(__name__)

SourceParser = Callable[[Path], list[RecordInput]]

EXTENSION_SOURCES: dict[str, SourceType] = {
    ".xlsx": SourceType.YOUTRACK,
    ".html": SourceType.CONFLUENCE,
    ".htm": SourceType.CONFLUENCE,
}
RECORD_DUMP_EXTENSIONS = (".json", ".jsonl")
EXCLUDED_FILE_NAMES = frozenset({"index.html"})

DEFAULT_MIN_WIKI_CONTENT_LENGTH = 50

_ID_SUFFIX_PATTERN = re.compile(r"_(\d+)\.html?$", re.IGNORECASE)
_NUMERIC_NAME_PATTERN = re.compile(r"^(\d+)\.html?$", re.IGNORECASE)
_UNSAFE_ID_CHARS = re.compile(r"[^\w-]")


def wiki_page_id(file_name: str) -> str:
    """
    Derive a stable page id from an export file name.

    "01.API_70451688.html" -> "confluence-70451688"
    "70451688.html"        -> "confluence-70451688"
    "Release notes.html"   -> "confluence-Release-notes"
    """
    for pattern in (_ID_SUFFIX_PATTERN, _NUMERIC_NAME_PATTERN):
        match = pattern.search(file_name)
        if match:
            return f"confluence-{match.group(1)}"
    base_name = re.sub(r"\.html?$", "", file_name, flags=re.IGNORECASE)
    return f"confluence-{_UNSAFE_ID_CHARS.sub('-', base_name)}"


def classify_file(path: Path) -> Optional[str]:
    """Return a source type value, "records" for JSON dumps, or None to ignore."""
    if path.name.lower() in EXCLUDED_FILE_NAMES:
        return None
    suffix = path.suffix.lower()
    if suffix in RECORD_DUMP_EXTENSIONS:
        return "records"
    source = EXTENSION_SOURCES.get(suffix)
    return source.value if source else None


def source_from_file_name(path: Path) -> Optional[SourceType]:
    name = path.stem.lower()
    for source in (SourceType.YOUTRACK, SourceType.CONFLUENCE):
        if source.value in name:
            return source
    return None


def _group_by_source(
    items: Iterable[Mapping[str, Any]],
    default: Optional[SourceType],
    path: Path,
) -> list[tuple[SourceType, list[RecordInput]]]:
    groups: dict[SourceType, list[RecordInput]] = {}
    for item in items:
        if not isinstance(item, Mapping):
            raise ValueError(f"{path.name}: records must be JSON objects")
        raw_source = item.get("source") or (default.value if default else None)
        if not raw_source:
            raise ValueError(f"{path.name}: cannot determine source type of record {item.get('id')!r}")
        groups.setdefault(SourceType(raw_source), []).append(dict(item))
    return list(groups.items())


def load_record_dump(path: Path) -> list[tuple[SourceType, list[RecordInput]]]:
    """
    Load a JSON or JSONL record dump, grouped by source type.

    Raises:
        ValueError: On malformed content or an undeterminable source type.
    """
    hint = source_from_file_name(path)

    if path.suffix.lower() == ".jsonl":
        items = []
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    items.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise ValueError(f"{path.name}:{line_no}: invalid JSON ({e.msg})") from e
        return _group_by_source(items, hint, path)

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        envelope_source = data.get("source")
        default = SourceType(envelope_source) if envelope_source else hint
        return _group_by_source(data.get("records") or [], default, path)
    if isinstance(data, list):
        return _group_by_source(data, hint, path)
    raise ValueError(f"{path.name}: expected an object with 'records' or a list of records")


def is_valid_wiki_page(record: RecordInput, min_content_length: int = DEFAULT_MIN_WIKI_CONTENT_LENGTH) -> bool:
    """A page is worth storing if it has a title and enough content or a breadcrumb."""
    title = record_field(record, "title")
    if title is None or not str(title).strip():
        return False
    content = record_field(record, "content") or ""
    breadcrumb = record_field(record, "breadcrumb") or ""
    return len(str(content)) >= min_content_length or bool(str(breadcrumb).strip())


class DirectoryIngestor:
    """Ingests every recognised export file of a directory."""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        parsers: Optional[Mapping[SourceType | str, SourceParser]] = None,
        min_wiki_content_length: int = DEFAULT_MIN_WIKI_CONTENT_LENGTH,
    ):
        self.pipeline = pipeline
        self.min_wiki_content_length = min_wiki_content_length
        self._parsers: dict[SourceType, SourceParser] = {}
        for source_type, parser in (parsers or {}).items():
            self.register_parser(source_type, parser)

    def register_parser(self, source_type: SourceType | str, parser: SourceParser) -> None:
        self._parsers[SourceType(source_type)] = parser

    def ingest_directory(self, directory: str | Path) -> DirectoryIngestReport:
        """
        Ingest all recognised files of a directory (non-recursive).

        Raises:
            ValueError: If the path is not a directory.
        """
        root = Path(directory)
        if not root.is_dir():
            raise ValueError(f"Not a directory: {root}")

        report = DirectoryIngestReport(directory=str(root))
        files = sorted(p for p in root.iterdir() if p.is_file())
        logger.info("Directory ingest: %s (%d files)", root, len(files))

        for path in files:
            kind = classify_file(path)
            if kind is None:
                report.ignored.append(path.name)
                continue

            try:
                for source, records in self._load(path, kind):
                    if source is SourceType.CONFLUENCE:
                        records = self._valid_pages(records, path)
                    ingest_report = self.pipeline.ingest(records, source)
                    report.files.append(
                        FileIngestResult(path=path.name, source=source.value, report=ingest_report)
                    )
            except Exception as e:
                logger.error("Failed to ingest %s: %s", path.name, e)
                report.files.append(FileIngestResult(
                    path=path.name,
                    source=kind if kind != "records" else None,
                    error=str(e),
                ))

            if self.pipeline.stop_requested:
                logger.warning("Directory ingest stopped after %s", path.name)
                break

        logger.info(
            "Directory ingest finished: %d files, %d stored, %d failed, %d errors",
            len(report.files), report.succeeded, report.failed, len(report.errors),
        )
        return report

    def _load(self, path: Path, kind: str) -> list[tuple[SourceType, list[RecordInput]]]:
        if kind == "records":
            return load_record_dump(path)

        source = SourceType(kind)
        parser = self._parsers.get(source)
        if parser is None:
            raise ValueError(f"No parser registered for {source.value} files ({path.suffix})")
        return [(source, list(parser(path)))]

    def _valid_pages(self, records: list[RecordInput], path: Path) -> list[RecordInput]:
        valid = [r for r in records if is_valid_wiki_page(r, self.min_wiki_content_length)]
        dropped = len(records) - len(valid)
        if dropped:
            logger.info("%s: dropped %d wiki pages without title or content", path.name, dropped)
        return valid
