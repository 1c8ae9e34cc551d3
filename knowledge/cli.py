#!/usr/bin/env python3
"""
Knowledge Core CLI - ingestion, search and maintenance from the shell

Prerequisites:
    1. Chroma server running (or KNOWLEDGE_BACKEND=persistent)
    2. Ollama running with the embedding model: ollama pull bge-m3

Usage:
    python -m knowledge.cli health
    python -m knowledge.cli ingest-dir exports/
    python -m knowledge.cli ingest-json issues.json --source youtrack
    python -m knowledge.cli search "banner fix" --owner u-1 -n 5
    python -m knowledge.cli delete-source youtrack
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from ingestion.sources import load_record_dump
from vector_store.exceptions import KnowledgeCoreError, format_error_chain
from vector_store.models import SourceType

from .config import KnowledgeConfig
from .logging_config import get_logger, setup_logging
from .service import KnowledgeService

logger = get_logger(__name__)


def check_health(service: KnowledgeService) -> bool:
    print("\n=== Health Check ===")
    health = service.health_check()

    for section in ("vector_store", "embedder"):
        print(f"  {section}:")
        for key, value in health[section].items():
            status = "OK" if value is True else ("FAILED" if value is False else value)
            print(f"    {key}: {status}")

    if not health["healthy"]:
        print("\nVector store or embedder is not available.")
        print("  1. Start Chroma:  chroma run --path ./chroma_db")
        print("  2. Start Ollama:  ollama serve")
        print(f"  3. Pull model:    ollama pull {service.config.embedding_model}")
        return False
    return True


def ingest_directory(service: KnowledgeService, path: str) -> None:
    print(f"\n=== Directory ingest: {path} ===")
    report = service.ingest_directory(path)

    for result in report.files:
        if result.error:
            print(f"  {result.path}: ERROR {result.error}")
            continue
        r = result.report
        print(
            f"  {result.path} [{result.source}]: {r.succeeded}/{r.total} stored, "
            f"{r.failed} failed, {r.skipped} empty"
        )
    if report.ignored:
        print(f"  ignored: {', '.join(report.ignored)}")
    print(f"\n  Total stored: {report.succeeded}, failed: {report.failed}, skipped: {report.skipped}")


def ingest_json(service: KnowledgeService, path: str, source: Optional[str]) -> None:
    print(f"\n=== JSON ingest: {path} ===")
    groups = load_record_dump(Path(path))

    def progress(current, total, status):
        print(f"  [{current}/{total}] {status}")

    for group_source, records in groups:
        source_type = SourceType(source) if source else group_source
        report = service.pipeline.ingest(records, source_type, progress_callback=progress)
        print(f"\n  Source:    {report.source}")
        print(f"  Stored:    {report.succeeded}/{report.total}")
        print(f"  Failed:    {report.failed} {report.failed_ids[:10] if report.failed_ids else ''}")
        print(f"  Empty:     {report.skipped}")
        print(f"  Time:      {report.elapsed_seconds}s")


def search(service: KnowledgeService, query: str, owner: Optional[str], n_results: int) -> None:
    print(f"\n=== Search: \"{query}\" (owner: {owner or '-'}, n={n_results}) ===")
    results = service.search_all_sources(query, owner, n_results)

    if not results:
        print("  No results.")
        return

    for i, r in enumerate(results, 1):
        print(f"\n  --- Hit {i} (similarity: {r.similarity:.4f}, source: {r.source}) ---")
        print(f"  Id:    {r.id}")
        preview = r.document[:150].replace("\n", " ")
        print(f"  Text:  {preview}...")


def main() -> int:
    parser = argparse.ArgumentParser(description="Knowledge core maintenance CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Check vector store and embedder")

    p_dir = sub.add_parser("ingest-dir", help="Ingest every export file of a directory")
    p_dir.add_argument("path")

    p_json = sub.add_parser("ingest-json", help="Ingest a JSON/JSONL record dump")
    p_json.add_argument("path")
    p_json.add_argument("--source", choices=[s.value for s in SourceType], help="Override the source type")

    p_search = sub.add_parser("search", help="Multi-source search")
    p_search.add_argument("query")
    p_search.add_argument("--owner", default=None, help="Owner id for owner-scoped hits")
    p_search.add_argument("-n", "--n-results", type=int, default=5)

    p_del = sub.add_parser("delete-source", help="Delete every record of a source type")
    p_del.add_argument("source", choices=[s.value for s in SourceType])

    parser.add_argument("--log-level", default=None, help="Override KNOWLEDGE_LOG_LEVEL")

    args = parser.parse_args()

    config = KnowledgeConfig.from_env()
    setup_logging(args.log_level or config.log_level, config.log_file)
    service = KnowledgeService(config)

    try:
        if args.command == "health":
            return 0 if check_health(service) else 1
        if args.command == "ingest-dir":
            ingest_directory(service, args.path)
        elif args.command == "ingest-json":
            ingest_json(service, args.path, args.source)
        elif args.command == "search":
            search(service, args.query, args.owner, args.n_results)
        elif args.command == "delete-source":
            service.delete_by_source(args.source)
            print(f"Deleted all records with source={args.source}")
    except (KnowledgeCoreError, ValueError, OSError) as e:
        logger.error("Command '%s' failed:\n%s", args.command, format_error_chain(e))
        print(f"\nError: {e}")
        return 1
    finally:
        service.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
