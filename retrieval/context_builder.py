from __future__ import annotations

from dataclasses import dataclass, field

from vector_store.models import SearchResult, SourceType

from .token_counter import count_tokens, truncate_to_tokens

SEPARATOR = "\n\n"


@dataclass
class ContextBuildResult:
    context_text: str
    selected: list[SearchResult] = field(default_factory=list)
    available_tokens: int = 0
    used_tokens: int = 0


def _header(idx: int, result: SearchResult) -> str:
    meta = result.metadata
    source = result.source or "unknown"
    score = f"similarity={result.similarity:.3f}"

    if source == SourceType.YOUTRACK.value:
        title = meta.get("title", "")
        stage = meta.get("stage", "")
        detail = f" stage={stage}" if stage else ""
        return f"[{idx}] youtrack {meta.get('issueId') or result.id} \"{title}\"{detail} {score}"
    if source == SourceType.CONFLUENCE.value:
        title = meta.get("title", "")
        path = meta.get("breadcrumb", "")
        detail = f" path={path}" if path else ""
        return f"[{idx}] confluence {meta.get('documentId') or result.id} \"{title}\"{detail} {score}"
    if source == SourceType.CONVERSATION.value:
        return f"[{idx}] conversation session={meta.get('sessionId', '')} role={meta.get('role', '')} {score}"
    return f"[{idx}] {source} id={result.id} {score}"


def _block(idx: int, result: SearchResult) -> str:
    return _header(idx, result) + "\n" + (result.document or "").strip()


def build_context(results: list[SearchResult], max_tokens: int) -> ContextBuildResult:
    """
    Format ranked results into an LLM context block within a token budget.

    Results are taken in the given order until the next block does not fit.
    If not even the first block fits, a token-truncated prefix of it is used.
    """
    available = max(max_tokens, 0)
    separator_tokens = count_tokens(SEPARATOR)

    parts: list[str] = []
    selected: list[SearchResult] = []
    used = 0

    for idx, result in enumerate(results, start=1):
        block = _block(idx, result)
        cost = count_tokens(block) + (separator_tokens if parts else 0)
        if cost <= available:
            parts.append(block)
            selected.append(result)
            available -= cost
            used += cost
            continue

        if not parts and available > 0:
            prefix = truncate_to_tokens(block, available)
            parts.append(prefix)
            selected.append(result)
            used += count_tokens(prefix)
            available = max(available - count_tokens(prefix), 0)
        break

    return ContextBuildResult(
        context_text=SEPARATOR.join(parts).strip(),
        selected=selected,
        available_tokens=available,
        used_tokens=used,
    )
