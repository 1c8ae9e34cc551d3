"""
Retrieval component for the knowledge core.

Single- and multi-source similarity search with merge/rank, an
invalidate-all-on-write cache and an LLM context builder.
"""

__version__ = "1.0.0"

from .aggregator import RetrievalAggregator, merge_ranked
from .cache import SearchCache
from .context_builder import ContextBuildResult, build_context
from .token_counter import count_tokens

__all__ = [
    "__version__",
    "RetrievalAggregator",
    "merge_ranked",
    "SearchCache",
    "ContextBuildResult",
    "build_context",
    "count_tokens",
]
