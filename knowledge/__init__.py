"""
Knowledge Core - service facade, configuration, HTTP app and CLI

Quick Start:
    from knowledge import KnowledgeConfig, KnowledgeService

    service = KnowledgeService(KnowledgeConfig(backend="persistent"))
    report = service.ingest(issues, "youtrack")
    results = service.search_all_sources("banner fix", owner_id="u-1", n=5)

Run the HTTP app:
    uvicorn knowledge.app:create_app --factory
"""

__version__ = "1.0.0"

from .config import KnowledgeConfig
from .logging_config import get_logger, setup_logging
from .service import KnowledgeService

__all__ = [
    "__version__",
    "KnowledgeConfig",
    "KnowledgeService",
    "setup_logging",
    "get_logger",
]
