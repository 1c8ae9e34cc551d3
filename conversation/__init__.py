"""
Conversation Module - relevance-gated memory write-back

Quick Start:
    from conversation import CompletedExchange, ConversationMemoryGate

    gate = ConversationMemoryGate(service, threshold=70)
    decision = gate.on_exchange_completed(
        CompletedExchange("s-1", "u-1", "How do I fix the banner?", "Clear the CDN cache."),
        score=85,
    )
"""

from .gate import DEFAULT_RELEVANCE_THRESHOLD, ConversationMemoryGate
from .models import CompletedExchange, ExchangeState, GateDecision, TurnWriter

__all__ = [
    "ConversationMemoryGate",
    "DEFAULT_RELEVANCE_THRESHOLD",
    "CompletedExchange",
    "ExchangeState",
    "GateDecision",
    "TurnWriter",
]
