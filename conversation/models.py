"""
Data Models for the Conversation Memory Gate

Exchange lifecycle:
    COMPLETED ──► SCORED ──► PERSISTED
         │           └─────► FAILED      (write-back raised; logged only)
         └─────────────────► SKIPPED     (score below threshold or missing)
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol


class ExchangeState(str, Enum):
    COMPLETED = "completed"
    SCORED = "scored"
    PERSISTED = "persisted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class CompletedExchange:
    """One finished user/assistant exchange of a chat session."""
    session_id: str
    owner_id: str
    user_text: str
    assistant_text: str


@dataclass
class GateDecision:
    """
    Outcome of gating one exchange.

    `state` is SKIPPED or SCORED when returned to the caller; a scored
    exchange moves to PERSISTED or FAILED once the background write ends.
    """
    exchange: CompletedExchange
    score: Optional[float]
    threshold: float
    state: ExchangeState = ExchangeState.COMPLETED
    record_ids: list[str] = field(default_factory=list)
    error: str = ""
    future: Optional[Future] = field(default=None, repr=False, compare=False)

    @property
    def accepted(self) -> bool:
        return self.state not in (ExchangeState.SKIPPED, ExchangeState.COMPLETED)

    def wait(self, timeout: Optional[float] = None) -> ExchangeState:
        """Block until the write-back (if any) has finished; returns the final state."""
        if self.future is not None:
            self.future.result(timeout=timeout)
        return self.state


class TurnWriter(Protocol):
    def store_conversation_turn(self, session_id: str, owner_id: str, role: str, content: str) -> str:
        ...
