"""
Conversation Memory Gate - score-gated write-back of finished exchanges

When the LLM collaborator rates an exchange at or above the threshold, the
user turn and then the assistant turn are written to the vector store on a
background pool. The chat request never waits for, or sees a failure of,
that write.

Usage:
    gate = ConversationMemoryGate(service, threshold=70)
    decision = gate.on_exchange_completed(exchange, score=82)
    ...
    gate.shutdown()
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Optional

from vector_store.exceptions import format_error_chain

from .models import CompletedExchange, ExchangeState, GateDecision, TurnWriter

logger = logging.getLogger(__name__)

DEFAULT_RELEVANCE_THRESHOLD = 70


class ConversationMemoryGate:
    """Decides whether a finished exchange is worth remembering, and stores it."""

    def __init__(
        self,
        writer: TurnWriter,
        threshold: float = DEFAULT_RELEVANCE_THRESHOLD,
        max_workers: int = 1,
    ):
        """
        Args:
            writer: Stores one conversation turn with `add` and returns its id.
            threshold: Minimum relevance score (0-100) for write-back.
            max_workers: Background write-back threads.
        """
        self.writer = writer
        self.threshold = threshold
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="memory-writeback",
        )
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def should_persist(self, score: Optional[float]) -> bool:
        return score is not None and score >= self.threshold

    def on_exchange_completed(self, exchange: CompletedExchange, score: Optional[float]) -> GateDecision:
        """
        Gate one exchange. Returns immediately.

        A missing score counts as below threshold.
        """
        decision = GateDecision(exchange=exchange, score=score, threshold=self.threshold)

        if not self.should_persist(score):
            decision.state = ExchangeState.SKIPPED
            logger.info(
                "Exchange not stored (session: %s, score: %s < %s)",
                exchange.session_id, score, self.threshold,
            )
            return decision

        decision.state = ExchangeState.SCORED
        try:
            future = self._executor.submit(self._write_back, decision)
        except RuntimeError as e:
            decision.state = ExchangeState.FAILED
            decision.error = str(e)
            logger.warning("Write-back not scheduled (session: %s): %s", exchange.session_id, e)
            return decision

        decision.future = future
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return decision

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _write_back(self, decision: GateDecision) -> ExchangeState:
        exchange = decision.exchange
        try:
            for role, content in (("user", exchange.user_text), ("assistant", exchange.assistant_text)):
                record_id = self.writer.store_conversation_turn(
                    exchange.session_id, exchange.owner_id, role, content,
                )
                decision.record_ids.append(record_id)
        except Exception as e:
            decision.state = ExchangeState.FAILED
            decision.error = str(e)
            logger.warning(
                "Failed to store conversation (session: %s):\n%s",
                exchange.session_id, format_error_chain(e),
            )
            return decision.state

        decision.state = ExchangeState.PERSISTED
        logger.info(
            "Conversation stored (session: %s, score: %s, records: %s)",
            exchange.session_id, decision.score, decision.record_ids,
        )
        return decision.state

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for scheduled write-backs. Returns False if some are still running."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
