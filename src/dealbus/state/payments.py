"""
Processed-payment record for the settlement agent.

The store is the single source of truth for idempotency: a correlation id is
in the processed set exactly when one transfer was submitted for it.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentRecord:
    """History entry for one executed transfer."""

    correlation_id: str
    transaction_id: str
    amount: float
    token_id: str
    to_account: str
    memo: Optional[str] = None
    item: Optional[str] = None
    quantity: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "transaction_id": self.transaction_id,
            "amount": self.amount,
            "token_id": self.token_id,
            "to_account": self.to_account,
            "memo": self.memo,
            "item": self.item,
            "quantity": self.quantity,
            "timestamp": self.timestamp.isoformat(),
        }


class ProcessedPaymentStore:
    """
    Processed correlation ids plus an append-only payment history.

    `lock(correlation_id)` hands out one asyncio.Lock per correlation id.
    Locks are held weakly and disappear once no request is using them.
    The check-then-transfer-then-record sequence for a payment request runs
    under that lock, so overlapping requests for the same negotiation cannot
    both transfer.
    """

    def __init__(self):
        self._processed: set = set()
        self._history: List[PaymentRecord] = []
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def lock(self, correlation_id: str) -> asyncio.Lock:
        lock = self._locks.get(correlation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[correlation_id] = lock
        return lock

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    def is_processed(self, correlation_id: str) -> bool:
        return correlation_id in self._processed

    def record(self, record: PaymentRecord) -> None:
        """Mark the record's correlation id processed and append it to history."""
        if record.correlation_id in self._processed:
            raise ValueError(f"Payment for {record.correlation_id} already recorded")
        self._processed.add(record.correlation_id)
        self._history.append(record)
        logger.debug(f"[ProcessedPaymentStore] Recorded payment for {record.correlation_id}")

    def find(self, correlation_id: str) -> Optional[PaymentRecord]:
        for record in reversed(self._history):
            if record.correlation_id == correlation_id:
                return record
        return None

    def history(self) -> List[PaymentRecord]:
        return list(self._history)

    def clear(self) -> None:
        """Forget processed ids. History entries are kept for audit."""
        self._processed.clear()

    def __len__(self) -> int:
        return len(self._processed)
