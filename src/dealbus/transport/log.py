"""
Ordered broadcast log collaborator.

The transport only relies on three properties of the log: per-topic
ordering, at-least-once delivery and a monotonically increasing sequence
number. `OrderedLog` captures that interface; `InMemoryLog` implements it
in-process for tests, demos and single-process deployments.
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, AsyncIterator

from ..core.errors import LogSubmissionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogRecord:
    """A single entry of the log as delivered to readers."""

    data: bytes
    sequence_number: int
    consensus_timestamp: datetime
    running_hash: str = ""


@dataclass(frozen=True)
class LogReceipt:
    """Receipt returned once the log has ordered a submission."""

    sequence_number: int
    transaction_id: str


class LogSubscription(Protocol):
    """Live stream of records. Registered when created, ended by `close()`."""

    def __aiter__(self) -> AsyncIterator[LogRecord]:
        ...

    async def __anext__(self) -> LogRecord:
        ...

    def close(self) -> None:
        ...


class HistorySource(Protocol):
    """Anything that can answer historical queries against a topic."""

    async def read(
        self,
        topic_id: str,
        limit: int = 100,
        since_sequence: Optional[int] = None,
    ) -> List[LogRecord]:
        ...


class OrderedLog(HistorySource, Protocol):
    """
    Append-only, ordered, at-least-once broadcast log.

    Implementations:
    - submit(): append bytes, return the assigned sequence number,
      raise LogSubmissionError if the log rejects the submission
    - stream(): deliver records in sequence order from now on, or from
      `start_sequence` when given
    - read(): best-effort historical query
    """

    async def submit(self, topic_id: str, data: bytes) -> LogReceipt:
        ...

    def stream(
        self,
        topic_id: str,
        start_sequence: Optional[int] = None,
    ) -> LogSubscription:
        ...


_CLOSED = object()


class InMemorySubscription:
    """Queue-backed subscription handed out by `InMemoryLog.stream`."""

    def __init__(self, log: "InMemoryLog", topic_id: str):
        self._log = log
        self.topic_id = topic_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pending = 0
        self._taken = False
        self.closed = False

    @property
    def idle(self) -> bool:
        """True once every pushed record has been taken and processed."""
        return self.closed or self._pending == 0

    def push(self, record: LogRecord) -> None:
        if self.closed:
            return
        self._pending += 1
        self._queue.put_nowait(record)

    def __aiter__(self) -> "InMemorySubscription":
        return self

    async def __anext__(self) -> LogRecord:
        # Asking for the next record means the previous one is fully handled
        if self._taken:
            self._taken = False
            self._pending -= 1
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        self._taken = True
        return item

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)
        self._log._detach(self)


class InMemoryLog:
    """
    In-process ordered log.

    - Sequence numbers start at 1 per topic
    - Each record carries a running hash chained over previous records
    - `redeliver()` re-sends an existing record to live subscribers, which
      is how at-least-once duplicate delivery is exercised
    """

    def __init__(self):
        self._records: Dict[str, List[LogRecord]] = {}
        self._subscriptions: Dict[str, List[InMemorySubscription]] = {}
        self._running_hash: Dict[str, str] = {}

    async def submit(self, topic_id: str, data: bytes) -> LogReceipt:
        if not isinstance(data, (bytes, bytearray)):
            raise LogSubmissionError(
                "Transaction failed with status: INVALID_TOPIC_MESSAGE",
                status="INVALID_TOPIC_MESSAGE",
            )

        records = self._records.setdefault(topic_id, [])
        sequence_number = len(records) + 1
        timestamp = datetime.now(timezone.utc)

        previous = self._running_hash.get(topic_id, "")
        running_hash = hashlib.sha384(previous.encode("ascii") + bytes(data)).hexdigest()
        self._running_hash[topic_id] = running_hash

        record = LogRecord(
            data=bytes(data),
            sequence_number=sequence_number,
            consensus_timestamp=timestamp,
            running_hash=running_hash,
        )
        records.append(record)

        for subscription in list(self._subscriptions.get(topic_id, [])):
            subscription.push(record)

        logger.debug(f"[InMemoryLog] Appended seq {sequence_number} to {topic_id}")

        return LogReceipt(
            sequence_number=sequence_number,
            transaction_id=f"{topic_id}@{timestamp.timestamp():.9f}",
        )

    def stream(
        self,
        topic_id: str,
        start_sequence: Optional[int] = None,
    ) -> InMemorySubscription:
        subscription = InMemorySubscription(self, topic_id)
        if start_sequence is not None:
            for record in self._records.get(topic_id, []):
                if record.sequence_number >= start_sequence:
                    subscription.push(record)
        self._subscriptions.setdefault(topic_id, []).append(subscription)
        return subscription

    async def read(
        self,
        topic_id: str,
        limit: int = 100,
        since_sequence: Optional[int] = None,
    ) -> List[LogRecord]:
        records = [
            record
            for record in self._records.get(topic_id, [])
            if since_sequence is None or record.sequence_number >= since_sequence
        ]
        return records[:limit]

    def redeliver(self, topic_id: str, sequence_number: int) -> None:
        """Push an already-appended record to every live subscriber again."""
        for record in self._records.get(topic_id, []):
            if record.sequence_number == sequence_number:
                for subscription in list(self._subscriptions.get(topic_id, [])):
                    subscription.push(record)
                return
        raise KeyError(f"No record {sequence_number} on topic {topic_id}")

    def records(self, topic_id: str) -> List[LogRecord]:
        """All records appended to a topic, oldest first."""
        return list(self._records.get(topic_id, []))

    async def drain(self, timeout: float = 5.0) -> None:
        """
        Wait until every live subscriber has processed everything pushed to it.

        Handlers may publish follow-up messages, so this keeps waiting until
        the whole cascade has settled.
        """

        async def _wait_idle():
            while True:
                subscriptions = [
                    sub for subs in self._subscriptions.values() for sub in subs
                ]
                if all(sub.idle for sub in subscriptions):
                    # Give freshly scheduled tasks a chance to publish
                    await asyncio.sleep(0)
                    if all(sub.idle for sub in subscriptions):
                        return
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_wait_idle(), timeout)

    def _detach(self, subscription: InMemorySubscription) -> None:
        subscriptions = self._subscriptions.get(subscription.topic_id, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
