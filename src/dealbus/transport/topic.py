"""
Topic transport: publish/subscribe of envelopes over an ordered log.

Provides:
- publish(): validate, serialize and submit an envelope
- subscribe(): sequential, deduplicated, filtered delivery to one callback
- get_historical_messages(): best-effort replay for recovery
- last_sequence_number: checkpoint for resumable subscriptions
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..core.types import BROADCAST, PublishResult
from ..core.errors import InvalidEnvelopeError, LogSubmissionError
from ..protocol.envelope import Envelope
from ..protocol.validation import validate
from .dedup import DedupWindow, DEFAULT_DEDUP_WINDOW
from .log import HistorySource, LogRecord, LogSubscription, OrderedLog

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Envelope, Dict[str, Any]], Union[Awaitable[None], None]]


class TopicTransport:
    """
    Envelope transport bound to one topic of an ordered log.

    One transport serves one subscriber. Delivery happens in a single asyncio
    task that awaits the callback before taking the next record, so callbacks
    never overlap and always see records in sequence order.
    """

    def __init__(
        self,
        log: OrderedLog,
        topic_id: str,
        history: Optional[HistorySource] = None,
        dedup_window: int = DEFAULT_DEDUP_WINDOW,
    ):
        """
        Args:
            log: Ordered log used for publishing and live delivery
            topic_id: Shared channel all agents of a workflow use
            history: Optional source for historical queries (e.g. a mirror
                     node); the log itself is queried when omitted
            dedup_window: Number of recently seen records remembered for
                          duplicate suppression
        """
        self.log = log
        self.topic_id = topic_id
        self.history = history
        self.dedup_window = dedup_window

        self._last_sequence_number = 0
        self._subscription: Optional[LogSubscription] = None
        self._delivery_task: Optional[asyncio.Task] = None

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def last_sequence_number(self) -> int:
        """Highest sequence number seen by the live subscription."""
        return self._last_sequence_number

    @last_sequence_number.setter
    def last_sequence_number(self, sequence_number: int) -> None:
        # Restoring a checkpoint after a restart
        self._last_sequence_number = sequence_number

    async def publish(self, envelope: Envelope) -> PublishResult:
        """
        Publish an envelope to the topic.

        No retry is attempted: a failed result means the message was not
        delivered and the caller decides what to do.
        """
        validation = validate(envelope)
        if not validation.valid:
            return PublishResult(
                success=False,
                error=f"Invalid message: {', '.join(validation.errors)}",
            )

        try:
            receipt = await self.log.submit(self.topic_id, envelope.to_bytes())
        except LogSubmissionError as e:
            logger.error(f"[TopicTransport] Log rejected {envelope.type.value} ({envelope.id}): {e}")
            return PublishResult(success=False, error=str(e))
        except Exception as e:
            logger.error(f"[TopicTransport] Failed to publish {envelope.type.value} ({envelope.id}): {e}")
            return PublishResult(success=False, error=str(e) or type(e).__name__)

        logger.debug(
            f"[TopicTransport] Published {envelope.type.value} ({envelope.id}) "
            f"seq {receipt.sequence_number}"
        )

        return PublishResult(
            success=True,
            transaction_id=receipt.transaction_id,
            sequence_number=receipt.sequence_number,
        )

    async def subscribe(
        self,
        callback: MessageCallback,
        filter_ids: Optional[Sequence[str]] = None,
        start_sequence: Optional[int] = None,
    ) -> None:
        """
        Start delivering envelopes to `callback(envelope, metadata)`.

        Args:
            callback: Sync or async handler, invoked once per distinct record
            filter_ids: If non-empty, only envelopes addressed to one of these
                        ids (or to the broadcast sentinel) are delivered
            start_sequence: Replay from this sequence number instead of
                            starting with new records only
        """
        if self._subscription is not None:
            logger.warning(f"[TopicTransport] Already subscribed to topic {self.topic_id}")
            return

        filter_ids = list(filter_ids or [])
        if start_sequence is not None:
            self._last_sequence_number = start_sequence - 1

        self._subscription = self.log.stream(self.topic_id, start_sequence=start_sequence)
        self._delivery_task = asyncio.create_task(
            self._deliver(self._subscription, callback, filter_ids, start_sequence)
        )

        logger.info(
            f"[TopicTransport] Subscribed to topic {self.topic_id}"
            + (f" (filter: {', '.join(filter_ids)})" if filter_ids else "")
        )

    async def unsubscribe(self) -> None:
        """Stop live delivery. No-op if not subscribed."""
        if self._subscription is None:
            return

        subscription, task = self._subscription, self._delivery_task
        self._subscription = None
        self._delivery_task = None

        subscription.close()
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info(f"[TopicTransport] Unsubscribed from topic {self.topic_id}")

    async def get_historical_messages(
        self,
        limit: int = 100,
        since_sequence: Optional[int] = None,
    ) -> List[Tuple[Envelope, Dict[str, Any]]]:
        """
        Query past envelopes, oldest first. Best effort: failures are logged
        and produce an empty list; undecodable records are skipped.
        """
        source = self.history or self.log
        try:
            records = await source.read(self.topic_id, limit=limit, since_sequence=since_sequence)
        except Exception as e:
            logger.error(f"[TopicTransport] Failed to fetch historical messages: {e}")
            return []

        messages = []
        for record in records:
            envelope = self._decode(record)
            if envelope is not None:
                messages.append((envelope, self._metadata(record)))
        return messages

    async def _deliver(
        self,
        subscription: LogSubscription,
        callback: MessageCallback,
        filter_ids: List[str],
        start_sequence: Optional[int],
    ) -> None:
        seen = DedupWindow(self.dedup_window)

        async for record in subscription:
            key = (record.consensus_timestamp.isoformat(), record.sequence_number)
            if not seen.add(key):
                logger.debug(f"[TopicTransport] Duplicate delivery of seq {record.sequence_number} suppressed")
                continue

            if start_sequence is not None and record.sequence_number < start_sequence:
                continue

            self._last_sequence_number = max(self._last_sequence_number, record.sequence_number)

            envelope = self._decode(record)
            if envelope is None:
                continue

            if filter_ids and envelope.to != BROADCAST and envelope.to not in filter_ids:
                continue

            logger.debug(
                f"[TopicTransport] Received {envelope.type.value} (seq: {record.sequence_number}) "
                f"{envelope.from_} -> {envelope.to}"
            )

            try:
                result = callback(envelope, self._metadata(record))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"[TopicTransport] Error processing message seq {record.sequence_number}"
                )

    def _decode(self, record: LogRecord) -> Optional[Envelope]:
        try:
            data = json.loads(record.data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"[TopicTransport] Undecodable record seq {record.sequence_number}: {e}")
            return None

        validation = validate(data)
        if not validation.valid:
            logger.warning(
                f"[TopicTransport] Received invalid message seq {record.sequence_number}: "
                f"{validation.errors}"
            )
            return None

        try:
            return Envelope.from_dict(data)
        except (InvalidEnvelopeError, ValueError, TypeError) as e:
            logger.warning(f"[TopicTransport] Unparseable message seq {record.sequence_number}: {e}")
            return None

    @staticmethod
    def _metadata(record: LogRecord) -> Dict[str, Any]:
        return {
            "sequence_number": record.sequence_number,
            "consensus_timestamp": record.consensus_timestamp.isoformat(),
            "running_hash": record.running_hash,
        }
