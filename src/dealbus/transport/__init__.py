"""
Transport subsystem.

Provides:
- The ordered-log collaborator interface and an in-memory implementation
- Bounded duplicate suppression
- TopicTransport (publish / subscribe / history)
- Mirror node client for historical queries
"""

from .log import (
    LogRecord,
    LogReceipt,
    LogSubscription,
    HistorySource,
    OrderedLog,
    InMemoryLog,
    InMemorySubscription,
)
from .dedup import DedupWindow, DEFAULT_DEDUP_WINDOW
from .topic import TopicTransport, MessageCallback
from .mirror import MirrorNodeClient, DEFAULT_MIRROR_NODE_URL, parse_consensus_timestamp

__all__ = [
    "LogRecord",
    "LogReceipt",
    "LogSubscription",
    "HistorySource",
    "OrderedLog",
    "InMemoryLog",
    "InMemorySubscription",
    "DedupWindow",
    "DEFAULT_DEDUP_WINDOW",
    "TopicTransport",
    "MessageCallback",
    "MirrorNodeClient",
    "DEFAULT_MIRROR_NODE_URL",
    "parse_consensus_timestamp",
]
