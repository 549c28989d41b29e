"""
Mirror node client for historical topic queries.

Reads topic messages from a mirror-node style REST API:

    GET {base_url}/api/v1/topics/{topic_id}/messages?limit=N&order=asc&sequencenumber=gte:S

Each returned message carries a base64 body, its sequence number, a
`seconds.nanos` consensus timestamp and the running hash. Follows `links.next`
until `limit` records have been collected.
"""

import base64
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from .log import LogRecord

logger = logging.getLogger(__name__)

DEFAULT_MIRROR_NODE_URL = "https://testnet.mirrornode.hedera.com"


def parse_consensus_timestamp(value: str) -> datetime:
    """Convert a `seconds.nanos` timestamp into an aware datetime."""
    return datetime.fromtimestamp(float(Decimal(value)), tz=timezone.utc)


class MirrorNodeClient:
    """
    History source backed by a mirror node REST API.

    Example:
        mirror = MirrorNodeClient("https://testnet.mirrornode.hedera.com")
        transport = TopicTransport(log, "0.0.4242", history=mirror)
        messages = await transport.get_historical_messages(limit=25)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_MIRROR_NODE_URL,
        httpx_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30,
    ):
        """
        Args:
            base_url: Mirror node root URL
            httpx_client: Optional shared httpx client (created if None)
            timeout: Request timeout for the client created here
        """
        self.base_url = base_url.rstrip("/")
        self._httpx_client = httpx_client or httpx.AsyncClient(timeout=timeout)
        logger.debug(f"[MirrorNodeClient] Initialized for {self.base_url}")

    async def read(
        self,
        topic_id: str,
        limit: int = 100,
        since_sequence: Optional[int] = None,
    ) -> List[LogRecord]:
        """
        Fetch up to `limit` records of `topic_id`, oldest first.

        Raises:
            httpx.HTTPError: If the mirror node cannot be reached or answers
                             with an error status
        """
        params: Dict[str, Any] = {"limit": limit, "order": "asc"}
        if since_sequence:
            params["sequencenumber"] = f"gte:{since_sequence}"

        url: Optional[str] = f"{self.base_url}/api/v1/topics/{topic_id}/messages"
        records: List[LogRecord] = []

        while url and len(records) < limit:
            response = await self._httpx_client.get(url, params=params)
            response.raise_for_status()
            data = response.json()

            for message in data.get("messages", []):
                records.append(self._to_record(message))

            next_link = (data.get("links") or {}).get("next")
            url = f"{self.base_url}{next_link}" if next_link else None
            # The next link already carries the query string
            params = {}

        logger.debug(f"[MirrorNodeClient] Fetched {len(records)} messages for {topic_id}")
        return records[:limit]

    @staticmethod
    def _to_record(message: Dict[str, Any]) -> LogRecord:
        return LogRecord(
            data=base64.b64decode(message["message"]),
            sequence_number=int(message["sequence_number"]),
            consensus_timestamp=parse_consensus_timestamp(message["consensus_timestamp"]),
            running_hash=message.get("running_hash", ""),
        )

    async def close(self):
        """Close the underlying HTTP client."""
        await self._httpx_client.aclose()
        logger.debug("[MirrorNodeClient] Closed")
