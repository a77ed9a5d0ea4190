"""
Fraud Feed Client

Reads indexed FraudFound events from the GraphQL feed, a faster alternative
to scanning logs over RPC.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

import aiohttp
import pandas as pd

from ..config.chain_config import FRAUD_FEED_LIMIT
from .base import hex_to_int
from .errors import FraudFeedError

logger = logging.getLogger(__name__)

FRAUD_QUERY = """
query {
    contractEventFraudFounds(limit: %d) {
        blockNumber
        peerId
        timestamp
    }
}
"""


def parse_feed_timestamp(value: Any) -> Optional[datetime]:
    """Feed timestamps may be in ms or s; small values are not timestamps."""
    number = hex_to_int(value)
    if number is None:
        return None
    if number > 1e12:
        return datetime.fromtimestamp(number / 1000, tz=timezone.utc)
    if number > 1e9:
        return datetime.fromtimestamp(number, tz=timezone.utc)
    return None


@dataclass
class FraudRecord:
    block_number: Optional[int]
    peer_id: str
    timestamp: Optional[datetime]
    raw_timestamp: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "FraudRecord":
        return cls(
            block_number=hex_to_int(data.get('blockNumber')),
            peer_id=data.get('peerId') or 'Unknown',
            timestamp=parse_feed_timestamp(data.get('timestamp')),
            raw_timestamp=data.get('timestamp'),
        )

    def to_dict(self) -> dict:
        return {
            'block_number': self.block_number,
            'peer_id': self.peer_id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else self.raw_timestamp,
        }


class FraudFeedClient:
    """GraphQL client for contractEventFraudFounds"""

    def __init__(self, url: str, session_provider: Callable[[], aiohttp.ClientSession]):
        self.url = url
        self._session_provider = session_provider

    async def fetch_fraud_records(self, limit: int = FRAUD_FEED_LIMIT) -> List[FraudRecord]:
        session = self._session_provider()
        try:
            async with session.post(self.url, json={'query': FRAUD_QUERY % int(limit)}) as response:
                if response.status >= 400:
                    raise FraudFeedError(f"HTTP error! status: {response.status}")
                result = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Failed to load fraud data: {e}")
            raise FraudFeedError(f"Failed to load fraud data: {e}") from e

        if not isinstance(result, dict):
            raise FraudFeedError(f"Unexpected feed response type {type(result).__name__}")
        if result.get('errors'):
            message = result['errors'][0].get('message', 'unknown error')
            raise FraudFeedError(f"GraphQL error: {message}")

        records = (result.get('data') or {}).get('contractEventFraudFounds') or []
        logger.info(f"Loaded {len(records)} fraud records from feed")
        return [FraudRecord.from_dict(r) for r in records]


def records_to_dataframe(records: List[FraudRecord]) -> pd.DataFrame:
    columns = ['block_number', 'peer_id', 'timestamp']
    return pd.DataFrame([r.to_dict() for r in records], columns=columns)
