"""
Log Scanner Module

Queries proving manager logs over JSON-RPC and decodes them into typed
DecodedEvent records. One malformed log never hides the others: it degrades
to an Unknown event carrying its raw payload.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union, TYPE_CHECKING

import pandas as pd

from ..config.chain_config import BLOCK_TAGS, EVENT_TOPICS, TOPIC0_HASH_MAP
from . import abi_codec
from .abi_codec import Malformed
from .base import DecodedEvent, EventKind, hex_to_int, timestamp_to_datetime, to_http_endpoint

if TYPE_CHECKING:
    from ..context import MonitorContext

logger = logging.getLogger(__name__)

BlockParam = Union[str, int]


def format_block_param(block: Any) -> Any:
    """
    Normalize a block reference for eth_getLogs.

    Tags and 0x-hex pass through, non-negative decimals become 0x-hex and
    anything else is returned unchanged for the node to reject.
    """
    if isinstance(block, bool):
        return block
    if isinstance(block, int):
        return hex(block) if block >= 0 else block
    if not isinstance(block, str):
        return block
    if block in BLOCK_TAGS:
        return block
    if block.startswith('0x') or block.startswith('0X'):
        return block
    text = block.strip()
    # isdigit alone accepts superscripts and other non-ASCII digits
    if text.isascii() and text.isdigit():
        return hex(int(text, 10))
    return block


def _unknown(raw_log: Dict[str, Any], topics: Tuple[str, ...], reason: Optional[str] = None) -> DecodedEvent:
    fields = {'raw': raw_log.get('data') or '0x'}
    if reason:
        fields['reason'] = reason
    return _event(EventKind.UNKNOWN, raw_log, topics, fields)


def _event(kind: EventKind, raw_log: Dict[str, Any], topics: Tuple[str, ...], fields: Dict[str, Any]) -> DecodedEvent:
    return DecodedEvent(
        kind=kind,
        block_number=hex_to_int(raw_log.get('blockNumber')),
        transaction_hash=raw_log.get('transactionHash') or '',
        log_index=hex_to_int(raw_log.get('logIndex')),
        topics=topics,
        fields=fields,
        address=(raw_log.get('address') or '').lower(),
        data=raw_log.get('data') or '0x',
    )


def _decode_fraud_found(raw_log: Dict[str, Any], topics: Tuple[str, ...]) -> DecodedEvent:
    # FraudFound(string peer_id, uint256 timestamp)
    data = raw_log.get('data') or '0x'
    peer_id = abi_codec.decode_dynamic_string(data, 0)
    if isinstance(peer_id, Malformed):
        return _unknown(raw_log, topics, f"FraudFound: {peer_id.reason}")
    raw_timestamp = abi_codec.decode_uint_word(data, 1)
    if isinstance(raw_timestamp, Malformed):
        return _unknown(raw_log, topics, f"FraudFound: {raw_timestamp.reason}")

    try:
        timestamp = timestamp_to_datetime(raw_timestamp.value)
    except (OverflowError, OSError, ValueError):
        timestamp = None

    return _event(EventKind.FRAUD_FOUND, raw_log, topics, {
        'peer_id': peer_id.value,
        'timestamp': timestamp,
        'raw_timestamp': raw_timestamp.value,
    })


def _decode_role_event(kind: EventKind, raw_log: Dict[str, Any], topics: Tuple[str, ...]) -> DecodedEvent:
    if len(topics) < 4:
        return _unknown(raw_log, topics, f"{kind.value}: expected 4 topics, got {len(topics)}")
    try:
        if kind is EventKind.ROLE_ADMIN_CHANGED:
            fields = {
                'role': abi_codec.decode_topic_as_bytes32(topics[1]),
                'previous_admin_role': abi_codec.decode_topic_as_bytes32(topics[2]),
                'new_admin_role': abi_codec.decode_topic_as_bytes32(topics[3]),
            }
        else:
            fields = {
                'role': abi_codec.decode_topic_as_bytes32(topics[1]),
                'account': abi_codec.decode_topic_as_address(topics[2]),
                'sender': abi_codec.decode_topic_as_address(topics[3]),
            }
    except ValueError as e:
        return _unknown(raw_log, topics, f"{kind.value}: {e}")
    return _event(kind, raw_log, topics, fields)


def classify_log(raw_log: Dict[str, Any]) -> DecodedEvent:
    """Decode one raw log; the kind is decided by topic0 alone."""
    topics = tuple(raw_log.get('topics') or ())
    if not topics:
        return _unknown(raw_log, topics, "log has no topics")

    name = TOPIC0_HASH_MAP.get(str(topics[0]).lower())
    if name is None:
        return _unknown(raw_log, topics)

    kind = EventKind(name)
    if kind is EventKind.FRAUD_FOUND:
        return _decode_fraud_found(raw_log, topics)
    return _decode_role_event(kind, raw_log, topics)


def _resolve_signature(signature_filter: Optional[str]) -> Optional[str]:
    if not signature_filter:
        return None
    if signature_filter in EVENT_TOPICS:
        return EVENT_TOPICS[signature_filter]
    if signature_filter.startswith('0x'):
        return signature_filter.lower()
    raise ValueError(f"Unknown event filter: {signature_filter}")


def events_to_dataframe(events: List[DecodedEvent]) -> pd.DataFrame:
    """Flatten decoded events into a display table."""
    columns = ['block_number', 'type', 'transaction_hash', 'log_index', 'details']
    if not events:
        return pd.DataFrame(columns=columns)

    rows = []
    for event in events:
        details = ', '.join(f"{k}={v}" for k, v in event.to_dict()['fields'].items())
        rows.append({
            'block_number': event.block_number,
            'type': event.kind.value,
            'transaction_hash': event.transaction_hash,
            'log_index': event.log_index,
            'details': details,
        })
    return pd.DataFrame(rows, columns=columns)


class LogScanner:
    """Event browsing over a bounded block range"""

    def __init__(self, context: "MonitorContext"):
        self.context = context

    async def query_events(
        self,
        rpc_endpoint: str,
        contract_address: str,
        from_block: BlockParam,
        to_block: BlockParam,
        signature_filter: Optional[str] = None,
    ) -> List[DecodedEvent]:
        """
        Fetch and decode the contract's logs in [from_block, to_block].

        Transport and protocol errors abort the whole query. Results are
        sorted by block number, newest first.
        """
        log_filter = {
            'fromBlock': format_block_param(from_block),
            'toBlock': format_block_param(to_block),
            'address': contract_address,
        }
        topic0 = _resolve_signature(signature_filter)
        if topic0:
            log_filter['topics'] = [topic0]

        client = self.context.rpc_client(to_http_endpoint(rpc_endpoint))
        logger.info(f"Querying logs at {contract_address} blocks {log_filter['fromBlock']}..{log_filter['toBlock']}")
        raw_logs = await client.get_logs(log_filter)

        events = [classify_log(raw_log) for raw_log in raw_logs]
        unknown = sum(1 for e in events if e.kind is EventKind.UNKNOWN)
        if unknown:
            logger.warning(f"{unknown} of {len(events)} logs could not be decoded")

        # None blocks (pending logs) sort last; sorted() keeps ties in source order
        events = sorted(
            events,
            key=lambda e: e.block_number if e.block_number is not None else -1,
            reverse=True,
        )
        logger.info(f"Decoded {len(events)} events")
        return events

    async def load_fraud_events(
        self,
        from_block: BlockParam = '0',
        to_block: BlockParam = 'latest',
    ) -> List[DecodedEvent]:
        """FraudFound events of the manager contract named in the metadata."""
        metadata = await self.context.load_metadata()
        events = await self.query_events(
            metadata.rpc_url, metadata.manager_address, from_block, to_block,
            signature_filter=EventKind.FRAUD_FOUND.value,
        )
        return [e for e in events if e.kind is EventKind.FRAUD_FOUND]

    async def default_block_range(self, rpc_endpoint: str, span: Optional[int] = None) -> Tuple[int, int]:
        """(latest - span, latest), floored at block 0."""
        if span is None:
            span = self.context.settings.events_block_span
        latest = await self.context.rpc_client(to_http_endpoint(rpc_endpoint)).block_number()
        return max(0, latest - span), latest
