"""
Base data structures shared by the reconciliation and submission services.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Any, Tuple
from dataclasses import dataclass, field
from enum import Enum
import logging

from ..config.chain_config import explorer_tx_url

logger = logging.getLogger(__name__)


# ============================================================================
# ENUMS
# ============================================================================

class EventKind(Enum):
    """Proving manager events we know how to decode"""
    FRAUD_FOUND = "FraudFound"
    ROLE_ADMIN_CHANGED = "RoleAdminChanged"
    ROLE_GRANTED = "RoleGranted"
    ROLE_REVOKED = "RoleRevoked"
    UNKNOWN = "Unknown"


class LedgerStatus(Enum):
    """Lifecycle of a submitted transaction"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class TaskStatus(Enum):
    """Task states reported by the proof task service"""
    NOT_FOUND = "NotFound"
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @classmethod
    def parse(cls, value: Any) -> "TaskStatus":
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unknown task status {value!r}, treating as NotFound")
            return cls.NOT_FOUND


# ============================================================================
# HELPERS
# ============================================================================

def hex_to_int(value: Any) -> Optional[int]:
    """Parse a JSON-RPC quantity ('0x1a', 26, '26') into an int."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        if text.lower().startswith('0x'):
            return int(text, 16)
        return int(text, 10)
    except ValueError:
        return None


def normalize_hash(tx_hash: Any) -> str:
    """Lowercase 0x-prefixed hex for a transaction hash."""
    if isinstance(tx_hash, (bytes, bytearray)):
        return '0x' + bytes(tx_hash).hex()
    text = str(tx_hash).strip().lower()
    if not text.startswith('0x'):
        text = '0x' + text
    return text


def coerce_bytes(value: Any) -> Optional[bytes]:
    """
    Convert a byte payload from the task service into bytes.

    The service serializes Vec<u8> as a JSON array of ints; hex strings and
    raw bytes are accepted as well. Returns None when nothing is present.
    """
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        text = value[2:] if value.lower().startswith('0x') else value
        return bytes.fromhex(text)
    if isinstance(value, (list, tuple)):
        return bytes(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def timestamp_to_datetime(seconds: Any) -> Optional[datetime]:
    parsed = hex_to_int(seconds)
    if parsed is None:
        return None
    return datetime.fromtimestamp(parsed, tz=timezone.utc)


def to_http_endpoint(url: str) -> str:
    """Rewrite websocket RPC urls to http(s); only request/response calls are made."""
    if url.startswith("wss://"):
        return "https://" + url[len("wss://"):]
    if url.startswith("ws://"):
        return "http://" + url[len("ws://"):]
    return url


def shorten(value: str, head: int = 6, tail: int = 4) -> str:
    if not value or len(value) <= head + tail + 3:
        return value or ''
    return f"{value[:head]}...{value[-tail:]}"


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class ChainMetadata:
    """Chain settings published by the task service at /metadata"""
    rpc_url: str
    manager_address: str
    config_name: str
    network: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainMetadata":
        return cls(
            rpc_url=data['rpc_url'],
            manager_address=data['manager_address'],
            config_name=data['config_name'],
            network=data['blockchain_network'],
        )

    @property
    def http_rpc_url(self) -> str:
        return to_http_endpoint(self.rpc_url)

    def explorer_tx_url(self, tx_hash: str) -> str:
        return explorer_tx_url(self.network, tx_hash)


@dataclass(frozen=True)
class DecodedEvent:
    """Typed view of a raw contract log"""
    kind: EventKind
    block_number: Optional[int]
    transaction_hash: str
    log_index: Optional[int]
    topics: Tuple[str, ...]
    fields: Dict[str, Any] = field(default_factory=dict)
    address: str = ""
    data: str = "0x"

    @property
    def signature(self) -> Optional[str]:
        return self.topics[0] if self.topics else None

    def to_dict(self) -> dict:
        return {
            'type': self.kind.value,
            'block_number': self.block_number,
            'transaction_hash': self.transaction_hash,
            'log_index': self.log_index,
            'signature': self.signature,
            'topics': list(self.topics),
            'fields': {k: v.isoformat() if isinstance(v, datetime) else v for k, v in self.fields.items()},
            'address': self.address,
        }


@dataclass
class LedgerEntry:
    """One transaction sent by the connected wallet to the manager contract"""
    hash: str
    from_address: str
    to_address: str
    block_number: Optional[int] = None
    timestamp: Optional[datetime] = None  # block timestamp
    status: LedgerStatus = LedgerStatus.PENDING
    submitted_at: Optional[datetime] = None  # local submission time (optimistic entries)

    @property
    def is_final(self) -> bool:
        return self.status is not LedgerStatus.PENDING

    def to_dict(self) -> dict:
        return {
            'hash': self.hash,
            'from': self.from_address,
            'to': self.to_address,
            'block_number': self.block_number,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'status': self.status.value,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
        }


@dataclass(frozen=True)
class SubmissionRequest:
    """Arguments for one verifyAndEmit call"""
    config_name: str
    public_values: bytes
    proof_bytes: bytes
    sender_address: str


@dataclass
class Task:
    """Proof generation task as reported by the task service"""
    id: str
    query_id: str
    ts: int
    status: TaskStatus
    comment: Optional[str] = None
    proof_bytes: Optional[bytes] = None
    public_values: Optional[bytes] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=str(data.get('id', '')),
            query_id=data.get('query_id') or '',
            ts=int(data.get('ts') or 0),
            status=TaskStatus.parse(data.get('status')),
            comment=data.get('comment'),
            proof_bytes=coerce_bytes(data.get('proof_bytes')),
            public_values=coerce_bytes(data.get('public_values')),
        )

    @property
    def has_proof_data(self) -> bool:
        return bool(self.proof_bytes) and bool(self.public_values)

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.ts, tz=timezone.utc)


def summarize_tasks(tasks: List[Task]) -> Dict[str, int]:
    """Dashboard counters: total, running and completed tasks."""
    return {
        'total': len(tasks),
        'running': sum(1 for t in tasks if t.status is TaskStatus.RUNNING),
        'completed': sum(1 for t in tasks if t.status is TaskStatus.COMPLETED),
    }
