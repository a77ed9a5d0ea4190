"""
Runtime settings loaded from the environment (and a local .env file).
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .chain_config import (
    DEFAULT_TASK_SERVICE_URL, DEFAULT_FRAUD_FEED_URL, POLL_INTERVAL_MS,
    POLL_TIMEOUT_MS, LEDGER_LOOKBACK_BLOCKS, EVENTS_BLOCK_SPAN, REQUEST_TIMEOUT,
)

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


@dataclass(frozen=True)
class MonitorSettings:
    """Settings shared by every component of a monitoring session."""
    task_service_url: str = DEFAULT_TASK_SERVICE_URL
    rpc_url: Optional[str] = None  # overrides the rpc_url from /metadata
    private_key: Optional[str] = field(default=None, repr=False)
    fraud_feed_url: str = DEFAULT_FRAUD_FEED_URL
    poll_interval_ms: int = POLL_INTERVAL_MS
    poll_timeout_ms: int = POLL_TIMEOUT_MS
    ledger_lookback_blocks: int = LEDGER_LOOKBACK_BLOCKS
    events_block_span: int = EVENTS_BLOCK_SPAN
    request_timeout: float = REQUEST_TIMEOUT

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "MonitorSettings":
        """Build settings from environment variables, loading .env first."""
        load_dotenv(env_file)

        settings = cls(
            task_service_url=os.getenv('TASK_SERVICE_URL', DEFAULT_TASK_SERVICE_URL).rstrip('/'),
            rpc_url=os.getenv('RPC_URL') or None,
            private_key=os.getenv('PRIVATE_KEY') or None,
            fraud_feed_url=os.getenv('FRAUD_FEED_URL', DEFAULT_FRAUD_FEED_URL),
            poll_interval_ms=_env_int('POLL_INTERVAL_MS', POLL_INTERVAL_MS),
            poll_timeout_ms=_env_int('POLL_TIMEOUT_MS', POLL_TIMEOUT_MS),
            ledger_lookback_blocks=_env_int('LEDGER_LOOKBACK_BLOCKS', LEDGER_LOOKBACK_BLOCKS),
            events_block_span=_env_int('EVENTS_BLOCK_SPAN', EVENTS_BLOCK_SPAN),
            request_timeout=_env_float('REQUEST_TIMEOUT', REQUEST_TIMEOUT),
        )
        logger.debug(f"Loaded settings: {settings}")
        return settings
