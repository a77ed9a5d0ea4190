"""
Transaction Ledger Module

Local record of transactions the connected wallet sent to the manager
contract. Entries arrive optimistically from submissions and by discovery
from chain history; both paths merge into a single entry per hash.

Merge rules:
- one entry per (lowercased) transaction hash
- a confirmed or failed status never goes back to pending
- a known block number or timestamp is never overwritten
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import pandas as pd

from .base import LedgerEntry, LedgerStatus, hex_to_int, normalize_hash, timestamp_to_datetime
from .errors import MonitorError
from .polling import PollOutcome, poll_until

if TYPE_CHECKING:
    from ..context import MonitorContext

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Summary of one reconcile_from_chain pass"""
    from_block: int
    to_block: int
    logs_scanned: int = 0
    transactions_checked: int = 0
    matched: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


def receipt_status(receipt: Dict[str, Any]) -> LedgerStatus:
    """Status bit of a receipt: 1 confirmed, anything else failed."""
    return LedgerStatus.CONFIRMED if hex_to_int(receipt.get('status')) == 1 else LedgerStatus.FAILED


def _block_time(block: Optional[Dict[str, Any]]) -> Optional[datetime]:
    if not block:
        return None
    try:
        return timestamp_to_datetime(block.get('timestamp'))
    except (OverflowError, OSError, ValueError):
        logger.warning(f"Block {block.get('number')} has an unusable timestamp {block.get('timestamp')}")
        return None


class TransactionLedger:
    """Hash-keyed ledger of submitted and discovered transactions"""

    def __init__(self, context: "MonitorContext"):
        self.context = context
        self._entries: Dict[str, LedgerEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tx_hash: object) -> bool:
        return isinstance(tx_hash, (str, bytes)) and normalize_hash(tx_hash) in self._entries

    def get(self, tx_hash: str) -> Optional[LedgerEntry]:
        return self._entries.get(normalize_hash(tx_hash))

    def entries(self) -> List[LedgerEntry]:
        """Display order: block number descending, pending (no block) last."""
        with_block = [e for e in self._entries.values() if e.block_number is not None]
        without_block = [e for e in self._entries.values() if e.block_number is None]
        with_block.sort(key=lambda e: e.block_number, reverse=True)
        return with_block + without_block

    def clear(self) -> None:
        if self._entries:
            logger.info(f"Clearing {len(self._entries)} ledger entries")
        self._entries.clear()

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def record_optimistic(self, tx_hash: str, from_address: str, to_address: str) -> LedgerEntry:
        """Add a just-sent transaction as pending; existing entries are kept."""
        key = normalize_hash(tx_hash)
        entry = self._entries.get(key)
        if entry is not None:
            logger.debug(f"Transaction {key} already in ledger ({entry.status.value})")
            return entry

        entry = LedgerEntry(
            hash=key,
            from_address=from_address,
            to_address=to_address,
            status=LedgerStatus.PENDING,
            submitted_at=datetime.now(timezone.utc),
        )
        self._entries[key] = entry
        logger.info(f"Recorded pending transaction {key}")
        return entry

    def merge_discovered(
        self,
        tx_hash: str,
        from_address: str,
        to_address: str,
        block_number: Optional[int],
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """
        Merge a transaction found on chain. Returns True when the ledger
        changed (new entry, upgraded status or filled-in fields).
        """
        key = normalize_hash(tx_hash)
        entry = self._entries.get(key)
        if entry is None:
            self._entries[key] = LedgerEntry(
                hash=key,
                from_address=from_address,
                to_address=to_address,
                block_number=block_number,
                timestamp=timestamp,
                status=LedgerStatus.CONFIRMED,
            )
            return True

        changed = False
        if entry.block_number is None and block_number is not None:
            entry.block_number = block_number
            changed = True
        if entry.timestamp is None and timestamp is not None:
            entry.timestamp = timestamp
            changed = True
        if entry.status is LedgerStatus.PENDING:
            entry.status = LedgerStatus.CONFIRMED
            changed = True
        return changed

    def apply_receipt(self, tx_hash: str, receipt: Dict[str, Any]) -> Optional[LedgerEntry]:
        """Settle a pending entry from its receipt."""
        entry = self.get(tx_hash)
        if entry is None:
            logger.warning(f"Receipt for unknown transaction {tx_hash}, ignoring")
            return None

        if entry.block_number is None:
            entry.block_number = hex_to_int(receipt.get('blockNumber'))
        if entry.status is LedgerStatus.PENDING:
            entry.status = receipt_status(receipt)
            logger.info(f"Transaction {entry.hash} {entry.status.value} in block {entry.block_number}")
        return entry

    # ------------------------------------------------------------------
    # Confirmation tracking
    # ------------------------------------------------------------------

    async def _fetch_receipt(self, tx_hash: str, rpc_endpoint: Optional[str]) -> Optional[Dict[str, Any]]:
        wallet = self.context.wallet
        if wallet.is_available and wallet.is_connected:
            return await wallet.get_transaction_receipt(tx_hash)
        if rpc_endpoint is None:
            rpc_endpoint = (await self.context.load_metadata()).http_rpc_url
        return await self.context.rpc_client(rpc_endpoint).get_transaction_receipt(tx_hash)

    async def poll_confirmation(
        self,
        tx_hash: str,
        poll_interval_ms: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        rpc_endpoint: Optional[str] = None,
    ) -> PollOutcome:
        """
        Poll for the receipt until it appears or the timeout passes.

        On a receipt the entry becomes confirmed/failed. On timeout the entry
        stays pending and polling stops.
        """
        settings = self.context.settings
        interval = poll_interval_ms if poll_interval_ms is not None else settings.poll_interval_ms
        timeout = timeout_ms if timeout_ms is not None else settings.poll_timeout_ms

        outcome = await poll_until(
            lambda: self._fetch_receipt(tx_hash, rpc_endpoint),
            interval,
            timeout,
            sleep=self.context.sleep,
            clock=self.context.clock,
            label=f"receipt {tx_hash[:10]}",
        )
        if outcome.is_resolved:
            self.apply_receipt(tx_hash, outcome.value)
        else:
            logger.warning(f"Transaction {tx_hash} still pending after {timeout} ms")
        return outcome

    # ------------------------------------------------------------------
    # Chain reconciliation
    # ------------------------------------------------------------------

    async def reconcile_from_chain(
        self,
        rpc_endpoint: str,
        contract_address: str,
        account: str,
        lookback_blocks: Optional[int] = None,
    ) -> ReconcileReport:
        """
        Merge the account's recent transactions to the contract into the ledger.

        Block number and log query failures abort the pass. A failed
        transaction lookup is skipped.
        """
        if lookback_blocks is None:
            lookback_blocks = self.context.settings.ledger_lookback_blocks
        client = self.context.rpc_client(rpc_endpoint)

        latest = await client.block_number()
        report = ReconcileReport(from_block=max(0, latest - lookback_blocks), to_block=latest)

        logs = await client.get_logs({
            'fromBlock': hex(report.from_block),
            'toBlock': 'latest',
            'address': contract_address,
        })
        report.logs_scanned = len(logs)

        seen = set()
        tx_hashes = []
        for log in logs:
            tx_hash = log.get('transactionHash')
            if tx_hash and normalize_hash(tx_hash) not in seen:
                seen.add(normalize_hash(tx_hash))
                tx_hashes.append(tx_hash)

        account_lower = account.lower()
        for tx_hash in tx_hashes:
            report.transactions_checked += 1
            try:
                tx = await client.get_transaction_by_hash(tx_hash)
            except MonitorError as e:
                logger.warning(f"Skipping transaction {tx_hash}: {e}")
                report.skipped += 1
                continue
            if not tx or (tx.get('from') or '').lower() != account_lower:
                continue

            report.matched += 1
            is_new = normalize_hash(tx_hash) not in self._entries
            changed = self.merge_discovered(
                tx_hash,
                from_address=tx.get('from'),
                to_address=tx.get('to') or contract_address,
                block_number=hex_to_int(tx.get('blockNumber')),
            )
            if is_new:
                report.inserted += 1
            elif changed:
                report.updated += 1

        logger.info(
            f"Reconciled blocks {report.from_block}..{report.to_block}: "
            f"{report.matched} matching transactions ({report.inserted} new, {report.updated} updated)"
        )
        return report

    async def fetch_missing_timestamps(self, rpc_endpoint: Optional[str] = None) -> int:
        """Back-fill block timestamps; returns how many entries were filled."""
        missing = [e for e in self._entries.values() if e.block_number is not None and e.timestamp is None]
        if not missing:
            return 0
        if rpc_endpoint is None:
            rpc_endpoint = (await self.context.load_metadata()).http_rpc_url
        client = self.context.rpc_client(rpc_endpoint)

        blocks: Dict[int, Optional[datetime]] = {}
        filled = 0
        for entry in missing:
            if entry.block_number not in blocks:
                try:
                    block = await client.get_block_by_number(entry.block_number)
                except MonitorError as e:
                    logger.warning(f"Failed to fetch block {entry.block_number}: {e}")
                    continue
                blocks[entry.block_number] = _block_time(block)

            timestamp = blocks[entry.block_number]
            if timestamp is not None:
                entry.timestamp = timestamp
                filled += 1

        logger.debug(f"Filled {filled} of {len(missing)} missing timestamps")
        return filled

    async def refresh(
        self,
        rpc_endpoint: Optional[str] = None,
        contract_address: Optional[str] = None,
        account: Optional[str] = None,
        lookback_blocks: Optional[int] = None,
    ) -> ReconcileReport:
        """Rebuild the ledger from chain history: clear, reconcile, back-fill timestamps."""
        if rpc_endpoint is None or contract_address is None:
            metadata = await self.context.load_metadata()
            rpc_endpoint = rpc_endpoint or metadata.http_rpc_url
            contract_address = contract_address or metadata.manager_address
        if account is None:
            account = self.context.wallet.require_account()

        self.clear()
        report = await self.reconcile_from_chain(rpc_endpoint, contract_address, account, lookback_blocks)
        await self.fetch_missing_timestamps(rpc_endpoint)
        return report

    def to_dataframe(self) -> pd.DataFrame:
        columns = ['hash', 'block_number', 'status', 'timestamp', 'from', 'to']
        rows = [e.to_dict() for e in self.entries()]
        if not rows:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(rows)[columns]
