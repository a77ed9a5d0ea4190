"""
Unit tests for the transaction ledger.

Tests:
- Merge rules (uniqueness, status monotonicity, no overwrite of known data)
- Confirmation polling via wallet and via RPC
- Chain reconciliation and timestamp back-fill
"""
import asyncio
from datetime import datetime, timezone

import pytest

from proof_monitor.services.base import LedgerStatus
from proof_monitor.services.errors import RpcProtocolError, RpcTransportError
from proof_monitor.services.ledger import TransactionLedger

from conftest import ACCOUNT, MANAGER, OTHER_ACCOUNT, TX_HASH, FakeWalletProvider


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


class TestMergeRules:
    """Test record_optimistic / merge_discovered / apply_receipt."""

    def test_optimistic_then_discovered_merge(self, make_context):
        ledger = TransactionLedger(make_context())

        ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)
        ledger.merge_discovered(TX_HASH.upper().replace("0X", "0x"), ACCOUNT, MANAGER, block_number=42)

        assert len(ledger) == 1, "same hash in any case must merge into one entry"
        entry = ledger.get(TX_HASH)
        assert entry.status is LedgerStatus.CONFIRMED
        assert entry.block_number == 42
        assert entry.submitted_at is not None

    def test_record_optimistic_keeps_existing(self, make_context):
        ledger = TransactionLedger(make_context())
        ledger.merge_discovered(TX_HASH, ACCOUNT, MANAGER, block_number=7)

        entry = ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        assert entry.status is LedgerStatus.CONFIRMED, "optimistic insert must not regress status"
        assert entry.block_number == 7

    def test_failed_never_regresses(self, make_context):
        ledger = TransactionLedger(make_context())
        ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)
        ledger.apply_receipt(TX_HASH, {'status': '0x0', 'blockNumber': '0x10'})

        ledger.merge_discovered(TX_HASH, ACCOUNT, MANAGER, block_number=99)
        ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        entry = ledger.get(TX_HASH)
        assert entry.status is LedgerStatus.FAILED
        assert entry.block_number == 16, "known block number is never overwritten"

    def test_receipt_after_confirmation_does_not_change_status(self, make_context):
        ledger = TransactionLedger(make_context())
        ledger.merge_discovered(TX_HASH, ACCOUNT, MANAGER, block_number=5)

        ledger.apply_receipt(TX_HASH, {'status': '0x0', 'blockNumber': '0x5'})

        assert ledger.get(TX_HASH).status is LedgerStatus.CONFIRMED

    def test_timestamp_filled_only_when_missing(self, make_context):
        ledger = TransactionLedger(make_context())
        first = datetime(2024, 1, 1, tzinfo=timezone.utc)
        ledger.merge_discovered(TX_HASH, ACCOUNT, MANAGER, block_number=5, timestamp=first)

        changed = ledger.merge_discovered(TX_HASH, ACCOUNT, MANAGER, block_number=6,
                                          timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc))

        assert changed is False
        assert ledger.get(TX_HASH).timestamp == first

    def test_receipt_for_unknown_hash_ignored(self, make_context):
        ledger = TransactionLedger(make_context())

        assert ledger.apply_receipt(TX_HASH, {'status': '0x1'}) is None
        assert len(ledger) == 0

    def test_entries_order(self, make_context):
        ledger = TransactionLedger(make_context())
        ledger.record_optimistic(tx_hash(1), ACCOUNT, MANAGER)
        ledger.merge_discovered(tx_hash(2), ACCOUNT, MANAGER, block_number=10)
        ledger.merge_discovered(tx_hash(3), ACCOUNT, MANAGER, block_number=30)
        ledger.merge_discovered(tx_hash(4), ACCOUNT, MANAGER, block_number=20)

        assert [e.hash for e in ledger.entries()] == [tx_hash(3), tx_hash(4), tx_hash(2), tx_hash(1)]

    def test_contains_and_clear(self, make_context):
        ledger = TransactionLedger(make_context())
        ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        assert TX_HASH in ledger
        ledger.clear()
        assert TX_HASH not in ledger
        assert len(ledger) == 0


class TestPollConfirmation:
    """Test background confirmation tracking."""

    def test_confirmed_via_wallet(self, make_context, clock):
        provider = FakeWalletProvider()
        provider.receipts = [None, None, {'status': '0x1', 'blockNumber': '0x2a'}]
        context = make_context(provider)
        context.ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        outcome = asyncio.run(context.ledger.poll_confirmation(TX_HASH, poll_interval_ms=2000, timeout_ms=300000))

        assert outcome.is_resolved
        entry = context.ledger.get(TX_HASH)
        assert entry.status is LedgerStatus.CONFIRMED
        assert entry.block_number == 42
        assert outcome.attempts == 3

    def test_reverted_receipt_marks_failed(self, make_context):
        provider = FakeWalletProvider()
        provider.receipts = [{'status': '0x0', 'blockNumber': '0x2a'}]
        context = make_context(provider)
        context.ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        asyncio.run(context.ledger.poll_confirmation(TX_HASH))

        assert context.ledger.get(TX_HASH).status is LedgerStatus.FAILED

    def test_timeout_leaves_pending(self, make_context, clock):
        provider = FakeWalletProvider()
        context = make_context(provider)
        context.ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        outcome = asyncio.run(context.ledger.poll_confirmation(TX_HASH, poll_interval_ms=2000, timeout_ms=300000))

        assert outcome.is_timed_out
        assert context.ledger.get(TX_HASH).status is LedgerStatus.PENDING
        receipt_requests = len(provider.requests_for('eth_getTransactionReceipt'))
        assert receipt_requests == 150, "polling stops at the deadline"
        assert clock.now <= 300.0

    def test_falls_back_to_rpc_without_wallet(self, make_context, rpc):
        rpc.responses['eth_getTransactionReceipt'] = {'status': '0x1', 'blockNumber': '0x7'}
        context = make_context()
        context.ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        asyncio.run(context.ledger.poll_confirmation(TX_HASH))

        assert context.ledger.get(TX_HASH).status is LedgerStatus.CONFIRMED
        assert rpc.endpoints == ["https://rpc.example/ws"], "metadata rpc url rewritten to http"

    def test_rpc_errors_retried_until_receipt(self, make_context, rpc):
        answers = [RpcTransportError("timeout"), {'status': '0x1', 'blockNumber': '0x7'}]

        def receipt(params):
            answer = answers.pop(0)
            if isinstance(answer, Exception):
                raise answer
            return answer

        rpc.responses['eth_getTransactionReceipt'] = receipt
        context = make_context()
        context.ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        outcome = asyncio.run(context.ledger.poll_confirmation(TX_HASH, rpc_endpoint="https://node.example"))

        assert outcome.attempts == 2
        assert context.ledger.get(TX_HASH).status is LedgerStatus.CONFIRMED


class TestReconcileFromChain:
    """Test chain history reconciliation."""

    def _chain(self, rpc, transactions, latest=50000):
        rpc.responses['eth_blockNumber'] = hex(latest)
        rpc.responses['eth_getLogs'] = [
            {'transactionHash': h, 'blockNumber': tx.get('blockNumber') if isinstance(tx, dict) else None,
             'topics': [], 'data': '0x'}
            for h, tx in transactions.items()
        ]

        def by_hash(params):
            tx = transactions[params[0]]
            if isinstance(tx, Exception):
                raise tx
            return tx

        rpc.responses['eth_getTransactionByHash'] = by_hash

    def test_keeps_only_account_transactions(self, make_context, rpc):
        self._chain(rpc, {
            tx_hash(1): {'from': ACCOUNT.upper().replace("0X", "0x"), 'to': MANAGER, 'blockNumber': '0xc350'},
            tx_hash(2): {'from': OTHER_ACCOUNT, 'to': MANAGER, 'blockNumber': '0xc34f'},
        })
        ledger = TransactionLedger(make_context())

        report = asyncio.run(ledger.reconcile_from_chain("https://node.example", MANAGER, ACCOUNT, 10000))

        assert [e.hash for e in ledger.entries()] == [tx_hash(1)], "sender match is case-insensitive"
        assert ledger.get(tx_hash(1)).status is LedgerStatus.CONFIRMED
        assert ledger.get(tx_hash(1)).block_number == 50000
        assert report.from_block == 40000
        assert report.inserted == 1
        log_filter = rpc.calls_for('eth_getLogs')[0][0]
        assert log_filter == {'fromBlock': hex(40000), 'toBlock': 'latest', 'address': MANAGER}

    def test_duplicate_logs_checked_once(self, make_context, rpc):
        self._chain(rpc, {tx_hash(1): {'from': ACCOUNT, 'to': MANAGER, 'blockNumber': '0x10'}})
        rpc.responses['eth_getLogs'] = rpc.responses['eth_getLogs'] * 3
        ledger = TransactionLedger(make_context())

        asyncio.run(ledger.reconcile_from_chain("https://node.example", MANAGER, ACCOUNT))

        assert len(rpc.calls_for('eth_getTransactionByHash')) == 1
        assert len(ledger) == 1

    def test_upgrades_pending_entry(self, make_context, rpc):
        self._chain(rpc, {TX_HASH: {'from': ACCOUNT, 'to': MANAGER, 'blockNumber': '0x10'}})
        ledger = TransactionLedger(make_context())
        ledger.record_optimistic(TX_HASH, ACCOUNT, MANAGER)

        report = asyncio.run(ledger.reconcile_from_chain("https://node.example", MANAGER, ACCOUNT))

        assert len(ledger) == 1
        assert ledger.get(TX_HASH).status is LedgerStatus.CONFIRMED
        assert ledger.get(TX_HASH).block_number == 16
        assert report.updated == 1 and report.inserted == 0

    def test_lookup_failure_skipped(self, make_context, rpc):
        self._chain(rpc, {
            tx_hash(1): RpcTransportError("flaky"),
            tx_hash(2): {'from': ACCOUNT, 'to': MANAGER, 'blockNumber': '0x20'},
        })
        rpc.responses['eth_getLogs'] = [
            {'transactionHash': tx_hash(1)}, {'transactionHash': tx_hash(2)},
        ]
        ledger = TransactionLedger(make_context())

        report = asyncio.run(ledger.reconcile_from_chain("https://node.example", MANAGER, ACCOUNT))

        assert report.skipped == 1
        assert tx_hash(2) in ledger

    def test_log_query_failure_aborts(self, make_context, rpc):
        rpc.responses['eth_blockNumber'] = '0x100'
        rpc.responses['eth_getLogs'] = RpcProtocolError(-32005, "block range too large")
        ledger = TransactionLedger(make_context())

        with pytest.raises(RpcProtocolError):
            asyncio.run(ledger.reconcile_from_chain("https://node.example", MANAGER, ACCOUNT))
        assert len(ledger) == 0

    def test_short_chain_starts_at_genesis(self, make_context, rpc):
        self._chain(rpc, {}, latest=500)
        ledger = TransactionLedger(make_context())

        report = asyncio.run(ledger.reconcile_from_chain("https://node.example", MANAGER, ACCOUNT, 10000))

        assert report.from_block == 0


class TestTimestamps:
    """Test fetch_missing_timestamps and refresh."""

    def test_backfill_with_block_cache(self, make_context, rpc):
        blocks = {'0xa': {'timestamp': hex(1700000000)}, '0xb': RpcTransportError("gone")}

        def get_block(params):
            block = blocks[params[0]]
            if isinstance(block, Exception):
                raise block
            return block

        rpc.responses['eth_getBlockByNumber'] = get_block
        ledger = TransactionLedger(make_context())
        ledger.merge_discovered(tx_hash(1), ACCOUNT, MANAGER, block_number=10)
        ledger.merge_discovered(tx_hash(2), ACCOUNT, MANAGER, block_number=10)
        ledger.merge_discovered(tx_hash(3), ACCOUNT, MANAGER, block_number=11)
        ledger.record_optimistic(tx_hash(4), ACCOUNT, MANAGER)

        filled = asyncio.run(ledger.fetch_missing_timestamps("https://node.example"))

        assert filled == 2
        assert ledger.get(tx_hash(1)).timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert ledger.get(tx_hash(3)).timestamp is None, "failed lookups are skipped"
        assert ledger.get(tx_hash(4)).timestamp is None, "pending entries have no block to look up"
        assert len(rpc.calls_for('eth_getBlockByNumber')) == 2, "block 10 fetched once"

    def test_absurd_block_timestamp_skipped(self, make_context, rpc):
        blocks = {'0xa': {'timestamp': hex(2 ** 80)}, '0xb': {'timestamp': hex(1700000000)}}
        rpc.responses['eth_getBlockByNumber'] = lambda params: blocks[params[0]]
        ledger = TransactionLedger(make_context())
        ledger.merge_discovered(tx_hash(1), ACCOUNT, MANAGER, block_number=10)
        ledger.merge_discovered(tx_hash(2), ACCOUNT, MANAGER, block_number=11)

        filled = asyncio.run(ledger.fetch_missing_timestamps("https://node.example"))

        assert filled == 1
        assert ledger.get(tx_hash(1)).timestamp is None, "out-of-range timestamp left empty"
        assert ledger.get(tx_hash(2)).timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_refresh_rebuilds_from_chain(self, make_context, rpc):
        rpc.responses['eth_blockNumber'] = '0x64'
        rpc.responses['eth_getLogs'] = [{'transactionHash': tx_hash(9)}]
        rpc.responses['eth_getTransactionByHash'] = {'from': ACCOUNT, 'to': MANAGER, 'blockNumber': '0x60'}
        rpc.responses['eth_getBlockByNumber'] = {'timestamp': hex(1700000000)}
        context = make_context(FakeWalletProvider())
        context.ledger.record_optimistic(tx_hash(1), ACCOUNT, MANAGER)

        asyncio.run(context.ledger.refresh())

        assert [e.hash for e in context.ledger.entries()] == [tx_hash(9)]
        assert context.ledger.get(tx_hash(9)).timestamp is not None

    def test_to_dataframe(self, make_context):
        ledger = TransactionLedger(make_context())
        assert ledger.to_dataframe().empty

        ledger.merge_discovered(tx_hash(1), ACCOUNT, MANAGER, block_number=3)
        df = ledger.to_dataframe()

        assert list(df.columns) == ['hash', 'block_number', 'status', 'timestamp', 'from', 'to']
        assert df.iloc[0]['status'] == 'confirmed'
