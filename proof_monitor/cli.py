"""
Proof Monitor CLI

Usage:
    proof-monitor tasks                          # List tasks, newest first
    proof-monitor task <task_id>                 # Show one task
    proof-monitor submit-task <query_id>         # Create a task (ts defaults to now)
    proof-monitor events --from-block 0          # FraudFound events from the manager contract
    proof-monitor events --event all             # Every manager event in the range
    proof-monitor ledger --account 0xabc...      # Reconcile recent transactions of an account
    proof-monitor post-proof <task_id>           # Post a proof with PRIVATE_KEY and wait for it
    proof-monitor fraud-feed --limit 50          # Indexed fraud events from the GraphQL feed
    proof-monitor --verbose ...                  # Debug logging to monitor_debug.log
"""

import argparse
import asyncio
import logging
import sys
import time
from typing import Optional

from .config.chain_config import FRAUD_FEED_LIMIT
from .config.settings import MonitorSettings
from .context import MonitorContext
from .logging_config import DEBUG_LOG_PATH, setup_logging
from .services.base import shorten, summarize_tasks
from .services.errors import MonitorError, RpcProtocolError
from .services.fraud_feed import FraudFeedClient, records_to_dataframe
from .services.local_wallet import LocalAccountWallet
from .services.log_scanner import LogScanner, events_to_dataframe
from .services.submission import SubmissionCoordinator, SubmissionState

logger = logging.getLogger(__name__)


def print_section(title: str, char: str = "="):
    """Print a section header"""
    print(f"\n{char * 70}")
    print(f" {title}")
    print(f"{char * 70}")


def _export(df, output: Optional[str]) -> None:
    if output:
        df.to_csv(output, index=False)
        print(f"[+] Results exported to {output}")


# ============================================================================
# COMMANDS
# ============================================================================

async def cmd_tasks(context: MonitorContext, args) -> int:
    tasks = await context.task_service.list_tasks()
    counts = summarize_tasks(tasks)
    print_section("TASKS")
    print(f"Total: {counts['total']}  Running: {counts['running']}  Completed: {counts['completed']}")
    for task in tasks:
        proof = "proof" if task.has_proof_data else "-"
        print(f"  {task.id}  {task.status.value:<10} {task.created_at:%Y-%m-%d %H:%M}  {task.query_id}  {proof}")
    return 0


async def cmd_task(context: MonitorContext, args) -> int:
    task = await context.task_service.get_task(args.task_id)
    print_section(f"TASK {task.id}")
    print(f"Query:    {task.query_id}")
    print(f"Status:   {task.status.value}")
    print(f"Created:  {task.created_at.isoformat()}")
    if task.comment:
        print(f"Comment:  {task.comment}")
    print(f"Proof:    {len(task.proof_bytes or b'')} bytes")
    print(f"Public:   {len(task.public_values or b'')} bytes")
    return 0


async def cmd_submit_task(context: MonitorContext, args) -> int:
    ts = args.ts if args.ts is not None else int(time.time())
    task_id = await context.task_service.submit_task(args.query_id, ts)
    print(f"[+] Task submitted: {task_id}")
    return 0


async def cmd_events(context: MonitorContext, args) -> int:
    metadata = await context.load_metadata()
    scanner = LogScanner(context)

    from_block = args.from_block
    to_block = args.to_block
    if from_block is None:
        start, latest = await scanner.default_block_range(metadata.rpc_url)
        from_block, to_block = str(start), to_block or str(latest)

    signature_filter = None if args.event == 'all' else args.event
    events = await scanner.query_events(
        metadata.rpc_url, metadata.manager_address, from_block, to_block or 'latest',
        signature_filter=signature_filter,
    )

    print_section(f"EVENTS {from_block}..{to_block or 'latest'}")
    df = events_to_dataframe(events)
    if df.empty:
        print("[!] No events found in the specified block range")
    else:
        print(df.to_string(index=False))
    _export(df, args.output)
    return 0


async def cmd_ledger(context: MonitorContext, args) -> int:
    account = args.account
    if account is None:
        account = await context.wallet.check_connection()
    if account is None:
        print("[!] Pass --account or set PRIVATE_KEY")
        return 1

    report = await context.ledger.refresh(account=account, lookback_blocks=args.lookback)
    print_section(f"LEDGER {shorten(account)}")
    print(f"Blocks {report.from_block}..{report.to_block}, {report.logs_scanned} logs scanned")
    df = context.ledger.to_dataframe()
    if df.empty:
        print("[!] No transactions found")
    else:
        print(df.to_string(index=False))
    _export(df, args.output)
    return 0


async def cmd_post_proof(context: MonitorContext, args) -> int:
    if not context.wallet.is_available:
        print("[!] PRIVATE_KEY is required to post proofs")
        return 1
    await context.wallet.connect()

    coordinator = SubmissionCoordinator(context)
    try:
        attempt = await coordinator.post_proof(args.task_id, track_confirmation=not args.no_wait)
        print(f"[+] Transaction sent: {attempt.tx_hash}")
        print(f"    {attempt.explorer_url}")
        if args.no_wait:
            return 0

        print("[+] Waiting for confirmation...")
        outcome = await coordinator.wait_for_confirmation(attempt)
        if outcome is not None and outcome.is_timed_out:
            print("[!] Transaction still pending, check the explorer later")
            return 0
        print(f"[+] Transaction {attempt.state.value}")
        return 0 if attempt.state is SubmissionState.CONFIRMED else 1
    finally:
        await coordinator.close()


async def cmd_fraud_feed(context: MonitorContext, args) -> int:
    client = FraudFeedClient(context.settings.fraud_feed_url, context.get_session)
    records = await client.fetch_fraud_records(limit=args.limit)
    print_section("FRAUD FEED")
    df = records_to_dataframe(records)
    if df.empty:
        print("[!] No fraud events found")
    else:
        print(df.to_string(index=False))
    _export(df, args.output)
    return 0


COMMANDS = {
    'tasks': cmd_tasks,
    'task': cmd_task,
    'submit-task': cmd_submit_task,
    'events': cmd_events,
    'ledger': cmd_ledger,
    'post-proof': cmd_post_proof,
    'fraud-feed': cmd_fraud_feed,
}

WALLET_COMMANDS = {'ledger', 'post-proof'}


# ============================================================================
# ENTRY POINT
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='proof-monitor', description='Monitor proof tasks and their on-chain submissions')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    parser.add_argument('--env-file', type=str, help='Path to a .env file')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('tasks', help='List tasks')

    p = sub.add_parser('task', help='Show one task')
    p.add_argument('task_id')

    p = sub.add_parser('submit-task', help='Create a proof task')
    p.add_argument('query_id')
    p.add_argument('--ts', type=int, help='Query timestamp (default: now)')

    p = sub.add_parser('events', help='Query manager contract events')
    p.add_argument('--from-block', type=str, help='Start block (default: latest - EVENTS_BLOCK_SPAN)')
    p.add_argument('--to-block', type=str, help='End block (default: latest)')
    p.add_argument('--event', type=str, default='FraudFound', help='Event name, topic hash or "all"')
    p.add_argument('--output', '-o', type=str, help='Output CSV file path')

    p = sub.add_parser('ledger', help='Reconcile recent transactions of an account')
    p.add_argument('--account', type=str, help='Sender address (default: PRIVATE_KEY account)')
    p.add_argument('--lookback', type=int, help='Blocks to scan (default: LEDGER_LOOKBACK_BLOCKS)')
    p.add_argument('--output', '-o', type=str, help='Output CSV file path')

    p = sub.add_parser('post-proof', help='Post a task proof on chain')
    p.add_argument('task_id')
    p.add_argument('--no-wait', action='store_true', help='Do not wait for confirmation')

    p = sub.add_parser('fraud-feed', help='Fraud events from the GraphQL feed')
    p.add_argument('--limit', type=int, default=FRAUD_FEED_LIMIT, help=f'Max records (default: {FRAUD_FEED_LIMIT})')
    p.add_argument('--output', '-o', type=str, help='Output CSV file path')
    return parser


async def run(args) -> int:
    settings = MonitorSettings.from_env(args.env_file)

    async with MonitorContext(settings) as context:
        if settings.private_key and args.command in WALLET_COMMANDS:
            rpc_url = settings.rpc_url or (await context.load_metadata()).http_rpc_url
            context.wallet.provider = LocalAccountWallet(rpc_url, settings.private_key)
        return await COMMANDS[args.command](context, args)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, debug=args.verbose)
    if args.verbose:
        print(f"[DEBUG] Verbose logging enabled -> {DEBUG_LOG_PATH}")

    try:
        return asyncio.run(run(args))
    except RpcProtocolError as e:
        print(f"[!] {e}")
        print(f"    Hint: {e.hint()}")
        return 1
    except MonitorError as e:
        print(f"[!] {e}")
        return 1
    except KeyboardInterrupt:
        print("\n[!] Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
