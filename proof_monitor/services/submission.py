"""
Submission Coordinator Module

Posts a task's proof to the manager contract via verifyAndEmit and hands the
resulting transaction to the ledger for confirmation tracking.

Attempt lifecycle:
    IDLE -> NETWORK_CHECKED -> ENCODED -> SENT -> CONFIRMED | FAILED
Any error before SENT moves the attempt straight to FAILED.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set, TYPE_CHECKING

from ..config.chain_config import VERIFY_AND_EMIT_SELECTOR
from .abi_codec import encode_call_data, to_hex
from .base import LedgerStatus, SubmissionRequest
from .errors import MissingProofDataError, SubmissionError
from .ledger import receipt_status
from .network_guard import NetworkCheck, NetworkGuard
from .polling import PollOutcome

if TYPE_CHECKING:
    from ..context import MonitorContext

logger = logging.getLogger(__name__)


# ============================================================================
# ENUMS
# ============================================================================

class SubmissionState(Enum):
    IDLE = "idle"
    NETWORK_CHECKED = "network_checked"
    ENCODED = "encoded"
    SENT = "sent"
    CONFIRMED = "confirmed"
    FAILED = "failed"


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class SubmissionAttempt:
    """One post_proof call and everything it produced"""
    task_id: str
    state: SubmissionState = SubmissionState.IDLE
    history: List[SubmissionState] = field(default_factory=lambda: [SubmissionState.IDLE])
    tx_hash: Optional[str] = None
    request: Optional[SubmissionRequest] = None
    network_check: Optional[NetworkCheck] = None
    error: Optional[BaseException] = None
    explorer_url: Optional[str] = None
    confirmation: Optional["asyncio.Task[PollOutcome]"] = field(default=None, repr=False)

    def advance(self, state: SubmissionState) -> None:
        logger.debug(f"Task {self.task_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    @property
    def is_finished(self) -> bool:
        return self.state in (SubmissionState.CONFIRMED, SubmissionState.FAILED)

    def to_dict(self) -> dict:
        return {
            'task_id': self.task_id,
            'state': self.state.value,
            'history': [s.value for s in self.history],
            'tx_hash': self.tx_hash,
            'explorer_url': self.explorer_url,
            'error': str(self.error) if self.error else None,
        }


# ============================================================================
# COORDINATOR
# ============================================================================

class SubmissionCoordinator:
    """Builds, sends and tracks verifyAndEmit transactions"""

    def __init__(self, context: "MonitorContext", network_guard: Optional[NetworkGuard] = None):
        self.context = context
        self.network_guard = network_guard or NetworkGuard(context)
        self.attempts: List[SubmissionAttempt] = []
        self._background: Set[asyncio.Task] = set()

    async def post_proof(
        self,
        task_id: str,
        poll_interval_ms: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        track_confirmation: bool = True,
    ) -> SubmissionAttempt:
        """
        Submit the proof of `task_id` on chain.

        The ledger is only touched once the wallet returned a transaction
        hash. Confirmation tracking then runs in the background; await it
        with wait_for_confirmation().
        """
        attempt = SubmissionAttempt(task_id=task_id)
        self.attempts.append(attempt)
        wallet = self.context.wallet

        try:
            metadata = await self.context.load_metadata()
            account = wallet.require_account()

            current_chain_id = await wallet.chain_id()
            attempt.network_check = await self.network_guard.ensure_network(metadata.network, current_chain_id)
            attempt.advance(SubmissionState.NETWORK_CHECKED)

            task = await self.context.task_service.get_task(task_id)
            if not task.has_proof_data:
                raise MissingProofDataError(task_id)

            attempt.request = SubmissionRequest(
                config_name=metadata.config_name,
                public_values=task.public_values,
                proof_bytes=task.proof_bytes,
                sender_address=account,
            )
            call_data = encode_call_data(
                VERIFY_AND_EMIT_SELECTOR,
                attempt.request.config_name,
                attempt.request.public_values,
                attempt.request.proof_bytes,
            )
            attempt.advance(SubmissionState.ENCODED)

            tx_hash = await wallet.send_transaction({
                'from': account,
                'to': metadata.manager_address,
                'data': to_hex(call_data),
                'value': '0x0',
            })
            if not tx_hash:
                raise SubmissionError("Wallet did not return a transaction hash")
        except Exception as e:
            attempt.error = e
            attempt.advance(SubmissionState.FAILED)
            logger.error(f"Failed to post proof for task {task_id}: {e}")
            raise

        attempt.tx_hash = tx_hash
        attempt.explorer_url = metadata.explorer_tx_url(tx_hash)
        attempt.advance(SubmissionState.SENT)
        logger.info(f"Proof for task {task_id} sent: {tx_hash}")

        self.context.ledger.record_optimistic(tx_hash, account, metadata.manager_address)

        if track_confirmation:
            attempt.confirmation = asyncio.ensure_future(
                self._track(attempt, poll_interval_ms, timeout_ms)
            )
            self._background.add(attempt.confirmation)
            attempt.confirmation.add_done_callback(self._on_tracker_done)
        return attempt

    async def _track(
        self,
        attempt: SubmissionAttempt,
        poll_interval_ms: Optional[int],
        timeout_ms: Optional[int],
    ) -> PollOutcome:
        outcome = await self.context.ledger.poll_confirmation(
            attempt.tx_hash, poll_interval_ms=poll_interval_ms, timeout_ms=timeout_ms,
        )
        if outcome.is_resolved:
            # The ledger may have been cleared by a wallet event while polling
            confirmed = receipt_status(outcome.value) is LedgerStatus.CONFIRMED
            attempt.advance(SubmissionState.CONFIRMED if confirmed else SubmissionState.FAILED)
        return outcome

    def _on_tracker_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Confirmation tracking failed: {error}")

    async def wait_for_confirmation(self, attempt: SubmissionAttempt) -> Optional[PollOutcome]:
        """Await the background tracker; None if tracking was never started."""
        if attempt.confirmation is None:
            return None
        return await attempt.confirmation

    async def close(self) -> None:
        """Cancel outstanding confirmation trackers."""
        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
