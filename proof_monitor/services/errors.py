"""
Error types raised by the reconciliation and submission services.

Every failure is local and recoverable by retrying the user action, so all
errors share the MonitorError base and carry enough context to render an
actionable message.
"""

from enum import Enum
from typing import Any, Optional

from ..config.chain_config import CHAIN_NOT_ADDED_CODE, USER_REJECTED_REQUEST_CODE


class MonitorError(Exception):
    """Base class for all proof monitor errors"""


class NotConnectedError(MonitorError):
    """No wallet account is connected"""

    def __init__(self, message: str = "Please connect your wallet first"):
        super().__init__(message)


class WrongNetworkKind(Enum):
    """Why the wallet could not be moved to the expected chain"""
    CHAIN_UNKNOWN = "chain_unknown"      # wallet does not know the chain
    SWITCH_DECLINED = "switch_declined"  # user or wallet refused the switch


class WrongNetworkError(MonitorError):
    """Wallet is on a different chain than the one named in the metadata"""

    def __init__(
        self,
        kind: WrongNetworkKind,
        network: str,
        expected_chain_id: int,
        current_chain_id: Optional[int] = None,
    ):
        self.kind = kind
        self.network = network
        self.expected_chain_id = expected_chain_id
        self.current_chain_id = current_chain_id
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        if self.kind is WrongNetworkKind.CHAIN_UNKNOWN:
            return f"Please add the {self.network} network to your wallet"
        return f"Please switch to {self.network} network in your wallet"


class MissingProofDataError(MonitorError):
    """Task has no proof artifacts yet"""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"No proof data available for task {task_id}")


class RpcTransportError(MonitorError):
    """Network or HTTP failure reaching an RPC endpoint"""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        status: Optional[int] = None,
    ):
        self.endpoint = endpoint
        self.method = method
        self.status = status
        super().__init__(message)


class RpcProtocolError(MonitorError):
    """JSON-RPC response carrying an error object"""

    BLOCK_RANGE_MARKERS = (
        'exceed maximum block range',
        'block range',
        'query returned more than',
        'range is too large',
    )

    def __init__(
        self,
        code: Optional[int],
        message: str,
        data: Any = None,
        method: Optional[str] = None,
    ):
        self.code = code
        self.rpc_message = message
        self.data = data
        self.method = method
        super().__init__(f"RPC error ({code if code is not None else 'Unknown code'}): {message}")

    @property
    def exceeds_block_range(self) -> bool:
        text = (self.rpc_message or '').lower()
        return any(marker in text for marker in self.BLOCK_RANGE_MARKERS)

    def hint(self) -> str:
        """Troubleshooting hint for the user"""
        if self.exceeds_block_range:
            return "Try reducing the block range size (use closer from/to blocks)"
        if 'invalid' in (self.rpc_message or '').lower():
            return "Check that your block numbers are valid (positive integers)"
        return 'Try using "latest" as the end block to query recent events only'


class WalletRequestError(MonitorError):
    """Wallet provider rejected a request"""

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        self.code = code
        self.wallet_message = message
        self.data = data
        super().__init__(f"Wallet error ({code}): {message}")

    @property
    def is_chain_unknown(self) -> bool:
        if self.code == CHAIN_NOT_ADDED_CODE:
            return True
        # MetaMask mobile wraps the real code in data.originalError
        if isinstance(self.data, dict):
            original = self.data.get('originalError')
            if isinstance(original, dict) and original.get('code') == CHAIN_NOT_ADDED_CODE:
                return True
        return False

    @property
    def is_user_rejected(self) -> bool:
        return self.code == USER_REJECTED_REQUEST_CODE


class TaskServiceError(MonitorError):
    """Task service request failed"""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        self.url = url
        self.status = status
        super().__init__(message)


class SubmissionError(MonitorError):
    """Proof submission could not be completed"""


class FraudFeedError(MonitorError):
    """Fraud feed GraphQL query failed"""
