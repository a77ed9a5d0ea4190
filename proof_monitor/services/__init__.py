"""
Chain reconciliation and submission services.

Components:
- abi_codec: head/tail ABI decoding of event data, verifyAndEmit call encoding
- log_scanner: eth_getLogs queries decoded into typed events
- network_guard: chain id check and wallet network switch
- submission: verifyAndEmit submission state machine
- ledger: hash-keyed ledger of submitted and discovered transactions
- polling: fixed-interval polling with a deadline
- rpc_client, task_service, fraud_feed: async HTTP clients
- wallet, local_wallet: wallet session and a private-key provider
"""

from .base import (
    # Enums
    EventKind,
    LedgerStatus,
    TaskStatus,
    # Dataclasses
    ChainMetadata,
    DecodedEvent,
    LedgerEntry,
    SubmissionRequest,
    Task,
    # Helpers
    hex_to_int,
    normalize_hash,
    summarize_tasks,
)
from .errors import (
    MonitorError,
    NotConnectedError,
    WrongNetworkError,
    WrongNetworkKind,
    MissingProofDataError,
    RpcTransportError,
    RpcProtocolError,
    WalletRequestError,
    TaskServiceError,
    SubmissionError,
    FraudFeedError,
)
from .abi_codec import Ok, Malformed, encode_call_data, decode_dynamic_string
from .log_scanner import LogScanner, classify_log, format_block_param
from .network_guard import NetworkGuard, NetworkCheck
from .ledger import TransactionLedger, ReconcileReport
from .polling import PollOutcome, poll_until
from .submission import SubmissionCoordinator, SubmissionAttempt, SubmissionState
from .rpc_client import JsonRpcClient
from .task_service import TaskServiceClient
from .fraud_feed import FraudFeedClient, FraudRecord
from .wallet import WalletProvider, WalletSession
from .local_wallet import LocalAccountWallet

__all__ = [
    'EventKind', 'LedgerStatus', 'TaskStatus',
    'ChainMetadata', 'DecodedEvent', 'LedgerEntry', 'SubmissionRequest', 'Task',
    'hex_to_int', 'normalize_hash', 'summarize_tasks',
    'MonitorError', 'NotConnectedError', 'WrongNetworkError', 'WrongNetworkKind',
    'MissingProofDataError', 'RpcTransportError', 'RpcProtocolError',
    'WalletRequestError', 'TaskServiceError', 'SubmissionError', 'FraudFeedError',
    'Ok', 'Malformed', 'encode_call_data', 'decode_dynamic_string',
    'LogScanner', 'classify_log', 'format_block_param',
    'NetworkGuard', 'NetworkCheck',
    'TransactionLedger', 'ReconcileReport',
    'PollOutcome', 'poll_until',
    'SubmissionCoordinator', 'SubmissionAttempt', 'SubmissionState',
    'JsonRpcClient', 'TaskServiceClient', 'FraudFeedClient', 'FraudRecord',
    'WalletProvider', 'WalletSession', 'LocalAccountWallet',
]
