"""
Shared fakes for the proof monitor tests.

- FakeRpcClient: JsonRpcClient with canned per-method responses
- FakeWalletProvider: scripted EIP-1193 provider
- FakeTaskService: in-memory task service
- FakeClock: virtual time for polling
"""
import sys
import os
from typing import Any, Dict, List, Optional

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from proof_monitor.config.settings import MonitorSettings
from proof_monitor.context import MonitorContext
from proof_monitor.services.base import ChainMetadata, Task, TaskStatus
from proof_monitor.services.errors import TaskServiceError, WalletRequestError
from proof_monitor.services.rpc_client import JsonRpcClient


ACCOUNT = "0x" + "ab" * 20
OTHER_ACCOUNT = "0x" + "ef" * 20
MANAGER = "0x" + "cd" * 20
TX_HASH = "0x" + "11" * 32


def make_metadata(network: str = "sepolia", rpc_url: str = "wss://rpc.example/ws") -> ChainMetadata:
    return ChainMetadata(
        rpc_url=rpc_url,
        manager_address=MANAGER,
        config_name="zk-config",
        network=network,
    )


class FakeRpcClient(JsonRpcClient):
    """
    Answers calls from `responses[method]`: a value, an exception to raise,
    or a callable taking the params. Every call is recorded.
    """

    def __init__(self, endpoint: str = "https://rpc.example/ws", responses: Optional[Dict[str, Any]] = None):
        super().__init__(endpoint, session_provider=lambda: None)
        self.responses: Dict[str, Any] = responses or {}
        self.calls: List[tuple] = []
        self.endpoints: List[str] = []

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        self.calls.append((method, params))
        if method not in self.responses:
            raise AssertionError(f"unexpected RPC call {method}")
        response = self.responses[method]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(params)
        return response

    def calls_for(self, method: str) -> List[Any]:
        return [params for m, params in self.calls if m == method]


class FakeWalletProvider:
    """Scripted wallet: fixed accounts/chain, optional switch error, queued receipts."""

    def __init__(
        self,
        accounts: Optional[List[str]] = None,
        chain_id: int = 11155111,
        switch_error: Optional[WalletRequestError] = None,
        tx_hash: Optional[str] = TX_HASH,
    ):
        self.accounts = accounts if accounts is not None else [ACCOUNT]
        self.chain_id = chain_id
        self.switch_error = switch_error
        self.tx_hash = tx_hash
        self.receipts: List[Optional[dict]] = []  # returned one per receipt request, last one repeats
        self.requests: List[tuple] = []

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        self.requests.append((method, params))
        if method in ('eth_requestAccounts', 'eth_accounts'):
            return list(self.accounts)
        if method == 'eth_chainId':
            return hex(self.chain_id)
        if method == 'wallet_switchEthereumChain':
            if self.switch_error is not None:
                raise self.switch_error
            self.chain_id = int(params[0]['chainId'], 16)
            return None
        if method == 'eth_sendTransaction':
            return self.tx_hash
        if method == 'eth_getTransactionReceipt':
            if not self.receipts:
                return None
            if len(self.receipts) > 1:
                return self.receipts.pop(0)
            return self.receipts[0]
        raise WalletRequestError(4200, f"unsupported {method}")

    def requests_for(self, method: str) -> List[Any]:
        return [params for m, params in self.requests if m == method]


class FakeTaskService:
    def __init__(self, metadata: Optional[ChainMetadata] = None, tasks: Optional[Dict[str, Task]] = None):
        self.metadata = metadata or make_metadata()
        self.tasks = tasks or {}
        self.metadata_requests = 0

    async def get_metadata(self) -> ChainMetadata:
        self.metadata_requests += 1
        return self.metadata

    async def get_task(self, task_id: str) -> Task:
        if task_id not in self.tasks:
            return Task(id=task_id, query_id='', ts=0, status=TaskStatus.NOT_FOUND)
        return self.tasks[task_id]

    async def list_tasks(self) -> List[Task]:
        return sorted(self.tasks.values(), key=lambda t: t.ts, reverse=True)


class FailingTaskService(FakeTaskService):
    async def get_metadata(self) -> ChainMetadata:
        raise TaskServiceError("HTTP error! status: 500", status=500)


class FakeClock:
    """Virtual monotonic clock; sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rpc():
    return FakeRpcClient()


@pytest.fixture
def wallet_provider():
    return FakeWalletProvider()


@pytest.fixture
def task_service():
    return FakeTaskService()


@pytest.fixture
def make_context(rpc, clock, task_service):
    """Build a MonitorContext wired to the fakes; pass wallet_provider/settings to override."""
    def _make(wallet_provider=None, settings=None, connected=True, service=None):
        context = MonitorContext(
            settings=settings or MonitorSettings(),
            wallet_provider=wallet_provider,
            rpc_factory=lambda endpoint: _record(rpc, endpoint),
            task_service=service or task_service,
            sleep=clock.sleep,
            clock=clock.time,
        )
        if connected and wallet_provider is not None and wallet_provider.accounts:
            context.wallet.account = wallet_provider.accounts[0]
        return context
    return _make


def _record(rpc: FakeRpcClient, endpoint: str) -> FakeRpcClient:
    rpc.endpoints.append(endpoint)
    return rpc
