"""
Monitor Context Module

Session-scoped state passed explicitly to every service: settings, the HTTP
session, RPC clients, the task service client, the wallet session, the
transaction ledger and the cached chain metadata.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from .config.settings import MonitorSettings
from .services.base import ChainMetadata
from .services.ledger import TransactionLedger
from .services.rpc_client import JsonRpcClient
from .services.task_service import TaskServiceClient
from .services.wallet import WalletProvider, WalletSession

logger = logging.getLogger(__name__)


class MonitorContext:
    """Everything one monitoring session shares"""

    def __init__(
        self,
        settings: Optional[MonitorSettings] = None,
        wallet_provider: Optional[WalletProvider] = None,
        session: Optional[aiohttp.ClientSession] = None,
        rpc_factory: Optional[Callable[[str], Any]] = None,
        task_service: Optional[Any] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.settings = settings or MonitorSettings()
        self.sleep = sleep or asyncio.sleep
        self.clock = clock or time.monotonic

        self._session = session
        self._owns_session = session is None
        self._rpc_factory = rpc_factory
        self._rpc_clients: Dict[str, Any] = {}

        self.task_service = task_service or TaskServiceClient(self.settings.task_service_url, self.get_session)
        self.wallet = WalletSession(wallet_provider)
        self.ledger = TransactionLedger(self)

        self.metadata: Optional[ChainMetadata] = None
        self.reload_required = False

        self.wallet.on_accounts_changed(self._on_accounts_changed)
        self.wallet.on_chain_changed(self._on_chain_changed)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def get_session(self) -> aiohttp.ClientSession:
        """Shared aiohttp session, created on first use inside the event loop."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    def rpc_client(self, endpoint: str) -> Any:
        client = self._rpc_clients.get(endpoint)
        if client is None:
            if self._rpc_factory is not None:
                client = self._rpc_factory(endpoint)
            else:
                client = JsonRpcClient(endpoint, self.get_session)
            self._rpc_clients[endpoint] = client
        return client

    async def load_metadata(self) -> ChainMetadata:
        """Chain metadata from the task service, cached for the session."""
        if self.metadata is None:
            metadata = await self.task_service.get_metadata()
            if self.settings.rpc_url:
                metadata = ChainMetadata(
                    rpc_url=self.settings.rpc_url,
                    manager_address=metadata.manager_address,
                    config_name=metadata.config_name,
                    network=metadata.network,
                )
            self.metadata = metadata
            logger.info(f"Loaded metadata: network={metadata.network} manager={metadata.manager_address}")
        return self.metadata

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "MonitorContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Wallet push events
    # ------------------------------------------------------------------

    def _on_accounts_changed(self, accounts: List[str]) -> None:
        # Ledger entries belong to the previous account
        self.ledger.clear()

    def _on_chain_changed(self, chain_id: Optional[int]) -> None:
        logger.warning(f"Wallet moved to chain {chain_id}; cached metadata and ledger dropped")
        self.metadata = None
        self.ledger.clear()
        self.reload_required = True
