"""
Wallet Session Module

Wraps an EIP-1193 style wallet provider: request/response calls plus the
accountsChanged / chainChanged push events, exposed as subscriptions.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

from .base import hex_to_int, normalize_hash
from .errors import NotConnectedError, WalletRequestError

logger = logging.getLogger(__name__)

AccountsListener = Callable[[List[str]], None]
ChainListener = Callable[[Optional[int]], None]


class WalletProvider(Protocol):
    """Anything that answers wallet JSON-RPC requests"""

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        ...


class WalletSession:
    """Connected-account state on top of a wallet provider"""

    def __init__(self, provider: Optional[WalletProvider] = None):
        self.provider = provider
        self.account: Optional[str] = None
        self._accounts_listeners: List[AccountsListener] = []
        self._chain_listeners: List[ChainListener] = []

    @property
    def is_available(self) -> bool:
        return self.provider is not None

    @property
    def is_connected(self) -> bool:
        return self.account is not None

    def require_account(self) -> str:
        if self.account is None:
            raise NotConnectedError()
        return self.account

    async def _request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if self.provider is None:
            raise NotConnectedError("No wallet provider available")
        return await self.provider.request(method, params or [])

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> str:
        """Ask the wallet for account access (eth_requestAccounts)."""
        accounts = await self._request('eth_requestAccounts')
        if not accounts:
            raise NotConnectedError("Wallet returned no accounts")
        self.account = accounts[0]
        logger.info(f"Wallet connected: {self.account}")
        return self.account

    async def check_connection(self) -> Optional[str]:
        """Pick up an already-authorized account without prompting."""
        if self.provider is None:
            return None
        try:
            accounts = await self._request('eth_accounts')
        except WalletRequestError as e:
            logger.warning(f"Failed to check wallet connection: {e}")
            return None
        self.account = accounts[0] if accounts else None
        return self.account

    def disconnect(self) -> None:
        self.account = None
        logger.info("Wallet disconnected")

    # ------------------------------------------------------------------
    # Chain
    # ------------------------------------------------------------------

    async def chain_id(self) -> Optional[int]:
        return hex_to_int(await self._request('eth_chainId'))

    async def switch_chain(self, chain_id: int) -> None:
        await self._request('wallet_switchEthereumChain', [{'chainId': hex(chain_id)}])

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def send_transaction(self, tx: Dict[str, Any]) -> Optional[str]:
        tx_hash = await self._request('eth_sendTransaction', [tx])
        return normalize_hash(tx_hash) if tx_hash else None

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self._request('eth_getTransactionReceipt', [tx_hash])

    # ------------------------------------------------------------------
    # Push events
    # ------------------------------------------------------------------

    def on_accounts_changed(self, listener: AccountsListener) -> Callable[[], None]:
        self._accounts_listeners.append(listener)
        return lambda: self._remove(self._accounts_listeners, listener)

    def on_chain_changed(self, listener: ChainListener) -> Callable[[], None]:
        self._chain_listeners.append(listener)
        return lambda: self._remove(self._chain_listeners, listener)

    @staticmethod
    def _remove(listeners: list, listener: Callable) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def handle_accounts_changed(self, accounts: List[str]) -> None:
        """
        Called by the provider when the authorized accounts change.
        Listeners only hear about an actual change of the active account.
        """
        previous = self.account
        self.account = accounts[0] if accounts else None
        if (previous or '').lower() == (self.account or '').lower():
            return
        logger.info(f"Accounts changed: {self.account or 'disconnected'}")
        for listener in list(self._accounts_listeners):
            listener(list(accounts))

    def handle_chain_changed(self, chain_id: Any) -> None:
        """Called by the provider when the wallet moves to another chain."""
        parsed = hex_to_int(chain_id)
        logger.info(f"Chain changed: {parsed}")
        for listener in list(self._chain_listeners):
            listener(parsed)
