"""
Local Account Wallet

Wallet provider backed by a private key and an RPC node, for posting proofs
headlessly from the CLI. Answers the same request surface as a browser
wallet so WalletSession can drive it unchanged.
"""

import logging
from typing import Any, List, Optional

from eth_account import Account
from eth_utils import to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from ..config.chain_config import CHAIN_NOT_ADDED_CODE, INTERNAL_ERROR_CODE, UNSUPPORTED_METHOD_CODE
from .base import hex_to_int, to_http_endpoint
from .errors import WalletRequestError

logger = logging.getLogger(__name__)


class LocalAccountWallet:
    """Signs with a local key and broadcasts through an HTTP RPC node"""

    def __init__(self, rpc_url: str, private_key: str):
        self.w3 = AsyncWeb3(AsyncHTTPProvider(to_http_endpoint(rpc_url)))
        self.account = Account.from_key(private_key)
        logger.info(f"Local wallet ready for {self.account.address}")

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        params = params or []
        try:
            if method in ('eth_requestAccounts', 'eth_accounts'):
                return [self.account.address]
            if method == 'eth_chainId':
                return hex(await self.w3.eth.chain_id)
            if method == 'wallet_switchEthereumChain':
                return await self._switch_chain(params)
            if method == 'eth_sendTransaction':
                return await self._send_transaction(params[0])
            if method == 'eth_getTransactionReceipt':
                return await self._get_receipt(params[0])
        except (Web3Exception, ValueError) as e:
            logger.error(f"Local wallet {method} failed: {e}")
            raise WalletRequestError(INTERNAL_ERROR_CODE, str(e)) from e

        raise WalletRequestError(UNSUPPORTED_METHOD_CODE, f"Method {method} is not supported")

    async def _switch_chain(self, params: List[Any]) -> None:
        requested = hex_to_int(params[0].get('chainId')) if params else None
        current = await self.w3.eth.chain_id
        if requested != current:
            # The node decides the chain; a local key cannot move to another one
            raise WalletRequestError(
                CHAIN_NOT_ADDED_CODE,
                f"RPC node is on chain {current}, cannot switch to {requested}",
            )
        return None

    async def _send_transaction(self, tx: dict) -> str:
        sender = to_checksum_address(tx.get('from') or self.account.address)
        if sender != self.account.address:
            raise WalletRequestError(INTERNAL_ERROR_CODE, f"Unknown sender {sender}")

        built = {
            'from': sender,
            'to': to_checksum_address(tx['to']),
            'data': tx.get('data', '0x'),
            'value': hex_to_int(tx.get('value')) or 0,
            'nonce': await self.w3.eth.get_transaction_count(sender, 'pending'),
            'chainId': await self.w3.eth.chain_id,
        }
        built['gas'] = await self.w3.eth.estimate_gas(built)
        built['gasPrice'] = await self.w3.eth.gas_price

        signed = self.account.sign_transaction(built)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info(f"Broadcast transaction {Web3.to_hex(tx_hash)}")
        return Web3.to_hex(tx_hash)

    async def _get_receipt(self, tx_hash: str) -> Optional[dict]:
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return {
            'transactionHash': Web3.to_hex(receipt['transactionHash']),
            'blockNumber': hex(receipt['blockNumber']),
            'status': hex(receipt['status']),
        }
