"""
JSON-RPC Client Module

Thin JSON-RPC 2.0 client over aiohttp for the handful of node methods the
monitor needs (logs, block numbers, transactions, receipts and blocks).
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from ..config.chain_config import JSONRPC_VERSION, JSONRPC_REQUEST_ID
from .base import to_http_endpoint, hex_to_int
from .errors import RpcTransportError, RpcProtocolError

logger = logging.getLogger(__name__)

SessionProvider = Callable[[], aiohttp.ClientSession]


class JsonRpcClient:
    """JSON-RPC 2.0 over HTTP POST against a single endpoint"""

    def __init__(self, endpoint: str, session_provider: SessionProvider):
        self.endpoint = to_http_endpoint(endpoint)
        self._session_provider = session_provider

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Execute one RPC call and return its `result`.

        Raises RpcTransportError for network/HTTP/body failures and
        RpcProtocolError when the response carries an `error` object.
        """
        payload = {
            'jsonrpc': JSONRPC_VERSION,
            'method': method,
            'params': params if params is not None else [],
            'id': JSONRPC_REQUEST_ID,
        }
        logger.debug(f"RPC {method} -> {self.endpoint} params={payload['params']}")

        session = self._session_provider()
        try:
            async with session.post(self.endpoint, json=payload) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise RpcTransportError(
                        f"HTTP error! status: {response.status} {text[:200]}",
                        endpoint=self.endpoint, method=method, status=response.status,
                    )
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise RpcTransportError(
                        f"Invalid JSON from RPC endpoint: {e}",
                        endpoint=self.endpoint, method=method, status=response.status,
                    ) from e
        except aiohttp.ClientError as e:
            raise RpcTransportError(
                f"Failed to reach RPC endpoint: {e}", endpoint=self.endpoint, method=method,
            ) from e
        except asyncio.TimeoutError as e:
            raise RpcTransportError(
                "RPC request timed out", endpoint=self.endpoint, method=method,
            ) from e

        if not isinstance(body, dict):
            raise RpcTransportError(
                f"Unexpected RPC response type {type(body).__name__}",
                endpoint=self.endpoint, method=method,
            )

        error = body.get('error')
        if error is not None:
            if isinstance(error, dict):
                code = error.get('code')
                message = error.get('message') or 'Unknown error'
                data = error.get('data')
            else:
                code, message, data = None, str(error), None
            logger.warning(f"RPC {method} failed: ({code}) {message}")
            raise RpcProtocolError(code, message, data=data, method=method)

        return body.get('result')

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    async def block_number(self) -> int:
        result = await self.call('eth_blockNumber')
        number = hex_to_int(result)
        if number is None:
            raise RpcTransportError(
                f"Invalid block number {result!r}", endpoint=self.endpoint, method='eth_blockNumber',
            )
        return number

    async def get_logs(self, log_filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        result = await self.call('eth_getLogs', [log_filter])
        return result or []

    async def get_transaction_by_hash(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call('eth_getTransactionByHash', [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call('eth_getTransactionReceipt', [tx_hash])

    async def get_block_by_number(self, block: Any, full_transactions: bool = False) -> Optional[Dict[str, Any]]:
        if isinstance(block, int):
            block = hex(block)
        return await self.call('eth_getBlockByNumber', [block, full_transactions])
