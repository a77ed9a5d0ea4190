"""
Network Guard Module

Makes sure the wallet is on the chain named by the task service metadata
before anything is sent.
"""

import logging
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from ..config.chain_config import chain_id_for_network
from .errors import WalletRequestError, WrongNetworkError, WrongNetworkKind

if TYPE_CHECKING:
    from ..context import MonitorContext

logger = logging.getLogger(__name__)


@dataclass
class NetworkCheck:
    """What ensure_network found and did"""
    network: str
    expected_chain_id: Optional[int]
    current_chain_id: Optional[int]
    checked: bool = True
    switched: bool = False


class NetworkGuard:
    """Chain-id check with a single switch request, no retries"""

    def __init__(self, context: "MonitorContext"):
        self.context = context

    async def ensure_network(self, expected_network_name: str, current_chain_id: Optional[int]) -> NetworkCheck:
        expected = chain_id_for_network(expected_network_name)
        if expected is None:
            logger.warning(f"Unknown network '{expected_network_name}', skipping chain check")
            return NetworkCheck(expected_network_name, None, current_chain_id, checked=False)

        if current_chain_id == expected:
            return NetworkCheck(expected_network_name, expected, current_chain_id)

        logger.info(f"Wallet on chain {current_chain_id}, requesting switch to {expected_network_name} ({expected})")
        try:
            await self.context.wallet.switch_chain(expected)
        except WalletRequestError as e:
            kind = WrongNetworkKind.CHAIN_UNKNOWN if e.is_chain_unknown else WrongNetworkKind.SWITCH_DECLINED
            logger.error(f"Network switch failed ({kind.value}): {e}")
            raise WrongNetworkError(kind, expected_network_name, expected, current_chain_id) from e

        return NetworkCheck(expected_network_name, expected, current_chain_id, switched=True)
