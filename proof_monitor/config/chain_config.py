"""
Chain Configuration Module

Contains the chain-related constants used to talk to the proving manager
contract: network chain ids, event and function signatures, wallet error codes
and query defaults.
"""

from typing import Dict, Optional

from eth_utils import keccak

# Network name -> chain id (names as reported by the task service /metadata)
NETWORK_CHAIN_IDS = {
    "mainnet": 1,
    "sepolia": 11155111,
    "holesky": 17000,
    "goerli": 5,
}

# Block explorers
EXPLORER_BASE_URLS = {
    "mainnet": "https://etherscan.io",
}
EXPLORER_URL_TEMPLATE = "https://{network}.etherscan.io"

# Contract function submitted by the coordinator
VERIFY_AND_EMIT_SIGNATURE = "verifyAndEmit(string,bytes,bytes)"

# Events emitted by the proving manager (AccessControl + fraud reports)
EVENT_SIGNATURES = {
    "FraudFound": "FraudFound(string,uint256)",
    "RoleAdminChanged": "RoleAdminChanged(bytes32,bytes32,bytes32)",
    "RoleGranted": "RoleGranted(bytes32,address,address)",
    "RoleRevoked": "RoleRevoked(bytes32,address,address)",
}


def _topic0(signature: str) -> str:
    return "0x" + keccak(text=signature).hex()


# Event Topic0 Hash Mappings
TOPIC0_HASH_MAP: Dict[str, str] = {
    _topic0(signature): name for name, signature in EVENT_SIGNATURES.items()
}
EVENT_TOPICS: Dict[str, str] = {name: topic for topic, name in TOPIC0_HASH_MAP.items()}

VERIFY_AND_EMIT_SELECTOR = keccak(text=VERIFY_AND_EMIT_SIGNATURE)[:4]

# Special Addresses / roles
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_ADDRESS_SENTINEL = "Zero Address"
DEFAULT_ADMIN_ROLE = "0x" + "00" * 32

# Wallet provider error codes (EIP-1193 / MetaMask)
USER_REJECTED_REQUEST_CODE = 4001
UNSUPPORTED_METHOD_CODE = 4200
CHAIN_NOT_ADDED_CODE = 4902
INTERNAL_ERROR_CODE = -32603

# JSON-RPC
JSONRPC_VERSION = "2.0"
JSONRPC_REQUEST_ID = 1
BLOCK_TAGS = {"latest", "earliest", "pending"}

# Query Configuration
LEDGER_LOOKBACK_BLOCKS = 10000
EVENTS_BLOCK_SPAN = 40000
POLL_INTERVAL_MS = 2000
POLL_TIMEOUT_MS = 300000
REQUEST_TIMEOUT = 30  # seconds
FRAUD_FEED_LIMIT = 100

DEFAULT_TASK_SERVICE_URL = "http://localhost:8000"
DEFAULT_FRAUD_FEED_URL = (
    "https://fa7e5d08-286a-4511-9598-d4aa8ea9594b.squids.live/zk-feed@v1/api/graphql"
)


def chain_id_for_network(network: Optional[str]) -> Optional[int]:
    """Map a network name to its chain id, None for networks we don't know."""
    if not network:
        return None
    return NETWORK_CHAIN_IDS.get(network.strip().lower())


def explorer_tx_url(network: Optional[str], tx_hash: str) -> str:
    """Etherscan link for a transaction on the given network."""
    name = (network or "mainnet").strip().lower()
    base = EXPLORER_BASE_URLS.get(name) or EXPLORER_URL_TEMPLATE.format(network=name)
    return f"{base}/tx/{tx_hash}"
