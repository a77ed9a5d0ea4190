"""
ABI Codec

Minimal head/tail ABI encoding needed to call the proving manager and read
its event logs, without a contract binding library.

Layout reminders:
- every value occupies one or more 32-byte words
- a dynamic argument (string/bytes) stores an offset in the head; at that
  offset sits a length word followed by the data, right-padded to 32 bytes
- indexed event arguments are stored as 32-byte topics, addresses in the
  low 20 bytes
"""

from dataclasses import dataclass
from typing import Any, Optional, Union
import logging

from eth_utils import keccak

from ..config.chain_config import ZERO_ADDRESS_SENTINEL

logger = logging.getLogger(__name__)

WORD_SIZE = 32
SELECTOR_SIZE = 4
ADDRESS_SIZE = 20


# ============================================================================
# DECODE RESULTS
# ============================================================================

@dataclass(frozen=True)
class Ok:
    """Successfully decoded value"""
    value: Any


@dataclass(frozen=True)
class Malformed:
    """Input bytes did not hold a valid encoding"""
    reason: str


DecodeResult = Union[Ok, Malformed]


# ============================================================================
# HELPERS
# ============================================================================

def to_bytes(data: Union[str, bytes, bytearray, None]) -> Optional[bytes]:
    """Bytes from raw bytes or a (0x-prefixed) hex string, None if not hex."""
    if data is None:
        return None
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    text = data[2:] if data[:2].lower() == '0x' else data
    if len(text) % 2:
        return None
    try:
        return bytes.fromhex(text)
    except ValueError:
        return None


def to_hex(data: bytes) -> str:
    return '0x' + data.hex()


def pad_right(data: bytes) -> bytes:
    """Right-pad with zero bytes to the next word boundary."""
    remainder = len(data) % WORD_SIZE
    if remainder == 0:
        return data
    return data + b'\x00' * (WORD_SIZE - remainder)


def uint_word(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"uint256 cannot be negative: {value}")
    return value.to_bytes(WORD_SIZE, 'big')


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of a canonical function signature."""
    return keccak(text=signature)[:SELECTOR_SIZE]


def event_topic(signature: str) -> str:
    """Topic0 (keccak256 hex) for a canonical event signature."""
    return to_hex(keccak(text=signature))


# ============================================================================
# DECODING
# ============================================================================

def read_word(data: Union[str, bytes], word_index: int) -> DecodeResult:
    raw = to_bytes(data)
    if raw is None:
        return Malformed("data is not valid hex")
    if word_index < 0:
        return Malformed(f"negative word index {word_index}")
    start = word_index * WORD_SIZE
    end = start + WORD_SIZE
    if end > len(raw):
        return Malformed(f"word {word_index} is beyond the {len(raw)}-byte payload")
    return Ok(raw[start:end])


def decode_uint_word(data: Union[str, bytes], word_index: int) -> DecodeResult:
    word = read_word(data, word_index)
    if isinstance(word, Malformed):
        return word
    return Ok(int.from_bytes(word.value, 'big'))


def decode_dynamic_string(data: Union[str, bytes], head_word_index: int) -> DecodeResult:
    """
    Decode a dynamic string whose offset lives in head word `head_word_index`.

    Event data is untrusted, so every offset and length is bounds-checked and
    failures come back as Malformed instead of raising. Invalid UTF-8 is
    replaced, trailing NUL padding is stripped.
    """
    raw = to_bytes(data)
    if raw is None:
        return Malformed("data is not valid hex")

    offset = decode_uint_word(raw, head_word_index)
    if isinstance(offset, Malformed):
        return offset

    length_end = offset.value + WORD_SIZE
    if length_end > len(raw):
        return Malformed(f"string offset {offset.value} is out of range for {len(raw)} bytes")
    length = int.from_bytes(raw[offset.value:length_end], 'big')

    data_end = length_end + length
    if data_end > len(raw):
        return Malformed(f"string length {length} at offset {offset.value} overruns the payload")

    text = raw[length_end:data_end].decode('utf-8', errors='replace')
    return Ok(text.rstrip('\x00'))


def _topic_bytes(topic: Union[str, bytes]) -> bytes:
    raw = to_bytes(topic)
    if raw is None or len(raw) != WORD_SIZE:
        raise ValueError(f"topic is not a 32-byte word: {topic!r}")
    return raw


def decode_topic_as_address(topic: Union[str, bytes]) -> str:
    """Lowercase hex address from the low 20 bytes of a topic."""
    raw = _topic_bytes(topic)
    if not any(raw):
        return ZERO_ADDRESS_SENTINEL
    return to_hex(raw[-ADDRESS_SIZE:])


def decode_topic_as_bytes32(topic: Union[str, bytes]) -> str:
    """Topic as its raw 32-byte hex value, unmodified."""
    if isinstance(topic, str):
        _topic_bytes(topic)
        return topic
    return to_hex(_topic_bytes(topic))


# ============================================================================
# ENCODING
# ============================================================================

def encode_dynamic(value: bytes) -> bytes:
    """Tail encoding of a dynamic value: length word + padded data."""
    return uint_word(len(value)) + pad_right(value)


def encode_call_data(
    function_selector_bytes: Union[str, bytes],
    config_name: str,
    public_values: bytes,
    proof_bytes: bytes,
) -> bytes:
    """
    Call payload for f(string, bytes, bytes).

    selector | offset(config) | offset(public) | offset(proof) | tails...
    Offsets are relative to the start of the arguments (after the selector).
    """
    selector = to_bytes(function_selector_bytes)
    if selector is None or len(selector) != SELECTOR_SIZE:
        raise ValueError(f"function selector must be {SELECTOR_SIZE} bytes")

    tails = [
        encode_dynamic(config_name.encode('utf-8')),
        encode_dynamic(bytes(public_values)),
        encode_dynamic(bytes(proof_bytes)),
    ]

    head = b''
    offset = WORD_SIZE * len(tails)
    for tail in tails:
        head += uint_word(offset)
        offset += len(tail)

    payload = selector + head + b''.join(tails)
    logger.debug(f"Encoded call data: {len(payload)} bytes, selector {to_hex(selector)}")
    return payload
