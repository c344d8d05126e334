"""
Counterfactual smart-account address derivation (CREATE2).
"""

from __future__ import annotations

from typing import Optional, Sequence

from eth_utils import keccak

from walletsdk.config import DEFAULT_FACTORY_ADDRESS, DEFAULT_INIT_CODE_HASH

from .abi import BytesLike, encode_owners_and_nonce
from .errors import EncodingError


def _hex_to_bytes(value: str, expected_len: int, label: str) -> bytes:
    hex_value = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        raw = bytes.fromhex(hex_value)
    except ValueError as exc:
        raise EncodingError(f"Invalid {label}: {value}") from exc
    if len(raw) != expected_len:
        raise EncodingError(f"{label} must be {expected_len} bytes, got {len(raw)}")
    return raw


def compute_salt(owners: Sequence[BytesLike], nonce: int) -> bytes:
    """keccak256(abi.encode(owners, nonce)), matching the factory's salt."""
    preimage = encode_owners_and_nonce(owners, nonce)
    return keccak(hexstr=preimage)


def create2_address(deployer: str, salt: bytes, init_code_hash: str) -> str:
    """
    EIP-1014: last 20 bytes of keccak256(0xff ++ deployer ++ salt ++ init_code_hash).
    """
    # Lowercase before decoding so checksummed input hashes identically
    deployer_bytes = _hex_to_bytes(deployer.lower(), 20, "deployer address")
    hash_bytes = _hex_to_bytes(init_code_hash.lower(), 32, "init code hash")
    if len(salt) != 32:
        raise EncodingError(f"salt must be 32 bytes, got {len(salt)}")

    preimage = b"\xff" + deployer_bytes + bytes(salt) + hash_bytes
    return "0x" + keccak(preimage)[12:].hex()


def compute_address(
    owners: Sequence[BytesLike],
    nonce: int = 0,
    factory: Optional[str] = None,
    init_code_hash: Optional[str] = None,
) -> str:
    """
    Address the factory will deploy ``owners``/``nonce`` to. Pure; no RPC.
    """
    salt = compute_salt(owners, nonce)
    return create2_address(
        factory or DEFAULT_FACTORY_ADDRESS,
        salt,
        init_code_hash or DEFAULT_INIT_CODE_HASH,
    )
