"""
ERC-4337 UserOperation models and helpers.
"""

import json
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

from .abi import UINT256_MAX
from .errors import EncodingError

EMPTY_BYTES = "0x"

QUANTITY_FIELDS = (
    "nonce",
    "call_gas_limit",
    "verification_gas_limit",
    "pre_verification_gas",
    "max_fee_per_gas",
    "max_priority_fee_per_gas",
)


def _check_quantity(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > UINT256_MAX:
        raise EncodingError(f"{name} is outside the uint256 range: {value}")
    return value


def _to_hex(value: int) -> str:
    return hex(_check_quantity("quantity", value))


def _normalize_bytes(value: Union[bytes, bytearray, str, None]) -> str:
    """Render byte fields as 0x-prefixed lowercase hex; empty becomes "0x"."""
    if value is None:
        return EMPTY_BYTES
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    stripped = value[2:] if value.startswith(("0x", "0X")) else value
    return "0x" + stripped.lower()


def _parse_hex(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


@dataclass
class UserOperation:
    """
    ERC-4337 (EntryPoint v0.6) UserOperation payload.

    Values should be supplied in raw units (wei / gas units) and are encoded
    as hex for RPC calls. Quantities outside uint256 raise EncodingError at
    construction, including through ``dataclasses.replace``.
    """
    sender: str
    nonce: int
    init_code: str
    call_data: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: str = EMPTY_BYTES
    signature: str = EMPTY_BYTES

    def __post_init__(self) -> None:
        for name in QUANTITY_FIELDS:
            _check_quantity(name, getattr(self, name))
        self.init_code = _normalize_bytes(self.init_code)
        self.call_data = _normalize_bytes(self.call_data)
        self.paymaster_and_data = _normalize_bytes(self.paymaster_and_data)
        self.signature = _normalize_bytes(self.signature)

    @property
    def is_signed(self) -> bool:
        return self.signature != EMPTY_BYTES

    def with_signature(self, signature: Union[bytes, str]) -> "UserOperation":
        """Return a signed copy; the unsigned draft is left untouched."""
        return replace(self, signature=_normalize_bytes(signature))

    def to_rpc_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "nonce": _to_hex(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "callGasLimit": _to_hex(self.call_gas_limit),
            "verificationGasLimit": _to_hex(self.verification_gas_limit),
            "preVerificationGas": _to_hex(self.pre_verification_gas),
            "maxFeePerGas": _to_hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _to_hex(self.max_priority_fee_per_gas),
            "paymasterAndData": self.paymaster_and_data,
            "signature": self.signature,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_rpc_dict())

    @classmethod
    def from_rpc_dict(cls, data: Dict[str, Any]) -> "UserOperation":
        return cls(
            sender=data["sender"],
            nonce=_parse_hex(data["nonce"]),
            init_code=data.get("initCode") or EMPTY_BYTES,
            call_data=data.get("callData") or EMPTY_BYTES,
            call_gas_limit=_parse_hex(data["callGasLimit"]),
            verification_gas_limit=_parse_hex(data["verificationGasLimit"]),
            pre_verification_gas=_parse_hex(data["preVerificationGas"]),
            max_fee_per_gas=_parse_hex(data["maxFeePerGas"]),
            max_priority_fee_per_gas=_parse_hex(data["maxPriorityFeePerGas"]),
            paymaster_and_data=data.get("paymasterAndData") or EMPTY_BYTES,
            signature=data.get("signature") or EMPTY_BYTES,
        )


@dataclass(frozen=True)
class Call:
    """One target invocation inside an executeBatch."""
    target: str
    value: int = 0
    data: str = EMPTY_BYTES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Call":
        target = data.get("to") or data.get("target")
        if not target:
            raise ValueError("Call requires a 'to' address")
        value = data.get("value") or 0
        if isinstance(value, str):
            value = int(value, 16) if value.startswith("0x") else int(value)
        return cls(target=target, value=value, data=_normalize_bytes(data.get("data")))


@dataclass(frozen=True)
class GasPrice:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int


@dataclass(frozen=True)
class GasEstimation:
    pre_verification_gas: int
    verification_gas_limit: int
    call_gas_limit: int


@dataclass
class UserOpReceipt:
    user_op_hash: str
    success: bool
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @classmethod
    def from_rpc(cls, user_op_hash: str, data: Dict[str, Any]) -> "UserOpReceipt":
        receipt = data.get("receipt") or {}
        success = data.get("success")
        if success is None:
            success = receipt.get("status") == "0x1"
        return cls(
            user_op_hash=user_op_hash,
            success=bool(success),
            transaction_hash=receipt.get("transactionHash"),
            block_number=_parse_hex(receipt.get("blockNumber")),
            gas_used=_parse_hex(data.get("actualGasUsed") or receipt.get("gasUsed")),
        )
