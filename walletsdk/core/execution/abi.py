"""
ABI encoders for smart-account, factory and EntryPoint calls.

Only the shapes the wallet needs are supported. Every encoder follows the
standard head/tail layout: 32-byte head slots hold static values or offsets,
dynamic tails follow in argument order. Values are handled as unprefixed hex
internally and returned with a 0x prefix.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple, Union

from eth_utils import keccak

from .errors import EncodingError

BytesLike = Union[bytes, bytearray, str]

# (is_dynamic, encoded hex)
_Part = Tuple[bool, str]

WORD_HEX_LEN = 64
UINT192_MAX = 2**192 - 1
UINT256_MAX = 2**256 - 1

EXECUTE_BATCH_SIGNATURE = "executeBatch((address,uint256,bytes)[])"
CREATE_ACCOUNT_SIGNATURE = "createAccount(bytes[],uint256)"
GET_ADDRESS_SIGNATURE = "getAddress(bytes[],uint256)"
GET_NONCE_SIGNATURE = "getNonce(address,uint192)"


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def _to_hex_data(data: BytesLike) -> str:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).hex()
    if not isinstance(data, str):
        raise EncodingError(f"Unsupported byte data type: {type(data).__name__}")
    hex_data = _strip_0x(data).lower()
    if len(hex_data) % 2 != 0:
        raise EncodingError("Byte data must have an even-length hex string")
    try:
        bytes.fromhex(hex_data)
    except ValueError as exc:
        raise EncodingError(f"Invalid hex data: {data}") from exc
    return hex_data


def _encode_uint(value: int, max_value: int = UINT256_MAX) -> str:
    if not isinstance(value, int) or isinstance(value, bool):
        raise EncodingError(f"Integer expected, got {type(value).__name__}")
    if value < 0:
        raise EncodingError("Value must be non-negative")
    if value > max_value:
        raise EncodingError(f"Value {value} exceeds the type range")
    return hex(value)[2:].rjust(WORD_HEX_LEN, "0")


def _encode_address(address: str) -> str:
    addr = _strip_0x(address).lower()
    if len(addr) != 40:
        raise EncodingError(f"Invalid address length: {address}")
    try:
        bytes.fromhex(addr)
    except ValueError as exc:
        raise EncodingError(f"Invalid address: {address}") from exc
    return addr.rjust(WORD_HEX_LEN, "0")


def _encode_bytes(data: BytesLike) -> str:
    hex_data = _to_hex_data(data)
    data_len = len(hex_data) // 2
    padded_len = ((data_len + 31) // 32) * 32
    padding = "0" * ((padded_len - data_len) * 2)
    return _encode_uint(data_len) + hex_data + padding


def _encode_sequence(parts: Sequence[_Part]) -> str:
    """Lay out a tuple: static parts inline, dynamic parts as offsets into the tail."""
    head_size = sum(32 if dynamic else len(encoded) // 2 for dynamic, encoded in parts)
    head = ""
    tail = ""
    for dynamic, encoded in parts:
        if dynamic:
            head += _encode_uint(head_size + len(tail) // 2)
            tail += encoded
        else:
            head += encoded
    return head + tail


def _encode_dynamic_array(encoded_items: List[str]) -> str:
    """Length-prefixed array whose elements are all dynamic."""
    return _encode_uint(len(encoded_items)) + _encode_sequence(
        [(True, item) for item in encoded_items]
    )


def function_selector(signature: str) -> str:
    """Return the 4-byte selector ``0x........`` for a canonical signature."""
    selector = keccak(text=signature)[:4].hex()
    return f"0x{selector}"


def encode_owners_and_nonce(owners: Sequence[BytesLike], nonce: int) -> str:
    """
    Encode ``abi.encode(bytes[] owners, uint256 nonce)``.

    This is the CREATE2 salt preimage and the argument block of
    ``createAccount`` / ``getAddress``. Owner order is part of the encoding.
    """
    if isinstance(owners, (str, bytes, bytearray)):
        raise EncodingError("owners must be a sequence of byte strings")
    owners_array = _encode_dynamic_array([_encode_bytes(owner) for owner in owners])
    return "0x" + _encode_sequence([(True, owners_array), (False, _encode_uint(nonce))])


def encode_create_account(owners: Sequence[BytesLike], nonce: int) -> str:
    selector = function_selector(CREATE_ACCOUNT_SIGNATURE)
    return selector + _strip_0x(encode_owners_and_nonce(owners, nonce))


def encode_get_address(owners: Sequence[BytesLike], nonce: int) -> str:
    selector = function_selector(GET_ADDRESS_SIGNATURE)
    return selector + _strip_0x(encode_owners_and_nonce(owners, nonce))


def build_init_code(factory: str, owners: Sequence[BytesLike], nonce: int) -> str:
    """
    Build initCode = factory address ++ createAccount(owners, nonce).
    """
    factory_hex = _encode_address(factory)[-40:]
    return "0x" + factory_hex + _strip_0x(encode_create_account(owners, nonce))


def _encode_call(target: str, value: int, data: BytesLike) -> str:
    return _encode_sequence(
        [
            (False, _encode_address(target)),
            (False, _encode_uint(value)),
            (True, _encode_bytes(data)),
        ]
    )


def encode_execute_batch(calls: Iterable) -> str:
    """
    Build calldata for executeBatch((address,uint256,bytes)[]).

    ``calls`` yields objects with ``target``, ``value`` and ``data`` attributes
    or ``(target, value, data)`` triples.
    """
    encoded_calls = []
    for call in calls:
        if isinstance(call, (tuple, list)):
            if len(call) != 3:
                raise EncodingError("Call tuples must be (target, value, data)")
            target, value, data = call
        else:
            target, value, data = call.target, call.value, call.data
        encoded_calls.append(_encode_call(target, value, data))

    selector = function_selector(EXECUTE_BATCH_SIGNATURE)
    return selector + _encode_sequence([(True, _encode_dynamic_array(encoded_calls))])


def encode_get_nonce(sender: str, key: int = 0) -> str:
    """
    Build calldata for EntryPoint.getNonce(address,uint192).
    """
    selector = function_selector(GET_NONCE_SIGNATURE)
    head = _encode_address(sender) + _encode_uint(key, UINT192_MAX)
    return selector + head


def encode_signature_wrapper(owner_index: int, signature_data: BytesLike) -> str:
    """Encode ``abi.encode(SignatureWrapper(uint256 ownerIndex, bytes signatureData))``."""
    wrapper = _encode_sequence(
        [(False, _encode_uint(owner_index)), (True, _encode_bytes(signature_data))]
    )
    return "0x" + _encode_sequence([(True, wrapper)])


def encode_webauthn_auth(
    authenticator_data: BytesLike,
    client_data_json: str,
    challenge_index: int,
    type_index: int,
    r: int,
    s: int,
) -> str:
    """Encode ``abi.encode(WebAuthnAuth)`` as verified by passkey-owned accounts."""
    auth = _encode_sequence(
        [
            (True, _encode_bytes(authenticator_data)),
            (True, _encode_bytes(client_data_json.encode("utf-8"))),
            (False, _encode_uint(challenge_index)),
            (False, _encode_uint(type_index)),
            (False, _encode_uint(r)),
            (False, _encode_uint(s)),
        ]
    )
    return "0x" + _encode_sequence([(True, auth)])


def _result_word(result: str) -> str:
    hex_data = _to_hex_data(result or "0x")
    if len(hex_data) < WORD_HEX_LEN:
        raise EncodingError(f"Call result too short for a 32-byte word: {result!r}")
    return hex_data[:WORD_HEX_LEN]


def decode_uint256(result: str) -> int:
    return int(_result_word(result), 16)


def decode_address(result: str) -> str:
    word = _result_word(result)
    if int(word[:24] or "0", 16) != 0:
        raise EncodingError(f"Call result is not an address word: {result!r}")
    return "0x" + word[24:]
