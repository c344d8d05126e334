"""
Read-only chain access for smart-account state.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from .base import JsonRpcProvider, rpc_error_message
from ..config import NetworkConfig
from ..core.execution import abi
from ..core.execution.errors import ChainCallError, EncodingError, WalletError

logger = logging.getLogger(__name__)


class ChainReader(JsonRpcProvider):
    """
    Reads deployment state, EntryPoint nonces and factory addresses, and
    carries the few calls a legacy EOA send needs.

    Every call is a single eth_* round-trip; nothing is retried here.
    """

    name = "chain"

    def __init__(
        self,
        network: NetworkConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(network.rpc_url, client)
        self.entry_point = network.entry_point
        self.factory = network.factory

    def _transport_error(self, method: str, exc: Exception) -> WalletError:
        return ChainCallError(f"Chain request {method} failed: {exc}", method=method, cause=exc)

    def _rpc_error(self, method: str, error: Any) -> WalletError:
        return ChainCallError(f"RPC error from {method}: {rpc_error_message(error)}", method=method)

    async def ready(self) -> bool:
        return bool(self.url)

    async def health_check(self) -> Dict[str, Any]:
        try:
            chain_id = await self.get_chain_id()
            return {"status": "healthy", "chainId": chain_id}
        except WalletError as exc:
            return {"status": "error", "reason": str(exc)}

    async def _eth_call(self, to: str, data: str) -> str:
        result = await self._rpc_call("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str):
            raise ChainCallError("Invalid eth_call result", method="eth_call")
        return result

    async def is_deployed(self, address: str) -> bool:
        code = await self._rpc_call("eth_getCode", [address, "latest"])
        return bool(code) and code not in ("0x", "0x0")

    async def get_nonce(self, sender: str, key: int = 0) -> int:
        """EntryPoint.getNonce(sender, key)."""
        result = await self._eth_call(self.entry_point, abi.encode_get_nonce(sender, key))
        try:
            nonce = abi.decode_uint256(result)
        except EncodingError as exc:
            raise ChainCallError(f"Malformed getNonce result: {result}", method="eth_call", cause=exc) from exc
        logger.debug(f"EntryPoint nonce for {sender}: {nonce}")
        return nonce

    async def get_factory_address(self, owners: Sequence[bytes], nonce: int = 0) -> str:
        """Factory.getAddress(owners, nonce), the on-chain view of the CREATE2 address."""
        result = await self._eth_call(self.factory, abi.encode_get_address(owners, nonce))
        try:
            return abi.decode_address(result)
        except EncodingError as exc:
            raise ChainCallError(f"Malformed getAddress result: {result}", method="eth_call", cause=exc) from exc

    async def _quantity_call(self, method: str, params: list) -> int:
        result = await self._rpc_call(method, params)
        try:
            return int(result, 16)
        except (TypeError, ValueError) as exc:
            raise ChainCallError(f"Malformed {method} result: {result}", method=method, cause=exc) from exc

    async def get_chain_id(self) -> int:
        return await self._quantity_call("eth_chainId", [])

    # Legacy EOA transactions

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return await self._quantity_call("eth_getTransactionCount", [address, block])

    async def get_gas_price(self) -> int:
        """Legacy gas price in wei."""
        return await self._quantity_call("eth_gasPrice", [])

    async def send_raw_transaction(self, raw_transaction: str) -> str:
        """Broadcast a signed transaction and return its hash."""
        result = await self._rpc_call("eth_sendRawTransaction", [raw_transaction])
        if not isinstance(result, str) or not result.startswith("0x"):
            raise ChainCallError(
                f"Malformed eth_sendRawTransaction result: {result}",
                method="eth_sendRawTransaction",
            )
        logger.info(f"Raw transaction broadcast: {result}")
        return result
