"""
ERC-4337 Bundler Provider.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from .base import JsonRpcProvider, decode_envelope, rpc_error_message
from ..config import NetworkConfig
from ..core.execution.errors import (
    BundlerError,
    BundlerTransportError,
    SubmissionError,
    WalletError,
)
from ..core.execution.userop import UserOperation, UserOpReceipt

logger = logging.getLogger(__name__)

# Replaces eth_sendUserOperation: takes the signed operation, returns the raw
# JSON-RPC response body, which is parsed like a bundler response.
CustomSubmitter = Callable[[UserOperation], Awaitable[str]]


def parse_rpc_response(raw: Union[str, bytes, Dict[str, Any]]) -> Any:
    """
    Parse an eth_sendUserOperation response envelope.

    Returns the ``result`` member; an ``error`` member raises SubmissionError
    carrying the bundler's message.
    """
    try:
        payload = decode_envelope(raw)
    except ValueError as exc:
        raise SubmissionError(f"Malformed bundler response: {exc}", cause=exc) from exc

    error = payload.get("error")
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        raise SubmissionError(rpc_error_message(error), code=code)
    if "result" not in payload:
        raise SubmissionError("Bundler response has neither result nor error")
    return payload["result"]


class BundlerProvider(JsonRpcProvider):
    name = "bundler"

    def __init__(
        self,
        network: NetworkConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(network.bundler_url, client)
        self.entry_point = network.entry_point

    def _transport_error(self, method: str, exc: Exception) -> WalletError:
        status_code = None
        if isinstance(exc, httpx.HTTPStatusError):
            status_code = exc.response.status_code
        return BundlerTransportError(
            f"Bundler request {method} failed: {exc}",
            status_code=status_code,
            cause=exc,
        )

    def _rpc_error(self, method: str, error: Any) -> WalletError:
        code = error.get("code") if isinstance(error, dict) else None
        return BundlerError(rpc_error_message(error), code=code)

    async def ready(self) -> bool:
        return bool(self.url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "Bundler not configured"}

        try:
            result = await self._rpc_call("eth_chainId", [])
            return {"status": "healthy", "chainId": result}
        except WalletError as exc:
            return {"status": "error", "reason": str(exc)}

    async def get_user_operation_gas_price(self) -> Dict[str, Any]:
        result = await self._rpc_call("pimlico_getUserOperationGasPrice", [])
        if not isinstance(result, dict):
            raise BundlerError("Invalid bundler response for pimlico_getUserOperationGasPrice")
        return result

    async def estimate_user_operation_gas(self, user_op: UserOperation) -> Dict[str, Any]:
        result = await self._rpc_call(
            "eth_estimateUserOperationGas",
            [user_op.to_rpc_dict(), self.entry_point],
        )
        if not isinstance(result, dict):
            raise BundlerError("Invalid bundler response for eth_estimateUserOperationGas")
        return result

    async def send_user_operation_raw(self, user_op: UserOperation) -> str:
        """POST eth_sendUserOperation and return the unparsed response body."""
        return await self._post(
            "eth_sendUserOperation",
            [user_op.to_rpc_dict(), self.entry_point],
        )

    async def send_user_operation(self, user_op: UserOperation) -> str:
        logger.info(f"Sending UserOperation for {user_op.sender} nonce {user_op.nonce}")
        result = parse_rpc_response(await self.send_user_operation_raw(user_op))
        if not isinstance(result, str):
            raise SubmissionError("Invalid bundler response for eth_sendUserOperation")
        return result

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOpReceipt]:
        result = await self._rpc_call("eth_getUserOperationReceipt", [user_op_hash])
        if not result:
            return None
        return UserOpReceipt.from_rpc(user_op_hash, result)
