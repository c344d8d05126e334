import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import httpx

from ..config import settings
from ..core.execution.errors import WalletError


def decode_envelope(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """Parse a JSON-RPC response body into its envelope dict."""
    payload = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    if not isinstance(payload, dict):
        raise ValueError("JSON-RPC response must be an object")
    return payload


def rpc_error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class JsonRpcProvider(Provider):
    """Provider speaking JSON-RPC 2.0 over HTTP POST to a single URL"""

    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self.url = url
        self._client = client
        self._owns_client = client is None
        self.timeout_s = settings.request_timeout_seconds

    def _get_client(self) -> httpx.AsyncClient:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
            self._owns_client = True
        return self._client

    @abstractmethod
    def _transport_error(self, method: str, exc: Exception) -> WalletError:
        """Error raised when the endpoint cannot be reached or answers non-2xx"""
        pass

    @abstractmethod
    def _rpc_error(self, method: str, error: Any) -> WalletError:
        """Error raised for a JSON-RPC ``error`` member"""
        pass

    async def _post(self, method: str, params: List[Any]) -> str:
        """POST a request envelope and return the raw response body."""
        if not self.url:
            raise self._transport_error(method, ValueError(f"No {self.name} URL configured"))

        try:
            response = await self._get_client().post(
                self.url,
                json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise self._transport_error(method, exc) from exc
        return response.text

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        raw = await self._post(method, params)
        try:
            payload = decode_envelope(raw)
        except ValueError as exc:
            raise self._transport_error(method, exc) from exc
        if payload.get("error"):
            raise self._rpc_error(method, payload["error"])
        return payload.get("result")

    async def close(self) -> None:
        if self._client and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
