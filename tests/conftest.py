"""
Shared fakes: a scriptable system wallet and a JSON-RPC router for httpx.MockTransport.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx
import pytest

from walletsdk.config import NetworkConfig
from walletsdk.core.wallet.system_wallet import ResultCallback, SystemWallet

SENDER = "0x" + "ab" * 20
SIGNATURE = "0x" + "11" * 65
RPC_HOST = "rpc.test"
BUNDLER_HOST = "bundler.test"
USER_OP_HASH = "0x" + "cd" * 32
RAW_TRANSACTION = "0xf86c" + "22" * 40
TX_HASH = "0x" + "ef" * 32


def uint_word(value: int) -> str:
    return "0x" + hex(value)[2:].rjust(64, "0")


class FakeSystemWallet(SystemWallet):
    """
    Records every request. With ``auto_respond`` the scripted answer is
    delivered synchronously, except for request names listed in ``held``;
    undelivered callbacks wait in ``callbacks``.
    """

    def __init__(
        self,
        address: Optional[str] = SENDER,
        signature: Optional[str] = SIGNATURE,
        connected: bool = True,
        auto_respond: bool = True,
    ) -> None:
        self.address = address
        self.signature = signature
        self.message_signature: Optional[str] = SIGNATURE
        self.raw_transaction: Optional[str] = RAW_TRANSACTION
        self.chain_id_result: Optional[str] = "1"
        self.change_chain_result: Optional[str] = "0x1"
        self.switch_account_result: Optional[str] = "ok"
        self.connected = connected
        self.auto_respond = auto_respond
        self.requests: List[Tuple[str, tuple]] = []
        self.callbacks: List[ResultCallback] = []
        self.held: Set[str] = set()
        self.sessions = 0

    def _answer(self, name: str, value: Optional[str], on_result: ResultCallback) -> None:
        self.callbacks.append(on_result)
        if self.auto_respond and name not in self.held:
            on_result(value)

    def is_connected(self) -> bool:
        return self.connected

    def create_session(self) -> str:
        self.sessions += 1
        return f"session-{self.sessions}"

    def get_address(self, session, on_result):
        self.requests.append(("get_address", (session,)))
        self._answer("get_address", self.address, on_result)

    def sign_user_operation(self, session, user_op_json, chain_id, on_result):
        self.requests.append(("sign_user_operation", (session, user_op_json, chain_id)))
        self._answer("sign_user_operation", self.signature, on_result)

    def send_transaction(self, session, to, value, data, nonce, gas_price, gas_limit, chain_id, on_result):
        self.requests.append(("send_transaction", (session, to, value, data, nonce, gas_price, gas_limit, chain_id)))
        self._answer("send_transaction", self.raw_transaction, on_result)

    def sign_message(self, session, message, message_type, on_result):
        self.requests.append(("sign_message", (session, message, message_type)))
        self._answer("sign_message", self.message_signature, on_result)

    def change_chain(self, session, chain_id, rpc_url, on_result):
        self.requests.append(("change_chain", (session, chain_id, rpc_url)))
        self._answer("change_chain", self.change_chain_result, on_result)

    def get_chain_id(self, session, on_result):
        self.requests.append(("get_chain_id", (session,)))
        self._answer("get_chain_id", self.chain_id_result, on_result)

    def switch_account(self, session, account_index, on_result):
        self.requests.append(("switch_account", (session, account_index)))
        self._answer("switch_account", self.switch_account_result, on_result)

    def requests_named(self, name: str) -> List[tuple]:
        return [args for request_name, args in self.requests if request_name == name]


Handler = Callable[[List[Any]], Any]


class RpcRouter:
    """
    Routes JSON-RPC POSTs by (host, method).

    A route is a static result, a callable taking ``params`` and returning the
    result, or an ``error`` dict. Unrouted methods answer -32601.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.requests: List[Tuple[str, str, List[Any]]] = []

    def on(
        self,
        host: str,
        method: str,
        result: Any = None,
        handler: Optional[Handler] = None,
        error: Optional[Dict[str, Any]] = None,
        status_code: int = 200,
        raw: Optional[str] = None,
    ) -> "RpcRouter":
        self.routes[(host, method)] = {
            "result": result,
            "handler": handler,
            "error": error,
            "status_code": status_code,
            "raw": raw,
        }
        return self

    def calls(self, method: str, host: Optional[str] = None) -> List[List[Any]]:
        return [
            params
            for request_host, request_method, params in self.requests
            if request_method == method and (host is None or request_host == host)
        ]

    def install_defaults(
        self,
        nonce: int = 0,
        deployed: bool = True,
        user_op_hash: str = USER_OP_HASH,
    ) -> "RpcRouter":
        self.on(RPC_HOST, "eth_getCode", result="0x6080" if deployed else "0x")
        self.on(RPC_HOST, "eth_call", result=uint_word(nonce))
        self.on(RPC_HOST, "eth_chainId", result="0x1")
        self.on(
            BUNDLER_HOST,
            "pimlico_getUserOperationGasPrice",
            result={
                "slow": {"maxFeePerGas": "0x1", "maxPriorityFeePerGas": "0x1"},
                "standard": {"maxFeePerGas": "0x2", "maxPriorityFeePerGas": "0x1"},
                "fast": {"maxFeePerGas": "0x3b9aca00", "maxPriorityFeePerGas": "0x5f5e100"},
            },
        )
        self.on(
            BUNDLER_HOST,
            "eth_estimateUserOperationGas",
            result={
                "preVerificationGas": "0xc350",
                "verificationGasLimit": "0x186a0",
                "callGasLimit": "0x11170",
            },
        )
        self.on(BUNDLER_HOST, "eth_sendUserOperation", result=user_op_hash)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        host = request.url.host
        method = body["method"]
        params = body.get("params", [])
        self.requests.append((host, method, params))

        route = self.routes.get((host, method))
        if route is None:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": f"{method} not found"}},
            )
        if route["raw"] is not None:
            return httpx.Response(route["status_code"], text=route["raw"])
        if route["error"] is not None:
            return httpx.Response(
                route["status_code"],
                json={"jsonrpc": "2.0", "id": body["id"], "error": route["error"]},
            )
        result = route["handler"](params) if route["handler"] else route["result"]
        return httpx.Response(
            route["status_code"],
            json={"jsonrpc": "2.0", "id": body["id"], "result": result},
        )


@pytest.fixture
def router() -> RpcRouter:
    return RpcRouter()


@pytest.fixture
def http_client(router: RpcRouter) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(router))


@pytest.fixture
def network() -> NetworkConfig:
    return NetworkConfig(
        chain_id=1,
        rpc_url=f"https://{RPC_HOST}",
        bundler_url=f"https://{BUNDLER_HOST}",
    )


@pytest.fixture
def system_wallet() -> FakeSystemWallet:
    return FakeSystemWallet()
