"""
Smart wallet facade.

One SmartWallet per system-wallet session. It owns the HTTP client, the
signing gateway and the current network snapshot, and builds a fresh
OperationPipeline for every send.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, List, Optional, Sequence, Set

import httpx

from walletsdk.config import NetworkConfig, settings
from walletsdk.core.execution.abi import BytesLike, build_init_code
from walletsdk.core.execution.create2 import compute_address
from walletsdk.core.execution.errors import (
    SigningFailed,
    SystemUnavailable,
    UserDeclined,
    WalletError,
)
from walletsdk.core.execution.gas import CustomGasEstimator, GasEstimator, GasPricer
from walletsdk.core.execution.pipeline import OperationPipeline, OperationResult, OperationStatus
from walletsdk.core.execution.userop import EMPTY_BYTES, Call, GasEstimation, UserOpReceipt
from walletsdk.core.execution.userop_builder import CallLike, UserOperationBuilder
from walletsdk.providers.bundler import BundlerProvider, CustomSubmitter
from walletsdk.providers.chain import ChainReader

from .signing import SigningGateway
from .system_wallet import DECLINE, SystemWallet

logger = logging.getLogger(__name__)

# Plain value transfer
LEGACY_GAS_LIMIT = 21_000


class _AccountView:
    """Account facts as seen from one network snapshot."""

    def __init__(self, wallet: "SmartWallet", chain: ChainReader, chain_id: int) -> None:
        self.wallet = wallet
        self.chain = chain
        self.chain_id = chain_id

    async def get_address(self) -> str:
        return await self.wallet.get_address()

    async def get_init_code(self) -> str:
        return await self.wallet._init_code_for(self.chain, self.chain_id)


class SmartWallet:
    """
    Client for a passkey-owned smart account whose keys live in the system wallet.

    Raises SystemUnavailable at construction when no system wallet is present.
    """

    def __init__(
        self,
        system_wallet: Optional[SystemWallet],
        network: Optional[NetworkConfig] = None,
        owners: Optional[Sequence[BytesLike]] = None,
        account_nonce: int = 0,
        custom_estimator: Optional[CustomGasEstimator] = None,
        custom_submitter: Optional[CustomSubmitter] = None,
        client: Optional[httpx.AsyncClient] = None,
        signing_timeout_s: Optional[float] = None,
    ) -> None:
        if system_wallet is None or not system_wallet.is_connected():
            raise SystemUnavailable("System wallet not found on this device")

        self.system_wallet = system_wallet
        self.owners: Optional[List[BytesLike]] = list(owners) if owners else None
        self.account_nonce = account_nonce
        self.custom_estimator = custom_estimator
        self.custom_submitter = custom_submitter

        self._network = network or NetworkConfig.from_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        self.gateway = SigningGateway(system_wallet, timeout_s=signing_timeout_s)
        self.session = system_wallet.create_session()

        # Write-once per account
        self._address: Optional[str] = None
        self._init_code: Optional[str] = None
        self._deployed_on: Set[int] = set()

        logger.info(f"Smart wallet session opened on chain {self._network.chain_id}")

    @property
    def network(self) -> NetworkConfig:
        return self._network

    def is_ethos(self) -> bool:
        return self.system_wallet.is_connected()

    def _chain(self, network: NetworkConfig) -> ChainReader:
        return ChainReader(network, self._client)

    def _bundler(self, network: NetworkConfig) -> BundlerProvider:
        return BundlerProvider(network, self._client)

    def _builder(self, network: NetworkConfig) -> UserOperationBuilder:
        chain = self._chain(network)
        bundler = self._bundler(network)
        return UserOperationBuilder(
            account=_AccountView(self, chain, network.chain_id),
            chain=chain,
            gas_pricer=GasPricer(bundler),
            gas_estimator=GasEstimator(bundler, self.custom_estimator),
        )

    # Account

    async def get_address(self) -> str:
        """Smart account address reported by the system wallet. Cached."""
        if self._address is not None:
            return self._address

        result = await self.gateway.await_result(
            lambda on_result: self.system_wallet.get_address(self.session, on_result),
            "address request",
        )
        if result == DECLINE:
            raise UserDeclined("User declined the address request")
        if not result:
            raise SigningFailed("System wallet returned no address")

        self._address = result
        return result

    def get_precomputed_address(self) -> str:
        """CREATE2 address for the configured owners, computed offline."""
        if not self.owners:
            raise WalletError("Owners are required to precompute the account address")
        return compute_address(
            self.owners,
            self.account_nonce,
            factory=self._network.factory,
            init_code_hash=self._network.init_code_hash,
        )

    async def verify_precomputed_address(self) -> bool:
        """Compare the offline address with the factory's getAddress view."""
        expected = self.get_precomputed_address()
        on_chain = await self._chain(self._network).get_factory_address(self.owners, self.account_nonce)
        return on_chain.lower() == expected.lower()

    async def _is_deployed_on(self, chain: ChainReader, chain_id: int) -> bool:
        # Deployment is monotonic; once seen, never re-queried for that chain
        if chain_id in self._deployed_on:
            return True
        deployed = await chain.is_deployed(await self.get_address())
        if deployed:
            self._deployed_on.add(chain_id)
        return deployed

    async def is_deployed(self) -> bool:
        network = self._network
        return await self._is_deployed_on(self._chain(network), network.chain_id)

    async def _init_code_for(self, chain: ChainReader, chain_id: int) -> str:
        if await self._is_deployed_on(chain, chain_id):
            return EMPTY_BYTES

        if self._init_code is None:
            if not self.owners:
                raise WalletError("Account is not deployed and no owners were given to build initCode")
            self._init_code = build_init_code(chain.factory, self.owners, self.account_nonce)
        return self._init_code

    async def get_init_code(self) -> str:
        """``0x`` once deployed, otherwise factory ++ createAccount(owners, nonce)."""
        network = self._network
        return await self._init_code_for(self._chain(network), network.chain_id)

    async def get_nonce(self, key: int = 0) -> int:
        return await self._chain(self._network).get_nonce(await self.get_address(), key)

    # Operations

    async def estimate_user_operation_gas(self, calls: Iterable[CallLike]) -> GasEstimation:
        builder = self._builder(self._network)
        draft, _ = await builder.prepare(calls)
        return await builder.gas_estimator.estimate(draft)

    async def send_transactions(
        self,
        calls: Iterable[CallLike],
        call_gas_limit: Optional[int] = None,
    ) -> OperationResult:
        """
        Build, sign and submit one UserOperation carrying ``calls``.

        The network snapshot is taken once here; a concurrent change_chain
        does not affect this operation.
        """
        network = self._network
        pipeline = OperationPipeline(
            builder=self._builder(network),
            gateway=self.gateway,
            bundler=self._bundler(network),
            session=self.session,
            chain_id=network.chain_id,
            custom_submitter=self.custom_submitter,
        )
        return await pipeline.run(calls, call_gas_limit)

    async def send_transaction(
        self,
        to: str,
        value: int = 0,
        data: str = EMPTY_BYTES,
        call_gas_limit: Optional[int] = None,
    ) -> OperationResult:
        return await self.send_transactions([Call(target=to, value=value, data=data)], call_gas_limit)

    async def send_legacy_transaction(
        self,
        to: str,
        value: int = 0,
        data: str = EMPTY_BYTES,
        gas_price: Optional[int] = None,
        gas_limit: int = LEGACY_GAS_LIMIT,
    ) -> OperationResult:
        """
        Send a plain transaction from the address the system wallet reports.

        The nonce comes from eth_getTransactionCount and, unless given, the
        gas price from eth_gasPrice. The system wallet returns the signed raw
        transaction, which is broadcast with eth_sendRawTransaction.
        """
        network = self._network
        chain = self._chain(network)
        try:
            sender = await self.get_address()
            nonce = await chain.get_transaction_count(sender)
            if gas_price is None:
                gas_price = await chain.get_gas_price()
        except UserDeclined:
            return OperationResult(status=OperationStatus.DECLINED)
        except WalletError as exc:
            logger.error(f"Legacy transaction to {to} failed before signing: {exc}")
            return OperationResult(status=OperationStatus.FAILED, error=exc)

        outcome = await self.gateway.sign_transaction(
            self.session,
            to=to,
            value=value,
            data=data,
            nonce=nonce,
            gas_price=gas_price,
            gas_limit=gas_limit,
            chain_id=network.chain_id,
        )
        if outcome.is_declined:
            return OperationResult(status=OperationStatus.DECLINED)
        if not outcome.is_signed:
            return OperationResult(status=OperationStatus.FAILED, error=outcome.error)

        try:
            tx_hash = await chain.send_raw_transaction(outcome.signature)
        except WalletError as exc:
            logger.error(f"Legacy transaction broadcast failed: {exc}")
            return OperationResult(status=OperationStatus.FAILED, error=exc)
        return OperationResult(status=OperationStatus.COMPLETED, tx_hash=tx_hash)

    async def wait_for_receipt(
        self,
        user_op_hash: str,
        timeout_s: float = 180.0,
        poll_interval_s: float = 2.0,
    ) -> UserOpReceipt:
        bundler = self._bundler(self._network)
        start_time = time.monotonic()
        while True:
            receipt = await bundler.get_user_operation_receipt(user_op_hash)
            if receipt is not None:
                return receipt
            if time.monotonic() - start_time >= timeout_s:
                raise TimeoutError(f"UserOperation not included within {timeout_s}s: {user_op_hash}")
            await asyncio.sleep(poll_interval_s)

    # System wallet passthroughs

    async def sign_message(self, message: str, message_type: str = "personal_sign") -> str:
        """Returns the signature, or ``"decline"`` if the user rejected it."""
        outcome = await self.gateway.sign_message(self.session, message, message_type)
        if outcome.is_declined:
            return DECLINE
        if not outcome.is_signed:
            raise outcome.error
        return outcome.signature

    async def get_chain_id(self) -> int:
        result = await self.gateway.await_result(
            lambda on_result: self.system_wallet.get_chain_id(self.session, on_result),
            "chain id request",
        )
        try:
            return int(result, 0)
        except (TypeError, ValueError) as exc:
            raise SigningFailed(f"System wallet returned invalid chain id: {result!r}", cause=exc) from exc

    async def change_chain(
        self,
        chain_id: int,
        rpc_url: str,
        bundler_url: Optional[str] = None,
    ) -> str:
        """
        Switch the system wallet and this client to another chain.

        Returns the system wallet's answer. On ``"decline"`` the current
        network is kept.
        """
        result = await self.gateway.await_result(
            lambda on_result: self.system_wallet.change_chain(self.session, chain_id, rpc_url, on_result),
            "chain change",
        )
        if result == DECLINE:
            logger.info(f"User declined switch to chain {chain_id}")
            return DECLINE

        self._network = self._network.switch(chain_id, rpc_url, bundler_url)
        logger.info(f"Switched to chain {chain_id} (network v{self._network.version})")
        return result or ""

    async def switch_account(self, account_index: int) -> str:
        result = await self.gateway.await_result(
            lambda on_result: self.system_wallet.switch_account(self.session, account_index, on_result),
            "account switch",
        )
        if result == DECLINE:
            return DECLINE

        # A different account has its own address and deployment state
        self._address = None
        self._init_code = None
        self._deployed_on.clear()
        return result or ""

    async def close(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "SmartWallet":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
