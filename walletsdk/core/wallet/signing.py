"""
Bridges system-wallet callbacks into awaitable results.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from walletsdk.core.execution.errors import SigningFailed
from walletsdk.core.execution.userop import UserOperation

from .system_wallet import DECLINE, ResultCallback, SystemWallet

logger = logging.getLogger(__name__)

Dispatch = Callable[[ResultCallback], Any]


class OneShotResult:
    """
    Single-resolution channel between a callback and an awaiting task.

    ``deliver`` may be called from any thread and any number of times; only
    the first call before cancellation or ``close`` has an effect.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()
        self._lock = threading.Lock()
        self._completed = False

    @property
    def future(self) -> asyncio.Future:
        return self._future

    @property
    def completed(self) -> bool:
        return self._completed

    def deliver(self, value: Optional[str]) -> bool:
        """Resolve the channel. Returns False when it was already completed."""
        with self._lock:
            if self._completed:
                return False
            self._completed = True

        self._call_in_loop(self._resolve, value)
        return True

    def close(self) -> None:
        """Stop accepting deliveries and cancel the awaiting side if still pending."""
        with self._lock:
            self._completed = True
        self._call_in_loop(self._cancel)

    def _resolve(self, value: Optional[str]) -> None:
        if not self._future.done():
            self._future.set_result(value)

    def _cancel(self) -> None:
        if not self._future.done():
            self._future.cancel()

    def _call_in_loop(self, fn: Callable[..., None], *args: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            fn(*args)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(fn, *args)


class SigningStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"
    DECLINED = "declined"
    FAILED = "failed"


@dataclass
class SigningOutcome:
    status: SigningStatus
    signature: Optional[str] = None
    error: Optional[SigningFailed] = None

    @property
    def is_signed(self) -> bool:
        return self.status == SigningStatus.SIGNED

    @property
    def is_declined(self) -> bool:
        return self.status == SigningStatus.DECLINED


class SigningGateway:
    """
    Sends requests to the system wallet and awaits their single result.

    Pending requests are tracked until they resolve, fail, time out or the
    awaiting task is cancelled; afterwards late callbacks are ignored.
    """

    def __init__(self, system_wallet: SystemWallet, timeout_s: Optional[float] = None) -> None:
        self.system_wallet = system_wallet
        self.timeout_s = timeout_s
        self._pending: Dict[str, OneShotResult] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def await_result(self, dispatch: Dispatch, label: str = "request") -> Optional[str]:
        """
        Run ``dispatch(on_result)`` and wait for the first delivered value.

        Raises SigningFailed if dispatch raises or the wait times out.
        Cancelling the caller cancels the wait and drops the request.
        """
        request_id = uuid.uuid4().hex[:8]
        channel = OneShotResult()
        self._pending[request_id] = channel
        logger.debug(f"System wallet {label} {request_id} dispatched")

        try:
            try:
                dispatch(channel.deliver)
            except Exception as exc:
                raise SigningFailed(f"System wallet rejected {label}: {exc}", cause=exc) from exc

            if self.timeout_s is None:
                return await channel.future
            try:
                return await asyncio.wait_for(channel.future, self.timeout_s)
            except asyncio.TimeoutError as exc:
                raise SigningFailed(f"System wallet {label} timed out after {self.timeout_s}s", cause=exc) from exc
        finally:
            if not channel.completed:
                logger.debug(f"System wallet {label} {request_id} abandoned without a result")
            channel.close()
            self._pending.pop(request_id, None)

    async def _sign(self, dispatch: Dispatch, label: str) -> SigningOutcome:
        try:
            result = await self.await_result(dispatch, label)
        except SigningFailed as exc:
            logger.error(exc.message)
            return SigningOutcome(status=SigningStatus.FAILED, error=exc)

        if result == DECLINE:
            logger.info(f"User declined {label}")
            return SigningOutcome(status=SigningStatus.DECLINED)
        if not result:
            return SigningOutcome(
                status=SigningStatus.FAILED,
                error=SigningFailed(f"System wallet returned no result for {label}"),
            )
        return SigningOutcome(status=SigningStatus.SIGNED, signature=result)

    async def sign_user_operation(
        self,
        session: str,
        user_op: UserOperation,
        chain_id: int,
    ) -> SigningOutcome:
        payload = user_op.to_json()
        return await self._sign(
            lambda on_result: self.system_wallet.sign_user_operation(session, payload, chain_id, on_result),
            "user operation signature",
        )

    async def sign_transaction(
        self,
        session: str,
        to: str,
        value: int,
        data: str,
        nonce: int,
        gas_price: int,
        gas_limit: int,
        chain_id: int,
    ) -> SigningOutcome:
        """Legacy transaction; the signed result is the raw transaction."""
        return await self._sign(
            lambda on_result: self.system_wallet.send_transaction(
                session, to, value, data, nonce, gas_price, gas_limit, chain_id, on_result
            ),
            "transaction signature",
        )

    async def sign_message(
        self,
        session: str,
        message: str,
        message_type: str = "personal_sign",
    ) -> SigningOutcome:
        return await self._sign(
            lambda on_result: self.system_wallet.sign_message(session, message, message_type, on_result),
            "message signature",
        )
