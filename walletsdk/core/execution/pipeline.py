"""
Send pipeline for one logical smart-account transaction.

BUILDING -> DECLINED (address request refused)
BUILDING -> ESTIMATING -> AWAITING_SIGNATURE -> DECLINED
BUILDING -> ESTIMATING -> AWAITING_SIGNATURE -> SUBMITTING -> COMPLETED
Any stage may end in FAILED. Stages never overlap; each feeds the next.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

import structlog

from walletsdk.core.wallet.signing import SigningGateway
from walletsdk.core.wallet.system_wallet import DECLINE
from walletsdk.providers.bundler import BundlerProvider, CustomSubmitter, parse_rpc_response

from .errors import SubmissionError, UserDeclined, WalletError
from .userop import UserOperation
from .userop_builder import CallLike, UserOperationBuilder

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    BUILDING = "building"
    ESTIMATING = "estimating"
    AWAITING_SIGNATURE = "awaiting_signature"
    DECLINED = "declined"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"


class OperationStatus(str, Enum):
    COMPLETED = "completed"
    DECLINED = "declined"
    FAILED = "failed"


@dataclass
class OperationResult:
    """
    Terminal outcome of a send.

    ``tx_hash`` is set instead of ``user_op_hash`` for legacy EOA sends.
    """
    status: OperationStatus
    user_op_hash: Optional[str] = None
    error: Optional[WalletError] = None
    user_operation: Optional[UserOperation] = None
    failed_in: Optional[PipelineState] = None
    tx_hash: Optional[str] = None

    @property
    def result(self) -> Optional[str]:
        """The operation (or transaction) hash, the literal ``"decline"``, or None on failure."""
        if self.is_success:
            return self.user_op_hash or self.tx_hash
        if self.is_declined:
            return DECLINE
        return None

    @property
    def is_success(self) -> bool:
        return self.status == OperationStatus.COMPLETED

    @property
    def is_declined(self) -> bool:
        return self.status == OperationStatus.DECLINED

    def raise_for_status(self) -> "OperationResult":
        if self.is_success:
            return self
        if self.is_declined:
            raise UserDeclined()
        raise self.error or WalletError("Operation failed")


class OperationPipeline:
    """
    Runs build, estimate, sign and submit for a single send.

    A pipeline instance is bound to one network snapshot and is used once.
    Resolution failures (address, nonce, gas price) end the run before the
    user is asked to sign. EncodingError and invalid call input propagate.
    """

    def __init__(
        self,
        builder: UserOperationBuilder,
        gateway: SigningGateway,
        bundler: BundlerProvider,
        session: str,
        chain_id: int,
        custom_submitter: Optional[CustomSubmitter] = None,
    ) -> None:
        self.builder = builder
        self.gateway = gateway
        self.bundler = bundler
        self.session = session
        self.chain_id = chain_id
        self.custom_submitter = custom_submitter
        self.state: Optional[PipelineState] = None
        self.history: List[PipelineState] = []
        self.operation_id = uuid.uuid4().hex[:12]

    def _transition(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"Operation {self.operation_id} -> {state.value}")

    def _fail(self, error: WalletError, user_op: Optional[UserOperation] = None) -> OperationResult:
        failed_in = self.state
        self._transition(PipelineState.FAILED)
        logger.error(f"Operation {self.operation_id} failed in {failed_in.value if failed_in else 'start'}: {error}")
        return OperationResult(
            status=OperationStatus.FAILED,
            error=error,
            user_operation=user_op,
            failed_in=failed_in,
        )

    async def run(
        self,
        calls: Iterable[CallLike],
        call_gas_limit: Optional[int] = None,
    ) -> OperationResult:
        if self.state is not None:
            raise RuntimeError("OperationPipeline instances are single-use")

        with structlog.contextvars.bound_contextvars(
            operation_id=self.operation_id,
            chain_id=self.chain_id,
        ):
            return await self._run(calls, call_gas_limit)

    async def _run(
        self,
        calls: Iterable[CallLike],
        call_gas_limit: Optional[int],
    ) -> OperationResult:
        try:
            self._transition(PipelineState.BUILDING)
            draft, gas_price = await self.builder.prepare(calls)

            self._transition(PipelineState.ESTIMATING)
            built = await self.builder.finalize(draft, gas_price, call_gas_limit)
        except UserDeclined:
            # Address request refused before anything was built
            self._transition(PipelineState.DECLINED)
            logger.info(f"Operation {self.operation_id} declined before signing")
            return OperationResult(status=OperationStatus.DECLINED)
        except WalletError as exc:
            if isinstance(exc, ValueError):
                raise
            return self._fail(exc)

        unsigned = built.final
        self._transition(PipelineState.AWAITING_SIGNATURE)
        outcome = await self.gateway.sign_user_operation(self.session, unsigned, self.chain_id)

        if outcome.is_declined:
            self._transition(PipelineState.DECLINED)
            return OperationResult(status=OperationStatus.DECLINED, user_operation=unsigned)
        if not outcome.is_signed:
            return self._fail(outcome.error, unsigned)

        signed = unsigned.with_signature(outcome.signature)
        self._transition(PipelineState.SUBMITTING)
        try:
            user_op_hash = await self._submit(signed)
        except WalletError as exc:
            return self._fail(exc, signed)

        self._transition(PipelineState.COMPLETED)
        logger.info(f"UserOperation submitted: {user_op_hash}")
        return OperationResult(
            status=OperationStatus.COMPLETED,
            user_op_hash=user_op_hash,
            user_operation=signed,
        )

    async def _submit(self, signed: UserOperation) -> str:
        if self.custom_submitter is None:
            return await self.bundler.send_user_operation(signed)

        try:
            raw = await self.custom_submitter(signed)
        except WalletError:
            raise
        except Exception as exc:
            raise SubmissionError(f"Custom submitter failed: {exc}", cause=exc) from exc

        result = parse_rpc_response(raw)
        if not isinstance(result, str):
            raise SubmissionError("Custom submitter response result is not an operation hash")
        return result
