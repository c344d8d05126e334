"""
UserOperation assembly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Union

from walletsdk.providers.chain import ChainReader

from .abi import encode_execute_batch, encode_signature_wrapper, encode_webauthn_auth
from .gas import GasEstimator, GasPricer
from .userop import EMPTY_BYTES, Call, GasEstimation, GasPrice, UserOperation

logger = logging.getLogger(__name__)

# Placeholder used only to size the operation for eth_estimateUserOperationGas.
# It is a SignatureWrapper around a WebAuthn assertion with a full-length
# clientDataJSON and maximal r/s, so it is never shorter than a real passkey
# signature. It must never be submitted.
DUMMY_SIGNATURE = encode_signature_wrapper(
    0,
    encode_webauthn_auth(
        authenticator_data=bytes.fromhex("49960de5880e8c687434170f6476605b8fe4aeb9a28632c7995cf3ba831d9763")
        + bytes.fromhex("0500000000"),
        client_data_json=(
            '{"type":"webauthn.get","challenge":"' + "A" * 43 + '",'
            '"origin":"https://keys.coinbase.com","crossOrigin":false}'
        ),
        challenge_index=23,
        type_index=1,
        r=2**256 - 1,
        s=2**256 - 1,
    ),
)

CallLike = Union[Call, Dict[str, Any]]


class SmartAccountSource(Protocol):
    """Session-level account facts. Both values are stable once resolved."""

    async def get_address(self) -> str:
        ...

    async def get_init_code(self) -> str:
        ...


@dataclass
class BuiltOperation:
    estimation_draft: UserOperation
    final: UserOperation
    gas_price: GasPrice
    gas_estimation: GasEstimation


def normalize_calls(calls: Iterable[CallLike]) -> List[Call]:
    normalized = [call if isinstance(call, Call) else Call.from_dict(call) for call in calls]
    if not normalized:
        raise ValueError("At least one call is required")
    return normalized


class UserOperationBuilder:
    """
    Builds the unsigned operation for a batch of calls.

    ``prepare`` resolves everything except gas limits (sender, nonce, init
    code, call data, fees) and returns the estimation draft; ``finalize``
    estimates and returns the operation handed to the signer.
    """

    def __init__(
        self,
        account: SmartAccountSource,
        chain: ChainReader,
        gas_pricer: GasPricer,
        gas_estimator: GasEstimator,
    ) -> None:
        self.account = account
        self.chain = chain
        self.gas_pricer = gas_pricer
        self.gas_estimator = gas_estimator

    async def prepare(self, calls: Iterable[CallLike]) -> Tuple[UserOperation, GasPrice]:
        batch = normalize_calls(calls)
        sender = await self.account.get_address()
        nonce = await self.chain.get_nonce(sender)
        init_code = await self.account.get_init_code()
        call_data = encode_execute_batch(batch)
        gas_price = await self.gas_pricer.get_gas_price()

        draft = UserOperation(
            sender=sender,
            nonce=nonce,
            init_code=init_code,
            call_data=call_data,
            call_gas_limit=0,
            verification_gas_limit=0,
            pre_verification_gas=0,
            max_fee_per_gas=gas_price.max_fee_per_gas,
            max_priority_fee_per_gas=gas_price.max_priority_fee_per_gas,
            signature=DUMMY_SIGNATURE,
        )
        logger.info(
            f"Prepared UserOperation for {sender} nonce {nonce} "
            f"({len(batch)} call(s), deployed={init_code == EMPTY_BYTES})"
        )
        return draft, gas_price

    async def finalize(
        self,
        draft: UserOperation,
        gas_price: GasPrice,
        call_gas_limit: Optional[int] = None,
    ) -> BuiltOperation:
        estimation = await self.gas_estimator.estimate(draft)
        final = replace(
            draft,
            # Only callGasLimit may be overridden by the caller
            call_gas_limit=call_gas_limit if call_gas_limit is not None else estimation.call_gas_limit,
            verification_gas_limit=estimation.verification_gas_limit,
            pre_verification_gas=estimation.pre_verification_gas,
            signature=EMPTY_BYTES,
        )
        return BuiltOperation(
            estimation_draft=draft,
            final=final,
            gas_price=gas_price,
            gas_estimation=estimation,
        )

    async def build(
        self,
        calls: Iterable[CallLike],
        call_gas_limit: Optional[int] = None,
    ) -> BuiltOperation:
        draft, gas_price = await self.prepare(calls)
        return await self.finalize(draft, gas_price, call_gas_limit)

    async def build_call(
        self,
        to: str,
        value: int = 0,
        data: str = EMPTY_BYTES,
        call_gas_limit: Optional[int] = None,
    ) -> BuiltOperation:
        return await self.build([Call(target=to, value=value, data=data)], call_gas_limit)
