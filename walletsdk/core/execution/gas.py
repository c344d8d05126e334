"""
Gas price and gas limit resolution for UserOperations.

Fee levels have no safe default, so GasPricer fails hard. Gas limits do:
GasEstimator falls back to static floors whenever the bundler cannot help.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from walletsdk.config import settings
from walletsdk.providers.bundler import BundlerProvider

from .errors import GasEstimationDegraded, GasEstimationError, GasPriceUnavailable, WalletError
from .userop import GasEstimation, GasPrice, UserOperation

logger = logging.getLogger(__name__)

# Replaces the bundler estimate entirely; its result is used as-is.
CustomGasEstimator = Callable[[UserOperation], Awaitable[GasEstimation]]


def _parse_hex_field(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"Missing or non-hex field {key!r}: {value!r}")
    return int(value, 16)


def default_gas_estimation() -> GasEstimation:
    return GasEstimation(
        pre_verification_gas=settings.default_pre_verification_gas * settings.pre_verification_gas_multiplier,
        verification_gas_limit=settings.verification_gas_limit,
        call_gas_limit=settings.default_call_gas_limit,
    )


class GasPricer:
    """Reads the bundler's "fast" fee tier."""

    TIER = "fast"

    def __init__(self, bundler: BundlerProvider) -> None:
        self.bundler = bundler

    async def get_gas_price(self) -> GasPrice:
        try:
            result = await self.bundler.get_user_operation_gas_price()
        except WalletError as exc:
            raise GasPriceUnavailable(f"Gas price oracle unavailable: {exc}", cause=exc) from exc

        tier = result.get(self.TIER)
        if not isinstance(tier, dict):
            raise GasPriceUnavailable(f"Gas price response has no {self.TIER!r} tier")
        try:
            gas_price = GasPrice(
                max_fee_per_gas=_parse_hex_field(tier, "maxFeePerGas"),
                max_priority_fee_per_gas=_parse_hex_field(tier, "maxPriorityFeePerGas"),
            )
        except ValueError as exc:
            raise GasPriceUnavailable(f"Malformed gas price response: {exc}", cause=exc) from exc

        logger.debug(
            f"Gas price: maxFee={gas_price.max_fee_per_gas} "
            f"maxPriorityFee={gas_price.max_priority_fee_per_gas}"
        )
        return gas_price


class GasEstimator:
    """
    Wraps eth_estimateUserOperationGas with safety margins.

    - preVerificationGas is doubled.
    - verificationGasLimit is always the fixed floor; bundlers underestimate
      passkey (P-256) verification, so their figure is ignored.
    - callGasLimit is taken as returned.

    Any bundler failure yields ``default_gas_estimation()`` instead of an
    error. A custom estimator replaces all of the above; its failures raise
    GasEstimationError.
    """

    def __init__(
        self,
        bundler: BundlerProvider,
        custom_estimator: Optional[CustomGasEstimator] = None,
    ) -> None:
        self.bundler = bundler
        self.custom_estimator = custom_estimator
        self.verification_gas_limit = settings.verification_gas_limit
        self.pre_verification_gas_multiplier = settings.pre_verification_gas_multiplier

    async def estimate(self, user_op: UserOperation) -> GasEstimation:
        if self.custom_estimator is not None:
            return await self._estimate_with_custom(user_op)

        try:
            return await self._estimate_with_bundler(user_op)
        except GasEstimationDegraded as exc:
            logger.warning(f"Gas estimation degraded, using defaults: {exc.message}")
            return default_gas_estimation()

    async def _estimate_with_custom(self, user_op: UserOperation) -> GasEstimation:
        # Failures here never fall back to defaults
        try:
            estimation = await self.custom_estimator(user_op)
        except WalletError:
            raise
        except Exception as exc:
            raise GasEstimationError(f"Custom gas estimator failed: {exc}", cause=exc) from exc

        if not isinstance(estimation, GasEstimation):
            raise GasEstimationError(
                f"Custom gas estimator returned {type(estimation).__name__}, expected GasEstimation"
            )
        return estimation

    async def _estimate_with_bundler(self, user_op: UserOperation) -> GasEstimation:
        try:
            result = await self.bundler.estimate_user_operation_gas(user_op)
            pre_verification_gas = _parse_hex_field(result, "preVerificationGas")
            call_gas_limit = _parse_hex_field(result, "callGasLimit")
        except (WalletError, ValueError) as exc:
            raise GasEstimationDegraded(str(exc), cause=exc) from exc

        return GasEstimation(
            pre_verification_gas=pre_verification_gas * self.pre_verification_gas_multiplier,
            verification_gas_limit=self.verification_gas_limit,
            call_gas_limit=call_gas_limit,
        )
