"""
UserOperation Execution Layer

Encoding and data types for ERC-4337 smart-account operations:
- abi: hand-rolled ABI encoding for factory, account and EntryPoint calls
- create2: counterfactual account address derivation
- userop: UserOperation, Call, GasPrice, GasEstimation, UserOpReceipt
- errors: WalletError hierarchy

The stages that talk to the network live in their own modules and are
imported by path:

    from walletsdk.core.execution.gas import GasEstimator, GasPricer
    from walletsdk.core.execution.userop_builder import UserOperationBuilder
    from walletsdk.core.execution.pipeline import OperationPipeline, OperationResult
"""

from .errors import (
    WalletError,
    EncodingError,
    ChainCallError,
    GasPriceUnavailable,
    GasEstimationDegraded,
    GasEstimationError,
    SigningFailed,
    UserDeclined,
    BundlerError,
    SubmissionError,
    BundlerTransportError,
    SystemUnavailable,
)
from .userop import (
    UserOperation,
    Call,
    GasPrice,
    GasEstimation,
    UserOpReceipt,
)
from .abi import (
    build_init_code,
    encode_execute_batch,
    encode_get_nonce,
    function_selector,
)
from .create2 import compute_address, compute_salt, create2_address

__all__ = [
    # Errors
    "WalletError",
    "EncodingError",
    "ChainCallError",
    "GasPriceUnavailable",
    "GasEstimationDegraded",
    "GasEstimationError",
    "SigningFailed",
    "UserDeclined",
    "BundlerError",
    "SubmissionError",
    "BundlerTransportError",
    "SystemUnavailable",
    # Models
    "UserOperation",
    "Call",
    "GasPrice",
    "GasEstimation",
    "UserOpReceipt",
    # Encoding
    "build_init_code",
    "encode_execute_batch",
    "encode_get_nonce",
    "function_selector",
    "compute_address",
    "compute_salt",
    "create2_address",
]
