"""
Error types for smart-wallet operations.

Everything raised by this package derives from WalletError. Only EncodingError
and SystemUnavailable are programming/platform faults; the rest describe a
failed remote leg and are reported on OperationResult by the pipeline.
"""

from typing import Optional


class WalletError(Exception):
    """Base exception for wallet errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class EncodingError(WalletError, ValueError):
    """Malformed ABI input. Never retried."""
    pass


class ChainCallError(WalletError):
    """Chain node returned an RPC error or could not be reached."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause)
        self.method = method


class GasPriceUnavailable(WalletError):
    """Bundler gas-price oracle unreachable or malformed."""
    pass


class GasEstimationDegraded(WalletError):
    """Bundler gas estimation failed; static defaults were used instead."""
    pass


class GasEstimationError(WalletError):
    """Custom gas estimator raised or returned something unusable."""
    pass


class SigningFailed(WalletError):
    """Signing authority returned no usable result."""
    pass


class UserDeclined(WalletError):
    """User rejected the request in the signing authority."""

    def __init__(self, message: str = "User declined the request"):
        super().__init__(message)


class BundlerError(WalletError):
    """Bundler returned a JSON-RPC error."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause)
        self.code = code


class SubmissionError(BundlerError):
    """Bundler rejected the signed operation."""
    pass


class BundlerTransportError(BundlerError):
    """HTTP-level failure talking to the bundler."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class SystemUnavailable(WalletError):
    """No system wallet service on this platform."""
    pass
