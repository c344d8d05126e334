"""
System Wallet Module

Access to the platform signing authority:
- SystemWallet: adapter interface implemented per platform
- SigningGateway: turns one-shot callbacks into awaitable results
- DECLINE: value reported when the user rejects a request

The SmartWallet facade is imported by path:

    from walletsdk.core.wallet.smart_wallet import SmartWallet

    wallet = SmartWallet(system_wallet, owners=[passkey_public_key])
    result = await wallet.send_transaction(to="0x...", value=10**15)
    if result.is_declined:
        ...
"""

from .system_wallet import DECLINE, ResultCallback, SystemWallet
from .signing import (
    OneShotResult,
    SigningGateway,
    SigningOutcome,
    SigningStatus,
)

__all__ = [
    "DECLINE",
    "ResultCallback",
    "SystemWallet",
    "OneShotResult",
    "SigningGateway",
    "SigningOutcome",
    "SigningStatus",
]
