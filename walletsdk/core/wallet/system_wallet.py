"""
Interface to the platform signing authority ("system wallet").

The platform owns the keys and asks the user to approve each request. Every
request method returns immediately and reports its outcome later through
``on_result``, possibly from another thread. Implementations are not trusted
to call ``on_result`` exactly once; SigningGateway guards against repeats.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

# Returned through on_result when the user rejects a request
DECLINE = "decline"

# Reported value: signature / address / chain id as a string, DECLINE, or
# None when the authority produced nothing.
ResultCallback = Callable[[Optional[str]], object]


class SystemWallet(ABC):
    """Platform adapter for the system wallet service."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the system wallet service exists on this device"""
        pass

    @abstractmethod
    def create_session(self) -> str:
        """Open a session and return its identifier"""
        pass

    @abstractmethod
    def get_address(self, session: str, on_result: ResultCallback) -> None:
        """Report the smart account address of the active account"""
        pass

    @abstractmethod
    def sign_user_operation(
        self,
        session: str,
        user_op_json: str,
        chain_id: int,
        on_result: ResultCallback,
    ) -> None:
        """Ask the user to sign a serialized UserOperation"""
        pass

    @abstractmethod
    def send_transaction(
        self,
        session: str,
        to: str,
        value: int,
        data: str,
        nonce: int,
        gas_price: int,
        gas_limit: int,
        chain_id: int,
        on_result: ResultCallback,
    ) -> None:
        """Ask the user to sign a legacy transaction; reports the raw signed transaction"""
        pass

    @abstractmethod
    def sign_message(
        self,
        session: str,
        message: str,
        message_type: str,
        on_result: ResultCallback,
    ) -> None:
        """Ask the user to sign an arbitrary message"""
        pass

    @abstractmethod
    def change_chain(
        self,
        session: str,
        chain_id: int,
        rpc_url: str,
        on_result: ResultCallback,
    ) -> None:
        """Switch the chain the system wallet signs for"""
        pass

    @abstractmethod
    def get_chain_id(self, session: str, on_result: ResultCallback) -> None:
        """Report the chain id the system wallet is on"""
        pass

    @abstractmethod
    def switch_account(self, session: str, account_index: int, on_result: ResultCallback) -> None:
        """Make another account of the device active"""
        pass
