from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parents[1]

# Coinbase-style smart wallet factory (v1) and the hash of its account proxy init code
DEFAULT_FACTORY_ADDRESS = "0x0BA5ED0c6AA8c49038F819E587E2633c4A9F428a"
DEFAULT_INIT_CODE_HASH = "0x5153041b4b8e36c84ca233b2fb610f85b8831b5e56a365618f507f8784fe034e"

# EntryPoint v0.6 (initCode / paymasterAndData layout)
DEFAULT_ENTRYPOINT_ADDRESS = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

DEFAULT_PRE_VERIFICATION_GAS = 70_000
DEFAULT_CALL_GAS_LIMIT = 200_000
DEFAULT_VERIFICATION_GAS_LIMIT = 800_000


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Derive the bundler URL from a Pimlico key when no URL was given."""

        super().model_post_init(__context)

        if not self.erc4337_bundler_url and self.pimlico_api_key:
            url = f"https://api.pimlico.io/v2/{self.chain_id}/rpc?apikey={self.pimlico_api_key}"
            object.__setattr__(self, "erc4337_bundler_url", url)

    log_level: str = Field(default="INFO", description="Logging level")
    log_json: Optional[bool] = Field(
        default=None,
        description="Force JSON (true) or console (false) log output; unset follows the level",
    )
    request_timeout_seconds: float = Field(default=30.0, description="HTTP timeout for RPC calls")

    # Chain
    chain_id: int = Field(default=1, description="Chain the session starts on")
    rpc_url: str = Field(
        default="https://rpc.ankr.com/eth",
        description="JSON-RPC endpoint of the chain node",
        validation_alias=AliasChoices("rpc_url", "web3_rpc", "WEB3_RPC"),
    )

    # ERC-4337
    pimlico_api_key: str = Field(default="", description="Pimlico API key")
    erc4337_bundler_url: str = Field(default="", description="Bundler JSON-RPC URL")
    erc4337_entrypoint_address: str = Field(
        default=DEFAULT_ENTRYPOINT_ADDRESS,
        description="EntryPoint contract address",
    )
    erc4337_factory_address: str = Field(
        default=DEFAULT_FACTORY_ADDRESS,
        description="Smart account factory address",
    )
    erc4337_init_code_hash: str = Field(
        default=DEFAULT_INIT_CODE_HASH,
        description="keccak256 of the account proxy creation code used by the factory",
    )

    # Gas floors
    default_pre_verification_gas: int = Field(default=DEFAULT_PRE_VERIFICATION_GAS, ge=0)
    default_call_gas_limit: int = Field(default=DEFAULT_CALL_GAS_LIMIT, ge=0)
    verification_gas_limit: int = Field(
        default=DEFAULT_VERIFICATION_GAS_LIMIT,
        ge=0,
        description="Fixed verificationGasLimit; passkey verification is underestimated by bundlers",
    )
    pre_verification_gas_multiplier: int = Field(default=2, ge=1)

    @property
    def has_bundler(self) -> bool:
        return bool(self.erc4337_bundler_url)


@dataclass(frozen=True)
class NetworkConfig:
    """
    Endpoint snapshot used by a single operation.

    A chain switch produces a new instance with a bumped ``version``; requests
    already in flight keep the instance they started with.
    """
    chain_id: int
    rpc_url: str
    bundler_url: str
    entry_point: str = DEFAULT_ENTRYPOINT_ADDRESS
    factory: str = DEFAULT_FACTORY_ADDRESS
    init_code_hash: str = DEFAULT_INIT_CODE_HASH
    version: int = 0

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "NetworkConfig":
        source = source or settings
        if not source.has_bundler:
            logger.warning("No bundler configured; set ERC4337_BUNDLER_URL or PIMLICO_API_KEY")
        return cls(
            chain_id=source.chain_id,
            rpc_url=source.rpc_url,
            bundler_url=source.erc4337_bundler_url,
            entry_point=source.erc4337_entrypoint_address,
            factory=source.erc4337_factory_address,
            init_code_hash=source.erc4337_init_code_hash,
        )

    def switch(self, chain_id: int, rpc_url: str, bundler_url: Optional[str] = None) -> "NetworkConfig":
        return replace(
            self,
            chain_id=chain_id,
            rpc_url=rpc_url,
            bundler_url=bundler_url if bundler_url is not None else self.bundler_url,
            version=self.version + 1,
        )


# Global settings instance
settings = Settings()
