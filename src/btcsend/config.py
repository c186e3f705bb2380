"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from btcsend.constants import HARDENED_OFFSET


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


# Bech32 human readable parts
BECH32_HRP: dict[NetworkType, str] = {
    NetworkType.MAINNET: "bc",
    NetworkType.TESTNET: "tb",
    NetworkType.SIGNET: "tb",
    NetworkType.REGTEST: "bcrt",
}

DEFAULT_API_URLS: dict[NetworkType, str] = {
    NetworkType.MAINNET: "https://blockstream.info/api",
    NetworkType.TESTNET: "https://blockstream.info/testnet/api",
    NetworkType.SIGNET: "https://mempool.space/signet/api",
    NetworkType.REGTEST: "http://127.0.0.1:3002",
}


class DerivationPath(BaseModel):
    """
    BIP84 derivation path: m/purpose'/coin_type'/account'/change/index

    coin_type defaults to 0 (the mainnet variant) on every network.
    """

    purpose: int = Field(default=84, ge=0, lt=HARDENED_OFFSET)
    coin_type: int = Field(default=0, ge=0, lt=HARDENED_OFFSET)
    account: int = Field(default=0, ge=0, lt=HARDENED_OFFSET)
    change: int = Field(default=0, ge=0, le=1, description="0 = external, 1 = internal")
    index: int = Field(default=0, ge=0, lt=HARDENED_OFFSET)

    def indices(self) -> list[int]:
        """Child indices with the hardened bit applied to purpose, coin type and account."""
        return [
            HARDENED_OFFSET + self.purpose,
            HARDENED_OFFSET + self.coin_type,
            HARDENED_OFFSET + self.account,
            self.change,
            self.index,
        ]

    def __str__(self) -> str:
        return (
            f"m/{self.purpose}'/{self.coin_type}'/{self.account}'/{self.change}/{self.index}"
        )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BTCSEND_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    network: NetworkType = NetworkType.TESTNET
    # Esplora-compatible REST endpoint; empty = default for the network
    api_url: str = ""
    derivation: DerivationPath = Field(default_factory=DerivationPath)

    # Confirmation target key looked up in /fee-estimates
    fee_target: str = "1"

    http_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_base_delay: float = Field(default=0.5, ge=0)

    log_level: str = "INFO"

    @model_validator(mode="after")
    def set_api_url_default(self) -> Settings:
        """If api_url is not set, use the public endpoint for the network."""
        if not self.api_url:
            object.__setattr__(self, "api_url", DEFAULT_API_URLS[self.network])
        return self
