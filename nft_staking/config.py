from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings
from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from .errors import ConfigError

DEFAULT_PROGRAM_ID = "AxiFxRWafjidUFpnkfGmAC2iYMdteVZw8WdCrNQtkzL6"
DEFAULT_REWARD_MINT = "Aoz9EBZPZ8oQHnuV8UY5bCV87xJ5DpwFcy84TrRWBCzp"
METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
SYSVAR_RENT_PUBKEY = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

MAINNET_RPC = "https://api.mainnet-beta.solana.com"
DEVNET_RPC = "https://api.devnet.solana.com"


class Settings(BaseSettings):
    program_id: str = DEFAULT_PROGRAM_ID
    reward_mint: str = DEFAULT_REWARD_MINT
    metadata_program_id: str = str(METADATA_PROGRAM_ID)
    mainnet_rpc_url: str = MAINNET_RPC
    devnet_rpc_url: str = DEVNET_RPC
    rpc_timeout_seconds: float = 30.0
    # A blockhash lives for 150 slots (~60-90s); stay under the low end.
    blockhash_ttl_seconds: float = 60.0
    stale_restarts: int = 1
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("log_level")
    @classmethod
    def known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    def rpc_url_for(self, env: Optional[str]) -> str:
        if env == "dev":
            return self.devnet_rpc_url
        return self.mainnet_rpc_url


def to_pubkey(value: str, name: str = "pubkey") -> Pubkey:
    try:
        return Pubkey.from_string(value.strip())
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"{name} is not a valid pubkey: {value!r}") from exc


@dataclass(frozen=True)
class Deployment:
    """On-chain addresses the catalog builds instructions against."""

    program_id: Pubkey
    reward_mint: Pubkey
    metadata_program_id: Pubkey = METADATA_PROGRAM_ID
    system_program_id: Pubkey = SYS_PROGRAM_ID
    token_program_id: Pubkey = TOKEN_PROGRAM_ID
    associated_token_program_id: Pubkey = ASSOCIATED_TOKEN_PROGRAM_ID
    rent_sysvar: Pubkey = SYSVAR_RENT_PUBKEY

    @classmethod
    def from_settings(cls, settings: Settings) -> "Deployment":
        return cls(
            program_id=to_pubkey(settings.program_id, "program_id"),
            reward_mint=to_pubkey(settings.reward_mint, "reward_mint"),
            metadata_program_id=to_pubkey(settings.metadata_program_id, "metadata_program_id"),
        )
