from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, List

import httpx
from borsh_construct import Bool, CStruct, Option, String, U8, U16, Vec
from construct import ConstructError
from solana.exceptions import SolanaRpcException
from solders.pubkey import Pubkey

from .errors import AccountNotFound, MalformedRecord, NetworkError

logger = logging.getLogger("nft_staking")

# Token Metadata account key for a v1 metadata record.
METADATA_V1_KEY = 4

CreatorLayout = CStruct(
    "address" / U8[32],
    "verified" / Bool,
    "share" / U8,
)
DataLayout = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CreatorLayout)),
)
MetadataLayout = CStruct(
    "key" / U8,
    "update_authority" / U8[32],
    "mint" / U8[32],
    "data" / DataLayout,
    "primary_sale_happened" / Bool,
    "is_mutable" / Bool,
)


@dataclass(frozen=True)
class Creator:
    address: Pubkey
    verified: bool
    share: int


@dataclass
class MetadataRecord:
    key: int
    update_authority: Pubkey
    mint: Pubkey
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: List[Creator] = field(default_factory=list)
    primary_sale_happened: bool = False
    is_mutable: bool = True

    @property
    def registry(self) -> Pubkey:
        """First listed creator; for candy-machine mints this is the machine itself."""
        return self.creators[0].address


def _pubkey(raw: Any) -> Pubkey:
    return Pubkey.from_bytes(bytes(raw))


def decode_metadata(data: bytes) -> MetadataRecord:
    # Metadata accounts are allocated at max size; trailing bytes are ignored.
    try:
        parsed = MetadataLayout.parse(bytes(data))
    except (ConstructError, UnicodeDecodeError) as exc:
        raise MalformedRecord(f"metadata account does not decode: {exc}") from exc
    if parsed.key != METADATA_V1_KEY:
        raise MalformedRecord(f"unexpected metadata key {parsed.key}; expected {METADATA_V1_KEY}")
    creators = parsed.data.creators
    if not creators:
        raise MalformedRecord("metadata record has no creators")
    return MetadataRecord(
        key=parsed.key,
        update_authority=_pubkey(parsed.update_authority),
        mint=_pubkey(parsed.mint),
        name=parsed.data.name.rstrip("\x00"),
        symbol=parsed.data.symbol.rstrip("\x00"),
        uri=parsed.data.uri.rstrip("\x00"),
        seller_fee_basis_points=parsed.data.seller_fee_basis_points,
        creators=[Creator(_pubkey(c.address), bool(c.verified), c.share) for c in creators],
        primary_sale_happened=bool(parsed.primary_sale_happened),
        is_mutable=bool(parsed.is_mutable),
    )


def _account_bytes(raw_data: Any) -> bytes:
    if isinstance(raw_data, (bytes, bytearray)):
        return bytes(raw_data)
    # handle (data, encoding) tuple/list shape
    data_b64 = raw_data[0] if isinstance(raw_data, (list, tuple)) else raw_data
    return base64.b64decode(data_b64)


class RemoteStateReader:
    """Read-only account access over a solana-py ``Client``."""

    def __init__(self, client) -> None:
        self.client = client

    def fetch_account(self, address: Pubkey) -> bytes:
        try:
            resp = self.client.get_account_info(address)
        except (SolanaRpcException, httpx.HTTPError) as exc:
            raise NetworkError(f"failed to fetch account {address}: {exc}") from exc
        if not hasattr(resp, "value"):
            raise NetworkError(f"RPC error fetching account {address}: {resp}")
        value = resp.value
        if value is None or value.data is None:
            raise AccountNotFound(f"account {address} not found")
        data = _account_bytes(value.data)
        logger.debug("account_fetched address=%s bytes=%s", address, len(data))
        return data

    def fetch_metadata(self, address: Pubkey) -> MetadataRecord:
        return decode_metadata(self.fetch_account(address))
