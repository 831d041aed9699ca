from __future__ import annotations

from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from nft_staking.config import DEFAULT_PROGRAM_ID, DEFAULT_REWARD_MINT, Deployment
from nft_staking.metadata import MetadataLayout


def metadata_bytes(
    mint: Pubkey,
    creators: Optional[List[Pubkey]],
    key: int = 4,
    padding: int = 64,
) -> bytes:
    creator_rows = None
    if creators is not None:
        creator_rows = [{"address": list(bytes(c)), "verified": True, "share": 100 // max(len(creators), 1)} for c in creators]
    data = MetadataLayout.build(
        {
            "key": key,
            "update_authority": list(bytes(Keypair().pubkey())),
            "mint": list(bytes(mint)),
            "data": {
                "name": "Staker #42".ljust(32, "\x00"),
                "symbol": "STK".ljust(10, "\x00"),
                "uri": "https://arweave.net/abc".ljust(200, "\x00"),
                "seller_fee_basis_points": 500,
                "creators": creator_rows,
            },
            "primary_sale_happened": True,
            "is_mutable": True,
        }
    )
    return data + bytes(padding)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeClient:
    """Stands in for ``solana.rpc.api.Client``; records what gets sent."""

    def __init__(self, accounts: Optional[Dict[Pubkey, bytes]] = None) -> None:
        self.accounts = accounts or {}
        self.sent: List[bytes] = []
        self.blockhash_calls = 0
        self.send_errors: List[Exception] = []
        self.blockhash_error: Optional[Exception] = None
        self.confirm_err = None
        self.confirmed: List[object] = []
        self.confirm_deadlines: List[Optional[int]] = []

    def get_account_info(self, pubkey, *args, **kwargs):
        data = self.accounts.get(pubkey)
        if data is None:
            return SimpleNamespace(value=None)
        return SimpleNamespace(value=SimpleNamespace(data=data))

    def get_latest_blockhash(self, commitment=None):
        if self.blockhash_error is not None:
            raise self.blockhash_error
        self.blockhash_calls += 1
        blockhash = Hash(bytes([self.blockhash_calls]) * 32)
        return SimpleNamespace(value=SimpleNamespace(blockhash=blockhash, last_valid_block_height=5000))

    def send_raw_transaction(self, txn: bytes, opts=None):
        self.sent.append(txn)
        if self.send_errors:
            raise self.send_errors.pop(0)
        tx = VersionedTransaction.from_bytes(txn)
        return SimpleNamespace(value=tx.signatures[0])

    def confirm_transaction(self, sig, commitment=None, last_valid_block_height=None):
        self.confirmed.append(sig)
        self.confirm_deadlines.append(last_valid_block_height)
        return SimpleNamespace(value=[SimpleNamespace(err=self.confirm_err)])


@pytest.fixture()
def deployment() -> Deployment:
    return Deployment(
        program_id=Pubkey.from_string(DEFAULT_PROGRAM_ID),
        reward_mint=Pubkey.from_string(DEFAULT_REWARD_MINT),
    )


@pytest.fixture()
def payer() -> Keypair:
    return Keypair()


@pytest.fixture()
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
