from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .errors import AssemblyError, MissingSigner
from .tx_builder import Operation, build_instruction


class LifecycleState(str, Enum):
    BUILT = "built"
    STAMPED = "stamped"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class FreshnessToken:
    blockhash: Hash
    last_valid_block_height: int
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class TransactionEnvelope:
    """One atomic request and everything the lifecycle attaches to it."""

    instructions: List[Instruction]
    fee_payer: Pubkey
    state: LifecycleState = LifecycleState.BUILT
    token: Optional[FreshnessToken] = None
    message: Optional[MessageV0] = None
    transaction: Optional[VersionedTransaction] = None
    signature: Optional[Signature] = None

    def reset(self) -> None:
        self.state = LifecycleState.BUILT
        self.token = None
        self.message = None
        self.transaction = None
        self.signature = None


def _check_accounts(accounts: Sequence[AccountMeta], fee_payer: Pubkey) -> None:
    if not accounts:
        raise AssemblyError("instruction has no accounts")
    signers = [meta for meta in accounts if meta.is_signer]
    for meta in signers:
        # A program derived address has no private key to sign with.
        if not meta.pubkey.is_on_curve():
            raise AssemblyError(f"derived address {meta.pubkey} cannot be a signer")
    if not any(meta.pubkey == fee_payer and meta.is_writable for meta in signers):
        raise MissingSigner(f"fee payer {fee_payer} is not a writable signer of the instruction")


def assemble(
    program_id: Pubkey,
    operation: Operation,
    accounts: Sequence[AccountMeta],
    fee_payer: Pubkey,
) -> TransactionEnvelope:
    _check_accounts(accounts, fee_payer)
    ix = build_instruction(operation, list(accounts), program_id)
    return TransactionEnvelope(instructions=[ix], fee_payer=fee_payer)
