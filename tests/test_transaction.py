from __future__ import annotations

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta
from solders.keypair import Keypair

from nft_staking.errors import AssemblyError, MissingSigner
from nft_staking.pda import vault_pda
from nft_staking.transaction import FreshnessToken, LifecycleState, assemble
from nft_staking.tx_builder import Withdraw, build_accounts


def test_assemble_wraps_one_instruction(payer, deployment) -> None:
    op = Withdraw(amount=5)
    envelope = assemble(deployment.program_id, op, build_accounts(op, payer.pubkey(), deployment), payer.pubkey())
    assert envelope.state is LifecycleState.BUILT
    assert len(envelope.instructions) == 1
    assert envelope.instructions[0].program_id == deployment.program_id
    assert envelope.instructions[0].data[0] == 4
    assert envelope.fee_payer == payer.pubkey()


def test_empty_accounts(payer, deployment) -> None:
    with pytest.raises(AssemblyError):
        assemble(deployment.program_id, Withdraw(amount=1), [], payer.pubkey())


def test_fee_payer_must_sign(payer, deployment) -> None:
    op = Withdraw(amount=1)
    accounts = build_accounts(op, payer.pubkey(), deployment)
    accounts[0] = AccountMeta(pubkey=payer.pubkey(), is_signer=False, is_writable=True)
    with pytest.raises(MissingSigner):
        assemble(deployment.program_id, op, accounts, payer.pubkey())


def test_fee_payer_must_be_writable(payer, deployment) -> None:
    op = Withdraw(amount=1)
    accounts = build_accounts(op, payer.pubkey(), deployment)
    accounts[0] = AccountMeta(pubkey=payer.pubkey(), is_signer=True, is_writable=False)
    with pytest.raises(MissingSigner):
        assemble(deployment.program_id, op, accounts, payer.pubkey())


def test_other_key_as_fee_payer(payer, deployment) -> None:
    op = Withdraw(amount=1)
    accounts = build_accounts(op, payer.pubkey(), deployment)
    with pytest.raises(MissingSigner):
        assemble(deployment.program_id, op, accounts, Keypair().pubkey())


def test_derived_address_cannot_sign(payer, deployment) -> None:
    op = Withdraw(amount=1)
    accounts = build_accounts(op, payer.pubkey(), deployment)
    vault = vault_pda(deployment.program_id)
    accounts[3] = AccountMeta(pubkey=vault, is_signer=True, is_writable=False)
    with pytest.raises(AssemblyError, match="derived address"):
        assemble(deployment.program_id, op, accounts, payer.pubkey())


def test_reset_clears_lifecycle_state(payer, deployment) -> None:
    op = Withdraw(amount=1)
    envelope = assemble(deployment.program_id, op, build_accounts(op, payer.pubkey(), deployment), payer.pubkey())
    envelope.state = LifecycleState.SIGNED
    envelope.token = FreshnessToken(blockhash=Hash.default(), last_valid_block_height=1, expires_at=10.0)
    envelope.reset()
    assert envelope.state is LifecycleState.BUILT
    assert envelope.token is None
    assert envelope.transaction is None
    assert len(envelope.instructions) == 1


def test_freshness_token_expiry() -> None:
    token = FreshnessToken(blockhash=Hash.default(), last_valid_block_height=1, expires_at=10.0)
    assert not token.is_expired(9.9)
    assert token.is_expired(10.0)
