"""Stamp, sign, submit and optionally confirm a transaction envelope.

Each step moves the envelope one state forward. A blockhash is only good for
a bounded window, so the driver tracks a local deadline for it and refuses to
sign or send once that passes; callers recover by resetting the envelope and
running the whole sequence again (see ``execute``).
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .errors import NetworkError, SigningError, StaleFreshnessToken, SubmissionRejected
from .transaction import FreshnessToken, LifecycleState, TransactionEnvelope

logger = logging.getLogger("nft_staking")

TRANSPORT_ERRORS = (SolanaRpcException, httpx.HTTPError)


def _is_blockhash_error(text: str) -> bool:
    lowered = text.lower()
    return "blockhash not found" in lowered or "blockhashnotfound" in lowered


def to_signature(sig) -> Signature:
    if isinstance(sig, Signature):
        return sig
    return Signature.from_string(str(sig))


class LifecycleDriver:
    def __init__(
        self,
        client,
        signer: Keypair,
        blockhash_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.signer = signer
        self.blockhash_ttl = blockhash_ttl
        self.clock = clock

    def _expect(self, envelope: TransactionEnvelope, state: LifecycleState) -> None:
        if envelope.state is not state:
            raise RuntimeError(f"envelope is {envelope.state.value}; expected {state.value}")

    def _check_fresh(self, envelope: TransactionEnvelope) -> None:
        token = envelope.token
        if token.is_expired(self.clock()):
            raise StaleFreshnessToken(f"blockhash {token.blockhash} expired before submission")

    def stamp(self, envelope: TransactionEnvelope) -> TransactionEnvelope:
        self._expect(envelope, LifecycleState.BUILT)
        # Start the deadline before the request so a slow RPC counts against it.
        started = self.clock()
        try:
            resp = self.client.get_latest_blockhash(commitment=Confirmed)
        except TRANSPORT_ERRORS as exc:
            raise NetworkError(f"Failed to fetch blockhash: {exc}") from exc
        if not hasattr(resp, "value"):
            raise NetworkError(f"Failed to fetch blockhash: {resp}")
        envelope.token = FreshnessToken(
            blockhash=resp.value.blockhash,
            last_valid_block_height=resp.value.last_valid_block_height,
            expires_at=started + self.blockhash_ttl,
        )
        envelope.message = MessageV0.try_compile(
            envelope.fee_payer, envelope.instructions, [], envelope.token.blockhash
        )
        envelope.state = LifecycleState.STAMPED
        logger.info(
            "blockhash_stamped blockhash=%s last_valid_block_height=%s",
            envelope.token.blockhash,
            envelope.token.last_valid_block_height,
        )
        return envelope

    def sign(self, envelope: TransactionEnvelope) -> TransactionEnvelope:
        self._expect(envelope, LifecycleState.STAMPED)
        self._check_fresh(envelope)
        message = envelope.message
        required = list(message.account_keys[: message.header.num_required_signatures])
        if required != [self.signer.pubkey()]:
            raise SigningError(
                f"keypair {self.signer.pubkey()} cannot satisfy required signers {[str(k) for k in required]}"
            )
        try:
            envelope.transaction = VersionedTransaction(message, [self.signer])
        except Exception as exc:  # noqa: BLE001
            raise SigningError(f"Failed to sign transaction: {exc}") from exc
        envelope.state = LifecycleState.SIGNED
        return envelope

    def submit(self, envelope: TransactionEnvelope) -> str:
        self._expect(envelope, LifecycleState.SIGNED)
        self._check_fresh(envelope)
        try:
            resp = self.client.send_raw_transaction(
                bytes(envelope.transaction),
                opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed),
            )
        except RPCException as exc:
            if _is_blockhash_error(str(exc)):
                raise StaleFreshnessToken(f"cluster no longer knows blockhash {envelope.token.blockhash}") from exc
            envelope.state = LifecycleState.FAILED
            raise SubmissionRejected(f"Transaction rejected: {exc}", reason=str(exc)) from exc
        except TRANSPORT_ERRORS as exc:
            raise NetworkError(f"Failed to send transaction: {exc}") from exc
        envelope.signature = to_signature(resp.value)
        envelope.state = LifecycleState.SUBMITTED
        logger.info("transaction_submitted signature=%s", envelope.signature)
        return str(envelope.signature)

    def confirm(self, envelope: TransactionEnvelope) -> TransactionEnvelope:
        self._expect(envelope, LifecycleState.SUBMITTED)
        try:
            resp = self.client.confirm_transaction(
                envelope.signature,
                commitment=Confirmed,
                last_valid_block_height=envelope.token.last_valid_block_height,
            )
        except UnconfirmedTxError as exc:
            envelope.state = LifecycleState.FAILED
            raise NetworkError(f"Transaction {envelope.signature} was not confirmed: {exc}") from exc
        except TRANSPORT_ERRORS as exc:
            raise NetworkError(f"Failed to confirm transaction: {exc}") from exc
        status = resp.value[0] if resp.value else None
        if status is not None and status.err is not None:
            envelope.state = LifecycleState.FAILED
            raise SubmissionRejected(
                f"Transaction {envelope.signature} failed on chain: {status.err}", reason=str(status.err)
            )
        envelope.state = LifecycleState.CONFIRMED
        logger.info("transaction_confirmed signature=%s", envelope.signature)
        return envelope


def execute(driver: LifecycleDriver, envelope: TransactionEnvelope, restarts: int = 1) -> str:
    """Run stamp, sign and submit, restarting from scratch when the blockhash goes stale."""
    attempt = 0
    while True:
        try:
            driver.stamp(envelope)
            driver.sign(envelope)
            return driver.submit(envelope)
        except StaleFreshnessToken as exc:
            if attempt >= restarts:
                raise
            attempt += 1
            logger.warning("blockhash_stale attempt=%s/%s error=%s", attempt, restarts, exc)
            envelope.reset()
