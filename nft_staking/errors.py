"""Exception hierarchy for the staking client."""

from __future__ import annotations

from typing import Optional


class StakingClientError(Exception):
    """Base class for every error the client reports to the user."""


class ConfigError(StakingClientError):
    pass


class DerivationError(StakingClientError):
    pass


class SeedTooLong(DerivationError):
    pass


class TooManySeeds(DerivationError):
    pass


class DerivationExhausted(DerivationError):
    pass


class RemoteStateError(StakingClientError):
    pass


class AccountNotFound(RemoteStateError):
    pass


class MalformedRecord(RemoteStateError):
    pass


class NetworkError(StakingClientError):
    pass


class AssemblyError(StakingClientError):
    pass


class MissingSigner(AssemblyError):
    pass


class SigningError(StakingClientError):
    pass


class SubmissionRejected(StakingClientError):
    def __init__(self, message: str, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason


class StaleFreshnessToken(StakingClientError):
    """The recent blockhash expired before the transaction landed.

    The only condition worth retrying, and only by rebuilding the whole
    stamp/sign/submit sequence.
    """
