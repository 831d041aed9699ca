"""Program derived address search.

Walks the bump down from 255 and keeps the first seed set solders accepts,
i.e. the first candidate that falls off the ed25519 curve.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from .errors import DerivationExhausted, SeedTooLong, TooManySeeds

MAX_SEED_LEN = 32
MAX_SEEDS = 16

VAULT_SEED = b"vault"
WHITELIST_SEED = b"whitelist"
METADATA_SEED = b"metadata"


def _check_seeds(seeds: Sequence[bytes], max_seeds: int = MAX_SEEDS) -> None:
    if len(seeds) > max_seeds:
        raise TooManySeeds(f"{len(seeds)} seeds given; at most {max_seeds} allowed")
    for idx, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LEN:
            raise SeedTooLong(f"seed {idx} is {len(seed)} bytes; max is {MAX_SEED_LEN}")


def _try_create(seeds: Sequence[bytes], program_id: Pubkey) -> Optional[Pubkey]:
    # Seeds are checked up front, so solders only refuses on-curve results here.
    try:
        return Pubkey.create_program_address(list(seeds), program_id)
    except ValueError:
        return None


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Optional[Pubkey]:
    """Address for ``seeds`` under ``program_id``; ``None`` if it lands on the curve."""
    seeds = [bytes(s) for s in seeds]
    _check_seeds(seeds)
    return _try_create(seeds, program_id)


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    seeds = [bytes(s) for s in seeds]
    # The bump byte takes one of the seed slots.
    _check_seeds(seeds, MAX_SEEDS - 1)
    for bump in range(255, -1, -1):
        address = _try_create([*seeds, bytes([bump])], program_id)
        if address is not None:
            return address, bump
    raise DerivationExhausted(f"no off-curve bump for seeds under program {program_id}")


def vault_pda(program_id: Pubkey) -> Pubkey:
    return find_program_address([VAULT_SEED], program_id)[0]


def whitelist_pda(program_id: Pubkey, registry: Pubkey) -> Pubkey:
    return find_program_address([WHITELIST_SEED, bytes(registry)], program_id)[0]


def stake_data_pda(program_id: Pubkey, nft: Pubkey) -> Pubkey:
    return find_program_address([bytes(nft)], program_id)[0]


def metadata_pda(metadata_program_id: Pubkey, nft: Pubkey) -> Pubkey:
    # Owned by the token metadata program, not the staking program.
    return find_program_address(
        [METADATA_SEED, bytes(metadata_program_id), bytes(nft)], metadata_program_id
    )[0]


def derive_ata(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return get_associated_token_address(owner, mint)
