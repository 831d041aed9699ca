from __future__ import annotations

import logging
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Tuple, Type, Union

from borsh_construct import CStruct, U8, U64
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .config import Deployment, to_pubkey
from .errors import MalformedRecord
from .metadata import RemoteStateReader
from .pda import derive_ata, metadata_pda, stake_data_pda, vault_pda, whitelist_pda

logger = logging.getLogger("nft_staking")

U64_MAX = 2**64 - 1
U64Arg = Annotated[int, Field(ge=0, le=U64_MAX)]

GenerateVaultLayout = CStruct(
    "min_period" / U64,
    "reward_period" / U64,
)
AddToWhitelistLayout = CStruct("price" / U64)
WithdrawLayout = CStruct("amount" / U64)
EmptyLayout = CStruct()


def _coerce_pubkey(value: Any) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    return to_pubkey(str(value))


PubkeyArg = Annotated[Pubkey, BeforeValidator(_coerce_pubkey)]


class Operation(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    tag: ClassVar[int]
    layout: ClassVar[CStruct] = EmptyLayout
    # Scalar fields carried in the payload, in wire order. All are u64.
    payload_names: ClassVar[Tuple[str, ...]] = ()

    def payload_fields(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in self.payload_names}


class GenerateVault(Operation):
    tag: ClassVar[int] = 0
    layout: ClassVar[CStruct] = GenerateVaultLayout
    payload_names: ClassVar[Tuple[str, ...]] = ("min_period", "reward_period")

    min_period: U64Arg
    reward_period: U64Arg


class Stake(Operation):
    tag: ClassVar[int] = 1

    nft: PubkeyArg


class Unstake(Operation):
    tag: ClassVar[int] = 2

    nft: PubkeyArg


class AddToWhitelist(Operation):
    tag: ClassVar[int] = 3
    layout: ClassVar[CStruct] = AddToWhitelistLayout
    payload_names: ClassVar[Tuple[str, ...]] = ("price",)

    registry: PubkeyArg
    price: U64Arg


class Withdraw(Operation):
    tag: ClassVar[int] = 4
    layout: ClassVar[CStruct] = WithdrawLayout
    payload_names: ClassVar[Tuple[str, ...]] = ("amount",)

    amount: U64Arg


AnyOperation = Union[GenerateVault, Stake, Unstake, AddToWhitelist, Withdraw]
OPERATIONS: Dict[int, Type[Operation]] = {
    cls.tag: cls for cls in (GenerateVault, Stake, Unstake, AddToWhitelist, Withdraw)
}


def encode_instruction(op: Operation) -> bytes:
    return U8.build(op.tag) + op.layout.build(op.payload_fields())


def decode_instruction(data: bytes) -> Tuple[str, Dict[str, int]]:
    if not data:
        raise ValueError("empty instruction data")
    cls = OPERATIONS.get(data[0])
    if cls is None:
        raise ValueError(f"Unknown instruction tag {data[0]}")
    body = data[1:]
    expected = 8 * len(cls.payload_names)
    if len(body) != expected:
        raise ValueError(f"{cls.__name__} payload is {len(body)} bytes; expected {expected}")
    parsed = cls.layout.parse(body)
    return cls.__name__, {name: parsed[name] for name in cls.payload_names}


def generate_vault_accounts(payer: Pubkey, deployment: Deployment) -> List[AccountMeta]:
    vault = vault_pda(deployment.program_id)
    return [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=deployment.system_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=deployment.rent_sysvar, is_signer=False, is_writable=False),
    ]


def add_to_whitelist_accounts(payer: Pubkey, registry: Pubkey, deployment: Deployment) -> List[AccountMeta]:
    whitelist = whitelist_pda(deployment.program_id, registry)
    return [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=registry, is_signer=False, is_writable=True),
        AccountMeta(pubkey=whitelist, is_signer=False, is_writable=True),
        AccountMeta(pubkey=deployment.system_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.rent_sysvar, is_signer=False, is_writable=False),
    ]


def stake_accounts(payer: Pubkey, nft: Pubkey, registry: Pubkey, deployment: Deployment) -> List[AccountMeta]:
    vault = vault_pda(deployment.program_id)
    return [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=nft, is_signer=False, is_writable=False),
        AccountMeta(pubkey=metadata_pda(deployment.metadata_program_id, nft), is_signer=False, is_writable=False),
        AccountMeta(pubkey=vault, is_signer=False, is_writable=False),
        AccountMeta(pubkey=derive_ata(payer, nft), is_signer=False, is_writable=True),
        AccountMeta(pubkey=derive_ata(vault, nft), is_signer=False, is_writable=True),
        AccountMeta(pubkey=deployment.token_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.system_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.rent_sysvar, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.associated_token_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=stake_data_pda(deployment.program_id, nft), is_signer=False, is_writable=True),
        AccountMeta(pubkey=whitelist_pda(deployment.program_id, registry), is_signer=False, is_writable=True),
    ]


def unstake_accounts(payer: Pubkey, nft: Pubkey, registry: Pubkey, deployment: Deployment) -> List[AccountMeta]:
    vault = vault_pda(deployment.program_id)
    reward_mint = deployment.reward_mint
    return [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=deployment.system_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=nft, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.token_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.rent_sysvar, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.associated_token_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=stake_data_pda(deployment.program_id, nft), is_signer=False, is_writable=True),
        AccountMeta(pubkey=vault, is_signer=False, is_writable=False),
        AccountMeta(pubkey=derive_ata(payer, reward_mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=derive_ata(vault, reward_mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=derive_ata(payer, nft), is_signer=False, is_writable=True),
        AccountMeta(pubkey=derive_ata(vault, nft), is_signer=False, is_writable=True),
        AccountMeta(pubkey=metadata_pda(deployment.metadata_program_id, nft), is_signer=False, is_writable=False),
        AccountMeta(pubkey=whitelist_pda(deployment.program_id, registry), is_signer=False, is_writable=True),
        AccountMeta(pubkey=reward_mint, is_signer=False, is_writable=False),
    ]


def withdraw_accounts(payer: Pubkey, deployment: Deployment) -> List[AccountMeta]:
    vault = vault_pda(deployment.program_id)
    reward_mint = deployment.reward_mint
    return [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=derive_ata(payer, reward_mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=derive_ata(vault, reward_mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=vault, is_signer=False, is_writable=False),
        AccountMeta(pubkey=reward_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.system_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.token_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.rent_sysvar, is_signer=False, is_writable=False),
        AccountMeta(pubkey=deployment.associated_token_program_id, is_signer=False, is_writable=False),
    ]


def resolve_registry(nft: Pubkey, deployment: Deployment, reader: RemoteStateReader) -> Pubkey:
    """Look up the whitelist registry an NFT belongs to via its metadata creators."""
    metadata = metadata_pda(deployment.metadata_program_id, nft)
    record = reader.fetch_metadata(metadata)
    if record.mint != nft:
        raise MalformedRecord(f"metadata {metadata} describes mint {record.mint}, not {nft}")
    logger.info("registry_resolved nft=%s metadata=%s registry=%s", nft, metadata, record.registry)
    return record.registry


def build_accounts(
    op: Operation,
    payer: Pubkey,
    deployment: Deployment,
    reader: Optional[RemoteStateReader] = None,
) -> List[AccountMeta]:
    if isinstance(op, GenerateVault):
        return generate_vault_accounts(payer, deployment)
    if isinstance(op, AddToWhitelist):
        return add_to_whitelist_accounts(payer, op.registry, deployment)
    if isinstance(op, Withdraw):
        return withdraw_accounts(payer, deployment)
    if isinstance(op, (Stake, Unstake)):
        if reader is None:
            raise ValueError(f"{type(op).__name__} needs a state reader to resolve the registry")
        registry = resolve_registry(op.nft, deployment, reader)
        recipe = stake_accounts if isinstance(op, Stake) else unstake_accounts
        return recipe(payer, op.nft, registry, deployment)
    raise ValueError(f"Unsupported operation {type(op).__name__}")


def build_instruction(op: Operation, accounts: List[AccountMeta], program_id: Pubkey) -> Instruction:
    return Instruction(program_id=program_id, data=encode_instruction(op), accounts=accounts)


def instruction_to_dict(ix: Instruction) -> dict:
    return {
        "program_id": str(ix.program_id),
        "keys": [
            {
                "pubkey": str(k.pubkey),
                "is_signer": k.is_signer,
                "is_writable": k.is_writable,
            }
            for k in ix.accounts
        ],
        "data": ix.data.hex(),
    }
