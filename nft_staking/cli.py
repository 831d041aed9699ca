"""Command-line entry point: one staking-program operation per invocation."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair

from .config import Deployment, Settings
from .errors import ConfigError, StakingClientError
from .lifecycle import LifecycleDriver, execute
from .metadata import RemoteStateReader
from .pda import vault_pda
from .transaction import assemble
from .tx_builder import (
    AddToWhitelist,
    AnyOperation,
    GenerateVault,
    Stake,
    Unstake,
    Withdraw,
    build_accounts,
    instruction_to_dict,
)

logger = logging.getLogger("nft_staking")


def load_keypair(path: str) -> Keypair:
    resolved = Path(path).expanduser()
    try:
        raw = json.loads(resolved.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Can't open file-wallet {resolved}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"File-wallet {resolved} is not valid JSON: {exc}") from exc
    if isinstance(raw, list):
        values = raw
    elif isinstance(raw, dict) and "secretKey" in raw:
        values = raw["secretKey"]
    else:
        raise ConfigError(f"Unsupported keypair file format: {resolved}")
    try:
        return Keypair.from_bytes(bytes(values))
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Failed to parse keypair {resolved}: {exc}") from exc


def make_client(settings: Settings, env: Optional[str]) -> Client:
    url = settings.rpc_url_for(env)
    logger.info("rpc_selected env=%s url=%s", env or "prod", url)
    return Client(url, commitment=Confirmed, timeout=settings.rpc_timeout_seconds)


def operation_from_args(args: argparse.Namespace) -> AnyOperation:
    try:
        if args.command == "generate_vault_address":
            return GenerateVault(min_period=args.min_period, reward_period=args.reward_period)
        if args.command == "add_to_whitelist":
            return AddToWhitelist(registry=args.candy_machine, price=args.reward)
        if args.command == "stake":
            return Stake(nft=args.nft)
        if args.command == "unstake":
            return Unstake(nft=args.nft)
        if args.command == "withdraw":
            return Withdraw(amount=args.amount)
    except ValidationError as exc:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
        raise ConfigError(f"invalid arguments for {args.command}: {problems}") from exc
    raise ConfigError(f"unknown command {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nft-staking", description="Client for the NFT staking program.")
    sub = parser.add_subparsers(dest="command", required=True)

    def command(name: str, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("-s", "--sign", required=True, help="Path to the signer's keypair file.")
        p.add_argument("-e", "--env", default=None, help="'dev' for devnet; anything else uses mainnet.")
        p.add_argument("--confirm", action="store_true", help="Wait for confirmation before exiting.")
        return p

    p = command("generate_vault_address", "Create the staking vault.")
    p.add_argument("-m", "--min_period", required=True, help="Minimum staking period.")
    p.add_argument("-r", "--reward_period", required=True, help="Reward accrual period.")

    p = command("add_to_whitelist", "Whitelist a collection (candy machine) with a reward price.")
    p.add_argument("-c", "--candy_machine", required=True, help="Registry (candy machine) address.")
    p.add_argument("-r", "--reward", required=True, help="Reward paid per period.")

    p = command("stake", "Stake an NFT.")
    p.add_argument("-n", "--nft", required=True, help="NFT mint address.")

    p = command("unstake", "Unstake an NFT and collect rewards.")
    p.add_argument("-n", "--nft", required=True, help="NFT mint address.")

    p = command("withdraw", "Withdraw reward tokens from the vault.")
    p.add_argument("-a", "--amount", required=True, help="Raw token amount.")
    return parser


def run(args: argparse.Namespace, settings: Settings) -> int:
    deployment = Deployment.from_settings(settings)
    op = operation_from_args(args)
    keypair = load_keypair(args.sign)
    payer = keypair.pubkey()
    client = make_client(settings, args.env)

    accounts = build_accounts(op, payer, deployment, RemoteStateReader(client))
    envelope = assemble(deployment.program_id, op, accounts, payer)
    logger.info("instruction_built op=%s accounts=%s payer=%s", type(op).__name__, len(accounts), payer)
    logger.debug("instruction %s", json.dumps(instruction_to_dict(envelope.instructions[0])))

    driver = LifecycleDriver(client, keypair, blockhash_ttl=settings.blockhash_ttl_seconds)
    signature = execute(driver, envelope, restarts=settings.stale_restarts)
    if args.confirm:
        driver.confirm(envelope)

    if isinstance(op, GenerateVault):
        print(f"vault account generated: {vault_pda(deployment.program_id)}")
    print(f"tx id: {signature}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"error: invalid configuration: {exc}", file=sys.stderr)
        return 1
    logging.basicConfig(level=settings.log_level)
    try:
        return run(args, settings)
    except StakingClientError as exc:
        logger.debug("command_failed command=%s", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
