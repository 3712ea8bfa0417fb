"""Command-line interface for the Dunes tooling."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Any, Sequence

from .broadcast import FatalBroadcastError
from .config import ConfigurationError, load_config, set_default_config_path
from .funding import InsufficientFundsError
from .indexer import IndexerError
from .keys import AddressError, network_for
from .message import Edict, Etching, build_payload, build_script, parse_dune_id, validate_symbol
from .names import ValidationError, parse_spaced_name
from .operations import DuneOperations, OperationAborted
from .rpc_client import RPCError, RPCTransportError, format_rpc_hint
from .varint import VarIntError
from .wallet import JSONWalletStore, WalletError, create_wallet

logger = logging.getLogger(__name__)

COMPACT_JSON_SEPARATORS = (",", ":")
NULL_TOKENS = {"null", "none", ""}


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _optional_int(raw: str) -> int | None:
    if raw.strip().lower() in NULL_TOKENS:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer or 'null', got {raw!r}") from exc


def _bool_arg(raw: str) -> bool:
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes"}:
        return True
    if normalized in {"false", "0", "no"}:
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got {raw!r}")


def _split_csv(raw: str) -> list[str]:
    return [piece.strip() for piece in raw.split(",") if piece.strip()]


def _parse_amounts(raw: str) -> list[int]:
    try:
        return [int(piece) for piece in _split_csv(raw)]
    except ValueError as exc:
        raise CLIError(f"invalid amount in: {raw}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dunes on Dogecoin")
    parser.add_argument("--config", default=None, help="Path to a YAML config (default: ~/.dunes.yaml)")
    parser.add_argument("--yes", action="store_true", help="Skip confirmation prompts")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy = subparsers.add_parser(
        "deploy-open-dune", help="etch a dune, optionally open for minting"
    )
    deploy.add_argument("tick", help="Dune name, e.g. DOGE•DUNE")
    deploy.add_argument("symbol", help="Single-character symbol")
    deploy.add_argument("limit", type=_optional_int, help="Max mint per tx")
    deploy.add_argument("divisibility", type=int, help="Decimal places")
    deploy.add_argument("cap", type=_optional_int, help="Overall mint cap or 'null'")
    deploy.add_argument("height_start", type=_optional_int, help="Open height or 'null'")
    deploy.add_argument("height_end", type=_optional_int, help="Close height or 'null'")
    deploy.add_argument("offset_start", type=_optional_int, help="Open offset or 'null'")
    deploy.add_argument("offset_end", type=_optional_int, help="Close offset or 'null'")
    deploy.add_argument("premine", type=_optional_int, help="Premine amount or 'null'")
    deploy.add_argument("turbo", type=_bool_arg, help="Turbo flag true/false")
    deploy.add_argument("open_mint", type=_bool_arg, help="Enable minting true/false")
    deploy.add_argument("--parent-id", default=None, help="Parent inscription id (<txid>i<vout>)")
    deploy.add_argument("--price-amount", type=_optional_int, default=None, help="Mint price in shibes")
    deploy.add_argument("--price-pay-to", default=None, help="Address receiving the mint price")

    mint = subparsers.add_parser("mint-dune", help="mint an open dune")
    mint.add_argument("id", help="block:index e.g. 5927764:2")
    mint.add_argument("amount", type=int, help="amount to mint (0 uses limit)")
    mint.add_argument("receiver", help="receiver address")

    send_multi = subparsers.add_parser(
        "send-dune-multi", help="send dunes from one output to multiple receivers"
    )
    send_multi.add_argument("txhash", help="Transaction holding the dunes")
    send_multi.add_argument("vout", type=int, help="Output index holding the dunes")
    send_multi.add_argument("dune", help="Dune name as reported by the indexer")
    send_multi.add_argument("decimals", type=int, help="Divisibility of the dune")
    send_multi.add_argument("amounts", help="Comma-separated base-unit amounts")
    send_multi.add_argument("addresses", help="Comma-separated receiver addresses")

    no_protocol = subparsers.add_parser(
        "send-dunes-no-protocol", help="move dune outputs without a protocol message"
    )
    no_protocol.add_argument("address", help="Receiver address")
    no_protocol.add_argument("utxo_amount", type=int, help="Number of dune outputs to send")
    no_protocol.add_argument("dune", help="Dune name")

    subparsers.add_parser("print-dunes", help="print dunes held by the wallet")
    balance = subparsers.add_parser("print-dune-balance", help="print one dune's balance")
    balance.add_argument("dune_name")
    balance.add_argument("address")
    subparsers.add_parser("print-safe-utxos", help="print outputs safe to spend")
    subparsers.add_parser("get-block-count", help="print the node's block height")

    encode = subparsers.add_parser(
        "encode", help="print the OP_RETURN script for a message without broadcasting"
    )
    encode.add_argument("--tick", default=None, help="Etch this dune name")
    encode.add_argument("--symbol", default=None)
    encode.add_argument("--pointer", type=int, default=None)
    encode.add_argument(
        "--edict",
        action="append",
        default=[],
        metavar="ID,AMOUNT,OUTPUT",
        help="Edict as block:index,amount,output (repeatable)",
    )
    encode.add_argument("--identifier", default="D", help="Protocol identifier (default: D)")

    wallet = subparsers.add_parser("wallet", help="wallet operations")
    wallet_sub = wallet.add_subparsers(dest="wallet_command", required=True)
    wallet_sub.add_parser("new", help="create a new wallet")
    wallet_sub.add_parser("sync", help="refresh spendable outputs from the indexer")
    wallet_sub.add_parser("balance", help="print the wallet balance")
    send = wallet_sub.add_parser("send", help="send funds (amount 0 sweeps)")
    send.add_argument("address")
    send.add_argument("amount", type=int)
    split = wallet_sub.add_parser("split", help="split the balance into N outputs")
    split.add_argument("splits", type=int)

    return parser


def _prompt(message: str) -> bool:
    answer = input(f"{message} [Y/n] ").strip().lower()
    return answer in {"", "y", "yes"}


def _operations(args: argparse.Namespace) -> DuneOperations:
    config = load_config()
    return DuneOperations.from_config(config, confirm=None if args.yes else _prompt)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_deploy(args: argparse.Namespace) -> None:
    txid = _operations(args).deploy_open_dune(
        args.tick,
        args.symbol,
        limit=args.limit,
        divisibility=args.divisibility,
        cap=args.cap,
        height_start=args.height_start,
        height_end=args.height_end,
        offset_start=args.offset_start,
        offset_end=args.offset_end,
        premine=args.premine,
        turbo=args.turbo,
        open_mint=args.open_mint,
        parent_id=args.parent_id,
        price_amount=args.price_amount,
        price_pay_to=args.price_pay_to,
    )
    print(f"Dune deployed with tx hash: {txid}")


def cmd_mint(args: argparse.Namespace) -> None:
    print(_operations(args).mint_dune(args.id, args.amount, args.receiver))


def cmd_send_multi(args: argparse.Namespace) -> None:
    amounts = _parse_amounts(args.amounts)
    addresses = _split_csv(args.addresses)
    print(
        _operations(args).send_dunes(
            args.txhash, args.vout, args.dune, args.decimals, amounts, addresses
        )
    )


def cmd_send_no_protocol(args: argparse.Namespace) -> None:
    txid = _operations(args).send_dunes_no_protocol(args.address, args.utxo_amount, args.dune)
    print(json.dumps({"txid": txid}, separators=COMPACT_JSON_SEPARATORS))


def cmd_print_dunes(args: argparse.Namespace) -> None:
    report = _operations(args).list_dunes()
    _print_json([asdict(balance) for balance in report.balances])
    print(f"Total dunes: {len(report.balances)}")
    print(f"Number of utxos with dunes: {len(report.utxos_with_dunes)}")


def cmd_print_balance(args: argparse.Namespace) -> None:
    balance = _operations(args).dune_balance(args.dune_name, args.address)
    print(f"{balance} {args.dune_name}")


def cmd_print_safe_utxos(args: argparse.Namespace) -> None:
    utxos = _operations(args).safe_utxos()
    _print_json([utxo.to_dict() for utxo in utxos])
    print(f"Number of safe utxos: {len(utxos)}")


def cmd_encode(args: argparse.Namespace) -> None:
    etching = None
    if args.tick:
        spaced = parse_spaced_name(args.tick)
        etching = Etching(
            dune=spaced.name,
            spacers=spaced.spacers,
            symbol=validate_symbol(args.symbol) if args.symbol else None,
        )
    edicts = []
    for raw in args.edict:
        parts = _split_csv(raw)
        if len(parts) != 3:
            raise CLIError(f"edict must be ID,AMOUNT,OUTPUT, got {raw!r}")
        try:
            amount, output = int(parts[1]), int(parts[2])
        except ValueError as exc:
            raise CLIError(f"edict amount and output must be integers, got {raw!r}") from exc
        edicts.append(Edict(parse_dune_id(parts[0]), amount, output))
    identifier = args.identifier.encode("utf8")
    payload = build_payload(etching, args.pointer, False, edicts)
    script = build_script(identifier, etching, args.pointer, False, edicts)
    print(json.dumps({"payload": payload.hex(), "script": script.hex()}, indent=2))


def cmd_wallet(args: argparse.Namespace) -> None:
    if args.wallet_command == "new":
        config = load_config()
        wallet = create_wallet(
            JSONWalletStore(config.wallet_path), network_for(config.testnet)
        )
        print("address", wallet.address)
        return
    operations = _operations(args)
    if args.wallet_command == "sync":
        print("balance", operations.sync_wallet())
    elif args.wallet_command == "balance":
        address, balance = operations.wallet_balance()
        print(address, balance)
    elif args.wallet_command == "send":
        print(operations.wallet_send(args.address, args.amount))
    elif args.wallet_command == "split":
        print(operations.wallet_split(args.splits))
    else:  # pragma: no cover - argparse enforces choices
        raise CLIError(f"Unknown wallet command: {args.wallet_command}")


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    if args.config:
        set_default_config_path(args.config)
    try:
        if args.command == "deploy-open-dune":
            cmd_deploy(args)
        elif args.command == "mint-dune":
            cmd_mint(args)
        elif args.command == "send-dune-multi":
            cmd_send_multi(args)
        elif args.command == "send-dunes-no-protocol":
            cmd_send_no_protocol(args)
        elif args.command == "print-dunes":
            cmd_print_dunes(args)
        elif args.command == "print-dune-balance":
            cmd_print_balance(args)
        elif args.command == "print-safe-utxos":
            cmd_print_safe_utxos(args)
        elif args.command == "get-block-count":
            print(_operations(args).block_count())
        elif args.command == "encode":
            cmd_encode(args)
        elif args.command == "wallet":
            cmd_wallet(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        parser.exit(130, "interrupted\n")
    except FatalBroadcastError as exc:
        hint = format_rpc_hint(exc.cause) if isinstance(exc.cause, RPCError) else None
        parser.exit(1, f"error: {exc}\n" + (f"hint: {hint}\n" if hint else ""))
    except (
        CLIError,
        ConfigurationError,
        ValidationError,
        VarIntError,
        AddressError,
        InsufficientFundsError,
        IndexerError,
        WalletError,
        OperationAborted,
        RPCError,
        RPCTransportError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
