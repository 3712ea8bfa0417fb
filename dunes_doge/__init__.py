"""Dunes token protocol tooling for Dogecoin."""

from .broadcast import BroadcastPolicy, BroadcastState, FailoverSubmitter, FatalBroadcastError
from .config import ConfigurationError, DunesConfig, NodeConfig, load_config
from .funding import InsufficientFundsError, fund_transaction, safe_utxos
from .keys import MAINNET, TESTNET, AddressError, Network, PrivateKey, network_for
from .message import (
    CLAIM_BIT,
    DuneMessage,
    Edict,
    Etching,
    Flag,
    Price,
    Tag,
    Terms,
    build_payload,
    build_script,
    parse_dune_id,
    validate_symbol,
)
from .names import SpacedName, ValidationError, name_to_string, parse_name, parse_spaced_name
from .operations import DuneOperations, OperationAborted
from .schedule import minimum_at_height
from .transaction import DUST_AMOUNT, Transaction, UTXO
from .varint import VarIntError, decode_varint, encode_varint
from .wallet import JSONWalletStore, MemoryWalletStore, Wallet, WalletError

__all__ = [
    "AddressError",
    "BroadcastPolicy",
    "BroadcastState",
    "CLAIM_BIT",
    "ConfigurationError",
    "DUST_AMOUNT",
    "DuneMessage",
    "DuneOperations",
    "DunesConfig",
    "Edict",
    "Etching",
    "FailoverSubmitter",
    "FatalBroadcastError",
    "Flag",
    "InsufficientFundsError",
    "JSONWalletStore",
    "MAINNET",
    "MemoryWalletStore",
    "Network",
    "NodeConfig",
    "OperationAborted",
    "Price",
    "PrivateKey",
    "SpacedName",
    "TESTNET",
    "Tag",
    "Terms",
    "Transaction",
    "UTXO",
    "ValidationError",
    "VarIntError",
    "Wallet",
    "WalletError",
    "build_payload",
    "build_script",
    "decode_varint",
    "encode_varint",
    "fund_transaction",
    "load_config",
    "minimum_at_height",
    "name_to_string",
    "network_for",
    "parse_dune_id",
    "parse_name",
    "parse_spaced_name",
    "safe_utxos",
    "validate_symbol",
]
