"""Wallet record and its stores.

A wallet is one address, its WIF key and the list of outputs it may spend.
Reading and committing are separate steps: operations ``load()`` at the start,
work on the in-memory copy and ``commit()`` only after the node accepted the
transaction.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .keys import MAINNET, Network, PrivateKey, script_for_address
from .transaction import Transaction, UTXO

logger = logging.getLogger(__name__)


class WalletError(RuntimeError):
    """Raised when the wallet file is missing, malformed or already exists."""


@dataclass
class Wallet:
    address: str
    privkey: str
    utxos: List[UTXO] = field(default_factory=list)

    @property
    def balance(self) -> int:
        return sum(utxo.satoshis for utxo in self.utxos)

    def private_key(self, network: Network | None = None) -> PrivateKey:
        return PrivateKey.from_wif(self.privkey, network)

    def find_utxo(self, txid: str, vout: int) -> UTXO | None:
        for utxo in self.utxos:
            if utxo.txid == txid and utxo.vout == vout:
                return utxo
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "privkey": self.privkey,
            "address": self.address,
            "utxos": [utxo.to_dict() for utxo in self.utxos],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Wallet":
        try:
            return cls(
                address=str(data["address"]),
                privkey=str(data["privkey"]),
                utxos=[UTXO.from_dict(entry) for entry in data.get("utxos") or []],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise WalletError(f"Malformed wallet record: {exc}") from exc


def apply_transaction(wallet: Wallet, tx: Transaction) -> None:
    """Drop the inputs ``tx`` spends and add the outputs paying ``wallet``."""

    spent = {utxo.outpoint for utxo in tx.inputs}
    wallet.utxos = [utxo for utxo in wallet.utxos if utxo.outpoint not in spent]
    own_script = script_for_address(wallet.address, tx.network)
    txid = tx.txid
    for index, output in enumerate(tx.all_outputs()):
        if output.script == own_script:
            wallet.utxos.append(
                UTXO(txid=txid, vout=index, satoshis=output.satoshis, script=output.script.hex())
            )


class WalletStore:
    """Interface for loading and committing the wallet record."""

    def exists(self) -> bool:
        raise NotImplementedError

    def load(self) -> Wallet:
        raise NotImplementedError

    def commit(self, wallet: Wallet) -> None:
        raise NotImplementedError


class JSONWalletStore(WalletStore):
    """Persist the wallet as pretty-printed JSON, replacing the file atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Wallet:
        if not self.path.exists():
            raise WalletError(f"Wallet file not found: {self.path}; run 'wallet new' first")
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as exc:
            raise WalletError(f"Wallet file {self.path} is not valid JSON") from exc
        if not isinstance(data, dict):
            raise WalletError(f"Wallet file {self.path} must contain a JSON object")
        return Wallet.from_dict(data)

    def commit(self, wallet: Wallet) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(wallet.to_dict(), indent=2))
        os.replace(tmp_path, self.path)
        logger.debug("Committed wallet %s with %d utxos", wallet.address, len(wallet.utxos))


class MemoryWalletStore(WalletStore):
    """Keeps the wallet in memory; commits are counted for inspection."""

    def __init__(self, wallet: Wallet | None = None) -> None:
        self._data = wallet.to_dict() if wallet is not None else None
        self.commits = 0

    def exists(self) -> bool:
        return self._data is not None

    def load(self) -> Wallet:
        if self._data is None:
            raise WalletError("No wallet stored")
        return Wallet.from_dict(self._data)

    def commit(self, wallet: Wallet) -> None:
        self._data = wallet.to_dict()
        self.commits += 1


def create_wallet(store: WalletStore, network: Network = MAINNET) -> Wallet:
    """Generate a fresh key and commit an empty wallet for it."""

    if store.exists():
        raise WalletError("wallet already exists")
    key = PrivateKey.generate()
    wallet = Wallet(address=key.address(network), privkey=key.to_wif(network))
    store.commit(wallet)
    logger.info("Created wallet %s", wallet.address)
    return wallet
