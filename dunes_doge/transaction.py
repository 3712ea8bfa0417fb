"""Legacy (non-segwit) Dogecoin transactions: shape, size, fees and signing."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List

from .keys import MAINNET, Network, PrivateKey, double_sha256, script_for_address
from .script import script_sig

logger = logging.getLogger(__name__)

DEFAULT_FEE_PER_KB = 100_000_000
DUST_AMOUNT = 100_000
SIGHASH_ALL = 0x01

TX_OVERHEAD_SIZE = 10
P2PKH_INPUT_SIZE = 148
P2PKH_OUTPUT_SIZE = 34


def ser_compact_size(n: int) -> bytes:
    """Serialize an integer as a Bitcoin-family compact size."""

    if n < 253:
        return bytes([n])
    elif n <= 0xFFFF:
        return b"\xfd" + n.to_bytes(2, "little")
    elif n <= 0xFFFFFFFF:
        return b"\xfe" + n.to_bytes(4, "little")
    else:
        return b"\xff" + n.to_bytes(8, "little")


@dataclass
class UTXO:
    txid: str
    vout: int
    satoshis: int
    script: str = ""

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txid": self.txid,
            "vout": self.vout,
            "script": self.script,
            "satoshis": self.satoshis,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UTXO":
        return cls(
            txid=str(data["txid"]),
            vout=int(data["vout"]),
            satoshis=int(data["satoshis"]),
            script=str(data.get("script") or ""),
        )


@dataclass
class TxOutput:
    satoshis: int
    script: bytes

    def serialize(self) -> bytes:
        return (
            self.satoshis.to_bytes(8, "little")
            + ser_compact_size(len(self.script))
            + self.script
        )

    @property
    def size(self) -> int:
        return len(self.serialize())


class Transaction:
    """A mutable transaction under construction.

    Outputs added through :meth:`add_output` are fixed. The change output is
    derived: once :meth:`set_change` is called, whatever the inputs leave after
    the fixed outputs and the fee goes back to the change script, unless it is
    below :data:`DUST_AMOUNT`, in which case it is left to the fee.
    """

    def __init__(
        self,
        network: Network = MAINNET,
        fee_per_kb: int = DEFAULT_FEE_PER_KB,
        version: int = 1,
        lock_time: int = 0,
    ) -> None:
        self.network = network
        self.fee_per_kb = fee_per_kb
        self.version = version
        self.lock_time = lock_time
        self.inputs: List[UTXO] = []
        self.outputs: List[TxOutput] = []
        self.change_script: bytes | None = None
        self.fixed_fee: int | None = None
        self._script_sigs: List[bytes] = []

    # Shape --------------------------------------------------------------

    def add_input(self, utxo: UTXO) -> None:
        self.inputs.append(utxo)
        self._script_sigs = []

    def add_output(self, script: bytes, satoshis: int) -> None:
        self.outputs.append(TxOutput(satoshis=int(satoshis), script=script))
        self._script_sigs = []

    def pay_to(self, address: str, satoshis: int) -> None:
        self.add_output(script_for_address(address, self.network), satoshis)

    def set_change(self, address: str) -> None:
        self.change_script = script_for_address(address, self.network)
        self._script_sigs = []

    @property
    def has_change_address(self) -> bool:
        return self.change_script is not None

    # Amounts ------------------------------------------------------------

    @property
    def input_amount(self) -> int:
        return sum(utxo.satoshis for utxo in self.inputs)

    @property
    def output_amount(self) -> int:
        """Total of the fixed outputs, excluding change."""

        return sum(output.satoshis for output in self.outputs)

    def estimate_size(self) -> int:
        size = TX_OVERHEAD_SIZE + P2PKH_INPUT_SIZE * len(self.inputs)
        size += sum(output.size for output in self.outputs)
        if self.change_script is not None:
            size += P2PKH_OUTPUT_SIZE
        return size

    def estimate_fee(self) -> int:
        """Fee for the current shape at ``fee_per_kb``, rounded up."""

        return int(math.ceil(self.estimate_size() * self.fee_per_kb / 1000))

    @property
    def fee(self) -> int:
        if self.fixed_fee is not None:
            return self.fixed_fee
        return self.estimate_fee()

    def set_fee(self, fee: int) -> None:
        self.fixed_fee = int(fee)
        self._script_sigs = []

    def clear_fee(self) -> None:
        self.fixed_fee = None

    @property
    def change_amount(self) -> int:
        if self.change_script is None:
            return 0
        change = self.input_amount - self.output_amount - self.fee
        return change if change >= DUST_AMOUNT else 0

    def all_outputs(self) -> List[TxOutput]:
        outputs = list(self.outputs)
        change = self.change_amount
        if change > 0 and self.change_script is not None:
            outputs.append(TxOutput(satoshis=change, script=self.change_script))
        return outputs

    # Serialization ------------------------------------------------------

    def _serialize(self, script_sigs: List[bytes]) -> bytes:
        raw = bytearray(self.version.to_bytes(4, "little"))
        raw += ser_compact_size(len(self.inputs))
        for utxo, sig_script in zip(self.inputs, script_sigs):
            raw += bytes.fromhex(utxo.txid)[::-1]
            raw += utxo.vout.to_bytes(4, "little")
            raw += ser_compact_size(len(sig_script))
            raw += sig_script
            raw += (0xFFFFFFFF).to_bytes(4, "little")
        outputs = self.all_outputs()
        raw += ser_compact_size(len(outputs))
        for output in outputs:
            raw += output.serialize()
        raw += self.lock_time.to_bytes(4, "little")
        return bytes(raw)

    def serialize(self) -> bytes:
        script_sigs = self._script_sigs or [b""] * len(self.inputs)
        return self._serialize(script_sigs)

    def to_hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        return double_sha256(self.serialize())[::-1].hex()

    @property
    def is_signed(self) -> bool:
        return bool(self._script_sigs) and len(self._script_sigs) == len(self.inputs)

    # Signing ------------------------------------------------------------

    def signature_hash(self, index: int, script_code: bytes) -> bytes:
        """Legacy SIGHASH_ALL digest for input ``index``."""

        script_sigs = [b""] * len(self.inputs)
        script_sigs[index] = script_code
        preimage = self._serialize(script_sigs) + SIGHASH_ALL.to_bytes(4, "little")
        return double_sha256(preimage)

    def sign(self, private_key: PrivateKey) -> None:
        """Sign every input as a P2PKH spend controlled by ``private_key``.

        The fee is frozen first so the change output cannot move after the
        signatures commit to it.
        """

        if self.fixed_fee is None:
            self.fixed_fee = self.estimate_fee()
        default_script = script_for_address(private_key.address(self.network), self.network)
        script_sigs: List[bytes] = []
        for index, utxo in enumerate(self.inputs):
            script_code = bytes.fromhex(utxo.script) if utxo.script else default_script
            digest = self.signature_hash(index, script_code)
            signature = private_key.sign_digest(digest) + bytes([SIGHASH_ALL])
            script_sigs.append(script_sig([signature, private_key.public_key]))
        self._script_sigs = script_sigs
        logger.debug("Signed %d inputs for transaction %s", len(self.inputs), self.txid)

    def summary(self) -> Dict[str, Any]:
        return {
            "txid": self.txid,
            "inputs": [utxo.outpoint for utxo in self.inputs],
            "outputs": [
                {"satoshis": output.satoshis, "script": output.script.hex()}
                for output in self.all_outputs()
            ],
            "fee": self.fee,
            "size": len(self.serialize()),
        }
