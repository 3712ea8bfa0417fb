"""End-to-end Dune workflows: validate, build, fund, sign, broadcast, commit."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List, Sequence

from .broadcast import BroadcastPolicy, FailoverSubmitter
from .config import DunesConfig
from .funding import InsufficientFundsError, fund_transaction, safe_utxos
from .indexer import DuneBalance, IndexerClient, IndexerError
from .keys import Network, network_for
from .message import (
    Edict,
    Etching,
    Price,
    Terms,
    build_script,
    parse_dune_id,
    validate_symbol,
)
from .names import ValidationError, parse_spaced_name
from .rpc_client import DogecoinRPCClient
from .schedule import ensure_name_available
from .transaction import DEFAULT_FEE_PER_KB, Transaction, UTXO
from .wallet import JSONWalletStore, Wallet, WalletError, WalletStore, apply_transaction

logger = logging.getLogger(__name__)

OUTPUT_VALUE = 100_000
# Transfers: output 0 is the OP_RETURN, 1 keeps unallocated dunes, receivers start at 2.
DEFAULT_OUTPUT = 1
RECEIVER_OFFSET = 2

ConfirmFn = Callable[[str], bool]


class OperationAborted(RuntimeError):
    """Raised when the operator declines a confirmation prompt."""


@dataclass
class DunesReport:
    balances: List[DuneBalance] = field(default_factory=list)
    utxos_with_dunes: List[UTXO] = field(default_factory=list)


class DuneOperations:
    """Workflows operating on one wallet against one node and one indexer."""

    def __init__(
        self,
        store: WalletStore,
        rpc: DogecoinRPCClient,
        *,
        indexer: IndexerClient | None = None,
        submit: Callable[[str], str] | None = None,
        identifier: bytes = b"D",
        network: Network | None = None,
        fee_per_kb: int = DEFAULT_FEE_PER_KB,
        confirm: ConfirmFn | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.rpc = rpc
        self.indexer = indexer
        self.submit = submit or rpc.sendrawtransaction
        self.identifier = identifier
        self.network = network or network_for(False)
        self.fee_per_kb = fee_per_kb
        self.confirm = confirm
        self.sleep = sleep

    @classmethod
    def from_config(cls, config: DunesConfig, confirm: ConfirmFn | None = None) -> "DuneOperations":
        rpc = DogecoinRPCClient(config.node)
        fallback = DogecoinRPCClient(config.fallback_node) if config.fallback_node else None
        return cls(
            JSONWalletStore(config.wallet_path),
            rpc,
            indexer=IndexerClient(config.indexer_url) if config.indexer_url else None,
            submit=FailoverSubmitter(rpc, fallback),
            identifier=config.identifier_bytes,
            network=network_for(config.testnet),
            fee_per_kb=config.fee_per_kb,
            confirm=confirm,
        )

    # Shared steps ---------------------------------------------------------

    def _require_indexer(self) -> IndexerClient:
        if self.indexer is None:
            raise IndexerError("An indexer URL (ORD) is required for this operation")
        return self.indexer

    def _new_transaction(self) -> Transaction:
        return Transaction(network=self.network, fee_per_kb=self.fee_per_kb)

    def _confirm(self, message: str) -> None:
        if self.confirm is not None and not self.confirm(message):
            raise OperationAborted("Transaction aborted")

    def _fund_and_sign(self, wallet: Wallet, tx: Transaction, only_safe: bool = True) -> None:
        candidates = wallet.utxos
        if only_safe:
            dune_outpoints = self._require_indexer().dune_outpoints(wallet.address)
            candidates = safe_utxos(wallet.utxos, dune_outpoints)
        fund_transaction(tx, candidates, wallet.address)
        tx.sign(wallet.private_key(self.network))

    def _resync(self) -> None:
        if self.indexer is None:
            logger.warning("No indexer configured; wallet outputs were not resynced")
            return
        self.sync_wallet()

    def _log_height(self) -> None:
        logger.info("Block is %d", self.rpc.getblockcount())

    def broadcast(self, wallet: Wallet, tx: Transaction, retry: bool = True) -> str:
        """Submit ``tx`` and, once accepted, commit the updated wallet."""

        policy = BroadcastPolicy(
            self.submit,
            resync=self._resync,
            sleep=self.sleep,
            on_mempool_wait=self._log_height,
        )
        logger.debug("Broadcasting %s", tx.summary())
        txid = policy.run(tx.to_hex(), retry=retry)
        apply_transaction(wallet, tx)
        self.store.commit(wallet)
        return txid

    # Etching and minting ----------------------------------------------------

    def deploy_open_dune(
        self,
        tick: str,
        symbol: str,
        *,
        limit: int | None = None,
        divisibility: int = 0,
        cap: int | None = None,
        height_start: int | None = None,
        height_end: int | None = None,
        offset_start: int | None = None,
        offset_end: int | None = None,
        premine: int | None = None,
        turbo: bool = False,
        open_mint: bool = True,
        parent_id: str | None = None,
        price_amount: int | None = None,
        price_pay_to: str | None = None,
    ) -> str:
        """Etch a new dune, optionally open for minting under ``Terms``."""

        symbol = validate_symbol(symbol)
        spaced = parse_spaced_name(tick)
        if divisibility < 0:
            raise ValidationError("divisibility must be non-negative")

        height = self.rpc.getblockcount()
        ensure_name_available(spaced.name, height)

        price = None
        if price_amount is not None and price_pay_to is not None:
            price = Price(amount=price_amount, pay_to=price_pay_to)
        terms = (
            Terms(
                limit=limit,
                cap=cap,
                offset_start=offset_start,
                offset_end=offset_end,
                height_start=height_start,
                height_end=height_end,
                price=price,
            )
            if open_mint
            else None
        )
        etching = Etching(
            divisibility=divisibility,
            terms=terms,
            turbo=turbo,
            premine=premine,
            dune=spaced.name,
            spacers=spaced.spacers,
            symbol=symbol,
        )
        script = build_script(self.identifier, etching=etching)

        wallet = self.store.load()
        if wallet.balance == 0:
            raise InsufficientFundsError("no funds")

        tx = self._new_transaction()
        if parent_id:
            tx.add_input(self._parent_utxo(parent_id))
            logger.info("Added parent UTXO %s to transaction", parent_id)
        tx.add_output(script, 0)
        if premine:
            tx.pay_to(wallet.address, OUTPUT_VALUE)

        self._fund_and_sign(wallet, tx)
        self._confirm(f"Deploying dune {spaced}. Proceed?")
        txid = self.broadcast(wallet, tx)
        logger.info("Dune deployed with tx hash: %s", txid)
        return txid

    def _parent_utxo(self, parent_id: str) -> UTXO:
        txid, sep, index = parent_id.rpartition("i")
        if not sep or not txid or not index.isdigit():
            raise ValidationError(f"Invalid inscription id: {parent_id}")
        vout = int(index)
        output = self.rpc.get_output(txid, vout)
        return UTXO(
            txid=txid,
            vout=vout,
            satoshis=int(Decimal(str(output["value"])) * 100_000_000),
            script=output["scriptPubKey"]["hex"],
        )

    def mint_dune(self, dune_id: str, amount: int, receiver: str) -> str:
        """Claim ``amount`` of an open dune; 0 mints the full per-mint limit."""

        claim_id = parse_dune_id(dune_id, claim=True)
        logger.info("Minting Dune %s amount=%s receiver=%s", dune_id, amount, receiver)

        if amount == 0:
            info = self._require_indexer().dune_info(dune_id)
            if info.limit is None:
                raise ValidationError(f"Dune {dune_id} has no mint limit; pass an explicit amount")
            amount = info.limit * 10 ** info.divisibility

        script = build_script(self.identifier, edicts=[Edict(claim_id, amount, 1)])
        wallet = self.store.load()
        if not wallet.utxos:
            raise InsufficientFundsError("no funds")

        tx = self._new_transaction()
        tx.add_output(script, 0)
        tx.pay_to(receiver, OUTPUT_VALUE)
        self._fund_and_sign(wallet, tx)
        return self.broadcast(wallet, tx)

    # Transfers ------------------------------------------------------------

    def send_dunes(
        self,
        txid: str,
        vout: int,
        dune: str,
        decimals: int,
        amounts: Sequence[int],
        addresses: Sequence[str],
    ) -> str:
        """Split the ``dune`` balance held by one output across ``addresses``.

        ``dune`` is the spaced name the indexer reports for the output; its id
        is looked up from the indexer.
        """

        if len(amounts) != len(addresses):
            raise ValidationError(
                f"length of amounts {len(amounts)} and addresses {len(addresses)} are different"
            )
        if not amounts:
            raise ValidationError("at least one receiver is required")
        if any(amount <= 0 for amount in amounts):
            raise ValidationError("amounts must be positive")

        wallet = self.store.load()
        dune_utxo = wallet.find_utxo(txid, vout)
        if dune_utxo is None:
            raise WalletError(f"utxo {txid}:{vout} not found")

        indexer = self._require_indexer()
        balances = indexer.dunes_for_output(dune_utxo.outpoint)
        if not balances:
            raise InsufficientFundsError("no dunes")
        holding = next((balance for balance in balances if balance.dune == dune), None)
        if holding is None:
            raise InsufficientFundsError("dune not found")

        available = holding.base_units(decimals)
        total = sum(int(amount) for amount in amounts)
        if available < total:
            raise InsufficientFundsError("not enough dunes")
        self._confirm(f"Transferring {total} of {dune}. Proceed?")

        dune_id = parse_dune_id(indexer.dune_info(dune).id)
        edicts = [
            Edict(dune_id, int(amount), index + RECEIVER_OFFSET)
            for index, amount in enumerate(amounts)
        ]
        script = build_script(self.identifier, pointer=DEFAULT_OUTPUT, edicts=edicts)

        tx = self._new_transaction()
        tx.add_input(dune_utxo)
        tx.add_output(script, 0)
        tx.pay_to(wallet.address, OUTPUT_VALUE)
        for address in addresses:
            tx.pay_to(address, OUTPUT_VALUE)

        self._fund_and_sign(wallet, tx)
        return self.broadcast(wallet, tx)

    def send_dunes_no_protocol(self, address: str, utxo_amount: int, dune: str) -> str:
        """Move whole dune-carrying outputs to ``address`` without a message."""

        if utxo_amount <= 0:
            raise ValidationError("utxo amount must be positive")
        wallet = self.store.load()
        holdings = {
            balance.outpoint: balance
            for balance in self._require_indexer().address_balances(wallet.address)
        }

        if not safe_utxos(wallet.utxos, set(holdings)):
            raise InsufficientFundsError("no utxos without dunes found")

        dune_utxos: List[UTXO] = []
        for utxo in wallet.utxos:
            if len(dune_utxos) >= utxo_amount:
                break
            holding = holdings.get(utxo.outpoint)
            if holding is not None and holding.dune == dune:
                dune_utxos.append(utxo)
        if len(dune_utxos) < utxo_amount:
            raise InsufficientFundsError("not enough dune utxos found")
        self._confirm(f"Transferring {utxo_amount} utxos of {dune}. Proceed?")

        tx = self._new_transaction()
        for utxo in dune_utxos:
            tx.add_input(utxo)
        tx.pay_to(address, sum(utxo.satoshis for utxo in dune_utxos))
        self._fund_and_sign(wallet, tx)
        return self.broadcast(wallet, tx)

    # Reporting ------------------------------------------------------------

    def list_dunes(self) -> DunesReport:
        wallet = self.store.load()
        per_output = self._require_indexer().dunes_for_outputs_concurrently(
            [utxo.outpoint for utxo in wallet.utxos]
        )
        report = DunesReport()
        for utxo, balances in zip(wallet.utxos, per_output):
            if balances:
                report.utxos_with_dunes.append(utxo)
            report.balances.extend(balances)
        return report

    def dune_balance(self, dune: str, address: str) -> Decimal:
        indexer = self._require_indexer()
        outpoints = [utxo.outpoint for utxo in indexer.unspent_outputs(address)]
        total = Decimal(0)
        for balance in indexer.dunes_for_outputs(outpoints):
            if balance.dune == dune:
                total += Decimal(balance.amount.split(" ")[0].replace(",", ""))
        return total

    def safe_utxos(self) -> List[UTXO]:
        wallet = self.store.load()
        return safe_utxos(wallet.utxos, self._require_indexer().dune_outpoints(wallet.address))

    def block_count(self) -> int:
        return self.rpc.getblockcount()

    # Wallet -----------------------------------------------------------------

    def sync_wallet(self) -> int:
        """Replace the stored spendable outputs with the indexer's view."""

        wallet = self.store.load()
        wallet.utxos = self._require_indexer().unspent_outputs(wallet.address)
        self.store.commit(wallet)
        logger.info("Made a wallet sync for address %s (balance %d)", wallet.address, wallet.balance)
        return wallet.balance

    def wallet_balance(self) -> tuple[str, int]:
        wallet = self.store.load()
        return wallet.address, wallet.balance

    def wallet_send(self, address: str, amount: int) -> str:
        """Pay ``amount`` to ``address``; an amount of 0 sweeps the whole wallet."""

        wallet = self.store.load()
        if wallet.balance == 0:
            raise InsufficientFundsError("no funds to send")

        tx = self._new_transaction()
        if amount:
            tx.pay_to(address, amount)
            self._fund_and_sign(wallet, tx)
        else:
            for utxo in wallet.utxos:
                tx.add_input(utxo)
            tx.set_change(address)
            if tx.change_amount == 0:
                raise InsufficientFundsError("balance does not cover the fee")
            tx.sign(wallet.private_key(self.network))
        return self.broadcast(wallet, tx)

    def wallet_split(self, splits: int) -> str:
        """Split the wallet balance into ``splits`` roughly equal outputs."""

        if splits < 1:
            raise ValidationError("splits must be at least 1")
        wallet = self.store.load()
        balance = wallet.balance
        if balance == 0:
            raise InsufficientFundsError("no funds to split")

        tx = self._new_transaction()
        for utxo in wallet.utxos:
            tx.add_input(utxo)
        for _ in range(splits - 1):
            tx.pay_to(wallet.address, balance // splits)
        tx.set_change(wallet.address)
        if tx.input_amount < tx.output_amount + tx.fee:
            raise InsufficientFundsError("balance does not cover the split and fee")
        tx.sign(wallet.private_key(self.network))
        return self.broadcast(wallet, tx)
