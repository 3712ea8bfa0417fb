"""Greedy coin selection with a running fee estimate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Set

from .transaction import Transaction, UTXO

logger = logging.getLogger(__name__)

# Smaller outputs are never used for funding; they typically carry dunes or dust.
MIN_FUNDING_INPUT = 1_000_000


class InsufficientFundsError(RuntimeError):
    """Raised when the wallet cannot cover outputs plus fee."""


@dataclass
class FundingResult:
    selected: List[UTXO] = field(default_factory=list)
    fee: int = 0
    change: int = 0


def safe_utxos(utxos: Iterable[UTXO], dune_outpoints: Set[str]) -> List[UTXO]:
    """Drop outputs known to carry dune balances."""

    return [utxo for utxo in utxos if utxo.outpoint not in dune_outpoints]


def fund_transaction(
    tx: Transaction,
    candidates: Iterable[UTXO],
    change_address: str,
    *,
    min_input: int = MIN_FUNDING_INPUT,
) -> FundingResult:
    """Add inputs from ``candidates`` until ``tx`` covers its outputs and fee.

    Candidates are taken largest first. After each addition the change address
    is (re)attached and the fee re-estimated, because every input grows the
    transaction. Inputs already present on ``tx`` (a parent inscription, dune
    outputs being moved) are not counted towards the target.
    """

    already_spent = {utxo.outpoint for utxo in tx.inputs}
    ordered = sorted(candidates, key=lambda utxo: utxo.satoshis, reverse=True)
    large = [
        utxo
        for utxo in ordered
        if utxo.satoshis >= min_input and utxo.outpoint not in already_spent
    ]
    needed = tx.output_amount

    result = FundingResult()
    added = 0
    have_change = False
    for utxo in large:
        if added >= needed + tx.estimate_fee():
            break
        tx.add_input(utxo)
        tx.clear_fee()
        tx.set_change(change_address)
        have_change = True
        added += utxo.satoshis
        result.selected.append(utxo)

    tx.set_fee(tx.estimate_fee())

    if not have_change:
        logger.warning(
            "No funding input of at least %d available (%d candidates)", min_input, len(ordered)
        )
        raise InsufficientFundsError("no change output added")
    if tx.input_amount < tx.output_amount + tx.fee:
        logger.warning(
            "Insufficient funds: needed=%d, available=%d",
            tx.output_amount + tx.fee,
            tx.input_amount,
        )
        raise InsufficientFundsError("not enough (secure) funds")

    result.fee = tx.fee
    result.change = tx.change_amount
    logger.info(
        "Selected %d inputs totaling %d for outputs %d (fee %d, change %d)",
        len(result.selected),
        added,
        needed,
        result.fee,
        result.change,
    )
    return result
