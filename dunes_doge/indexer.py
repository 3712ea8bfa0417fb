"""HTTP client for the ord-style Dunes indexer.

Only the JSON endpoints are used. Per-output lookups are batched: requests
within a chunk run concurrently and their results are merged into a single
list only after the whole chunk has completed.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Sequence, TypeVar

from requests import RequestException

from .sessions import DEFAULT_BACKOFF_FACTOR, DEFAULT_HTTP_RETRIES, retrying_session
from .transaction import UTXO

logger = logging.getLogger(__name__)

CHUNK_SIZE = 10
DEFAULT_TIMEOUT = 100

T = TypeVar("T")
R = TypeVar("R")


class IndexerError(RuntimeError):
    """Raised when the indexer is unreachable or returns unexpected data."""


@dataclass
class DuneBalance:
    """Amount of one dune held by one output, in display units."""

    dune: str
    amount: str
    outpoint: str

    def base_units(self, divisibility: int) -> int:
        """Convert the display amount into integer base units."""

        raw = self.amount.split(" ")[0].replace(",", "")
        try:
            value = Decimal(raw)
        except InvalidOperation as exc:
            raise IndexerError(f"Unparseable dune amount {self.amount!r}") from exc
        return int(value.scaleb(divisibility))


@dataclass
class DuneInfo:
    id: str
    divisibility: int
    limit: int | None


def gather_in_chunks(
    items: Sequence[T], fetch: Callable[[T], R], chunk_size: int = CHUNK_SIZE
) -> List[R]:
    """Apply ``fetch`` to ``items`` concurrently, one chunk at a time."""

    results: List[R] = []
    if not items:
        return results
    with ThreadPoolExecutor(max_workers=chunk_size) as pool:
        for start in range(0, len(items), chunk_size):
            chunk = items[start : start + chunk_size]
            logger.debug("Fetching items %d-%d of %d", start, start + len(chunk), len(items))
            results.extend(pool.map(fetch, chunk))
    return results


def _chunks(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class IndexerClient:
    """Read-only access to an ord-compatible indexer serving Dunes."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_HTTP_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._session = retrying_session(retries, backoff_factor)

    def _get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        url = self.base_url + path.lstrip("/")
        try:
            response = self._session.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except RequestException as exc:
            logger.error(
                "Indexer request %s failed: %s",
                url,
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise IndexerError(f"Indexer request failed: {url}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise IndexerError(f"Indexer returned malformed JSON for {url}") from exc

    def unspent_outputs(self, address: str) -> List[UTXO]:
        """Every unspent output of ``address``, including ones carrying dunes."""

        data = self._get(
            f"utxos/balance/{address}", {"show_all": "true", "show_unsafe": "true"}
        )
        return [
            UTXO(
                txid=str(entry["txid"]),
                vout=int(entry["vout"]),
                satoshis=int(entry["shibes"]),
                script=str(entry.get("script") or ""),
            )
            for entry in (data or {}).get("utxos") or []
        ]

    def address_balances(self, address: str) -> List[DuneBalance]:
        """Dune balances of ``address``, one entry per holding output."""

        data = self._get(f"dunes/balance/{address}", {"show_all": "true"})
        balances: List[DuneBalance] = []
        for dune in (data or {}).get("dunes") or []:
            for entry in dune.get("balances") or []:
                balances.append(
                    DuneBalance(
                        dune=str(dune["dune"]),
                        amount=str(entry.get("amount", "0")),
                        outpoint=f"{entry['txid']}:{entry['vout']}",
                    )
                )
        return balances

    def dune_outpoints(self, address: str) -> set[str]:
        return {balance.outpoint for balance in self.address_balances(address)}

    def dunes_for_outputs(self, outpoints: Sequence[str]) -> List[DuneBalance]:
        """Dune balances held by ``outpoints``, queried in batches."""

        balances: List[DuneBalance] = []
        for chunk in _chunks(list(outpoints), CHUNK_SIZE):
            data = self._get("outputs/" + ",".join(chunk))
            for outpoint, output in zip(chunk, data or []):
                for name, detail in output.get("dunes") or []:
                    amount = detail.get("amount", "0") if isinstance(detail, dict) else detail
                    balances.append(DuneBalance(dune=str(name), amount=str(amount), outpoint=outpoint))
        return balances

    def dunes_for_output(self, outpoint: str) -> List[DuneBalance]:
        return self.dunes_for_outputs([outpoint])

    def dunes_for_outputs_concurrently(self, outpoints: Sequence[str]) -> List[List[DuneBalance]]:
        """Per-output lookups issued concurrently in chunks of :data:`CHUNK_SIZE`."""

        return gather_in_chunks(list(outpoints), self.dunes_for_output)

    def dune_info(self, dune: str) -> DuneInfo:
        data = self._get(f"dune/{dune}")
        entry = (data or {}).get("entry", data) or {}
        try:
            terms = entry.get("terms") or {}
            limit = terms.get("limit", entry.get("limit"))
            return DuneInfo(
                id=str(data.get("id", entry.get("id"))),
                divisibility=int(entry.get("divisibility", 0)),
                limit=int(limit) if limit is not None else None,
            )
        except (TypeError, ValueError, AttributeError) as exc:
            raise IndexerError(f"Unexpected dune payload for {dune}") from exc
