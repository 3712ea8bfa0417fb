from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Sequence, Set

import pytest

from dunes_doge.broadcast import FatalBroadcastError
from dunes_doge.funding import InsufficientFundsError
from dunes_doge.indexer import DuneBalance, DuneInfo
from dunes_doge.keys import MAINNET, PrivateKey
from dunes_doge.message import Edict, Etching, Terms, build_script, parse_dune_id
from dunes_doge.names import ValidationError, parse_spaced_name
from dunes_doge.operations import DuneOperations, OperationAborted
from dunes_doge.rpc_client import MempoolPolicyError, RPCError
from dunes_doge.transaction import UTXO
from dunes_doge.wallet import MemoryWalletStore, Wallet

KEY = PrivateKey(1)
ADDRESS = KEY.address(MAINNET)
RECEIVER = PrivateKey(2).address(MAINNET)
RECEIVER_2 = PrivateKey(3).address(MAINNET)
DUNE_TXID = "aa" * 32
FUNDING_TXID = "bb" * 32


class StubRPC:
    def __init__(self, height: int = 0, failures: Sequence[Exception] = ()) -> None:
        self.height = height
        self.failures = list(failures)
        self.sent: List[str] = []
        self.height_calls = 0

    def getblockcount(self) -> int:
        self.height_calls += 1
        return self.height

    def sendrawtransaction(self, raw_hex: str) -> str:
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append(raw_hex)
        return f"txid-{len(self.sent)}"

    def get_output(self, txid: str, vout: int) -> dict:
        return {"value": 0.001, "scriptPubKey": {"hex": "76a9"}}


class StubIndexer:
    def __init__(self) -> None:
        self.per_output: Dict[str, List[DuneBalance]] = {}
        self.info = DuneInfo(id="100:1", divisibility=2, limit=1000)
        self.unspent: List[UTXO] = []
        self.resyncs = 0
        self.info_queries: List[str] = []

    def dune_outpoints(self, address: str) -> Set[str]:
        return set(self.per_output)

    def address_balances(self, address: str) -> List[DuneBalance]:
        return [balance for balances in self.per_output.values() for balance in balances]

    def dunes_for_output(self, outpoint: str) -> List[DuneBalance]:
        return list(self.per_output.get(outpoint, []))

    def dunes_for_outputs(self, outpoints: Sequence[str]) -> List[DuneBalance]:
        return [balance for outpoint in outpoints for balance in self.dunes_for_output(outpoint)]

    def dunes_for_outputs_concurrently(self, outpoints: Sequence[str]) -> List[List[DuneBalance]]:
        return [self.dunes_for_output(outpoint) for outpoint in outpoints]

    def dune_info(self, dune: str) -> DuneInfo:
        self.info_queries.append(dune)
        return self.info

    def unspent_outputs(self, address: str) -> List[UTXO]:
        self.resyncs += 1
        return list(self.unspent)


def _wallet(*utxos: UTXO) -> Wallet:
    return Wallet(address=ADDRESS, privkey=KEY.to_wif(MAINNET), utxos=list(utxos))


def _funding(satoshis: int = 5_000_000, vout: int = 0) -> UTXO:
    return UTXO(txid=FUNDING_TXID, vout=vout, satoshis=satoshis)


def _operations(
    wallet: Wallet,
    rpc: StubRPC | None = None,
    indexer: StubIndexer | None = None,
    confirm=None,
) -> tuple[DuneOperations, MemoryWalletStore, StubRPC, StubIndexer, List[float]]:
    store = MemoryWalletStore(wallet)
    rpc = rpc or StubRPC()
    indexer = indexer or StubIndexer()
    sleeps: List[float] = []
    operations = DuneOperations(
        store,
        rpc,  # type: ignore[arg-type]
        indexer=indexer,  # type: ignore[arg-type]
        network=MAINNET,
        fee_per_kb=100_000,
        confirm=confirm,
        sleep=sleeps.append,
    )
    return operations, store, rpc, indexer, sleeps


def test_deploy_open_dune_broadcasts_etching_and_commits_change() -> None:
    operations, store, rpc, _, _ = _operations(_wallet(_funding()))

    txid = operations.deploy_open_dune(
        "ABCDEFGHIJ•KLM", "D", limit=1000, divisibility=2, cap=50, open_mint=True
    )

    spaced = parse_spaced_name("ABCDEFGHIJ•KLM")
    expected = build_script(
        b"D",
        etching=Etching(
            divisibility=2,
            terms=Terms(limit=1000, cap=50),
            dune=spaced.name,
            spacers=spaced.spacers,
            symbol="D",
        ),
    )
    assert txid == "txid-1"
    assert expected.hex() in rpc.sent[0]
    assert store.commits == 1
    remaining = store.load().utxos
    assert len(remaining) == 1
    assert remaining[0].txid != FUNDING_TXID


def test_deploy_rejects_locked_names_before_funding() -> None:
    operations, store, rpc, _, _ = _operations(_wallet(_funding()))
    with pytest.raises(ValidationError, match="invalid at current height"):
        operations.deploy_open_dune("DOGE", "D", limit=1)
    assert rpc.sent == []
    assert store.commits == 0


def test_deploy_validates_symbol_before_any_network_call() -> None:
    operations, _, rpc, _, _ = _operations(_wallet(_funding()))
    with pytest.raises(ValidationError, match="Symbol"):
        operations.deploy_open_dune("ABCDEFGHIJKLM", "DD", limit=1)
    assert rpc.height_calls == 0


def test_deploy_with_premine_adds_a_wallet_output() -> None:
    operations, store, rpc, _, _ = _operations(_wallet(_funding()))
    operations.deploy_open_dune("ABCDEFGHIJKLM", "D", premine=21, open_mint=False)
    # premine output plus change both pay the wallet
    assert len(store.load().utxos) == 2


def test_declined_confirmation_aborts_without_broadcast() -> None:
    operations, store, rpc, _, _ = _operations(_wallet(_funding()), confirm=lambda message: False)
    with pytest.raises(OperationAborted):
        operations.deploy_open_dune("ABCDEFGHIJKLM", "D", limit=1)
    assert rpc.sent == []
    assert store.commits == 0


def test_mint_with_zero_amount_uses_the_per_mint_limit() -> None:
    operations, _, rpc, _, _ = _operations(_wallet(_funding()))

    operations.mint_dune("100:1", 0, RECEIVER)

    claim = parse_dune_id("100:1", claim=True)
    expected = build_script(b"D", edicts=[Edict(claim, 1000 * 10**2, 1)])
    assert expected.hex() in rpc.sent[0]


def test_mint_rejects_malformed_ids() -> None:
    operations, _, rpc, _, _ = _operations(_wallet(_funding()))
    with pytest.raises(ValidationError):
        operations.mint_dune("100-1", 5, RECEIVER)
    assert rpc.sent == []


def _dune_wallet() -> tuple[Wallet, UTXO]:
    dune_utxo = UTXO(txid=DUNE_TXID, vout=0, satoshis=100_000)
    return _wallet(dune_utxo, _funding()), dune_utxo


def test_send_dunes_spends_the_dune_output_with_edicts_per_receiver() -> None:
    wallet, dune_utxo = _dune_wallet()
    indexer = StubIndexer()
    indexer.info = DuneInfo(id="100:1", divisibility=0, limit=None)
    indexer.per_output[dune_utxo.outpoint] = [DuneBalance("DOGE•DUNE", "10", dune_utxo.outpoint)]
    operations, store, rpc, _, _ = _operations(wallet, indexer=indexer)

    operations.send_dunes(DUNE_TXID, 0, "DOGE•DUNE", 0, [3, 4], [RECEIVER, RECEIVER_2])

    dune_id = parse_dune_id("100:1")
    expected = build_script(
        b"D", pointer=1, edicts=[Edict(dune_id, 3, 2), Edict(dune_id, 4, 3)]
    )
    raw = rpc.sent[0]
    assert expected.hex() in raw
    assert indexer.info_queries == ["DOGE•DUNE"]
    assert DUNE_TXID in raw
    outpoints = [utxo.outpoint for utxo in store.load().utxos]
    assert dune_utxo.outpoint not in outpoints


def test_send_dunes_checks_balance_and_arguments() -> None:
    wallet, dune_utxo = _dune_wallet()
    indexer = StubIndexer()
    indexer.per_output[dune_utxo.outpoint] = [DuneBalance("DOGE•DUNE", "10", dune_utxo.outpoint)]
    operations, _, rpc, _, _ = _operations(wallet, indexer=indexer)

    with pytest.raises(InsufficientFundsError, match="not enough dunes"):
        operations.send_dunes(DUNE_TXID, 0, "DOGE•DUNE", 0, [20], [RECEIVER])
    with pytest.raises(InsufficientFundsError, match="dune not found"):
        operations.send_dunes(DUNE_TXID, 0, "OTHER", 0, [1], [RECEIVER])
    with pytest.raises(ValidationError, match="different"):
        operations.send_dunes(DUNE_TXID, 0, "DOGE•DUNE", 0, [1, 2], [RECEIVER])
    assert rpc.sent == []


def test_send_dunes_no_protocol_moves_whole_outputs() -> None:
    wallet, dune_utxo = _dune_wallet()
    indexer = StubIndexer()
    indexer.per_output[dune_utxo.outpoint] = [DuneBalance("DOGE•DUNE", "10", dune_utxo.outpoint)]
    operations, _, rpc, _, _ = _operations(wallet, indexer=indexer)

    operations.send_dunes_no_protocol(RECEIVER, 1, "DOGE•DUNE")

    assert DUNE_TXID in rpc.sent[0]
    with pytest.raises(InsufficientFundsError, match="not enough dune utxos"):
        operations.send_dunes_no_protocol(RECEIVER, 2, "DOGE•DUNE")


def test_mempool_chain_rejection_waits_then_succeeds() -> None:
    rpc = StubRPC(failures=[MempoolPolicyError(-26, "too-long-mempool-chain")])
    operations, store, _, indexer, sleeps = _operations(_wallet(_funding()), rpc=rpc)

    assert operations.mint_dune("100:1", 5, RECEIVER) == "txid-1"
    assert sleeps == [15.0]
    assert indexer.resyncs == 0
    assert store.commits == 1


def test_fatal_rejection_resyncs_wallet_once() -> None:
    rpc = StubRPC(failures=[RPCError(-26, "bad-txns-inputs-missingorspent")])
    indexer = StubIndexer()
    indexer.unspent = [_funding(7_000_000, vout=3)]
    operations, store, _, _, _ = _operations(_wallet(_funding()), rpc=rpc, indexer=indexer)

    with pytest.raises(FatalBroadcastError):
        operations.mint_dune("100:1", 5, RECEIVER)

    assert indexer.resyncs == 1
    assert [utxo.vout for utxo in store.load().utxos] == [3]


def test_list_dunes_and_balances() -> None:
    wallet, dune_utxo = _dune_wallet()
    indexer = StubIndexer()
    indexer.per_output[dune_utxo.outpoint] = [DuneBalance("DOGE•DUNE", "1,000.5", dune_utxo.outpoint)]
    indexer.unspent = list(wallet.utxos)
    operations, _, _, _, _ = _operations(wallet, indexer=indexer)

    report = operations.list_dunes()
    assert [utxo.outpoint for utxo in report.utxos_with_dunes] == [dune_utxo.outpoint]
    assert operations.dune_balance("DOGE•DUNE", ADDRESS) == Decimal("1000.5")
    assert [utxo.txid for utxo in operations.safe_utxos()] == [FUNDING_TXID]


def test_wallet_send_sweeps_when_amount_is_zero() -> None:
    operations, store, rpc, _, _ = _operations(_wallet(_funding(), _funding(2_000_000, vout=1)))
    operations.wallet_send(RECEIVER, 0)
    assert len(rpc.sent) == 1
    assert store.load().utxos == []


def test_wallet_split_creates_equal_outputs() -> None:
    operations, store, _, _, _ = _operations(_wallet(_funding(9_000_000)))
    operations.wallet_split(3)
    utxos = store.load().utxos
    assert len(utxos) == 3
    assert utxos[0].satoshis == utxos[1].satoshis == 3_000_000


def test_sync_wallet_replaces_outputs() -> None:
    indexer = StubIndexer()
    indexer.unspent = [_funding(1_234_567, vout=9)]
    operations, store, _, _, _ = _operations(_wallet(_funding()), indexer=indexer)
    assert operations.sync_wallet() == 1_234_567
    assert operations.wallet_balance() == (ADDRESS, 1_234_567)
    assert operations.block_count() == 0


def test_send_dunes_matches_holdings_by_name() -> None:
    wallet, dune_utxo = _dune_wallet()
    indexer = StubIndexer()
    indexer.per_output[dune_utxo.outpoint] = [DuneBalance("DOGE•DUNE", "10", dune_utxo.outpoint)]
    operations, _, rpc, _, _ = _operations(wallet, indexer=indexer)

    with pytest.raises(InsufficientFundsError, match="dune not found"):
        operations.send_dunes(DUNE_TXID, 0, "100:1", 0, [1], [RECEIVER])
    assert indexer.info_queries == []
    assert rpc.sent == []
