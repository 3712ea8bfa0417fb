import json
from pathlib import Path

import pytest

from dunes_doge import cli
from dunes_doge.wallet import JSONWalletStore


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("NODE_RPC_URL", "ORD", "WALLET", "TESTNET", "FEE_PER_KB"):
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(f"DUNES_{name}", raising=False)
    monkeypatch.setattr("dunes_doge.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    monkeypatch.setattr("dunes_doge.config._CONFIG_PATH_OVERRIDE", None)


def test_deploy_arguments_accept_null_placeholders():
    parser = cli.build_parser()
    args = parser.parse_args(
        [
            "deploy-open-dune",
            "DOGE•DUNE",
            "D",
            "100",
            "8",
            "null",
            "null",
            "null",
            "null",
            "null",
            "0",
            "false",
            "true",
        ]
    )
    assert args.limit == 100
    assert args.cap is None
    assert args.premine == 0
    assert args.turbo is False
    assert args.open_mint is True


def test_bool_arguments_reject_garbage():
    parser = cli.build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(
            ["deploy-open-dune", "A", "D", "1", "0", "1", "1", "1", "1", "1", "1", "maybe", "true"]
        )


def test_encode_prints_script_without_configuration(capsys):
    cli.main(["encode", "--pointer", "1"])
    output = json.loads(capsys.readouterr().out)
    assert output == {"payload": "0c01", "script": "6a0144020c01"}


def test_encode_with_edict_and_custom_identifier(capsys):
    cli.main(["encode", "--edict", "1:2,5,1", "--identifier", "X"])
    output = json.loads(capsys.readouterr().out)
    # dune id (1 << 16) | 2 needs a three byte varint
    assert output["script"].startswith("6a0158")
    assert output["payload"].startswith("00")


def test_encode_rejects_bad_edicts(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["encode", "--edict", "1:2,5"])
    assert excinfo.value.code == 1
    assert "ID,AMOUNT,OUTPUT" in capsys.readouterr().err


def test_missing_node_url_exits_with_error(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["get-block-count"])
    assert excinfo.value.code == 1
    assert "NODE_RPC_URL" in capsys.readouterr().err


def test_wallet_new_writes_wallet_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys):
    wallet_path = tmp_path / "wallet.json"
    monkeypatch.setenv("NODE_RPC_URL", "http://node:22555")
    monkeypatch.setenv("WALLET", str(wallet_path))

    cli.main(["wallet", "new"])

    wallet = JSONWalletStore(wallet_path).load()
    assert wallet.address in capsys.readouterr().out
    with pytest.raises(SystemExit):
        cli.main(["wallet", "new"])


def test_wallet_balance_reads_stored_wallet(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys):
    wallet_path = tmp_path / "wallet.json"
    monkeypatch.setenv("NODE_RPC_URL", "http://node:22555")
    monkeypatch.setenv("WALLET", str(wallet_path))
    cli.main(["wallet", "new"])
    capsys.readouterr()

    cli.main(["--yes", "wallet", "balance"])

    address = JSONWalletStore(wallet_path).load().address
    assert capsys.readouterr().out.strip() == f"{address} 0"


def test_interrupt_exits_non_zero(monkeypatch: pytest.MonkeyPatch, capsys):
    def interrupted(args):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "cmd_encode", interrupted)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["encode"])
    assert excinfo.value.code == 130
    assert "interrupted" in capsys.readouterr().err
