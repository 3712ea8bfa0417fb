from __future__ import annotations

from typing import List

import pytest
from urllib3.connectionpool import HTTPConnectionPool
from urllib3.exceptions import ProtocolError

from dunes_doge.config import NodeConfig
from dunes_doge.indexer import IndexerClient, IndexerError
from dunes_doge.rpc_client import DogecoinRPCClient, RPCTransportError
from dunes_doge.sessions import DEFAULT_HTTP_RETRIES, RETRY_STATUSES, retrying_session


@pytest.fixture
def dropped_connections(monkeypatch: pytest.MonkeyPatch) -> List[str]:
    """Make every HTTP attempt fail with a reset connection and record it."""

    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    attempts: List[str] = []

    def reset(self, conn, method, url, *args, **kwargs):
        attempts.append(method)
        raise ProtocolError("Connection aborted.", ConnectionResetError("reset by peer"))

    monkeypatch.setattr(HTTPConnectionPool, "_make_request", reset)
    return attempts


def test_retrying_session_mounts_backoff_for_both_schemes() -> None:
    session = retrying_session()
    for url in ("http://node:22555", "https://ord.example"):
        policy = session.get_adapter(url).max_retries
        assert policy.total == DEFAULT_HTTP_RETRIES
        assert policy.allowed_methods is None
        assert 500 not in policy.status_forcelist
        assert set(RETRY_STATUSES) <= set(policy.status_forcelist)


def test_rpc_reads_are_retried_before_surfacing(dropped_connections: List[str]) -> None:
    client = DogecoinRPCClient(NodeConfig(url="http://node:22555"), retries=2, backoff_factor=0)
    with pytest.raises(RPCTransportError):
        client.getblockcount()
    assert dropped_connections == ["POST"] * 3


def test_rpc_submission_is_attempted_once(dropped_connections: List[str]) -> None:
    client = DogecoinRPCClient(NodeConfig(url="http://node:22555"), retries=2, backoff_factor=0)
    with pytest.raises(RPCTransportError):
        client.sendrawtransaction("00")
    assert dropped_connections == ["POST"]


def test_indexer_lookups_are_retried_before_surfacing(dropped_connections: List[str]) -> None:
    client = IndexerClient("http://ord.local", retries=3, backoff_factor=0)
    with pytest.raises(IndexerError):
        client.unspent_outputs("DAddr")
    assert dropped_connections == ["GET"] * 4
