"""JSON-RPC client for Dogecoin Core style nodes.

The client is intentionally thin: each helper maps directly to an RPC method
and returns the parsed ``result``. Connection problems surface as
:class:`RPCTransportError`, node-side rejections as :class:`RPCError`; the
broadcast policy depends on that split to decide between failover and abort.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests
from requests import RequestException, Response

from .config import NodeConfig
from .sessions import DEFAULT_BACKOFF_FACTOR, DEFAULT_HTTP_RETRIES, retrying_session

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 100


class RPCError(RuntimeError):
    """Raised when the node responds with an RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


TransientNetworkError = RPCTransportError

MEMPOOL_CHAIN_ERROR = "too-long-mempool-chain"


class MempoolPolicyError(RPCError):
    """The node refused a transaction because its unconfirmed chain is too long."""


def rpc_error(code: int, message: str) -> RPCError:
    """Build the most specific :class:`RPCError` for a node error body."""

    if MEMPOOL_CHAIN_ERROR in message:
        return MempoolPolicyError(code, message)
    return RPCError(code, message)


def format_rpc_hint(error: RPCError | None) -> str | None:
    """Return a short remediation hint for well-known node rejections."""

    if error is None:
        return None
    message = error.message.lower()
    if MEMPOOL_CHAIN_ERROR in message:
        return "Too many unconfirmed ancestors; wait for a block before sending more."
    if "min relay fee not met" in message or "insufficient priority" in message:
        return "Fee below the node's relay policy; raise FEE_PER_KB."
    if "missing inputs" in message or "bad-txns-inputs-missingorspent" in message:
        return "Inputs already spent; run 'wallet sync' to refresh the wallet."
    if "dust" in message:
        return "An output is below the dust threshold."
    return None


class DogecoinRPCClient:
    """Typed JSON-RPC client for a single node endpoint."""

    def __init__(
        self,
        config: NodeConfig,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_HTTP_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self._session = retrying_session(retries, backoff_factor)
        # Submissions are retried by the broadcast policy, not the transport.
        self._submit_session = requests.Session()

    @property
    def url(self) -> str:
        return self.config.url

    def call(self, method: str, params: Optional[list[Any]] = None, *, retry: bool = True) -> Any:
        """Perform a JSON-RPC request.

        With ``retry`` the request goes through the backoff session; otherwise a
        single attempt is made.
        """

        payload = {"jsonrpc": "1.0", "id": 0, "method": method, "params": params or []}
        logger.debug("RPC call %s params=%s", method, params)
        try:
            session = self._session if retry else self._submit_session
            response = session.post(
                self.config.url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                auth=self.config.auth,
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection to %s failed: %s",
                self.config.url,
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                f"RPC connection failed; ensure the node at {self.config.url} is reachable "
                "and NODE_RPC_* settings are correct."
            ) from exc

        body = self._parse_body(response)
        if isinstance(body, dict) and body.get("error"):
            error = body["error"]
            if not isinstance(error, dict):
                raise rpc_error(-1, str(error))
            raise rpc_error(error.get("code", -1), str(error.get("message", "unknown")))
        if not response.ok:
            raise RPCTransportError(
                f"RPC server returned HTTP {response.status_code}", status_code=response.status_code
            )
        return body.get("result") if isinstance(body, dict) else None

    @staticmethod
    def _parse_body(response: Response) -> Any:
        # Nodes report JSON-RPC errors with HTTP 500 and a JSON body; only a
        # body that is not JSON at all is a transport problem.
        try:
            return response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            if response.status_code == 401:
                raise RPCTransportError(
                    "Unauthorized (401). Check NODE_RPC_USER and NODE_RPC_PASS.",
                    status_code=401,
                ) from exc
            raise RPCTransportError(
                f"RPC server returned malformed JSON (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc

    # Convenience wrappers -------------------------------------------------

    def getblockcount(self) -> int:
        return int(self.call("getblockcount"))

    def getrawtransaction(self, txid: str, verbose: bool = False) -> Any:
        return self.call("getrawtransaction", [txid, verbose])

    def sendrawtransaction(self, raw_tx: str) -> str:
        return self.call("sendrawtransaction", [raw_tx], retry=False)

    def get_output(self, txid: str, vout: int) -> Dict[str, Any]:
        """Return the decoded ``vout`` entry of a transaction."""

        tx = self.getrawtransaction(txid, verbose=True)
        try:
            return tx["vout"][vout]
        except (KeyError, IndexError, TypeError) as exc:
            raise RPCError(-8, f"output {txid}:{vout} not found") from exc
