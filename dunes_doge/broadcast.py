"""Submission of signed transactions with failover, backoff and resync.

The policy is an explicit state machine::

    SUBMIT --ok--> SUCCESS
    SUBMIT --transport error, budget left--> BACKOFF_WAIT --> SUBMIT
    SUBMIT --too-long-mempool-chain--> BACKOFF_WAIT --> SUBMIT   (unbounded)
    SUBMIT --anything else--> RESYNC --> FATAL

Time and I/O are injected so the loop can be driven deterministically.
"""

from __future__ import annotations

import enum
import logging
import time
from typing import Callable, List, Optional

from .rpc_client import (
    MEMPOOL_CHAIN_ERROR,
    DogecoinRPCClient,
    MempoolPolicyError,
    RPCError,
    RPCTransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 10
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_CAP = 30.0
DEFAULT_MEMPOOL_WAIT = 15.0

SubmitFn = Callable[[str], str]


class BroadcastState(enum.Enum):
    SUBMIT = "submit"
    BACKOFF_WAIT = "backoff-wait"
    RESYNC = "resync"
    SUCCESS = "success"
    FATAL = "fatal"


class FatalBroadcastError(RuntimeError):
    """Raised once the wallet has been resynced after an unrecoverable rejection."""

    def __init__(self, message: str, cause: BaseException) -> None:
        super().__init__(message)
        self.cause = cause


def is_mempool_chain_error(exc: BaseException) -> bool:
    if isinstance(exc, MempoolPolicyError):
        return True
    return isinstance(exc, RPCError) and MEMPOOL_CHAIN_ERROR in exc.message


class FailoverSubmitter:
    """Submit through ``primary``; use ``fallback`` only when ``primary`` is unreachable."""

    def __init__(
        self, primary: DogecoinRPCClient, fallback: DogecoinRPCClient | None = None
    ) -> None:
        self.primary = primary
        self.fallback = fallback

    def __call__(self, raw_hex: str) -> str:
        try:
            return self.primary.sendrawtransaction(raw_hex)
        except RPCTransportError:
            if self.fallback is None:
                raise
            logger.warning(
                "Primary node %s unreachable; submitting via %s",
                self.primary.url,
                self.fallback.url,
            )
            return self.fallback.sendrawtransaction(raw_hex)


class BroadcastPolicy:
    """Drive a submission through the retry/backoff/resync state machine."""

    def __init__(
        self,
        submit: SubmitFn,
        resync: Callable[[], None],
        *,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_cap: float = DEFAULT_BACKOFF_CAP,
        mempool_wait: float = DEFAULT_MEMPOOL_WAIT,
        on_mempool_wait: Optional[Callable[[], None]] = None,
    ) -> None:
        self.submit = submit
        self.resync = resync
        self.sleep = sleep
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.mempool_wait = mempool_wait
        self.on_mempool_wait = on_mempool_wait
        self.history: List[BroadcastState] = []

    def backoff_delay(self, attempt: int) -> float:
        return min(self.backoff_cap, self.backoff_base * (2 ** attempt))

    def run(self, raw_hex: str, retry: bool = True) -> str:
        """Submit ``raw_hex`` and return the txid reported by the node."""

        self.history = []
        state = BroadcastState.SUBMIT
        attempt = 0
        txid: str | None = None
        failure: BaseException | None = None

        while True:
            self.history.append(state)

            if state is BroadcastState.SUBMIT:
                try:
                    txid = self.submit(raw_hex)
                except RPCTransportError as exc:
                    if not retry:
                        raise
                    if attempt < self.max_retries:
                        delay = self.backoff_delay(attempt)
                        attempt += 1
                        logger.info(
                            "Node unreachable; retry %d/%d in %.1fs",
                            attempt,
                            self.max_retries,
                            delay,
                        )
                        self.sleep(delay)
                        state = BroadcastState.BACKOFF_WAIT
                    else:
                        failure = exc
                        state = BroadcastState.RESYNC
                except RPCError as exc:
                    if not retry:
                        raise
                    if is_mempool_chain_error(exc):
                        logger.warning(
                            "retrying in %.0f secs, %s", self.mempool_wait, MEMPOOL_CHAIN_ERROR
                        )
                        if self.on_mempool_wait is not None:
                            self.on_mempool_wait()
                        self.sleep(self.mempool_wait)
                        state = BroadcastState.BACKOFF_WAIT
                    else:
                        failure = exc
                        state = BroadcastState.RESYNC
                except Exception as exc:
                    if not retry:
                        raise
                    failure = exc
                    state = BroadcastState.RESYNC
                else:
                    state = BroadcastState.SUCCESS

            elif state is BroadcastState.BACKOFF_WAIT:
                state = BroadcastState.SUBMIT

            elif state is BroadcastState.RESYNC:
                assert failure is not None
                logger.error("Broadcast failed: %s; resyncing wallet", failure)
                try:
                    self.resync()
                except Exception:
                    logger.exception("Wallet resync failed after rejected broadcast")
                state = BroadcastState.FATAL

            elif state is BroadcastState.FATAL:
                assert failure is not None
                raise FatalBroadcastError(f"broadcast failed: {failure}", failure) from failure

            else:
                assert txid is not None
                logger.info("Broadcasted transaction %s", txid)
                return txid
