"""HTTP sessions with bounded exponential backoff for node and indexer reads."""

from __future__ import annotations

import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

DEFAULT_HTTP_RETRIES = 10
DEFAULT_BACKOFF_FACTOR = 0.5
# 500 is left out: nodes report JSON-RPC rejections with HTTP 500.
RETRY_STATUSES = (429, 502, 503, 504)


def retrying_session(
    retries: int = DEFAULT_HTTP_RETRIES, backoff_factor: float = DEFAULT_BACKOFF_FACTOR
) -> requests.Session:
    """Return a session that retries connection failures and gateway errors.

    Every method is retried, including the JSON-RPC ``POST``. When the status
    retries run out the last response is returned rather than raised.
    """

    policy = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=None,
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=policy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
