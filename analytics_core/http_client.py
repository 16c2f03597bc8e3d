"""
HTTP session used by the uploader: pooled, connect-retrying, SDK-identified.

A failed upload stays in the local store and goes out again on the next
flush, so the adapter never re-sends a request that may have reached the
server. Only connection setup is retried.
"""

import os

import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import log
from .constants import CONNECT_RETRIES, SDK_NAME, SDK_VERSION

UPLOAD_POOL_SIZE = 4            # Records of one flush upload concurrently
USER_AGENT = f"{SDK_NAME}/{SDK_VERSION}"


def build_retry():
    return Retry(
        total=CONNECT_RETRIES,
        connect=CONNECT_RETRIES,
        read=0,
        status=0,
        other=0,
        backoff_factor=1,                       # 1s, 2s between connect attempts
        allowed_methods=frozenset({"POST"}),
        raise_on_status=False,
    )


def _ca_bundle():
    """REQUESTS_CA_BUNDLE / SSL_CERT_FILE when they point at a file, else certifi."""
    for var in ("REQUESTS_CA_BUNDLE", "SSL_CERT_FILE"):
        path = os.environ.get(var)
        if path and os.path.isfile(path):
            return path
    return certifi.where()


def create_session():
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=UPLOAD_POOL_SIZE,
        max_retries=build_retry(),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.verify = _ca_bundle()
    session.headers.update({
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    })
    return session


def reset_session(session):
    """Drop a session with stale pooled connections and hand back a fresh one."""
    try:
        session.close()
    except requests.RequestException as e:
        log.debug("Closing stale HTTP session failed: %s", e)
    return create_session()
