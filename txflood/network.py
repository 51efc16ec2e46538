"""
Network management for txflood.
Shared HTTP session & Web3 connection to the target node.
"""
import typing as t

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from web3 import Web3
from web3.providers import HTTPProvider

from .config import HTTP_BACKOFF_FACTOR, HTTP_POOL_SIZE, HTTP_RETRIES, RPC_TIMEOUT


class ConnectionManager:
    """
    Manages the Web3 connection with a robust, thread-safe HTTP Session.

    The same session backs both the Web3 provider (queries) and the raw
    JSON-RPC batch calls issued by the batcher, so they share one pool.
    """
    def __init__(self, url: str, timeout: float = RPC_TIMEOUT) -> None:
        self.url = url
        self.timeout = timeout
        self._web3: t.Optional[Web3] = None
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """
        Creates an HTTP session with high connection pooling.

        Every JSON-RPC call is a POST, which urllib3 does not treat as
        idempotent: status_forcelist never applies and only failures to
        connect are retried here. Send retries belong to the batcher.
        """
        session = requests.Session()
        adapter = HTTPAdapter(
            pool_connections=HTTP_POOL_SIZE,
            pool_maxsize=HTTP_POOL_SIZE,
            max_retries=Retry(
                total=HTTP_RETRIES,
                backoff_factor=HTTP_BACKOFF_FACTOR,
                status_forcelist=[500, 502, 503, 504],
            ),
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"Content-Type": "application/json", "Connection": "keep-alive"})
        return session

    def get_web3(self) -> Web3:
        """
        Returns the cached Web3 instance bound to the shared session.
        """
        if self._web3 is None:
            provider = HTTPProvider(
                self.url,
                session=self.session,
                request_kwargs={"timeout": self.timeout},
            )
            self._web3 = Web3(provider)
        return self._web3

    def rpc(self, method: str, params: t.Optional[t.List[t.Any]] = None) -> t.Any:
        """
        Issue a single JSON-RPC call that Web3 has no wrapper for (e.g. txpool_status).
        """
        response = self.session.post(
            self.url,
            json={"jsonrpc": "2.0", "method": method, "params": params or [], "id": 1},
            timeout=self.timeout,
        )
        response.raise_for_status()
        body = response.json()
        if "error" in body:
            raise ValueError(f"{method} failed: {body['error'].get('message')}")
        return body.get("result")

    def close(self) -> None:
        self.session.close()
