from txflood.config import HTTP_BACKOFF_FACTOR, HTTP_POOL_SIZE, HTTP_RETRIES
from txflood.network import ConnectionManager


def test_session_retries_connection_errors_only():
    manager = ConnectionManager("http://127.0.0.1:8545")
    try:
        adapter = manager.session.get_adapter("http://127.0.0.1:8545")
        retry = adapter.max_retries
        assert retry.total == HTTP_RETRIES
        assert retry.backoff_factor == HTTP_BACKOFF_FACTOR
        # JSON-RPC is POST only, which urllib3 never retries on a status code
        assert not retry.is_retry("POST", 503)
        assert adapter._pool_maxsize == HTTP_POOL_SIZE
    finally:
        manager.close()
