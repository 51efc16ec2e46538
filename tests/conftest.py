"""
In-memory stand-ins for an Ethereum JSON-RPC node.

``FakeNode`` answers both the Web3-style queries used by the distributor,
signer and runtimes (through ``FakeNetwork.get_web3().eth``) and the raw
JSON-RPC batch calls POSTed by the batcher (through ``FakeSession``).
"""
import itertools
import typing as t

import pytest
import requests
from web3 import Web3
from web3.exceptions import TimeExhausted

from txflood.identity import AccountDeriver
from txflood.runtimes.base import TokenRuntime

MNEMONIC = "myth like bonus scare over problem client lizard pioneer submit female collect"
CHAIN_ID = 1337


class FakeResponse:
    def __init__(self, body: t.Any, status_code: int = 200) -> None:
        self._body = body
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self) -> t.Any:
        return self._body


class FakeNode:
    def __init__(self) -> None:
        self.balances: t.Dict[str, int] = {}
        self.nonces: t.Dict[str, int] = {}
        self.nonce_queries: t.List[str] = []
        self.gas_price = 10
        self.base_fee: t.Optional[int] = 7
        self.priority_fee = 2
        self.gas_estimate = 21_000

        self.sent: t.Dict[str, str] = {}  # hash -> raw
        self.send_order: t.List[str] = []
        self.rejected: t.Dict[str, str] = {}  # raw -> error message
        self.failing_receipts: t.Set[str] = set()
        self.timed_out_receipts: t.Set[str] = set()
        self.txpool = {"pending": "0x0", "queued": "0x0"}
        self._blocks = itertools.count(100)
        self.mined_in: t.Dict[str, int] = {}

    # ---------- JSON-RPC ----------
    def handle(self, request: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        method = request["method"]
        base = {"jsonrpc": "2.0", "id": request["id"]}
        if method == "eth_sendRawTransaction":
            raw = request["params"][0]
            if raw in self.rejected:
                return {**base, "error": {"code": -32000, "message": self.rejected[raw]}}
            tx_hash = Web3.to_hex(Web3.keccak(hexstr=raw))
            self.sent[tx_hash] = raw
            self.send_order.append(tx_hash)
            return {**base, "result": tx_hash}
        if method == "txpool_status":
            return {**base, "result": dict(self.txpool) if self.txpool is not None else None}
        return {**base, "error": {"code": -32601, "message": f"method {method} not found"}}


class FakeSession:
    """
    Mimics ``requests.Session.post`` for JSON-RPC payloads.

    ``fail_next`` makes that many upcoming posts raise a connection error.
    """
    def __init__(self, node: FakeNode) -> None:
        self.node = node
        self.calls: t.List[t.Any] = []
        self.fail_next = 0
        self.always_fail = False

    def post(self, url: str, json: t.Any = None, timeout: t.Any = None) -> FakeResponse:
        self.calls.append(json)
        if self.always_fail or self.fail_next:
            self.fail_next = max(0, self.fail_next - 1)
            raise requests.ConnectionError("Connection refused")
        if isinstance(json, list):
            return FakeResponse([self.node.handle(req) for req in json])
        return FakeResponse(self.node.handle(json))

    def close(self) -> None:
        pass


class FakeEth:
    def __init__(self, node: FakeNode) -> None:
        self.node = node
        self.receipt_waits: t.List[str] = []

    @property
    def gas_price(self) -> int:
        return self.node.gas_price

    @property
    def chain_id(self) -> int:
        return CHAIN_ID

    @property
    def max_priority_fee(self) -> int:
        return self.node.priority_fee

    def get_balance(self, address: str) -> int:
        return self.node.balances.get(address, 0)

    def get_transaction_count(self, address: str) -> int:
        self.node.nonce_queries.append(address)
        return self.node.nonces.get(address, 0)

    def estimate_gas(self, tx: t.Dict[str, t.Any]) -> int:
        return self.node.gas_estimate

    def get_block(self, block_id: t.Any) -> t.Dict[str, t.Any]:
        number = 200 if block_id == "latest" else block_id
        block = {
            "number": number,
            "timestamp": 1_000 + 2 * number,
            "gasUsed": 21_000,
            "gasLimit": 30_000_000,
        }
        if self.node.base_fee is not None:
            block["baseFeePerGas"] = self.node.base_fee
        return block

    def wait_for_transaction_receipt(self, tx_hash: str, timeout: float = 120, poll_latency: float = 0.1):
        self.receipt_waits.append(tx_hash)
        if tx_hash in self.node.timed_out_receipts or tx_hash not in self.node.sent:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        block = self.node.mined_in.setdefault(tx_hash, next(self.node._blocks))
        status = 0 if tx_hash in self.node.failing_receipts else 1
        return {"transactionHash": tx_hash, "status": status, "blockNumber": block}


class FakeWeb3:
    def __init__(self, node: FakeNode) -> None:
        self.eth = FakeEth(node)


class FakeNetwork:
    """Drop-in for ConnectionManager."""

    def __init__(self, node: FakeNode, url: str = "http://fake-node:8545") -> None:
        self.url = url
        self.node = node
        self.session = FakeSession(node)
        self._web3 = FakeWeb3(node)

    def get_web3(self) -> FakeWeb3:
        return self._web3

    def rpc(self, method: str, params: t.Optional[t.List[t.Any]] = None) -> t.Any:
        body = self.node.handle({"method": method, "params": params or [], "id": 1})
        if "error" in body:
            raise ValueError(body["error"]["message"])
        return body["result"]

    def close(self) -> None:
        pass


class LedgerTokenRuntime(TokenRuntime):
    """Token runtime backed by a plain dict instead of a contract."""

    name = "ledger tokens"

    def __init__(self, network_manager, deriver, ledger, contract_index=99):
        super().__init__(network_manager, deriver)
        self.ledger = ledger
        self.contract_address = deriver.get_address(contract_index)
        self.funded = []

    def get_value(self):
        return 0

    def _estimate_operation_gas(self):
        return 40_000

    def build_operation(self, sender, accounts, position, step):
        return {"to": self.contract_address, "value": 0, "gas": self.gas_estimation, "data": "0x01"}

    def get_start_message(self):
        return "ledger transfers initialized"

    def get_transfer_value(self):
        return 1

    def get_token_balance(self, address):
        return self.ledger.get(address, 0)

    def create_fund_transaction(self, to, amount):
        self.funded.append((to, amount))
        return {"to": self.contract_address, "value": 0, "data": "0xa9059cbb"}

    def get_token_symbol(self):
        return "LDG"


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def network(node: FakeNode) -> FakeNetwork:
    return FakeNetwork(node)


@pytest.fixture(scope="session")
def deriver() -> AccountDeriver:
    return AccountDeriver(MNEMONIC)
