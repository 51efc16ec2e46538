"""
Outcome collection for txflood.
Waits for the node to drain the submitted workload and turns receipts into block stats.
"""
import functools
import logging
import time
import typing as t
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from enum import Enum

import requests
from tqdm import tqdm
from web3.exceptions import TimeExhausted
from web3.types import TxReceipt

from .config import (
    QUERY_WORKERS,
    RECEIPTS_WAIT_TIMEOUT,
    SHOW_PROGRESS,
    TXPOOL_POLL_INTERVAL,
    TXPOOL_TIMEOUT,
)
from .network import ConnectionManager

log = logging.getLogger(__name__)


class TxStatus(Enum):
    MINED = "mined"
    FAILED = "failed"
    MISSING = "missing"


@dataclass
class BlockStats:
    number: int
    created_at: int
    num_txs: int
    gas_used: int
    gas_limit: int
    utilization: float  # percent of the gas limit used
    block_time: int = 0  # seconds since the parent block


@dataclass
class CollectorData:
    tps: float = 0.0
    blocks: t.List[BlockStats] = field(default_factory=list)
    submitted: int = 0
    mined: int = 0
    failed: int = 0
    missing: int = 0

    def to_dict(self) -> t.Dict[str, t.Any]:
        return asdict(self)


def _hex_to_int(value: t.Any) -> int:
    if isinstance(value, str):
        return int(value, 16)
    return int(value or 0)


class StatCollector:
    """
    Gathers receipts for submitted identifiers and computes throughput.

    Usage:
        collector = StatCollector(network_manager)
        data = collector.generate_stats(tx_hashes, txpool_timeout=600, receipts_timeout=600)
    """

    def __init__(self, network_manager: ConnectionManager, poll_interval: float = TXPOOL_POLL_INTERVAL) -> None:
        self.network = network_manager
        self.poll_interval = poll_interval

    def wait_for_txpool_empty(self, timeout: float = TXPOOL_TIMEOUT) -> bool:
        """
        Block until the node reports no pending or queued transactions.

        Returns:
            True if the pool drained, False on timeout or if the node does not
            expose txpool_status.
        """
        log.info("Waiting for the txpool to drain (timeout %ss)...", timeout)
        deadline = time.time() + timeout
        while time.time() < deadline:
            try:
                status = self.network.rpc("txpool_status") or {}
            except (requests.RequestException, ValueError) as e:
                log.warning("txpool_status unavailable, skipping the wait: %s", e)
                return False
            pending = _hex_to_int(status.get("pending"))
            queued = _hex_to_int(status.get("queued"))
            if pending == 0 and queued == 0:
                log.info("Txpool is empty")
                return True
            log.debug("Txpool: %d pending, %d queued", pending, queued)
            time.sleep(self.poll_interval)

        log.warning("Txpool did not drain within %ss", timeout)
        return False

    def _fetch_receipt(self, tx_hash: str, deadline: float) -> t.Optional[TxReceipt]:
        remaining = deadline - time.time()
        if remaining <= 0:
            return None
        try:
            return self.network.get_web3().eth.wait_for_transaction_receipt(
                tx_hash, timeout=remaining, poll_latency=self.poll_interval
            )
        except TimeExhausted:
            return None

    def gather_receipts(
        self, tx_hashes: t.Sequence[str], timeout: float = RECEIPTS_WAIT_TIMEOUT
    ) -> t.Dict[str, t.Optional[TxReceipt]]:
        """
        Fetch a receipt for every hash, all sharing one deadline.
        """
        log.info("Gathering %d transaction receipts...", len(tx_hashes))
        receipts: t.Dict[str, t.Optional[TxReceipt]] = {}
        if not tx_hashes:
            return receipts

        deadline = time.time() + timeout
        with ThreadPoolExecutor(max_workers=min(len(tx_hashes), QUERY_WORKERS)) as executor:
            with tqdm(total=len(tx_hashes), unit="tx", desc="Receipts", disable=not SHOW_PROGRESS) as pbar:
                fetch = functools.partial(self._fetch_receipt, deadline=deadline)
                for tx_hash, receipt in zip(tx_hashes, executor.map(fetch, tx_hashes)):
                    receipts[tx_hash] = receipt
                    pbar.update(1)
        return receipts

    @staticmethod
    def classify(receipt: t.Optional[TxReceipt]) -> TxStatus:
        if receipt is None:
            return TxStatus.MISSING
        return TxStatus.MINED if receipt.get("status") == 1 else TxStatus.FAILED

    def block_stats(self, receipts: t.Iterable[TxReceipt]) -> t.List[BlockStats]:
        by_block: t.Dict[int, int] = defaultdict(int)
        for receipt in receipts:
            by_block[receipt["blockNumber"]] += 1

        web3 = self.network.get_web3()
        stats = []
        for number in sorted(by_block):
            block = web3.eth.get_block(number)
            gas_limit = block["gasLimit"]
            parent_time = web3.eth.get_block(number - 1)["timestamp"] if number > 0 else block["timestamp"]
            stats.append(BlockStats(
                number=number,
                created_at=block["timestamp"],
                num_txs=by_block[number],
                gas_used=block["gasUsed"],
                gas_limit=gas_limit,
                utilization=(block["gasUsed"] / gas_limit * 100) if gas_limit else 0.0,
                block_time=block["timestamp"] - parent_time,
            ))
        return stats

    def average_tps(self, blocks: t.Sequence[BlockStats]) -> float:
        """
        Transactions of ours per second, from the parent of the first block to the last block.
        """
        if not blocks:
            return 0.0
        first = blocks[0]
        start = first.created_at
        if first.number > 0:
            start = self.network.get_web3().eth.get_block(first.number - 1)["timestamp"]
        elapsed = max(1, blocks[-1].created_at - start)
        return sum(b.num_txs for b in blocks) / elapsed

    def generate_stats(
        self,
        tx_hashes: t.Sequence[str],
        txpool_timeout: float = TXPOOL_TIMEOUT,
        receipts_timeout: float = RECEIPTS_WAIT_TIMEOUT,
    ) -> CollectorData:
        self.wait_for_txpool_empty(txpool_timeout)
        receipts = self.gather_receipts(tx_hashes, receipts_timeout)

        data = CollectorData(submitted=len(tx_hashes))
        found = []
        for receipt in receipts.values():
            status = self.classify(receipt)
            if status is TxStatus.MISSING:
                data.missing += 1
                continue
            found.append(receipt)
            if status is TxStatus.MINED:
                data.mined += 1
            else:
                data.failed += 1

        data.blocks = self.block_stats(found)
        data.tps = self.average_tps(data.blocks)

        if data.missing:
            log.warning("%d of %d transactions have no receipt", data.missing, data.submitted)
        log.info("Mined %d, failed %d, missing %d over %d block(s)",
                 data.mined, data.failed, data.missing, len(data.blocks))
        log.info("Average TPS: %.2f", data.tps)
        for block in data.blocks:
            log.info("  block %d: %d txs, %.2f%% gas utilization, %ds block time",
                     block.number, block.num_txs, block.utilization, block.block_time)
        return data
