"""
Transaction dispatch for txflood.
Pushes signed transactions to the node as JSON-RPC batch calls.
"""
import logging
import threading
import time
import typing as t
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import requests
from tqdm import tqdm

from .config import (
    DISPATCH_BACKOFF_FACTOR,
    DISPATCH_RETRIES,
    RPC_TIMEOUT,
    SENDER_WORKERS,
    SHOW_PROGRESS,
)
from .errors import TransportError
from .logging_config import log_error_summary
from .signer import SignedTransaction

log = logging.getLogger(__name__)

T = t.TypeVar("T")

SEND_METHOD = "eth_sendRawTransaction"


def generate_batches(items: t.Sequence[T], batch_size: int) -> t.List[t.List[T]]:
    """
    Split ``items`` into consecutive groups of ``batch_size``.

    Every group is full except possibly the last. An empty input yields
    exactly one empty group, and a non-positive size puts everything in a
    single group.
    """
    items = list(items)
    if batch_size < 1 or not items:
        return [items]
    return [items[i:i + batch_size] for i in range(0, len(items), batch_size)]


@dataclass
class DispatchResult:
    transaction: SignedTransaction
    identifier: t.Optional[str] = None
    error: t.Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.identifier is not None


@dataclass
class DispatchReport:
    """
    Outcome of one dispatch call, one result per submitted transaction, in input order.
    """
    results: t.List[DispatchResult] = field(default_factory=list)

    @property
    def identifiers(self) -> t.List[str]:
        return [r.identifier for r in self.results if r.identifier is not None]

    @property
    def errors(self) -> t.List[str]:
        return [r.error for r in self.results if r.error is not None]

    def __len__(self) -> int:
        return len(self.results)


def build_request(raw: str, request_id: int) -> t.Dict[str, t.Any]:
    return {"jsonrpc": "2.0", "method": SEND_METHOD, "params": [raw], "id": request_id}


def correlate_responses(
    requests_by_id: t.Dict[int, SignedTransaction],
    body: t.Any,
) -> t.List[DispatchResult]:
    """
    Match a batch response to its requests by ``id``, never by position.

    Elements carrying an ``error`` field become per-transaction errors;
    requests the node did not answer are reported as such.
    """
    if isinstance(body, dict) and not isinstance(body.get("id"), int):
        # The node rejected the batch as a whole
        message = _error_message(body.get("error")) if "error" in body else f"unexpected response: {body}"
        return [DispatchResult(tx, error=message) for tx in requests_by_id.values()]

    elements = body if isinstance(body, list) else [body]
    answered: t.Dict[int, DispatchResult] = {}
    for element in elements:
        request_id = element.get("id") if isinstance(element, dict) else None
        tx = requests_by_id.get(request_id)
        if tx is None or request_id in answered:
            log.debug("Ignoring uncorrelated batch element: %s", element)
            continue
        if "error" in element:
            answered[request_id] = DispatchResult(tx, error=_error_message(element["error"]))
        else:
            answered[request_id] = DispatchResult(tx, identifier=element.get("result"))

    return [
        answered.get(request_id) or DispatchResult(tx, error=f"no response for request id {request_id}")
        for request_id, tx in requests_by_id.items()
    ]


def _error_message(error: t.Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)


class Batcher:
    """
    Sends signed transactions to a node over JSON-RPC.

    Two modes:
        - ``send_batched``: fixed-size batch calls, one group after the other.
        - ``send_parallel_by_sender``: one task per sender, each sending its
          own transactions one at a time in order.

    Transport failures are retried up to ``max_retries`` attempts with
    exponential backoff; exhaustion is recorded as a per-transaction error.
    """

    def __init__(
        self,
        session: requests.Session,
        url: str,
        max_retries: int = DISPATCH_RETRIES,
        backoff_factor: float = DISPATCH_BACKOFF_FACTOR,
        timeout: float = RPC_TIMEOUT,
        workers: int = SENDER_WORKERS,
        show_progress: bool = SHOW_PROGRESS,
    ) -> None:
        self.session = session
        self.url = url
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self.timeout = timeout
        self.workers = workers
        self.show_progress = show_progress
        self.sent = 0  # Completed sends, monotonic across calls
        self._lock = threading.Lock()

    # ---------- Transport ----------
    def _post(self, payload: t.List[t.Dict[str, t.Any]]) -> t.Any:
        """
        POST one batch call, retrying transport failures.

        Raises:
            TransportError: every attempt failed.
        """
        last_error: t.Optional[BaseException] = None
        for attempt in range(self.max_retries):
            try:
                response = self.session.post(self.url, json=payload, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except (requests.RequestException, ValueError) as e:
                last_error = e
                log.warning("Batch call failed (attempt %d/%d): %s", attempt + 1, self.max_retries, e)
                if attempt < self.max_retries - 1 and self.backoff_factor > 0:
                    time.sleep(self.backoff_factor * (2 ** attempt))
        raise TransportError(self.max_retries, last_error)

    def _send_group(self, group: t.Sequence[SignedTransaction], first_id: int) -> t.List[DispatchResult]:
        requests_by_id = {first_id + i: tx for i, tx in enumerate(group)}
        payload = [build_request(tx.raw, request_id) for request_id, tx in requests_by_id.items()]
        try:
            body = self._post(payload)
        except TransportError as e:
            log.error("Abandoning %d transaction(s): %s", len(group), e)
            return [DispatchResult(tx, error=str(e)) for tx in group]
        return correlate_responses(requests_by_id, body)

    def _mark_sent(self, count: int, pbar: t.Optional[tqdm]) -> None:
        with self._lock:
            self.sent += count
            if pbar is not None:
                pbar.update(count)

    # ---------- Grouped-batch mode ----------
    def send_batched(
        self,
        transactions: t.Sequence[SignedTransaction],
        batch_size: int,
        progress: bool = True,
    ) -> DispatchReport:
        """
        Send ``transactions`` as sequential batch calls of ``batch_size`` requests.

        Request ids are sequential across the whole call. Per-element node
        errors are recorded without retrying, since the node already judged
        those transactions invalid.
        """
        batches = generate_batches(transactions, batch_size)
        report = DispatchReport()
        show = progress and self.show_progress
        if show:
            log.info("Sending transactions in %d batch(es)...", len(batches))

        next_id = 0
        with tqdm(total=len(batches), unit="batch", desc="Batches", disable=not show) as pbar:
            for group in batches:
                if group:
                    report.results.extend(self._send_group(group, next_id))
                    next_id += len(group)
                self._mark_sent(len(group), None)
                pbar.update(1)

        log_error_summary(log, "Errors encountered during batch sending", report.errors)
        if show:
            log.info("%d %s sent", len(batches), "batches" if len(batches) > 1 else "batch")
        return report

    # ---------- Per-sender parallel mode ----------
    def _send_sender_queue(
        self,
        transactions: t.Sequence[SignedTransaction],
        pbar: t.Optional[tqdm],
    ) -> DispatchReport:
        # Task-local accumulation, merged by the caller after join
        report = DispatchReport()
        for tx in transactions:
            report.results.extend(self._send_group([tx], 0))
            self._mark_sent(1, pbar)
        return report

    def send_parallel_by_sender(
        self,
        transactions_by_sender: t.Mapping[str, t.Sequence[SignedTransaction]],
    ) -> t.Dict[str, DispatchReport]:
        """
        Send every sender's transactions in order, with senders running concurrently.

        Returns:
            Sender address -> report covering exactly that sender's inputs, in order.
        """
        total = sum(len(txs) for txs in transactions_by_sender.values())
        log.info("Sending %d transactions in parallel by sender (%d senders)...", total, len(transactions_by_sender))
        reports: t.Dict[str, DispatchReport] = {}
        if not transactions_by_sender:
            return reports

        start = time.time()
        workers = min(len(transactions_by_sender), self.workers)
        with tqdm(total=total, unit="tx", desc="Sending", disable=not self.show_progress) as pbar:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    address: executor.submit(self._send_sender_queue, txs, pbar)
                    for address, txs in transactions_by_sender.items()
                }
                for address, future in futures.items():
                    reports[address] = future.result()

        errors = [err for report in reports.values() for err in report.errors]
        log_error_summary(log, "Errors encountered during batch sending", errors)
        log.info("All transactions have been sent in %.2fs", time.time() - start)
        return reports
