"""
Fund distribution for txflood.

Tops up under-funded sub-accounts from the funding account before a run
cycle, for the native currency (``Distributor``) or a workload token
(``TokenDistributor``).

Every distribution follows the same four steps:
    1. cost computation for one account's share of the cycle,
    2. balance scan of the candidates, recording each shortfall,
    3. greedy allocation of the source balance among the shortfalls,
    4. funding transactions sent in batches, then one receipt wait each.
"""
import abc
import heapq
import logging
import math
import typing as t
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

import requests
from tqdm import tqdm
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.types import TxParams

from .batcher import Batcher
from .config import (
    DEFAULT_BATCH_SIZE,
    FUNDING_ACCOUNT_INDEX,
    FUNDING_GAS_PRICE_DENOMINATOR,
    FUNDING_GAS_PRICE_NUMERATOR,
    GAS_LIMIT_DENOMINATOR,
    GAS_LIMIT_NUMERATOR,
    NATIVE_SAFETY_MULTIPLIER,
    QUERY_WORKERS,
    RECEIPT_TIMEOUT,
    SHOW_PROGRESS,
    VALUE_TRANSFER_GAS,
)
from .errors import InsufficientFundsError
from .identity import AccountDeriver
from .logging_config import log_error_summary
from .network import ConnectionManager
from .runtimes.base import Runtime, TokenRuntime
from .signer import Signer

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShortfallEntry:
    address: str
    index: int
    missing: int  # required - current balance, always > 0


@dataclass(frozen=True)
class RuntimeCost:
    """
    Per-cycle cost model of one sub-account.

    Attributes:
        per_operation: Cost of one representative operation.
        per_account: Balance every sub-account needs for its share of the cycle.
        distribution_fee: Native cost of one funding transaction, charged
            against the source budget during allocation (0 for tokens).
    """
    per_operation: int
    per_account: int
    distribution_fee: int = 0


class AllocationPolicy(str, Enum):
    """
    Order in which shortfalls are served when the budget is tight.

    Ties are broken by account index, so every policy yields a total order.
    """
    SMALLEST_NEED_FIRST = "smallest"
    LARGEST_NEED_FIRST = "largest"
    INDEX_ORDER = "index"

    def sort_key(self, entry: ShortfallEntry) -> t.Tuple[int, ...]:
        if self is AllocationPolicy.SMALLEST_NEED_FIRST:
            return (entry.missing, entry.index)
        if self is AllocationPolicy.LARGEST_NEED_FIRST:
            return (-entry.missing, entry.index)
        return (entry.index,)


def allocate_greedy(
    shortfalls: t.Iterable[ShortfallEntry],
    balance: int,
    policy: AllocationPolicy = AllocationPolicy.SMALLEST_NEED_FIRST,
    overhead: int = 0,
) -> t.Tuple[t.List[ShortfallEntry], int]:
    """
    Greedily fund shortfalls in ``policy`` order out of ``balance``.

    A candidate is taken only if its missing amount plus ``overhead`` (the
    cost of the funding transaction itself) fits in the remaining budget;
    allocation stops at the first candidate that does not fit.

    Returns:
        (chosen entries in allocation order, remaining budget)
    """
    heap = [(policy.sort_key(entry), position, entry) for position, entry in enumerate(shortfalls)]
    heapq.heapify(heap)

    chosen: t.List[ShortfallEntry] = []
    remaining = balance
    while heap:
        entry = heap[0][2]
        cost = entry.missing + overhead
        if cost > remaining:
            break
        heapq.heappop(heap)
        remaining -= cost
        chosen.append(entry)
    return chosen, remaining


def ops_per_account(total_transactions: int, accounts: int) -> int:
    return math.ceil(total_transactions / accounts) if accounts else 0


class BaseDistributor(abc.ABC):
    """
    Shared scan / allocate / fund machinery, generic over the funded resource.
    """
    resource: str = "native"
    title: str = "Fund distribution"

    def __init__(
        self,
        network_manager: ConnectionManager,
        deriver: AccountDeriver,
        total_transactions: int,
        batch_size: int = DEFAULT_BATCH_SIZE,
        policy: AllocationPolicy = AllocationPolicy.SMALLEST_NEED_FIRST,
        batcher: t.Optional[Batcher] = None,
        receipt_timeout: float = RECEIPT_TIMEOUT,
        source_index: int = FUNDING_ACCOUNT_INDEX,
    ) -> None:
        self.network = network_manager
        self.deriver = deriver
        self.total_transactions = total_transactions
        self.batch_size = batch_size
        self.policy = policy
        self.receipt_timeout = receipt_timeout
        self.source_index = source_index
        self.signer = Signer(network_manager, deriver)
        self.batcher = batcher or Batcher(network_manager.session, network_manager.url)

        self.ready_indexes: t.List[int] = []
        self.errors: t.List[str] = []

    @property
    def web3(self) -> Web3:
        return self.network.get_web3()

    # ---------- Resource hooks ----------
    @abc.abstractmethod
    def calculate_runtime_costs(self, candidates: t.Sequence[int]) -> RuntimeCost:
        ...

    @abc.abstractmethod
    def balance_of(self, address: str) -> int:
        ...

    @abc.abstractmethod
    def source_balance(self) -> int:
        ...

    @abc.abstractmethod
    def funding_transaction(self, entry: ShortfallEntry, costs: RuntimeCost) -> TxParams:
        """Unsigned transfer of ``entry.missing`` to ``entry.address``, without nonce."""

    @abc.abstractmethod
    def print_cost_table(self, costs: RuntimeCost) -> None:
        ...

    # ---------- Steps ----------
    def _scan_one(self, index: int) -> t.Tuple[int, str, int]:
        address = self.deriver.get_address(index)
        return index, address, self.balance_of(address)

    def find_accounts_for_distribution(
        self, candidates: t.Sequence[int], required: int
    ) -> t.List[ShortfallEntry]:
        """
        Record a shortfall for every candidate below ``required``.

        Candidates already holding enough are marked ready right away.
        """
        log.info("Fetching sub-account %s balances...", self.resource)
        shortfalls: t.List[ShortfallEntry] = []
        if not candidates:
            return shortfalls

        with ThreadPoolExecutor(max_workers=min(len(candidates), QUERY_WORKERS)) as executor:
            with tqdm(total=len(candidates), unit="acc", desc="Balances", disable=not SHOW_PROGRESS) as pbar:
                for index, address, balance in executor.map(self._scan_one, candidates):
                    pbar.update(1)
                    if balance < required:
                        # Not enough funds, make sure it's on the list to get topped off
                        shortfalls.append(ShortfallEntry(address=address, index=index, missing=required - balance))
                    else:
                        self.ready_indexes.append(index)
        return shortfalls

    def get_fundable_accounts(
        self, costs: RuntimeCost, shortfalls: t.Sequence[ShortfallEntry]
    ) -> t.List[ShortfallEntry]:
        """
        Allocate the source balance among ``shortfalls``.

        Raises:
            InsufficientFundsError: not even one shortfall can be covered.
        """
        balance = self.source_balance()
        log.info("Distributor %s balance: %d", self.resource, balance)
        chosen, remaining = allocate_greedy(shortfalls, balance, self.policy, overhead=costs.distribution_fee)
        if not chosen:
            raise InsufficientFundsError(self.resource, balance, len(shortfalls))
        log.debug("Allocated %d account(s), %d %s left at the source", len(chosen), remaining, self.resource)
        return chosen

    def fund_accounts(self, costs: RuntimeCost, accounts: t.Sequence[ShortfallEntry]) -> None:
        """
        Send one funding transaction per account and wait for each receipt in turn.

        An account becomes ready only on a successful receipt; anything else
        is recorded in ``errors`` and the account sits out this cycle.
        """
        log.info("Funding %d account(s) with %s...", len(accounts), self.resource)
        source = self.signer.prepare_account(self.source_index)
        chain_id = self.web3.eth.chain_id

        signed = []
        for entry in accounts:
            tx = self.funding_transaction(entry, costs)
            tx["nonce"] = source.nonce
            tx["chainId"] = chain_id
            signed.append(self.signer.sign_one(source, tx))

        report = self.batcher.send_batched(signed, self.batch_size, progress=False)

        with tqdm(total=len(accounts), unit="acc", desc="Funding", disable=not SHOW_PROGRESS) as pbar:
            for entry, result in zip(accounts, report.results):
                pbar.update(1)
                if not result.ok:
                    self.errors.append(f"funding {entry.address} was not accepted: {result.error}")
                    continue
                try:
                    receipt = self.web3.eth.wait_for_transaction_receipt(
                        result.identifier, timeout=self.receipt_timeout
                    )
                except TimeExhausted:
                    self.errors.append(f"transaction {result.identifier} failed to be fetched in time")
                    continue
                except (requests.RequestException, Web3Exception) as e:
                    self.errors.append(f"receipt for transaction {result.identifier} could not be fetched: {e}")
                    continue
                if receipt.get("status") != 1:
                    self.errors.append(f"transaction {result.identifier} failed during execution")
                    continue
                self.ready_indexes.append(entry.index)

    def distribute(self, candidates: t.Sequence[int]) -> t.List[int]:
        """
        Make sure every candidate holds enough of the resource for the cycle.

        Returns:
            Indexes of the ready accounts: those already funded, followed by
            those whose funding transaction succeeded.
        """
        log.info("%s initialized", self.title)
        self.ready_indexes = []
        self.errors = []

        costs = self.calculate_runtime_costs(candidates)
        self.print_cost_table(costs)

        shortfalls = self.find_accounts_for_distribution(candidates, costs.per_account)
        if not shortfalls:
            log.info("Accounts are fully funded for the cycle")
            return list(self.ready_indexes)

        fundable = self.get_fundable_accounts(costs, shortfalls)
        if len(fundable) != len(shortfalls):
            log.warning(
                "Unable to fund all sub-accounts: %d of %d short accounts cannot be funded. Funding %d",
                len(shortfalls) - len(fundable), len(shortfalls), len(fundable),
            )

        self.fund_accounts(costs, fundable)

        log_error_summary(log, f"Errors encountered during {self.resource} funding of sub accounts", self.errors)
        if len(self.ready_indexes) < len(candidates):
            log.warning("Only %d of %d requested accounts are ready", len(self.ready_indexes), len(candidates))
        log.info("%s finished!", self.title)
        return list(self.ready_indexes)


class Distributor(BaseDistributor):
    """
    Distributes the native currency needed to pay for a runtime's operations.
    """
    resource = "native"
    title = "Fund distribution"

    def __init__(
        self,
        network_manager: ConnectionManager,
        deriver: AccountDeriver,
        runtime: Runtime,
        sub_accounts: int,
        total_transactions: int,
        **kwargs: t.Any,
    ) -> None:
        super().__init__(network_manager, deriver, total_transactions, **kwargs)
        self.runtime = runtime
        self.sub_accounts = sub_accounts
        self.funding_gas_price = 0

    def calculate_runtime_costs(self, candidates: t.Sequence[int]) -> RuntimeCost:
        inherent_value = self.runtime.get_value()
        base_gas, _ = self.runtime.estimate_base_tx()
        gas_price = self.runtime.get_gas_price()

        # Inflate the per-op cost, the base fee can expand before execution
        per_operation = (gas_price * base_gas + inherent_value) * NATIVE_SAFETY_MULTIPLIER
        per_account = per_operation * ops_per_account(self.total_transactions, len(candidates))

        self.funding_gas_price = gas_price * FUNDING_GAS_PRICE_NUMERATOR // FUNDING_GAS_PRICE_DENOMINATOR
        return RuntimeCost(
            per_operation=per_operation,
            per_account=per_account,
            distribution_fee=VALUE_TRANSFER_GAS * self.funding_gas_price,
        )

    def balance_of(self, address: str) -> int:
        return self.web3.eth.get_balance(address)

    def source_balance(self) -> int:
        return self.balance_of(self.deriver.get_address(self.source_index))

    def funding_transaction(self, entry: ShortfallEntry, costs: RuntimeCost) -> TxParams:
        return {
            "to": entry.address,
            "value": entry.missing,
            "gas": VALUE_TRANSFER_GAS,
            "gasPrice": self.funding_gas_price,
        }

    def print_cost_table(self, costs: RuntimeCost) -> None:
        log.info("Cycle Cost Table:")
        log.info("  %-28s %s eth", "Required acc. balance", Web3.from_wei(costs.per_account, "ether"))
        log.info("  %-28s %s eth", "Single distribution cost", Web3.from_wei(costs.distribution_fee, "ether"))

    def distribute(self, candidates: t.Optional[t.Sequence[int]] = None) -> t.List[int]:
        if candidates is None:
            candidates = list(range(1, self.sub_accounts + 1))
        return super().distribute(candidates)


class TokenDistributor(BaseDistributor):
    """
    Distributes the workload token among accounts that are already funded natively.
    """
    resource = "token"
    title = "Token distribution"

    def __init__(
        self,
        network_manager: ConnectionManager,
        deriver: AccountDeriver,
        runtime: TokenRuntime,
        total_transactions: int,
        **kwargs: t.Any,
    ) -> None:
        super().__init__(network_manager, deriver, total_transactions, **kwargs)
        self.runtime = runtime
        self.funding_gas = 0
        self.funding_gas_price = 0

    def calculate_runtime_costs(self, candidates: t.Sequence[int]) -> RuntimeCost:
        transfer_value = self.runtime.get_transfer_value()
        total_cost = transfer_value * self.total_transactions
        per_account = math.ceil(total_cost / len(candidates)) if candidates else total_cost

        # Token transfers are paid for in native currency by the funding account
        base_gas, _ = self.runtime.estimate_base_tx()
        self.funding_gas = base_gas * GAS_LIMIT_NUMERATOR // GAS_LIMIT_DENOMINATOR
        self.funding_gas_price = (
            self.runtime.get_gas_price() * FUNDING_GAS_PRICE_NUMERATOR // FUNDING_GAS_PRICE_DENOMINATOR
        )
        return RuntimeCost(per_operation=transfer_value, per_account=per_account)

    def balance_of(self, address: str) -> int:
        return self.runtime.get_token_balance(address)

    def source_balance(self) -> int:
        return self.runtime.get_supplier_balance()

    def funding_transaction(self, entry: ShortfallEntry, costs: RuntimeCost) -> TxParams:
        tx = self.runtime.create_fund_transaction(entry.address, entry.missing)
        tx["gas"] = self.funding_gas
        tx["gasPrice"] = self.funding_gas_price
        return tx

    def print_cost_table(self, costs: RuntimeCost) -> None:
        symbol = self.runtime.get_token_symbol()
        log.info("Cycle Token Cost Table:")
        log.info("  %-30s %d %s", "Required acc. token balance", costs.per_account, symbol)
        log.info("  %-30s %d %s", "Total token distribution cost",
                 costs.per_operation * self.total_transactions, symbol)
