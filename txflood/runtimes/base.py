"""
Workload capability interface.

The distribution engine and the run engine only ever talk to a workload
through ``Runtime`` / ``TokenRuntime``; concrete workloads live next to
this module.
"""
import abc
import logging
import typing as t
from dataclasses import dataclass

from tqdm import tqdm
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.types import TxParams

from ..config import (
    DEFAULT_PRIORITY_FEE,
    DYNAMIC_FEE_MULTIPLIER,
    FUNDING_ACCOUNT_INDEX,
    SHOW_PROGRESS,
)
from ..errors import DynamicFeeUnavailableError, RuntimeNotInitializedError
from ..identity import AccountDeriver, SenderAccount
from ..network import ConnectionManager
from ..signer import SignedTransaction, Signer

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeSnapshot:
    gas_price: int
    max_fee_per_gas: t.Optional[int] = None
    max_priority_fee_per_gas: t.Optional[int] = None

    @property
    def supports_dynamic(self) -> bool:
        return self.max_fee_per_gas is not None and self.max_priority_fee_per_gas is not None

    def require_dynamic(self) -> None:
        if not self.supports_dynamic:
            raise DynamicFeeUnavailableError()

    def apply(self, tx: TxParams, dynamic: bool, gas_price: t.Optional[int] = None) -> TxParams:
        """
        Write legacy (``gasPrice``) or type-2 fee fields into ``tx``.
        """
        if dynamic:
            self.require_dynamic()
            tx.pop("gasPrice", None)
            tx["maxFeePerGas"] = self.max_fee_per_gas * DYNAMIC_FEE_MULTIPLIER
            tx["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas * DYNAMIC_FEE_MULTIPLIER
            tx["type"] = 2
        else:
            tx["gasPrice"] = self.gas_price if gas_price is None else gas_price
        return tx


def fetch_fee_snapshot(web3: Web3) -> FeeSnapshot:
    """
    Read the current gas price and, on London-enabled chains, dynamic fee data.

    maxFeePerGas is ``2 * baseFee + priorityFee`` of the latest block. Chains
    without a base fee yield a snapshot without dynamic fields.
    """
    gas_price = web3.eth.gas_price
    block = web3.eth.get_block("latest")
    base_fee = block.get("baseFeePerGas")
    if base_fee is None:
        return FeeSnapshot(gas_price=gas_price)

    try:
        priority_fee = web3.eth.max_priority_fee
    except (ValueError, Web3Exception) as e:
        log.debug("eth_maxPriorityFeePerGas unavailable (%s), using default", e)
        priority_fee = DEFAULT_PRIORITY_FEE
    return FeeSnapshot(
        gas_price=gas_price,
        max_fee_per_gas=base_fee * 2 + priority_fee,
        max_priority_fee_per_gas=priority_fee,
    )


class Runtime(abc.ABC):
    """
    A workload: what one operation costs and how to build signed operations.

    ``estimate_base_tx`` must run before any cost calculation or
    construction; it caches the chain id and fee snapshot.
    """
    name: str = "runtime"

    def __init__(self, network_manager: ConnectionManager, deriver: AccountDeriver) -> None:
        self.network = network_manager
        self.deriver = deriver
        self.signer = Signer(network_manager, deriver)

        self.gas_estimation: int = 0
        self.gas_price: int = 0
        self.chain_id: t.Optional[int] = None
        self.fee_snapshot: t.Optional[FeeSnapshot] = None

    @property
    def web3(self) -> Web3:
        return self.network.get_web3()

    @property
    def funding_address(self) -> str:
        return self.deriver.get_address(FUNDING_ACCOUNT_INDEX)

    def initialize(self) -> None:
        """Deploy whatever the workload needs on chain. Nothing by default."""

    # ---------- Cost model ----------
    @abc.abstractmethod
    def get_value(self) -> int:
        """Native value moved by one operation, in wei."""

    @abc.abstractmethod
    def _estimate_operation_gas(self) -> int:
        ...

    def estimate_base_tx(self) -> t.Tuple[int, FeeSnapshot]:
        """
        Estimate the gas of one representative operation and snapshot fees.
        """
        self.gas_estimation = self._estimate_operation_gas()
        self.chain_id = self.web3.eth.chain_id
        self.fee_snapshot = fetch_fee_snapshot(self.web3)
        self.gas_price = self.fee_snapshot.gas_price
        return self.gas_estimation, self.fee_snapshot

    def get_gas_price(self) -> int:
        self.gas_price = self.web3.eth.gas_price
        return self.gas_price

    def _require_estimate(self) -> FeeSnapshot:
        if self.fee_snapshot is None or self.chain_id is None:
            raise RuntimeNotInitializedError()
        return self.fee_snapshot

    # ---------- Construction ----------
    @abc.abstractmethod
    def build_operation(
        self, sender: SenderAccount, accounts: t.Sequence[SenderAccount], position: int, step: int
    ) -> TxParams:
        """
        Transaction fields of the ``step``-th operation of ``accounts[position]``.

        Nonce, chain id and fees are filled in by ``construct_transactions``.
        """

    def legacy_gas_price(self) -> int:
        return self.gas_price

    def construct_transactions(
        self,
        accounts: t.Sequence[SenderAccount],
        per_account: t.Union[int, t.Sequence[int]],
        dynamic: bool,
    ) -> t.Dict[str, t.List[SignedTransaction]]:
        """
        Build and sign ``per_account`` operations for every account.

        ``per_account`` is either one count for all accounts or a count per
        account, aligned with ``accounts``.

        Each account's operations are signed in a sequential inner loop, so
        its nonces run contiguously from its current nonce.

        Raises:
            RuntimeNotInitializedError: ``estimate_base_tx`` was never called.
            DynamicFeeUnavailableError: ``dynamic`` was requested but the node
                reported no dynamic fee data. Raised before anything is signed.
        """
        fees = self._require_estimate()
        if dynamic:
            fees.require_dynamic()
            log.info("Dynamic fee data: max fee per gas %d, max priority fee per gas %d",
                     fees.max_fee_per_gas, fees.max_priority_fee_per_gas)
        else:
            log.info("Avg. gas price: %d", self.legacy_gas_price())
        log.info("Chain ID: %d", self.chain_id)

        if isinstance(per_account, int):
            counts = [per_account] * len(accounts)
        else:
            counts = list(per_account)
            if len(counts) != len(accounts):
                raise ValueError(f"Got {len(counts)} counts for {len(accounts)} accounts")

        total = sum(counts)
        signed: t.Dict[str, t.List[SignedTransaction]] = {}
        with tqdm(total=total, unit="tx", desc=f"Constructing {self.name}", disable=not SHOW_PROGRESS) as pbar:
            for position, (sender, count) in enumerate(zip(accounts, counts)):
                txs: t.List[SignedTransaction] = []
                for step in range(count):
                    tx = self.build_operation(sender, accounts, position, step)
                    tx["nonce"] = sender.nonce
                    tx["chainId"] = self.chain_id
                    fees.apply(tx, dynamic, gas_price=self.legacy_gas_price())
                    txs.append(self.signer.sign_one(sender, tx))
                    pbar.update(1)
                signed[sender.address] = txs

        log.info("Successfully constructed %d transactions", total)
        return signed

    @abc.abstractmethod
    def get_start_message(self) -> str:
        ...


class TokenRuntime(Runtime):
    """
    A workload whose operations spend a fungible token held by the sender.
    """

    @abc.abstractmethod
    def get_transfer_value(self) -> int:
        """Tokens moved by one operation."""

    @abc.abstractmethod
    def get_token_balance(self, address: str) -> int:
        ...

    def get_supplier_balance(self) -> int:
        return self.get_token_balance(self.funding_address)

    @abc.abstractmethod
    def create_fund_transaction(self, to: str, amount: int) -> TxParams:
        """
        Unsigned token transfer of ``amount`` from the funding account to ``to``.

        Gas, fees, nonce and chain id are left for the caller.
        """

    @abc.abstractmethod
    def get_token_symbol(self) -> str:
        ...
