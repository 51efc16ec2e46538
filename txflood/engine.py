"""
Run engine for txflood.
Prepares sender accounts, has the runtime build the workload and dispatches it.
"""
import logging
import typing as t
from dataclasses import dataclass

from .batcher import Batcher, DispatchReport
from .config import DEFAULT_BATCH_SIZE
from .identity import AccountDeriver
from .network import ConnectionManager
from .runtimes.base import Runtime
from .signer import Signer

log = logging.getLogger(__name__)


@dataclass
class EngineContext:
    account_indexes: t.List[int]
    total_transactions: int  # across all senders, never exceeded
    mnemonic: str
    url: str
    batch_size: int = DEFAULT_BATCH_SIZE
    dynamic: bool = False


class Engine:
    """
    Executes one run cycle against already-funded accounts.

    No retries are added here; partial failures are reported per sender by
    the batcher.
    """

    def __init__(
        self,
        network_manager: ConnectionManager,
        signer: t.Optional[Signer] = None,
        batcher: t.Optional[Batcher] = None,
    ) -> None:
        self.network = network_manager
        self.signer = signer
        self.batcher = batcher

    def run(self, runtime: Runtime, ctx: EngineContext) -> t.Dict[str, DispatchReport]:
        """
        Returns:
            Sender address -> dispatch report, identifiers in submission order.
        """
        signer = self.signer or Signer(self.network, AccountDeriver(ctx.mnemonic))
        batcher = self.batcher or Batcher(self.network.session, ctx.url)

        # Never prepare more senders than there are transactions
        accounts = signer.prepare(ctx.account_indexes, ctx.total_transactions)
        if not accounts:
            log.warning("No sender accounts to run the workload with")
            return {}

        counts = split_transactions(ctx.total_transactions, len(accounts))
        signed = runtime.construct_transactions(accounts, counts, ctx.dynamic)

        log.info(runtime.get_start_message())
        return batcher.send_parallel_by_sender(signed)


def identifiers_by_sender(reports: t.Mapping[str, DispatchReport]) -> t.Dict[str, t.List[str]]:
    return {address: report.identifiers for address, report in reports.items()}


def flatten_identifiers(reports: t.Mapping[str, DispatchReport]) -> t.List[str]:
    return [identifier for report in reports.values() for identifier in report.identifiers]


def split_transactions(total: int, senders: int) -> t.List[int]:
    """
    Share ``total`` transactions among ``senders``.

    The remainder goes one each to the leading senders, so no sender does
    more than ``ceil(total / senders)``, the share it was funded for.
    """
    if senders < 1:
        return []
    base, remainder = divmod(total, senders)
    return [base + 1 if i < remainder else base for i in range(senders)]
