"""
Transaction signing for txflood.
Sender account preparation and nonce-checked local signing.
"""
import logging
import typing as t
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from tqdm import tqdm
from web3 import Web3
from web3.types import TxParams

from .config import QUERY_WORKERS, SHOW_PROGRESS
from .errors import NonceMismatchError
from .identity import AccountDeriver, SenderAccount
from .network import ConnectionManager

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedTransaction:
    """
    Wire-ready raw transaction plus the sender it is grouped under.
    """
    sender: str
    nonce: int
    raw: str  # 0x-prefixed hex
    hash: str

    def __str__(self) -> str:
        return f"{self.hash[:10]} from {self.sender} (nonce {self.nonce})"


class Signer:
    """
    Prepares sender accounts and signs transactions on their behalf.

    Concurrent signing across different accounts is safe; callers must
    serialize signing for any single account.
    """

    def __init__(
        self,
        network_manager: ConnectionManager,
        deriver: AccountDeriver,
        workers: int = QUERY_WORKERS,
    ) -> None:
        self.network = network_manager
        self.deriver = deriver
        self.workers = workers

    def prepare_account(self, index: int) -> SenderAccount:
        """
        Derive the account at ``index`` and seed its nonce from the node.
        """
        account = self.deriver.get_account(index)
        nonce = self.network.get_web3().eth.get_transaction_count(account.address)
        return SenderAccount(index=index, account=account, nonce=nonce)

    def prepare(self, indexes: t.Sequence[int], target_count: int) -> t.List[SenderAccount]:
        """
        Build sender accounts for the first ``min(len(indexes), target_count)`` indexes.

        Each account's transaction count is queried exactly once. The result
        keeps the order of ``indexes``.
        """
        to_init = list(indexes[:max(0, min(len(indexes), target_count))])
        if not to_init:
            return []

        log.info("Gathering initial account nonces for %d accounts...", len(to_init))
        accounts: t.List[SenderAccount] = []
        with ThreadPoolExecutor(max_workers=min(len(to_init), self.workers)) as executor:
            with tqdm(total=len(to_init), unit="acc", desc="Nonces", disable=not SHOW_PROGRESS) as pbar:
                for sender in executor.map(self.prepare_account, to_init):
                    accounts.append(sender)
                    pbar.update(1)

        log.info("Gathered initial nonce data")
        return accounts

    def sign_one(self, sender: SenderAccount, transaction: TxParams) -> SignedTransaction:
        """
        Sign ``transaction`` with the sender's key and advance its nonce.

        Raises:
            NonceMismatchError: the transaction's nonce is not the account's
                current nonce. The account is left untouched.
        """
        nonce = transaction.get("nonce")
        if nonce != sender.nonce:
            raise NonceMismatchError(sender.address, sender.nonce, nonce)

        # 'from' is implied by the signing key
        filtered = {k: v for k, v in transaction.items() if v is not None and k != "from"}
        signed = sender.account.sign_transaction(filtered)
        sender.incr_nonce()
        return SignedTransaction(
            sender=sender.address,
            nonce=nonce,
            raw=Web3.to_hex(signed.raw_transaction),
            hash=Web3.to_hex(signed.hash),
        )
