"""
Identity management for txflood.
Deterministic account derivation & per-account nonce ownership.
"""
import functools
from dataclasses import dataclass

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .config import FUNDING_ACCOUNT_INDEX, account_path

Account.enable_unaudited_hdwallet_features()


@functools.lru_cache(maxsize=4096)
def derive_account(mnemonic: str, index: int) -> LocalAccount:
    """
    Derive the signing identity at m/44'/60'/0'/0/{index}.

    Pure function of (mnemonic, index); results are cached because BIP-39
    seed stretching dominates the cost of a lookup.
    """
    return Account.from_mnemonic(mnemonic, account_path=account_path(index))


class AccountDeriver:
    """
    Derives deterministic accounts from a mnemonic.
    """
    def __init__(self, mnemonic: str) -> None:
        self.mnemonic = mnemonic

    def get_account(self, index: int) -> LocalAccount:
        return derive_account(self.mnemonic, index)

    def get_address(self, index: int) -> str:
        return self.get_account(index).address

    def funding_account(self) -> LocalAccount:
        return self.get_account(FUNDING_ACCOUNT_INDEX)


@dataclass
class SenderAccount:
    """
    A participating account plus the next nonce it will sign with.

    The nonce starts at the on-chain transaction count observed when the
    account was prepared and only moves through ``incr_nonce``.
    """
    index: int
    account: LocalAccount
    nonce: int

    @property
    def address(self) -> str:
        return self.account.address

    def get_nonce(self) -> int:
        return self.nonce

    def incr_nonce(self) -> int:
        self.nonce += 1
        return self.nonce

    def __repr__(self) -> str:
        return f"SenderAccount(index={self.index}, address={self.address}, nonce={self.nonce})"
