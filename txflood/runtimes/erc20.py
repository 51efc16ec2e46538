"""
ERC20 token transfers.
"""
import typing as t

from web3.types import TxParams

from ..config import ERC20_NAME, ERC20_SYMBOL, ERC20_TOTAL_SUPPLY, ERC20_TRANSFER_VALUE
from ..identity import SenderAccount
from .base import TokenRuntime
from .contract import ContractRuntime


class ERC20Runtime(ContractRuntime, TokenRuntime):
    name = "ERC20 transfers"
    contract_name = "ZexCoin"

    transfer_value: int = ERC20_TRANSFER_VALUE
    total_supply: int = ERC20_TOTAL_SUPPLY
    coin_name: str = ERC20_NAME
    coin_symbol: str = ERC20_SYMBOL

    def constructor_args(self) -> t.Tuple[t.Any, ...]:
        return (self.total_supply, self.coin_name, self.coin_symbol)

    def _estimate_operation_gas(self) -> int:
        contract = self.require_contract()
        return contract.functions.transfer(
            self.deriver.get_address(1), self.transfer_value
        ).estimate_gas({"from": self.funding_address})

    def get_transfer_value(self) -> int:
        return self.transfer_value

    def get_token_balance(self, address: str) -> int:
        return self.require_contract().functions.balanceOf(address).call()

    def get_token_symbol(self) -> str:
        return self.coin_symbol

    def create_fund_transaction(self, to: str, amount: int) -> TxParams:
        contract = self.require_contract()
        return {
            "to": contract.address,
            "value": 0,
            "data": self.call_data(contract.functions.transfer(to, amount)),
        }

    def build_operation(
        self, sender: SenderAccount, accounts: t.Sequence[SenderAccount], position: int, step: int
    ) -> TxParams:
        contract = self.require_contract()
        receiver = accounts[(position + step + 1) % len(accounts)]
        return {
            "to": contract.address,
            "value": 0,
            "gas": self.operation_gas(),
            "data": self.call_data(contract.functions.transfer(receiver.address, self.transfer_value)),
        }

    def get_start_message(self) -> str:
        return "ERC20 token transfers initialized"
