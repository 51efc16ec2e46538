"""
EOA to EOA value transfers.
"""
import typing as t

from web3.types import TxParams

from ..config import EOA_TRANSFER_VALUE
from ..identity import SenderAccount
from .base import Runtime


class EOARuntime(Runtime):
    name = "EOA transfers"

    value: int = EOA_TRANSFER_VALUE

    def get_value(self) -> int:
        return self.value

    def _estimate_operation_gas(self) -> int:
        # Simple value transfer between two derived accounts
        return self.web3.eth.estimate_gas({
            "from": self.funding_address,
            "to": self.deriver.get_address(1),
            "value": self.value,
        })

    def build_operation(
        self, sender: SenderAccount, accounts: t.Sequence[SenderAccount], position: int, step: int
    ) -> TxParams:
        receiver = accounts[(position + step + 1) % len(accounts)]
        return {
            "to": receiver.address,
            "value": self.value,
            "gas": self.gas_estimation,
        }

    def get_start_message(self) -> str:
        return "EOA to EOA transfers initialized"
