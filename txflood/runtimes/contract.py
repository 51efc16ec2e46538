"""
Shared plumbing for workloads backed by a deployed contract.
"""
import typing as t

from web3.contract import Contract
from web3.contract.contract import ContractFunction

from ..config import (
    FUNDING_ACCOUNT_INDEX,
    GAS_LIMIT_DENOMINATOR,
    GAS_LIMIT_NUMERATOR,
    VALUE_TRANSFER_GAS,
)
from ..errors import RuntimeNotInitializedError
from ..identity import AccountDeriver
from ..network import ConnectionManager
from .base import Runtime
from .deployer import ContractDeployer


class ContractRuntime(Runtime):
    """
    A runtime whose operations call a contract deployed by ``initialize``.
    """
    contract_name: str = ""

    def __init__(self, network_manager: ConnectionManager, deriver: AccountDeriver) -> None:
        super().__init__(network_manager, deriver)
        self.deployer = ContractDeployer(network_manager, self.signer)
        self.contract: t.Optional[Contract] = None

    def constructor_args(self) -> t.Tuple[t.Any, ...]:
        return ()

    def initialize(self) -> None:
        funder = self.signer.prepare_account(FUNDING_ACCOUNT_INDEX)
        self.contract = self.deployer.deploy(funder, self.contract_name, *self.constructor_args())

    def require_contract(self) -> Contract:
        if self.contract is None:
            raise RuntimeNotInitializedError()
        return self.contract

    def get_value(self) -> int:
        # Contract calls move no native value, they only cost gas
        return 0

    def legacy_gas_price(self) -> int:
        return self.gas_price * GAS_LIMIT_NUMERATOR // GAS_LIMIT_DENOMINATOR

    def operation_gas(self) -> int:
        return self.gas_estimation * GAS_LIMIT_NUMERATOR // GAS_LIMIT_DENOMINATOR

    def call_data(self, function: ContractFunction) -> str:
        """
        ABI-encoded calldata for ``function``, without touching the node.
        """
        tx = function.build_transaction({
            "from": self.funding_address,
            "nonce": 0,
            "gas": self.gas_estimation or VALUE_TRANSFER_GAS,
            "gasPrice": 0,
            "chainId": self.chain_id or 1,
        })
        return tx["data"]
