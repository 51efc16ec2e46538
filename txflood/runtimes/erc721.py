"""
ERC721 mints.
"""
import typing as t

from web3.types import TxParams

from ..config import ERC721_NAME, ERC721_SYMBOL, ERC721_TOKEN_URI
from ..identity import SenderAccount
from .contract import ContractRuntime


class ERC721Runtime(ContractRuntime):
    name = "ERC721 mints"
    contract_name = "ZexNFTs"

    nft_name: str = ERC721_NAME
    nft_symbol: str = ERC721_SYMBOL
    nft_url: str = ERC721_TOKEN_URI

    def __init__(self, *args: t.Any, **kwargs: t.Any) -> None:
        super().__init__(*args, **kwargs)
        self._mint_data: t.Optional[str] = None

    def constructor_args(self) -> t.Tuple[t.Any, ...]:
        return (self.nft_name, self.nft_symbol)

    def _estimate_operation_gas(self) -> int:
        contract = self.require_contract()
        return contract.functions.createNFT(self.nft_url).estimate_gas({"from": self.funding_address})

    def get_nft_symbol(self) -> str:
        return self.nft_symbol

    def build_operation(
        self, sender: SenderAccount, accounts: t.Sequence[SenderAccount], position: int, step: int
    ) -> TxParams:
        contract = self.require_contract()
        if self._mint_data is None:
            # Every mint carries the same calldata
            self._mint_data = self.call_data(contract.functions.createNFT(self.nft_url))
        return {
            "to": contract.address,
            "value": 0,
            "gas": self.operation_gas(),
            "data": self._mint_data,
        }

    def get_start_message(self) -> str:
        return "ERC721 mints initialized"
