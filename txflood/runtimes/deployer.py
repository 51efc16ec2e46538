"""
Contract compilation and deployment for the token workloads.
"""
import logging
import typing as t
from pathlib import Path

import solcx
from web3.contract import Contract

from ..config import GAS_LIMIT_DENOMINATOR, GAS_LIMIT_NUMERATOR, SOLC_VERSION
from ..identity import SenderAccount
from ..network import ConnectionManager
from ..signer import Signer

log = logging.getLogger(__name__)

CONTRACT_DIR = Path(__file__).parent.parent / "contracts"


class ContractDeployer:
    """
    Compiles the bundled Solidity contracts and deploys them from a sender account.
    """

    def __init__(self, network_manager: ConnectionManager, signer: Signer) -> None:
        self.network = network_manager
        self.signer = signer
        self._compiled: t.Dict[str, t.Dict[str, t.Any]] = {}

    def compile(self, contract_name: str) -> t.Dict[str, t.Any]:
        """
        Compile contracts/<contract_name>.sol.

        Returns:
            {"abi": [...], "bytecode": "..."} for the contract of the same name.
        """
        if contract_name in self._compiled:
            return self._compiled[contract_name]

        # Ensure solc is installed
        installed = [str(v) for v in solcx.get_installed_solc_versions()]
        if SOLC_VERSION not in installed:
            log.info("Installing solc %s...", SOLC_VERSION)
            solcx.install_solc(SOLC_VERSION)

        source = CONTRACT_DIR / f"{contract_name}.sol"
        compiled = solcx.compile_files(
            [str(source)],
            output_values=["abi", "bin"],
            solc_version=SOLC_VERSION,
        )
        for full_name, data in compiled.items():
            # full_name format: "path/to/file.sol:ContractName"
            if full_name.split(":")[-1] == contract_name:
                self._compiled[contract_name] = {"abi": data["abi"], "bytecode": data["bin"]}
                return self._compiled[contract_name]
        raise ValueError(f"Contract {contract_name} not found in {source}")

    def deploy(self, deployer: SenderAccount, contract_name: str, *args: t.Any) -> Contract:
        """
        Deploy ``contract_name`` and wait for the receipt.
        """
        web3 = self.network.get_web3()
        data = self.compile(contract_name)
        factory = web3.eth.contract(abi=data["abi"], bytecode=data["bytecode"])
        constructor = factory.constructor(*args)

        gas = constructor.estimate_gas({"from": deployer.address})
        tx = constructor.build_transaction({
            "from": deployer.address,
            "gas": gas * GAS_LIMIT_NUMERATOR // GAS_LIMIT_DENOMINATOR,
            "gasPrice": web3.eth.gas_price,
            "nonce": deployer.nonce,
            "chainId": web3.eth.chain_id,
        })
        signed = self.signer.sign_one(deployer, tx)
        web3.eth.send_raw_transaction(signed.raw)
        receipt = web3.eth.wait_for_transaction_receipt(signed.hash)
        if receipt["status"] != 1:
            raise RuntimeError(f"Deployment of {contract_name} failed in tx {signed.hash}")

        log.info("Deployed %s at %s", contract_name, receipt["contractAddress"])
        return web3.eth.contract(address=receipt["contractAddress"], abi=data["abi"])
