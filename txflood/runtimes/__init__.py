"""
Workload runtimes for txflood.
"""
from enum import Enum

from ..errors import UnknownRuntimeError
from ..identity import AccountDeriver
from ..network import ConnectionManager
from .base import FeeSnapshot, Runtime, TokenRuntime, fetch_fee_snapshot
from .eoa import EOARuntime
from .erc20 import ERC20Runtime
from .erc721 import ERC721Runtime


class RuntimeType(str, Enum):
    EOA = "EOA"
    ERC20 = "ERC20"
    ERC721 = "ERC721"


_RUNTIMES = {
    RuntimeType.EOA: EOARuntime,
    RuntimeType.ERC20: ERC20Runtime,
    RuntimeType.ERC721: ERC721Runtime,
}


def build_runtime(mode: str, network_manager: ConnectionManager, deriver: AccountDeriver) -> Runtime:
    """
    Instantiate and initialize the runtime for ``mode``.

    Contract-backed runtimes deploy their contract here.
    """
    try:
        runtime_type = RuntimeType(str(mode).upper())
    except ValueError:
        raise UnknownRuntimeError(mode) from None
    runtime = _RUNTIMES[runtime_type](network_manager, deriver)
    runtime.initialize()
    return runtime


__all__ = [
    "EOARuntime",
    "ERC20Runtime",
    "ERC721Runtime",
    "FeeSnapshot",
    "Runtime",
    "RuntimeType",
    "TokenRuntime",
    "build_runtime",
    "fetch_fee_snapshot",
]
