"""
txflood: load generation for Ethereum-compatible JSON-RPC nodes.
"""

from .batcher import Batcher, DispatchReport, DispatchResult, generate_batches
from .distributor import AllocationPolicy, Distributor, TokenDistributor, allocate_greedy
from .engine import Engine, EngineContext
from .identity import AccountDeriver, SenderAccount
from .network import ConnectionManager
from .signer import SignedTransaction, Signer

__all__ = [
    "AccountDeriver",
    "AllocationPolicy",
    "Batcher",
    "ConnectionManager",
    "DispatchReport",
    "DispatchResult",
    "Distributor",
    "Engine",
    "EngineContext",
    "SenderAccount",
    "SignedTransaction",
    "Signer",
    "TokenDistributor",
    "allocate_greedy",
    "generate_batches",
]
