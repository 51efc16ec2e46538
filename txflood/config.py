"""
Configuration module for txflood.
Single source of truth for tunables & constants.
"""
import os
import typing as t


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


# Accounts
DERIVATION_PATH: str = "m/44'/60'/0'/0/{index}"
FUNDING_ACCOUNT_INDEX: int = 0  # Source of native currency and tokens
DEFAULT_SUB_ACCOUNTS: int = 10
DEFAULT_TRANSACTIONS: int = 2000
DEFAULT_BATCH_SIZE: int = 20

# Cost model
NATIVE_SAFETY_MULTIPLIER: int = 10  # Absorbs base fee drift between estimate and execution
FUNDING_GAS_PRICE_NUMERATOR: int = 150
FUNDING_GAS_PRICE_DENOMINATOR: int = 100
GAS_LIMIT_NUMERATOR: int = 150
GAS_LIMIT_DENOMINATOR: int = 100
DYNAMIC_FEE_MULTIPLIER: int = 2
DEFAULT_PRIORITY_FEE: int = 1_500_000_000  # 1.5 Gwei in wei
VALUE_TRANSFER_GAS: int = 21_000
EOA_TRANSFER_VALUE: int = 100_000_000_000_000  # 0.0001 ether in wei

# Token workloads
ERC20_TOTAL_SUPPLY: int = 500_000_000_000
ERC20_NAME: str = "Zex Coin"
ERC20_SYMBOL: str = "ZEX"
ERC20_TRANSFER_VALUE: int = 1
ERC721_NAME: str = "ZEXTokens"
ERC721_SYMBOL: str = "ZEXes"
ERC721_TOKEN_URI: str = "https://really-valuable-nft-page.io"
SOLC_VERSION: str = "0.8.21"

# Dispatch
DISPATCH_RETRIES: int = _env_int("TXFLOOD_DISPATCH_RETRIES", 3)
DISPATCH_BACKOFF_FACTOR: float = _env_float("TXFLOOD_DISPATCH_BACKOFF", 0.5)
RPC_TIMEOUT: float = _env_float("TXFLOOD_RPC_TIMEOUT", 30.0)

# HTTP Retry Settings (connection errors only, every JSON-RPC call is a POST)
HTTP_RETRIES: int = 5
HTTP_BACKOFF_FACTOR: float = 0.5
HTTP_POOL_SIZE: int = 500

# Concurrency
QUERY_WORKERS: int = _env_int("TXFLOOD_QUERY_WORKERS", 20)  # Balance & nonce lookups
SENDER_WORKERS: int = _env_int("TXFLOOD_SENDER_WORKERS", 100)  # Per-sender dispatch tasks

# Timeouts (seconds)
RECEIPT_TIMEOUT: int = 60
TXPOOL_TIMEOUT: int = 600
RECEIPTS_WAIT_TIMEOUT: int = 600
TXPOOL_POLL_INTERVAL: float = 1.0

# Output
LOG_LEVEL: str = os.getenv("TXFLOOD_LOG_LEVEL", "INFO").upper()
LOG_FILE: t.Optional[str] = os.getenv("TXFLOOD_LOG_FILE")
SHOW_PROGRESS: bool = os.getenv("TXFLOOD_PROGRESS", "1") != "0"


def account_path(index: int) -> str:
    """
    BIP-44 derivation path for the account at ``index``.
    """
    if index < 0:
        raise ValueError(f"Account index must be non-negative, got {index}")
    return DERIVATION_PATH.format(index=index)
