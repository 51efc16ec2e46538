"""
Exception hierarchy for txflood.
"""


class TxFloodError(Exception):
    """Base class for every fatal condition raised by txflood."""


class UnknownRuntimeError(TxFloodError):
    def __init__(self, mode: str) -> None:
        super().__init__(f"Unknown runtime specified: {mode}")
        self.mode = mode


class RuntimeNotInitializedError(TxFloodError):
    def __init__(self) -> None:
        super().__init__("Runtime not initialized")


class InvalidSubAccountsError(TxFloodError):
    def __init__(self, count: int) -> None:
        super().__init__(f"Invalid number of sub-accounts ({count}). Need at least one")
        self.count = count


class InsufficientFundsError(TxFloodError):
    """The funding account cannot cover even a single short account."""

    def __init__(self, resource: str, balance: int, shortfall_count: int) -> None:
        super().__init__(
            f"Insufficient {resource} funds for distribution: "
            f"source balance {balance} cannot fund any of {shortfall_count} short accounts"
        )
        self.resource = resource
        self.balance = balance
        self.shortfall_count = shortfall_count


class DynamicFeeUnavailableError(TxFloodError):
    def __init__(self) -> None:
        super().__init__(
            "Dynamic fee data not available: the node did not report "
            "maxFeePerGas / maxPriorityFeePerGas"
        )


class NonceMismatchError(TxFloodError, ValueError):
    def __init__(self, address: str, expected: int, got: object) -> None:
        super().__init__(f"Nonce mismatch for {address}: account is at {expected}, transaction carries {got}")
        self.address = address
        self.expected = expected
        self.got = got


class TransportError(TxFloodError):
    """A JSON-RPC call kept failing at the transport level until the retry cap."""

    def __init__(self, attempts: int, cause: BaseException) -> None:
        super().__init__(f"transport failure after {attempts} attempt(s): {cause}")
        self.attempts = attempts
        self.cause = cause
