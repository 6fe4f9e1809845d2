from __future__ import annotations

from typing import Any, Literal

PaymasterRejection = Literal["sponsorship_limit", "unsupported_token", "rejected"]


class YieldzapError(Exception):
    """Base class for routing and execution failures.

    ``user_message`` is the plain-language reason shown to the user; ``str(exc)``
    keeps the technical detail.
    """

    user_message: str = "The transaction could not be completed."

    def __init__(self, message: str | None = None, *, user_message: str | None = None):
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class NoWalletError(YieldzapError):
    user_message = "No wallet found. Create or import a wallet first."

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No wallet configured for user {user_id}")


class UnsupportedProtocolError(YieldzapError):
    user_message = "This protocol is not supported."

    def __init__(self, protocol: str, known: list[str] | None = None):
        self.protocol = protocol
        self.known = sorted(known or [])
        super().__init__(
            f"Unsupported protocol '{protocol}'. Known protocols: {', '.join(self.known)}"
        )


class SmartWalletRequiredError(UnsupportedProtocolError):
    user_message = "This protocol requires a smart wallet."

    def __init__(self, protocol: str):
        self.protocol = protocol
        self.known = []
        YieldzapError.__init__(
            self,
            f"{protocol} has no standard-wallet path; provision a smart wallet to use it",
        )


class GaslessUnsupportedError(YieldzapError):
    user_message = (
        "Gasless transactions are not available for this protocol yet. "
        "Use your regular wallet instead."
    )

    def __init__(self, protocol: str):
        self.protocol = protocol
        super().__init__(
            f"{protocol} does not support the gasless path; use the standard wallet"
        )


class ApprovalIneffectiveError(YieldzapError):
    user_message = "Token approval did not take effect."

    def __init__(self, token: str, spender: str, required: int, allowance: int):
        self.token = token
        self.spender = spender
        self.required = required
        self.allowance = allowance
        super().__init__(
            f"Allowance for {spender} on {token} is {allowance} after approval, "
            f"need {required}"
        )


class InsufficientBalanceError(YieldzapError):
    user_message = "Insufficient balance."

    def __init__(self, token: str, required: int, available: int):
        self.token = token
        self.required = int(required)
        self.available = int(available)
        self.shortage = max(0, self.required - self.available)
        super().__init__(
            f"Insufficient {token} balance: required {self.required}, "
            f"available {self.available}"
        )


class InsufficientGasError(YieldzapError):
    user_message = "Not enough ETH to pay for gas."

    def __init__(self, available: int, required: int):
        self.available = int(available)
        self.required = int(required)
        super().__init__(
            f"Native gas balance {self.available} wei below minimum {self.required} wei"
        )


class SlippageTooHighError(YieldzapError):
    user_message = "Price impact is too high for this trade."

    def __init__(self, price_impact_pct: float, limit_pct: float):
        self.price_impact_pct = price_impact_pct
        self.limit_pct = limit_pct
        super().__init__(
            f"Price impact {price_impact_pct:.2f}% exceeds limit of {limit_pct:.2f}%"
        )


class NoLiquidityError(YieldzapError):
    user_message = "No liquidity available for this trade."


class InvalidSlippageError(YieldzapError):
    user_message = "Invalid slippage setting."


class RateLimitedError(YieldzapError):
    user_message = "Too many quote requests. Please wait and try again."

    def __init__(self, retry_after: float, message: str | None = None):
        self.retry_after = float(retry_after)
        super().__init__(message or f"Rate limited; retry after {retry_after:.0f}s")


class QuoteRequestError(YieldzapError):
    user_message = "The swap request was rejected. Check the amount."


class QuoteUnavailableError(YieldzapError):
    user_message = "The swap service is temporarily unavailable."


class PaymasterRejectedError(YieldzapError):
    user_message = "The gas sponsor rejected this transaction."

    def __init__(
        self,
        reason: PaymasterRejection,
        message: str,
        data: dict[str, Any] | None = None,
    ):
        self.reason = reason
        self.data = data or {}
        super().__init__(message)


class BundlerError(YieldzapError):
    user_message = "The gasless transaction could not be submitted."

    def __init__(self, message: str, code: int | None = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class ExecutionTimeoutError(YieldzapError):
    user_message = "The transaction was not confirmed in time. It may still complete."

    def __init__(self, reference: str, timeout: float):
        self.reference = reference
        self.timeout = timeout
        super().__init__(f"No receipt for {reference} after {timeout:.0f}s")


class OnChainRevertError(YieldzapError):
    user_message = "The transaction reverted on-chain."

    def __init__(self, tx_hash: str | None, message: str | None = None):
        self.tx_hash = tx_hash
        super().__init__(message or f"Transaction reverted: {tx_hash}")


class SimulationError(YieldzapError):
    user_message = "The transaction would fail."


class SimulationRevertError(SimulationError):
    user_message = "The transaction would revert. Check the amount and your position."


class InsufficientFundsError(SimulationError):
    user_message = "Insufficient funds for this transaction and its gas."


class AllowanceTooLowError(SimulationError):
    user_message = "Token allowance is too low. Approve the token and try again."
