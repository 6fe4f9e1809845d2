from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from eth_utils import to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from yieldzap.core.utils.transaction import encode_calldata
from yieldzap.core.utils.units import to_erc20_raw

IntentKind = Literal["deposit", "withdraw", "swapBuy", "swapSell"]
WalletKind = Literal["smart_account", "eoa"]
OutcomeStatus = Literal["success", "failed", "pending", "timeout"]
ExecutionPath = Literal["gasless", "standard", "none"]

MAX_AMOUNT = "max"


def utc_now() -> datetime:
    return datetime.now(UTC)


class Intent(BaseModel):
    """One user-requested deposit, withdrawal or swap. Immutable."""

    model_config = ConfigDict(frozen=True)

    kind: IntentKind
    user_id: str
    protocol_or_token: str
    amount: str
    created_at: datetime = Field(default_factory=utc_now)
    # None means "protocol default": claim on max withdrawals only.
    claim_rewards: bool | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("amount", mode="before")
    @classmethod
    def _normalize_amount(cls, value: Any) -> str:
        text = str(value).strip()
        if text.lower() == MAX_AMOUNT:
            return MAX_AMOUNT
        try:
            parsed = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {value!r}") from exc
        if not parsed.is_finite() or parsed <= 0:
            raise ValueError(f"Amount must be positive: {value!r}")
        return text

    @property
    def is_max(self) -> bool:
        return self.amount == MAX_AMOUNT

    def amount_raw(self, decimals: int) -> int:
        if self.is_max:
            raise ValueError("'max' has no fixed raw amount; resolve it from a fresh balance")
        return to_erc20_raw(self.amount, decimals)

    def renewed(self) -> Intent:
        return self.model_copy(update={"created_at": utc_now()})


class Call(BaseModel):
    """A single contract call: raw ``data`` or ``(abi, fn_name, args)``."""

    model_config = ConfigDict(frozen=True)

    to: str
    data: str | None = None
    abi: list[dict[str, Any]] | None = None
    fn_name: str | None = None
    args: list[Any] = Field(default_factory=list)
    value: int = 0

    @field_validator("to")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return to_checksum_address(value)

    @model_validator(mode="after")
    def _check_payload(self) -> Call:
        if self.data is None and not (self.abi and self.fn_name):
            raise ValueError("Call needs either data or abi + fn_name")
        return self

    @property
    def calldata(self) -> str:
        if self.data is not None:
            return self.data
        return encode_calldata(self.abi or [], self.fn_name or "", self.args)


class ExecutionPlan(BaseModel):
    """Calls for one attempt from one wallet; rebuilt for every attempt."""

    wallet_kind: WalletKind
    gasless: bool
    calls: list[Call] = Field(default_factory=list)

    @classmethod
    def for_calls(cls, calls: list[Call], *, gasless: bool) -> ExecutionPlan:
        if not calls:
            raise ValueError("An execution plan needs at least one call")
        return cls(
            wallet_kind="smart_account" if gasless else "eoa",
            gasless=gasless,
            calls=list(calls),
        )


class Quote(BaseModel):
    """Single-use Odos quote; never reused across attempts."""

    path_id: str | None = None
    input_token: str
    output_token: str
    in_amount: int
    out_amounts: list[int]
    price_impact_pct: float = 0.0
    gas_estimate: float = 0.0
    transaction: dict[str, Any] = Field(default_factory=dict)

    @property
    def out_amount(self) -> int:
        return int(self.out_amounts[0]) if self.out_amounts else 0


class PendingIntent(BaseModel):
    kind: IntentKind
    user_id: str
    protocol_or_token: str
    amount: str
    claim_rewards: bool | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    shortage_amount: int
    apy_or_price_at_capture: float | None = None
    captured_at: datetime
    expires_at: datetime

    @classmethod
    def capture(
        cls, intent: Intent, shortage: int, *, now: datetime, ttl_seconds: int
    ) -> PendingIntent:
        ctx = dict(intent.context)
        return cls(
            kind=intent.kind,
            user_id=intent.user_id,
            protocol_or_token=intent.protocol_or_token,
            amount=intent.amount,
            claim_rewards=intent.claim_rewards,
            context=ctx,
            shortage_amount=int(shortage),
            apy_or_price_at_capture=ctx.get("apy", ctx.get("price")),
            captured_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_intent(self) -> Intent:
        return Intent(
            kind=self.kind,
            user_id=self.user_id,
            protocol_or_token=self.protocol_or_token,
            amount=self.amount,
            claim_rewards=self.claim_rewards,
            context=self.context,
        )


class TransactionOutcome(BaseModel):
    success: bool
    tx_hash: str | None = None
    gas_used: int | None = None
    error: str | None = None
    status: OutcomeStatus
    path: ExecutionPath = "none"
    user_message: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_consistency(self) -> TransactionOutcome:
        if self.success != (self.status == "success"):
            raise ValueError("success flag must match status")
        if self.success and not self.tx_hash:
            raise ValueError("a successful outcome requires a confirmed tx hash")
        return self

    @classmethod
    def succeeded(
        cls,
        tx_hash: str,
        *,
        path: ExecutionPath,
        gas_used: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> TransactionOutcome:
        return cls(
            success=True,
            status="success",
            tx_hash=tx_hash,
            gas_used=gas_used,
            path=path,
            details=details or {},
        )

    @classmethod
    def failed(
        cls,
        error: str,
        *,
        path: ExecutionPath = "none",
        tx_hash: str | None = None,
        gas_used: int | None = None,
        user_message: str | None = None,
    ) -> TransactionOutcome:
        return cls(
            success=False,
            status="failed",
            error=error,
            tx_hash=tx_hash,
            gas_used=gas_used,
            path=path,
            user_message=user_message,
        )

    @classmethod
    def timed_out(
        cls, error: str, *, path: ExecutionPath, details: dict[str, Any] | None = None
    ) -> TransactionOutcome:
        return cls(
            success=False, status="timeout", error=error, path=path, details=details or {}
        )

    @classmethod
    def pending(cls, user_message: str, **details: Any) -> TransactionOutcome:
        return cls(
            success=False, status="pending", user_message=user_message, details=details
        )
