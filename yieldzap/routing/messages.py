"""Plain-language texts shown to the user for routing results."""

from __future__ import annotations

from yieldzap.core.constants.base import MAX_ERROR_DETAIL_CHARS
from yieldzap.core.constants.contracts import INDEX_TOKENS
from yieldzap.core.models import Intent, IntentKind

_ACTIONS: dict[IntentKind, str] = {
    "deposit": "deposit",
    "withdraw": "withdrawal",
    "swapBuy": "purchase",
    "swapSell": "sale",
}


def truncate_detail(detail: str | None, limit: int = MAX_ERROR_DETAIL_CHARS) -> str:
    if not detail:
        return ""
    detail = " ".join(str(detail).split())
    if len(detail) <= limit:
        return detail
    return detail[: limit - 3].rstrip() + "..."


def describe_amount(amount: str, symbol: str = "USDC") -> str:
    return f"all your {symbol}" if amount == "max" else f"{amount} {symbol}"


def amount_symbol(intent: Intent) -> str:
    """Sells are sized in the index token, everything else in USDC."""
    if intent.kind != "swapSell":
        return "USDC"
    token = INDEX_TOKENS.get(intent.protocol_or_token.strip().lower())
    return str(token["symbol"]) if token else intent.protocol_or_token.upper()


def shortage_message(
    intent: Intent,
    shortage: str,
    deposit_address: str,
    window_minutes: int,
    symbol: str = "USDC",
) -> str:
    return (
        f"You need {shortage} more {symbol} for the {_ACTIONS[intent.kind]} of "
        f"{describe_amount(intent.amount, symbol)} ({intent.protocol_or_token}).\n"
        f"Send {symbol} on Base to {deposit_address}. "
        f"I'll finish it automatically if the funds arrive "
        f"within {window_minutes} minutes."
    )


def partial_deposit_message(
    received: str, remaining: str, expires_in_minutes: int, symbol: str = "USDC"
) -> str:
    return (
        f"Received {received} {symbol}. Still {remaining} {symbol} short; "
        f"waiting {expires_in_minutes} more minutes."
    )


def completion_message(intent: Intent, tx_hash: str, explorer_url: str | None = None) -> str:
    link = f"{explorer_url}/tx/{tx_hash}" if explorer_url else tx_hash
    amount = describe_amount(intent.amount, amount_symbol(intent))
    return (
        f"Funds arrived. Your {_ACTIONS[intent.kind]} of "
        f"{amount} into {intent.protocol_or_token} is complete: {link}"
    )


def success_message(intent: Intent, link: str, gasless: bool) -> str:
    fee = " Gas was paid in USDC." if gasless else ""
    amount = describe_amount(intent.amount, amount_symbol(intent))
    return (
        f"Your {_ACTIONS[intent.kind]} of {amount} "
        f"({intent.protocol_or_token}) succeeded: {link}.{fee}"
    )


def failure_message(intent: Intent, reason: str, detail: str | None = None) -> str:
    amount = describe_amount(intent.amount, amount_symbol(intent))
    text = (
        f"Your {_ACTIONS[intent.kind]} of {amount} "
        f"({intent.protocol_or_token}) failed: {reason}"
    )
    detail = truncate_detail(detail)
    return f"{text}\nDetails: {detail}" if detail else text
