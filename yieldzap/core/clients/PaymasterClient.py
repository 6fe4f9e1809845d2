from __future__ import annotations

from typing import Any

from yieldzap.core.clients.ApiClient import JsonRpcClient
from yieldzap.core.config import get_paymaster_url
from yieldzap.core.errors import PaymasterRejectedError, PaymasterRejection
from yieldzap.core.utils.userop import UserOperation

UNSUPPORTED_TOKEN_CODE = -32002

_SPONSORSHIP_MARKERS = ("sponsorship", "limit reached", "exceeded", "policy", "quota")
_UNSUPPORTED_TOKEN_MARKERS = (
    "unsupported token",
    "token not supported",
    "accepted tokens",
    "acceptedtokens",
)
# EntryPoint validation codes raised by the paymaster itself (AA30-AA34)
_PAYMASTER_AA_CODES = ("AA30", "AA31", "AA32", "AA33", "AA34")


def classify_paymaster_error(error: dict[str, Any] | str) -> PaymasterRejection | None:
    """Return the rejection kind for a paymaster-originated error, else None."""
    if isinstance(error, dict):
        code = error.get("code")
        message = str(error.get("message") or "")
        data = error.get("data")
    else:
        code, message, data = None, str(error), None

    lowered = message.lower()
    if code == UNSUPPORTED_TOKEN_CODE or (
        isinstance(data, dict) and "acceptedTokens" in data
    ):
        return "unsupported_token"
    if any(marker in lowered for marker in _UNSUPPORTED_TOKEN_MARKERS):
        return "unsupported_token"
    if any(marker in lowered for marker in _SPONSORSHIP_MARKERS):
        return "sponsorship_limit"
    if "paymaster" in lowered or any(c in message for c in _PAYMASTER_AA_CODES):
        return "rejected"
    return None


class PaymasterClient(JsonRpcClient):
    """ERC-7677 paymaster web service (stub data for estimation, then final data)."""

    def __init__(self, rpc_url: str | None = None):
        super().__init__(rpc_url or get_paymaster_url())

    def _raise_rpc_error(self, method: str, error: dict[str, Any]) -> None:
        reason = classify_paymaster_error(error) or "rejected"
        data = error.get("data") if isinstance(error.get("data"), dict) else {}
        raise PaymasterRejectedError(
            reason, f"{method} rejected: {error.get('message') or error}", data
        )

    async def _paymaster_data(
        self,
        method: str,
        user_op: UserOperation,
        entry_point: str,
        chain_id: int,
        context: dict[str, Any],
    ) -> str:
        result = await self._rpc_call(
            method, [user_op.to_rpc_dict(), entry_point, hex(chain_id), context]
        )
        if isinstance(result, dict) and result.get("paymasterAndData"):
            return result["paymasterAndData"]
        if isinstance(result, str) and result.startswith("0x"):
            return result
        raise PaymasterRejectedError("rejected", f"Invalid {method} response: {result}")

    async def get_paymaster_stub_data(
        self,
        user_op: UserOperation,
        entry_point: str,
        chain_id: int,
        context: dict[str, Any],
    ) -> str:
        return await self._paymaster_data(
            "pm_getPaymasterStubData", user_op, entry_point, chain_id, context
        )

    async def get_paymaster_data(
        self,
        user_op: UserOperation,
        entry_point: str,
        chain_id: int,
        context: dict[str, Any],
    ) -> str:
        return await self._paymaster_data(
            "pm_getPaymasterData", user_op, entry_point, chain_id, context
        )
