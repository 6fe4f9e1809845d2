from __future__ import annotations

from typing import Any

from yieldzap.core.clients.ApiClient import JsonRpcClient
from yieldzap.core.clients.PaymasterClient import classify_paymaster_error
from yieldzap.core.config import get_bundler_url
from yieldzap.core.errors import BundlerError, PaymasterRejectedError
from yieldzap.core.utils.userop import UserOperation, UserOpGasEstimate, UserOpReceipt


class BundlerClient(JsonRpcClient):
    def __init__(self, rpc_url: str | None = None):
        super().__init__(rpc_url or get_bundler_url())

    def _raise_rpc_error(self, method: str, error: dict[str, Any]) -> None:
        message = str(error.get("message") or error)
        # Bundlers relay paymaster validation failures during estimation/submission.
        reason = classify_paymaster_error(error)
        if reason is not None:
            data = error.get("data") if isinstance(error.get("data"), dict) else {}
            raise PaymasterRejectedError(reason, f"{method}: {message}", data)
        raise BundlerError(
            f"{method} failed: {message}", code=error.get("code"), data=error.get("data")
        )

    async def send_user_operation(self, user_op: UserOperation, entry_point: str) -> str:
        result = await self._rpc_call(
            "eth_sendUserOperation", [user_op.to_rpc_dict(), entry_point]
        )
        if not isinstance(result, str):
            raise BundlerError("Invalid bundler response for eth_sendUserOperation")
        return result

    async def estimate_user_operation_gas(
        self, user_op: UserOperation, entry_point: str
    ) -> UserOpGasEstimate:
        result = await self._rpc_call(
            "eth_estimateUserOperationGas", [user_op.to_rpc_dict(), entry_point]
        )
        if not isinstance(result, dict):
            raise BundlerError(
                "Invalid bundler response for eth_estimateUserOperationGas"
            )
        return UserOpGasEstimate.from_rpc(result)

    async def get_user_operation_receipt(self, user_op_hash: str) -> UserOpReceipt | None:
        result = await self._rpc_call("eth_getUserOperationReceipt", [user_op_hash])
        if not result:
            return None
        return UserOpReceipt.from_rpc(user_op_hash, result)
