from __future__ import annotations

from typing import Any

from loguru import logger
from web3.exceptions import ContractLogicError, Web3RPCError

from yieldzap.core.constants.base import DEFAULT_TRANSACTION_TIMEOUT
from yieldzap.core.constants.chains import CHAIN_ID_BASE
from yieldzap.core.errors import (
    AllowanceTooLowError,
    ExecutionTimeoutError,
    InsufficientFundsError,
    OnChainRevertError,
    SimulationError,
    SimulationRevertError,
)
from yieldzap.core.models import Call, TransactionOutcome
from yieldzap.core.utils.transaction import send_and_confirm, simulate_transaction
from yieldzap.core.utils.wallets import EoaWallet

_ALLOWANCE_MARKERS = ("allowance", "erc20: insufficient allowance")
_FUNDS_MARKERS = (
    "insufficient funds",
    "exceeds balance",
    "insufficient balance",
    "transfer amount exceeds",
)


def classify_simulation_error(exc: Exception) -> SimulationError:
    text = str(exc)
    lowered = text.lower()
    if any(marker in lowered for marker in _ALLOWANCE_MARKERS):
        return AllowanceTooLowError(f"Simulation failed (allowance): {text}")
    if any(marker in lowered for marker in _FUNDS_MARKERS):
        return InsufficientFundsError(f"Simulation failed (funds): {text}")
    return SimulationRevertError(f"Simulation reverted: {text}")


class StandardExecutor:
    """Simulate, sign, send and confirm one call from an EOA."""

    def __init__(
        self,
        *,
        chain_id: int = CHAIN_ID_BASE,
        receipt_timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
    ):
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout

    def _transaction(self, eoa: EoaWallet, call: Call) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "from": eoa.address,
            "to": call.to,
            "data": call.calldata,
            "value": int(call.value),
        }

    async def simulate(self, transaction: dict[str, Any]) -> None:
        try:
            await simulate_transaction(transaction)
        except (ContractLogicError, Web3RPCError, ValueError) as exc:
            raise classify_simulation_error(exc) from exc

    async def execute(
        self,
        eoa: EoaWallet,
        contract_address: str,
        abi: list[dict[str, Any]],
        fn_name: str,
        args: list[Any],
        value: int = 0,
    ) -> TransactionOutcome:
        call = Call(to=contract_address, abi=abi, fn_name=fn_name, args=args, value=value)
        return await self.execute_call(eoa, call)

    async def execute_call(self, eoa: EoaWallet, call: Call) -> TransactionOutcome:
        transaction = self._transaction(eoa, call)
        await self.simulate(transaction)

        try:
            tx_hash, receipt = await send_and_confirm(
                transaction, eoa.signing_callback, timeout=self.receipt_timeout
            )
        except OnChainRevertError as exc:
            logger.error(f"Transaction from {eoa.address} reverted: {exc}")
            return TransactionOutcome.failed(str(exc), path="standard", tx_hash=exc.tx_hash)
        except ExecutionTimeoutError as exc:
            logger.warning(str(exc))
            return TransactionOutcome.timed_out(
                str(exc), path="standard", details={"tx_hash": exc.reference}
            )

        return TransactionOutcome.succeeded(
            tx_hash, path="standard", gas_used=int(receipt.get("gasUsed") or 0)
        )
