from __future__ import annotations

from abc import abstractmethod
from typing import Any

from yieldzap.core.adapters.BaseAdapter import BaseAdapter
from yieldzap.core.constants.base import MAX_UINT256
from yieldzap.core.constants.contracts import BASE_USDC, BASE_USDC_DECIMALS
from yieldzap.core.constants.erc20_abi import ERC20_ABI
from yieldzap.core.config import get_min_native_gas_wei
from yieldzap.core.errors import (
    GaslessUnsupportedError,
    InsufficientGasError,
    SmartWalletRequiredError,
    YieldzapError,
)
from yieldzap.core.execution.gasless import GaslessExecutor
from yieldzap.core.execution.standard import StandardExecutor
from yieldzap.core.models import Call, ExecutionPlan, TransactionOutcome
from yieldzap.core.utils.tokens import (
    ensure_allowance,
    get_token_allowance,
    get_token_balance,
)
from yieldzap.core.utils.wallets import EoaWallet, SmartWallet

Wallet = EoaWallet | SmartWallet


class LendingAdapter(BaseAdapter):
    """USDC supply/withdraw for one protocol, on either execution path.

    Subclasses only describe the protocol's calls; path selection, allowance
    handling and the native-gas precondition live here.
    """

    protocol: str = ""
    display_name: str = ""
    asset: str = BASE_USDC
    asset_decimals: int = BASE_USDC_DECIMALS
    supports_gasless: bool = True
    supports_standard: bool = True

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        gasless_executor: GaslessExecutor | None = None,
        standard_executor: StandardExecutor | None = None,
    ):
        super().__init__(f"{self.protocol}_adapter", config)
        self.gasless_executor = gasless_executor or GaslessExecutor()
        self.standard_executor = standard_executor or StandardExecutor()

    @property
    @abstractmethod
    def spender(self) -> str:
        """Contract that pulls USDC on deposit."""

    @property
    def pool_address(self) -> str:
        return self.spender

    @abstractmethod
    def build_deposit_call(self, owner: str, amount: int) -> Call: ...

    @abstractmethod
    async def build_withdraw_calls(
        self, owner: str, amount: int | None, *, claim_rewards: bool
    ) -> list[Call]:
        """``amount=None`` withdraws the whole position."""

    @abstractmethod
    async def get_position(self, wallet_address: str) -> int:
        """Underlying USDC currently supplied by ``wallet_address``."""

    def default_claim_rewards(self, is_max: bool) -> bool:
        return is_max

    def _require_path(self, wallet: Wallet) -> None:
        if isinstance(wallet, SmartWallet) and not self.supports_gasless:
            raise GaslessUnsupportedError(self.display_name or self.protocol)
        if isinstance(wallet, EoaWallet) and not self.supports_standard:
            raise SmartWalletRequiredError(self.display_name or self.protocol)

    async def check_native_gas(self, wallet_address: str) -> int:
        balance = await get_token_balance(None, self.chain_id, wallet_address)
        minimum = get_min_native_gas_wei()
        if balance < minimum:
            raise InsufficientGasError(balance, minimum)
        return balance

    def approve_call(self, amount: int = MAX_UINT256) -> Call:
        return Call(
            to=self.asset, abi=ERC20_ABI, fn_name="approve", args=[self.spender, amount]
        )

    async def build_deposit_calls(self, owner: str, amount: int) -> list[Call]:
        """Approve (only if the allowance is short) followed by the supply call."""
        calls: list[Call] = []
        allowance = await get_token_allowance(self.asset, self.chain_id, owner, self.spender)
        if allowance < amount:
            calls.append(self.approve_call())
        calls.append(self.build_deposit_call(owner, amount))
        return calls

    async def plan_deposit(self, wallet: Wallet, amount: int) -> ExecutionPlan:
        """Gasless plans bundle the approve; standard plans only hold the supply call."""
        if isinstance(wallet, SmartWallet):
            calls = await self.build_deposit_calls(wallet.address, amount)
            return ExecutionPlan.for_calls(calls, gasless=True)
        return ExecutionPlan.for_calls(
            [self.build_deposit_call(wallet.address, amount)], gasless=False
        )

    async def plan_withdraw(
        self, wallet: Wallet, amount: int | None, *, claim_rewards: bool
    ) -> ExecutionPlan:
        calls = await self.build_withdraw_calls(
            wallet.address, amount, claim_rewards=claim_rewards
        )
        return ExecutionPlan.for_calls(calls, gasless=isinstance(wallet, SmartWallet))

    async def deposit(
        self, wallet: Wallet, amount: int, user_id: str | None = None
    ) -> TransactionOutcome:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        self._require_path(wallet)
        self.logger.info(
            f"Depositing {amount} into {self.protocol} from {wallet.address}"
            + (f" for {user_id}" if user_id else "")
        )

        if isinstance(wallet, EoaWallet):
            await self.check_native_gas(wallet.address)
        plan = await self.plan_deposit(wallet, amount)
        if plan.gasless:
            return await self.gasless_executor.execute(wallet, plan.calls, self.asset)

        await ensure_allowance(
            token_address=self.asset,
            owner=wallet.address,
            spender=self.spender,
            amount=amount,
            chain_id=self.chain_id,
            signing_callback=wallet.signing_callback,
            approval_amount=MAX_UINT256,
        )
        return await self.standard_executor.execute_call(wallet, plan.calls[0])

    async def withdraw(
        self,
        wallet: Wallet,
        amount: int | None,
        claim_rewards: bool | None = None,
        user_id: str | None = None,
    ) -> TransactionOutcome:
        is_max = amount is None
        if not is_max and int(amount) <= 0:
            raise ValueError("amount must be positive")
        claim = self.default_claim_rewards(is_max) if claim_rewards is None else claim_rewards
        self._require_path(wallet)
        self.logger.info(
            f"Withdrawing {'max' if is_max else amount} from {self.protocol} "
            f"to {wallet.address} (claim_rewards={claim})"
            + (f" for {user_id}" if user_id else "")
        )

        if isinstance(wallet, EoaWallet):
            await self.check_native_gas(wallet.address)
        plan = await self.plan_withdraw(
            wallet, None if is_max else int(amount), claim_rewards=claim
        )

        if plan.gasless:
            return await self.gasless_executor.execute(wallet, plan.calls, self.asset)

        outcome = await self.standard_executor.execute_call(wallet, plan.calls[0])
        if not outcome.success:
            return outcome
        follow_ups: list[str] = []
        # The withdrawal already landed; a failed reward claim must not mask it.
        for call in plan.calls[1:]:
            try:
                extra = await self.standard_executor.execute_call(wallet, call)
            except YieldzapError as exc:
                self.logger.warning(f"Follow-up call after withdraw failed: {exc}")
                continue
            if extra.success and extra.tx_hash:
                follow_ups.append(extra.tx_hash)
            else:
                self.logger.warning(f"Follow-up call after withdraw failed: {extra.error}")
        if follow_ups:
            outcome = outcome.model_copy(
                update={"details": {**outcome.details, "follow_up_tx_hashes": follow_ups}}
            )
        return outcome
