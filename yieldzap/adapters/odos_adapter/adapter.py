from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from yieldzap.core.adapters.BaseAdapter import BaseAdapter
from yieldzap.core.clients.OdosClient import ODOS_CLIENT, OdosClient
from yieldzap.core.config import (
    get_default_slippage_pct,
    get_min_native_gas_wei,
    get_quote_rate_limit,
)
from yieldzap.core.constants.base import (
    ADAPTER_ODOS,
    MAX_PRICE_IMPACT_PCT,
    MAX_SLIPPAGE_PCT,
    MIN_SLIPPAGE_PCT,
    QUOTE_RATE_WINDOW_SECONDS,
)
from yieldzap.core.constants.contracts import BASE_USDC, ODOS_ROUTER_V3
from yieldzap.core.constants.erc20_abi import ERC20_ABI
from yieldzap.core.errors import (
    InsufficientGasError,
    InvalidSlippageError,
    NoLiquidityError,
    QuoteUnavailableError,
    RateLimitedError,
    SlippageTooHighError,
)
from yieldzap.core.execution.gasless import GaslessExecutor
from yieldzap.core.execution.standard import StandardExecutor
from yieldzap.core.models import Call, Quote, TransactionOutcome
from yieldzap.core.utils.tokens import (
    ensure_allowance,
    get_token_balance,
    is_native_token,
)
from yieldzap.core.utils.wallets import EoaWallet, SmartWallet


class QuoteRateLimiter:
    """Sliding-window limiter shared by every quote caller in the process."""

    def __init__(
        self,
        max_requests: int | None = None,
        window_seconds: float = QUOTE_RATE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def limit(self) -> int:
        return self.max_requests if self.max_requests is not None else get_quote_rate_limit()

    async def acquire(self) -> None:
        async with self._lock:
            now = self.clock()
            while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
                self._timestamps.popleft()
            if len(self._timestamps) >= self.limit:
                retry_after = self.window_seconds - (now - self._timestamps[0])
                raise RateLimitedError(max(retry_after, 0.0))
            self._timestamps.append(now)

    def reset(self) -> None:
        self._timestamps.clear()


QUOTE_RATE_LIMITER = QuoteRateLimiter()


def _parse_quote(
    data: dict[str, Any], input_token: str, output_token: str, amount: int
) -> Quote:
    out_amounts = [int(v) for v in (data.get("outAmounts") or [])]
    in_amounts = data.get("inAmounts") or [amount]
    return Quote(
        path_id=data.get("pathId"),
        input_token=input_token,
        output_token=output_token,
        in_amount=int(in_amounts[0]),
        out_amounts=out_amounts,
        price_impact_pct=abs(float(data.get("priceImpact") or 0.0)),
        gas_estimate=float(data.get("gasEstimate") or 0.0),
        transaction=data.get("transaction") or {},
    )


class OdosAdapter(BaseAdapter):
    adapter_type = ADAPTER_ODOS

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        odos_client: OdosClient | None = None,
        rate_limiter: QuoteRateLimiter | None = None,
        gasless_executor: GaslessExecutor | None = None,
        standard_executor: StandardExecutor | None = None,
    ):
        super().__init__("odos_adapter", config)
        self.odos_client = odos_client or ODOS_CLIENT
        self.rate_limiter = rate_limiter or QUOTE_RATE_LIMITER
        self.gasless_executor = gasless_executor or GaslessExecutor()
        self.standard_executor = standard_executor or StandardExecutor()

    async def quote(
        self,
        input_token: str,
        output_token: str,
        input_amount_wei: int,
        user_address: str,
        slippage_pct: float | None = None,
    ) -> Quote:
        """Fetch a single-use quote with an executable transaction attached.

        Quotes without liquidity or with price impact above the hard limit are
        rejected before any transaction is assembled.
        """
        await self.rate_limiter.acquire()

        slippage = get_default_slippage_pct() if slippage_pct is None else float(slippage_pct)
        if not MIN_SLIPPAGE_PCT <= slippage <= MAX_SLIPPAGE_PCT:
            raise InvalidSlippageError(
                f"Slippage {slippage}% outside [{MIN_SLIPPAGE_PCT}, {MAX_SLIPPAGE_PCT}]"
            )
        amount = int(input_amount_wei)
        if amount <= 0:
            raise ValueError("input amount must be positive")

        data = await self.odos_client.get_quote(
            input_token=input_token,
            output_token=output_token,
            amount=amount,
            user_address=user_address,
            slippage_pct=slippage,
            chain_id=self.chain_id,
        )
        quote = _parse_quote(data, input_token, output_token, amount)

        if not quote.out_amounts or quote.out_amount <= 0:
            raise NoLiquidityError(
                f"No route from {input_token} to {output_token} for {amount}"
            )
        if quote.price_impact_pct > MAX_PRICE_IMPACT_PCT:
            raise SlippageTooHighError(quote.price_impact_pct, MAX_PRICE_IMPACT_PCT)

        if not quote.transaction:
            if not quote.path_id:
                raise QuoteUnavailableError("Odos quote has neither transaction nor pathId")
            assembled = await self.odos_client.assemble(
                path_id=quote.path_id, user_address=user_address
            )
            transaction = assembled.get("transaction") or {}
            if not transaction.get("data"):
                raise QuoteUnavailableError(
                    f"Odos assemble returned no transaction for {quote.path_id}"
                )
            quote = quote.model_copy(update={"transaction": transaction})

        self.logger.info(
            f"Odos quote {quote.path_id}: {amount} {input_token} -> "
            f"{quote.out_amount} {output_token} (impact {quote.price_impact_pct:.2f}%)"
        )
        return quote

    def router_address(self, quote: Quote) -> str:
        return quote.transaction.get("to") or ODOS_ROUTER_V3

    def build_swap_calls(self, quote: Quote) -> list[Call]:
        """Approve the router for exactly ``in_amount`` (ERC-20 input only), then swap."""
        router = self.router_address(quote)
        calls: list[Call] = []
        if not is_native_token(quote.input_token):
            calls.append(
                Call(
                    to=quote.input_token,
                    abi=ERC20_ABI,
                    fn_name="approve",
                    args=[router, int(quote.in_amount)],
                )
            )
        calls.append(
            Call(
                to=router,
                data=quote.transaction["data"],
                value=int(quote.transaction.get("value") or 0),
            )
        )
        return calls

    async def swap(
        self,
        wallet: EoaWallet | SmartWallet,
        quote: Quote,
        gas_token: str = BASE_USDC,
    ) -> TransactionOutcome:
        """Execute ``quote`` as-is. Gasless swaps pay the paymaster in ``gas_token``."""
        if isinstance(wallet, SmartWallet):
            outcome = await self.gasless_executor.execute(
                wallet, self.build_swap_calls(quote), gas_token
            )
        else:
            balance = await get_token_balance(None, self.chain_id, wallet.address)
            minimum = get_min_native_gas_wei()
            if balance < minimum:
                raise InsufficientGasError(balance, minimum)
            if not is_native_token(quote.input_token):
                await ensure_allowance(
                    token_address=quote.input_token,
                    owner=wallet.address,
                    spender=self.router_address(quote),
                    amount=quote.in_amount,
                    chain_id=self.chain_id,
                    signing_callback=wallet.signing_callback,
                    approval_amount=quote.in_amount,
                )
            outcome = await self.standard_executor.execute_call(
                wallet, self.build_swap_calls(quote)[-1]
            )

        if outcome.success:
            outcome = outcome.model_copy(
                update={
                    "details": {
                        **outcome.details,
                        "path_id": quote.path_id,
                        "out_amount": str(quote.out_amount),
                    }
                }
            )
        return outcome
