"""Single entry point that turns an ``Intent`` into exactly one recorded outcome.

Deposits and buys pick a wallet by capability (gasless first) and are parked
for recovery when that wallet is short. Withdrawals and sells pick by
sufficiency (whichever wallet actually holds enough) and fail outright when
neither does.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger

from yieldzap.adapters.ledger_adapter.adapter import LedgerAdapter
from yieldzap.adapters.odos_adapter.adapter import OdosAdapter
from yieldzap.core.adapters.LendingAdapter import LendingAdapter
from yieldzap.core.adapters.models import LEND, SWAP, UNLEND, Operation
from yieldzap.core.clients.LedgerClient import PositionRecord, TransactionRecord
from yieldzap.core.clients.protocols import WalletStoreProtocol
from yieldzap.core.config import get_gasless_usdc_reserve, get_min_native_gas_wei
from yieldzap.core.constants.chains import CHAIN_EXPLORER_URLS, CHAIN_ID_BASE
from yieldzap.core.constants.contracts import (
    BASE_USDC,
    BASE_USDC_DECIMALS,
    INDEX_TOKENS,
)
from yieldzap.core.errors import (
    BundlerError,
    ExecutionTimeoutError,
    GaslessUnsupportedError,
    InsufficientBalanceError,
    InsufficientGasError,
    OnChainRevertError,
    PaymasterRejectedError,
    SmartWalletRequiredError,
    UnsupportedProtocolError,
    YieldzapError,
)
from yieldzap.core.models import Intent, TransactionOutcome
from yieldzap.core.utils.units import format_token_amount
from yieldzap.core.utils.wallets import EoaWallet, SmartWallet
from yieldzap.routing import messages
from yieldzap.routing.balances import BalanceSnapshotService
from yieldzap.routing.recovery import RecoveryManager
from yieldzap.routing.registry import ProtocolAdapterRegistry, build_default_registry
from yieldzap.routing.wallets import UserWallets, WalletResolver

Wallet = EoaWallet | SmartWallet

RECOVERABLE_KINDS = frozenset({"deposit", "swapBuy"})
# Gasless failures that happened before or at inclusion; the EOA may retry once.
FALLBACK_ERRORS = (PaymasterRejectedError, BundlerError, OnChainRevertError)


@dataclass
class FundingPlan:
    wallet: Wallet
    gasless: bool
    amount: int
    available: int


@dataclass
class Attempt:
    """What the ledger needs to know about an intent, filled in while routing."""

    token_address: str | None = None
    wallet_address: str | None = None
    pool_address: str | None = None
    deposit_address: str | None = None
    operation: Operation | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def _index_token(symbol: str) -> dict[str, Any]:
    token = INDEX_TOKENS.get(symbol.strip().lower())
    if token is None:
        raise UnsupportedProtocolError(symbol, list(INDEX_TOKENS))
    return token


class Router:
    def __init__(
        self,
        *,
        wallet_store: WalletStoreProtocol,
        registry: ProtocolAdapterRegistry | None = None,
        swap_adapter: OdosAdapter | None = None,
        ledger: LedgerAdapter | None = None,
        recovery: RecoveryManager | None = None,
        balances: BalanceSnapshotService | None = None,
        chain_id: int = CHAIN_ID_BASE,
    ):
        self.chain_id = chain_id
        self.resolver = WalletResolver(wallet_store)
        self.balances = balances or BalanceSnapshotService(self.resolver, chain_id)
        self.registry = registry or build_default_registry()
        self.swap_adapter = swap_adapter or OdosAdapter()
        self.ledger = ledger or LedgerAdapter()
        self.recovery = recovery or RecoveryManager()
        self.recovery.attach(replay=self.execute, funds_check=self.funds_for)
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def route_deposit(
        self, user_id: str, protocol: str, amount: str, **context: Any
    ) -> TransactionOutcome:
        return await self.execute(
            Intent(
                kind="deposit",
                user_id=user_id,
                protocol_or_token=protocol,
                amount=amount,
                context=context,
            )
        )

    async def route_withdraw(
        self,
        user_id: str,
        protocol: str,
        amount: str,
        claim_rewards: bool | None = None,
    ) -> TransactionOutcome:
        return await self.execute(
            Intent(
                kind="withdraw",
                user_id=user_id,
                protocol_or_token=protocol,
                amount=amount,
                claim_rewards=claim_rewards,
            )
        )

    async def route_swap(
        self,
        user_id: str,
        token: str,
        amount: str,
        direction: Literal["buy", "sell"],
        **context: Any,
    ) -> TransactionOutcome:
        kind = "swapBuy" if direction == "buy" else "swapSell"
        return await self.execute(
            Intent(
                kind=kind,
                user_id=user_id,
                protocol_or_token=token,
                amount=amount,
                context=context,
            )
        )

    async def execute(self, intent: Intent) -> TransactionOutcome:
        log = logger.bind(user_id=intent.user_id, intent=intent.kind)
        attempt = Attempt()
        async with self._locks[intent.user_id]:
            log.info(
                f"Routing {intent.kind} of {intent.amount} ({intent.protocol_or_token})"
            )
            try:
                outcome = await self._dispatch(intent, attempt)
            except InsufficientBalanceError as exc:
                if intent.kind in RECOVERABLE_KINDS:
                    return await self._park(intent, exc, attempt)
                log.warning(f"Insufficient funds, not recoverable: {exc}")
                outcome = self._failure(intent, exc)
            except YieldzapError as exc:
                log.warning(f"{intent.kind} failed: {exc}")
                outcome = self._failure(intent, exc)
            except Exception as exc:  # noqa: BLE001
                log.exception(f"Unexpected error routing {intent.kind}: {exc}")
                outcome = self._failure(intent, exc)

            outcome = self._with_message(intent, outcome)
            await self._record(intent, outcome, attempt)
            log.info(f"Done: status={outcome.status} tx={outcome.tx_hash}")
            return outcome

    async def funds_for(self, intent: Intent) -> tuple[int, int]:
        """``(available, required)`` for a recoverable intent, from fresh balances."""
        wallets = await self.resolver.wallets_for(intent.user_id)
        try:
            if intent.kind == "deposit":
                adapter = self.registry.adapter_for(intent.protocol_or_token)
                plan = await self._plan_deposit(intent, adapter, wallets, check_gas=False)
            elif intent.kind == "swapBuy":
                plan = await self._plan_buy(intent, wallets)
            else:
                raise ValueError(f"{intent.kind} intents are never recovered")
        except InsufficientBalanceError as exc:
            return exc.available, exc.required
        return plan.available, plan.amount

    async def _dispatch(self, intent: Intent, attempt: Attempt) -> TransactionOutcome:
        if intent.kind == "deposit":
            return await self._deposit(intent, attempt)
        if intent.kind == "withdraw":
            return await self._withdraw(intent, attempt)
        if intent.kind == "swapBuy":
            return await self._buy(intent, attempt)
        return await self._sell(intent, attempt)

    async def _select_capability_wallet(
        self,
        wallets: UserWallets,
        *,
        protocol: str,
        gasless_supported: bool = True,
        standard_supported: bool = True,
        check_gas: bool = True,
    ) -> tuple[Wallet, bool]:
        if wallets.smart_wallet is not None and gasless_supported:
            return wallets.smart_wallet, True
        if wallets.eoa is not None and standard_supported:
            if check_gas:
                native = await self.balances.native_balance(wallets.eoa.address)
                minimum = get_min_native_gas_wei()
                if native < minimum:
                    raise InsufficientGasError(native, minimum)
            return wallets.eoa, False
        if not standard_supported:
            raise SmartWalletRequiredError(protocol)
        raise GaslessUnsupportedError(protocol)

    def _spendable(self, intent: Intent, available: int, gasless: bool) -> int:
        if intent.is_max:
            return available - get_gasless_usdc_reserve() if gasless else available
        return intent.amount_raw(BASE_USDC_DECIMALS)

    async def _plan_deposit(
        self,
        intent: Intent,
        adapter: LendingAdapter,
        wallets: UserWallets,
        *,
        check_gas: bool = True,
    ) -> FundingPlan:
        wallet, gasless = await self._select_capability_wallet(
            wallets,
            protocol=adapter.display_name or adapter.protocol,
            gasless_supported=adapter.supports_gasless,
            standard_supported=adapter.supports_standard,
            check_gas=check_gas,
        )
        snapshot = await self.balances.snapshot(intent.user_id, adapter.asset)
        available = snapshot.smart_wallet_balance if gasless else snapshot.eoa_balance
        return self._fund(intent, wallet, gasless, adapter.asset, available)

    def _fund(
        self, intent: Intent, wallet: Wallet, gasless: bool, token: str, available: int
    ) -> FundingPlan:
        amount = self._spendable(intent, available, gasless)
        if intent.is_max and amount <= 0:
            reserve = get_gasless_usdc_reserve() if gasless else 0
            raise InsufficientBalanceError(token, reserve + 1, available)
        if amount > available:
            raise InsufficientBalanceError(token, amount, available)
        return FundingPlan(wallet=wallet, gasless=gasless, amount=amount, available=available)

    async def _deposit(self, intent: Intent, attempt: Attempt) -> TransactionOutcome:
        adapter = self.registry.adapter_for(intent.protocol_or_token)
        wallets = await self.resolver.wallets_for(intent.user_id)
        attempt.token_address = adapter.asset
        attempt.pool_address = adapter.pool_address
        attempt.deposit_address = wallets.deposit_address

        plan = await self._plan_deposit(intent, adapter, wallets)
        attempt.wallet_address = plan.wallet.address
        logger.bind(user_id=intent.user_id).info(
            f"Deposit plan: {plan.amount} via {'gasless' if plan.gasless else 'standard'} "
            f"from {plan.wallet.address}"
        )
        outcome = await adapter.deposit(plan.wallet, plan.amount, intent.user_id)
        attempt.operation = LEND(
            adapter=adapter.adapter_type or adapter.protocol,
            token_address=adapter.asset,
            pool_address=adapter.pool_address,
            amount=str(plan.amount),
            transaction_hash=outcome.tx_hash,
            transaction_chain_id=self.chain_id,
            gasless=plan.gasless,
        )
        attempt.extra["amount_raw"] = plan.amount
        return outcome

    async def _withdraw(self, intent: Intent, attempt: Attempt) -> TransactionOutcome:
        adapter = self.registry.adapter_for(intent.protocol_or_token)
        wallets = await self.resolver.wallets_for(intent.user_id)
        attempt.token_address = adapter.asset
        attempt.pool_address = adapter.pool_address

        positions = await self.balances.position_snapshot(intent.user_id, adapter)
        required = 1 if intent.is_max else intent.amount_raw(adapter.asset_decimals)
        amount = None if intent.is_max else required

        smart = wallets.smart_wallet
        eoa = wallets.eoa
        smart_ok = (
            smart is not None
            and adapter.supports_gasless
            and positions.smart_wallet_balance >= required
        )
        eoa_ok = (
            eoa is not None
            and adapter.supports_standard
            and positions.eoa_balance >= required
        )
        if not smart_ok and not eoa_ok:
            raise InsufficientBalanceError(
                adapter.display_name or adapter.protocol,
                required,
                max(positions.smart_wallet_balance, positions.eoa_balance),
            )

        log = logger.bind(user_id=intent.user_id)
        outcome: TransactionOutcome | None = None
        fallback_reason: str | None = None
        if smart_ok:
            attempt.wallet_address = smart.address
            try:
                outcome = await adapter.withdraw(
                    smart, amount, intent.claim_rewards, intent.user_id
                )
            except FALLBACK_ERRORS as exc:
                if not eoa_ok:
                    raise
                fallback_reason = str(exc)
            else:
                if outcome.status == "failed" and eoa_ok:
                    fallback_reason = outcome.error
            if fallback_reason is not None:
                log.warning(
                    f"Gasless withdraw failed, retrying once from EOA: {fallback_reason}"
                )
                outcome = None

        gasless = outcome is not None
        if outcome is None:
            attempt.wallet_address = eoa.address
            outcome = await adapter.withdraw(
                eoa, amount, intent.claim_rewards, intent.user_id
            )
            if fallback_reason is not None:
                outcome = outcome.model_copy(
                    update={
                        "details": {
                            **outcome.details,
                            "fallback_from": "gasless",
                            "gasless_error": messages.truncate_detail(fallback_reason),
                        }
                    }
                )

        attempt.operation = UNLEND(
            adapter=adapter.adapter_type or adapter.protocol,
            token_address=adapter.asset,
            pool_address=adapter.pool_address,
            amount="max" if amount is None else str(amount),
            claim_rewards=(
                adapter.default_claim_rewards(intent.is_max)
                if intent.claim_rewards is None
                else intent.claim_rewards
            ),
            transaction_hash=outcome.tx_hash,
            transaction_chain_id=self.chain_id,
            gasless=gasless,
        )
        return outcome

    async def _plan_buy(self, intent: Intent, wallets: UserWallets) -> FundingPlan:
        wallet, gasless = await self._select_capability_wallet(
            wallets, protocol="Odos", check_gas=False
        )
        snapshot = await self.balances.snapshot(intent.user_id, BASE_USDC)
        available = snapshot.smart_wallet_balance if gasless else snapshot.eoa_balance
        return self._fund(intent, wallet, gasless, BASE_USDC, available)

    async def _buy(self, intent: Intent, attempt: Attempt) -> TransactionOutcome:
        token = _index_token(intent.protocol_or_token)
        wallets = await self.resolver.wallets_for(intent.user_id)
        attempt.token_address = BASE_USDC
        attempt.deposit_address = wallets.deposit_address

        plan = await self._plan_buy(intent, wallets)
        attempt.wallet_address = plan.wallet.address
        quote = await self.swap_adapter.quote(
            BASE_USDC, str(token["address"]), plan.amount, plan.wallet.address
        )
        outcome = await self.swap_adapter.swap(plan.wallet, quote)
        attempt.operation = SWAP(
            adapter=self.swap_adapter.adapter_type,
            from_token=BASE_USDC,
            to_token=str(token["address"]),
            from_amount=str(quote.in_amount),
            to_amount=str(quote.out_amount),
            path_id=quote.path_id,
            price_impact_pct=quote.price_impact_pct,
            transaction_hash=outcome.tx_hash,
            transaction_chain_id=self.chain_id,
            gasless=plan.gasless,
        )
        return outcome

    async def _sell(self, intent: Intent, attempt: Attempt) -> TransactionOutcome:
        token = _index_token(intent.protocol_or_token)
        address = str(token["address"])
        wallets = await self.resolver.wallets_for(intent.user_id)
        attempt.token_address = address

        snapshot = await self.balances.snapshot(intent.user_id, address)
        held = {
            "smart": snapshot.smart_wallet_balance if wallets.smart_wallet else 0,
            "eoa": snapshot.eoa_balance if wallets.eoa else 0,
        }
        if intent.is_max:
            side = "smart" if held["smart"] > 0 else "eoa"
            amount = held[side]
            if amount <= 0:
                raise InsufficientBalanceError(str(token["symbol"]), 1, 0)
        else:
            amount = intent.amount_raw(int(token["decimals"]))
            if held["smart"] >= amount:
                side = "smart"
            elif held["eoa"] >= amount:
                side = "eoa"
            else:
                raise InsufficientBalanceError(
                    str(token["symbol"]), amount, max(held.values())
                )

        wallet = wallets.smart_wallet if side == "smart" else wallets.eoa
        attempt.wallet_address = wallet.address
        quote = await self.swap_adapter.quote(address, BASE_USDC, amount, wallet.address)
        outcome = await self.swap_adapter.swap(wallet, quote)
        attempt.operation = SWAP(
            adapter=self.swap_adapter.adapter_type,
            from_token=address,
            to_token=BASE_USDC,
            from_amount=str(quote.in_amount),
            to_amount=str(quote.out_amount),
            path_id=quote.path_id,
            price_impact_pct=quote.price_impact_pct,
            transaction_hash=outcome.tx_hash,
            transaction_chain_id=self.chain_id,
            gasless=side == "smart",
        )
        return outcome

    async def _park(
        self, intent: Intent, exc: InsufficientBalanceError, attempt: Attempt
    ) -> TransactionOutcome:
        pending = await self.recovery.capture(intent, exc.shortage)
        shortage = format_token_amount(exc.shortage, BASE_USDC_DECIMALS)
        text = messages.shortage_message(
            intent,
            shortage,
            attempt.deposit_address or "",
            self.recovery.window_minutes,
        )
        return TransactionOutcome.pending(
            text,
            shortage=str(exc.shortage),
            expires_at=pending.expires_at.isoformat(),
            deposit_address=attempt.deposit_address,
        )

    def _failure(self, intent: Intent, exc: Exception) -> TransactionOutcome:
        reason = (
            exc.user_message
            if isinstance(exc, YieldzapError)
            else "An unexpected error occurred."
        )
        detail = messages.truncate_detail(str(exc))
        return TransactionOutcome.failed(
            detail or reason,
            tx_hash=getattr(exc, "tx_hash", None),
            user_message=messages.failure_message(intent, reason, detail),
        )

    def _with_message(self, intent: Intent, outcome: TransactionOutcome) -> TransactionOutcome:
        if outcome.user_message:
            return outcome
        if outcome.success:
            explorer = CHAIN_EXPLORER_URLS.get(self.chain_id)
            link = (
                f"{explorer.rstrip('/')}/tx/{outcome.tx_hash}"
                if explorer
                else str(outcome.tx_hash)
            )
            text = messages.success_message(intent, link, outcome.path == "gasless")
        elif outcome.status == "timeout":
            text = messages.failure_message(
                intent, ExecutionTimeoutError.user_message, outcome.error
            )
        else:
            text = messages.failure_message(
                intent, OnChainRevertError.user_message, outcome.error
            )
        return outcome.model_copy(update={"user_message": text})

    async def _record(
        self, intent: Intent, outcome: TransactionOutcome, attempt: Attempt
    ) -> None:
        record = TransactionRecord(
            user_id=intent.user_id,
            intent_kind=intent.kind,
            protocol=intent.protocol_or_token,
            amount=intent.amount,
            token_address=attempt.token_address,
            wallet_address=attempt.wallet_address,
            outcome=outcome,
            operation=attempt.operation,
        )
        ok, result = await self.ledger.record_transaction(record)
        if not ok:
            logger.bind(user_id=intent.user_id).error(f"Ledger write failed: {result}")

        if intent.kind == "deposit" and outcome.success:
            position = PositionRecord(
                user_id=intent.user_id,
                protocol=intent.protocol_or_token,
                pool_address=attempt.pool_address or "",
                wallet_address=attempt.wallet_address or "",
                amount=str(attempt.extra.get("amount_raw", intent.amount)),
                apy=intent.context.get("apy"),
                tx_hash=outcome.tx_hash or "",
            )
            ok, result = await self.ledger.record_position(position)
            if not ok:
                logger.bind(user_id=intent.user_id).error(
                    f"Position write failed: {result}"
                )
