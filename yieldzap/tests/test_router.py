from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import ANY, AsyncMock, MagicMock
from uuid import uuid4

import pytest
from aiocache import Cache

from yieldzap.adapters.ledger_adapter.adapter import LedgerAdapter
from yieldzap.core.clients.LedgerClient import LedgerClient
from yieldzap.core.constants.base import GASLESS_USDC_RESERVE
from yieldzap.core.constants.contracts import AAVE_V3_POOL, BASE_USDC, LCAP_TOKEN
from yieldzap.core.errors import (
    ExecutionTimeoutError,
    PaymasterRejectedError,
)
from yieldzap.core.models import Quote, TransactionOutcome
from yieldzap.core.utils.wallets import EoaWallet, SmartWallet
from yieldzap.routing.balances import BalanceSnapshot
from yieldzap.routing.recovery import PendingIntentStore, RecoveryManager
from yieldzap.routing.registry import ProtocolAdapterRegistry
from yieldzap.routing.router import Router

USER = "user-1"
EOA = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
SMART = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
TX = "0x" + "ab" * 32
USDC = 10**6


class FakeWalletStore:
    def __init__(self, eoa: EoaWallet | None, smart: SmartWallet | None):
        self.eoa = eoa
        self.smart = smart

    async def get_wallet(self, user_id: str) -> EoaWallet | None:
        return self.eoa

    async def get_smart_wallet(self, user_id: str) -> SmartWallet | None:
        return self.smart


class FakeMonitor:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int, dict[str, Any]]] = []

    async def start_monitoring(
        self, user_id: str, window_minutes: int, context: dict[str, Any]
    ) -> None:
        self.calls.append((user_id, window_minutes, context))


@pytest.fixture
def eoa() -> EoaWallet:
    return EoaWallet(address=EOA, signing_callback=AsyncMock())


@pytest.fixture
def smart() -> SmartWallet:
    return SmartWallet(address=SMART, owner_address=EOA, sign_hash=AsyncMock())


@pytest.fixture
def lending() -> MagicMock:
    adapter = MagicMock()
    adapter.protocol = "aave"
    adapter.display_name = "Aave"
    adapter.adapter_type = "AAVE"
    adapter.asset = BASE_USDC
    adapter.asset_decimals = 6
    adapter.pool_address = AAVE_V3_POOL
    adapter.supports_gasless = True
    adapter.supports_standard = True
    adapter.default_claim_rewards = MagicMock(side_effect=lambda is_max: is_max)
    adapter.deposit = AsyncMock(
        return_value=TransactionOutcome.succeeded(TX, path="gasless")
    )
    adapter.withdraw = AsyncMock(
        return_value=TransactionOutcome.succeeded(TX, path="gasless")
    )
    return adapter


@pytest.fixture
def balances() -> MagicMock:
    service = MagicMock()
    service.snapshot = AsyncMock(
        return_value=BalanceSnapshot(token=BASE_USDC, smart_wallet_balance=100 * USDC)
    )
    service.position_snapshot = AsyncMock(
        return_value=BalanceSnapshot(token=AAVE_V3_POOL)
    )
    service.native_balance = AsyncMock(return_value=10**18)
    return service


@pytest.fixture
def swapper() -> MagicMock:
    adapter = MagicMock()
    adapter.adapter_type = "ODOS"
    adapter.quote = AsyncMock(
        side_effect=lambda input_token, output_token, amount, user: Quote(
            path_id="path-1",
            input_token=input_token,
            output_token=output_token,
            in_amount=amount,
            out_amounts=[7 * 10**18],
            transaction={"to": EOA, "data": "0x01"},
        )
    )
    adapter.swap = AsyncMock(return_value=TransactionOutcome.succeeded(TX, path="gasless"))
    return adapter


@pytest.fixture
def ledger_client(tmp_path: Path) -> LedgerClient:
    return LedgerClient(tmp_path)


@pytest.fixture
def monitor() -> FakeMonitor:
    return FakeMonitor()


@pytest.fixture
def recovery(monitor: FakeMonitor) -> RecoveryManager:
    return RecoveryManager(
        PendingIntentStore(Cache(Cache.MEMORY, namespace=uuid4().hex)), monitor
    )


def make_router(
    wallets: FakeWalletStore,
    lending: MagicMock,
    balances: MagicMock,
    swapper: MagicMock,
    ledger_client: LedgerClient,
    recovery: RecoveryManager,
) -> Router:
    registry = ProtocolAdapterRegistry()
    registry.register("aave", lending, ("aave v3",))
    return Router(
        wallet_store=wallets,
        registry=registry,
        swap_adapter=swapper,
        ledger=LedgerAdapter(ledger_client=ledger_client),
        recovery=recovery,
        balances=balances,
    )


@pytest.fixture
def router(eoa, smart, lending, balances, swapper, ledger_client, recovery) -> Router:
    return make_router(
        FakeWalletStore(eoa, smart), lending, balances, swapper, ledger_client, recovery
    )


def transactions(client: LedgerClient) -> list[dict[str, Any]]:
    return json.loads(client.transactions_file.read_text())["transactions"]


def positions(client: LedgerClient) -> list[dict[str, Any]]:
    return json.loads(client.positions_file.read_text())["positions"]


class TestDeposit:
    @pytest.mark.asyncio
    async def test_gasless_deposit_skips_native_gas(
        self, router, lending, balances, smart, ledger_client
    ):
        outcome = await router.route_deposit(USER, "Aave V3", "50", apy=4.2)

        assert outcome.success
        assert outcome.tx_hash == TX
        lending.deposit.assert_awaited_once_with(smart, 50 * USDC, USER)
        balances.native_balance.assert_not_awaited()
        assert f"https://basescan.org/tx/{TX}" in outcome.user_message
        assert "Gas was paid in USDC" in outcome.user_message

        (record,) = transactions(ledger_client)
        assert record["outcome"]["status"] == "success"
        assert record["operation"]["type"] == "LEND"
        assert record["operation"]["gasless"] is True
        assert record["wallet_address"] == SMART

        (position,) = positions(ledger_client)
        assert position["amount"] == str(50 * USDC)
        assert position["apy"] == 4.2

    @pytest.mark.asyncio
    async def test_max_deposit_keeps_paymaster_reserve(self, router, lending):
        await router.route_deposit(USER, "aave", "max")

        _, amount, _ = lending.deposit.await_args.args
        assert amount == 100 * USDC - GASLESS_USDC_RESERVE

    @pytest.mark.asyncio
    async def test_short_deposit_is_parked_without_record(
        self, router, lending, balances, recovery, monitor, ledger_client
    ):
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=10 * USDC
        )

        outcome = await router.route_deposit(USER, "aave", "50")

        assert outcome.status == "pending"
        assert not outcome.success
        assert outcome.details["shortage"] == str(40 * USDC)
        assert SMART in outcome.user_message
        assert "40 more USDC" in outcome.user_message
        lending.deposit.assert_not_awaited()
        assert transactions(ledger_client) == []

        pending = await recovery.get(USER)
        assert pending is not None
        assert pending.shortage_amount == 40 * USDC
        assert monitor.calls == [(USER, 5, ANY)]

    @pytest.mark.asyncio
    async def test_smart_wallet_short_does_not_spend_eoa(
        self, router, lending, balances
    ):
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, eoa_balance=500 * USDC, smart_wallet_balance=0
        )

        outcome = await router.route_deposit(USER, "aave", "50")

        assert outcome.status == "pending"
        lending.deposit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_standard_deposit_needs_native_gas(
        self, eoa, lending, balances, swapper, ledger_client, recovery
    ):
        router = make_router(
            FakeWalletStore(eoa, None), lending, balances, swapper, ledger_client, recovery
        )
        balances.native_balance.return_value = 0

        outcome = await router.route_deposit(USER, "aave", "50")

        assert outcome.status == "failed"
        assert "Not enough ETH" in outcome.user_message
        lending.deposit.assert_not_awaited()
        assert len(transactions(ledger_client)) == 1

    @pytest.mark.asyncio
    async def test_unknown_protocol_fails(self, router, ledger_client):
        outcome = await router.route_deposit(USER, "eulerswap", "5")

        assert outcome.status == "failed"
        assert "not supported" in outcome.user_message
        assert len(transactions(ledger_client)) == 1

    @pytest.mark.asyncio
    async def test_no_wallet_is_recorded_failure(
        self, lending, balances, swapper, ledger_client, recovery
    ):
        router = make_router(
            FakeWalletStore(None, None), lending, balances, swapper, ledger_client, recovery
        )

        outcome = await router.route_deposit(USER, "aave", "5")

        assert outcome.status == "failed"
        assert "No wallet found" in outcome.user_message
        assert await recovery.get(USER) is None
        (record,) = transactions(ledger_client)
        assert record["outcome"]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_monitor_failure_still_parks(
        self, eoa, smart, lending, balances, swapper, ledger_client
    ):
        monitor = MagicMock()
        monitor.start_monitoring = AsyncMock(side_effect=RuntimeError("monitor down"))
        recovery = RecoveryManager(
            PendingIntentStore(Cache(Cache.MEMORY, namespace=uuid4().hex)), monitor
        )
        router = make_router(
            FakeWalletStore(eoa, smart), lending, balances, swapper, ledger_client, recovery
        )
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=10 * USDC
        )

        outcome = await router.route_deposit(USER, "aave", "25")

        assert outcome.status == "pending"
        assert await recovery.get(USER) is not None
        lending.deposit.assert_not_awaited()


class TestWithdraw:
    @pytest.mark.asyncio
    async def test_prefers_wallet_holding_the_position(
        self, router, lending, balances, eoa
    ):
        balances.position_snapshot.return_value = BalanceSnapshot(
            token=AAVE_V3_POOL, eoa_balance=20 * USDC, smart_wallet_balance=0
        )
        lending.withdraw.return_value = TransactionOutcome.succeeded(TX, path="standard")

        outcome = await router.route_withdraw(USER, "aave", "10")

        assert outcome.success
        lending.withdraw.assert_awaited_once_with(eoa, 10 * USDC, None, USER)

    @pytest.mark.asyncio
    async def test_falls_back_to_eoa_once(
        self, router, lending, balances, smart, eoa, ledger_client
    ):
        balances.position_snapshot.return_value = BalanceSnapshot(
            token=AAVE_V3_POOL, eoa_balance=20 * USDC, smart_wallet_balance=20 * USDC
        )
        lending.withdraw.side_effect = [
            PaymasterRejectedError("sponsorship_limit", "sponsorship limit reached"),
            TransactionOutcome.succeeded(TX, path="standard"),
        ]

        outcome = await router.route_withdraw(USER, "aave", "max")

        assert outcome.success
        assert [c.args[0] for c in lending.withdraw.await_args_list] == [smart, eoa]
        assert lending.withdraw.await_args_list[1].args[1] is None
        assert outcome.details["fallback_from"] == "gasless"
        assert "sponsorship" in outcome.details["gasless_error"]

        (record,) = transactions(ledger_client)
        assert record["operation"]["type"] == "UNLEND"
        assert record["operation"]["amount"] == "max"
        assert record["operation"]["claim_rewards"] is True
        assert record["operation"]["gasless"] is False

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self, router, lending, balances, ledger_client):
        balances.position_snapshot.return_value = BalanceSnapshot(
            token=AAVE_V3_POOL, eoa_balance=20 * USDC, smart_wallet_balance=20 * USDC
        )
        lending.withdraw.return_value = TransactionOutcome.timed_out(
            "no receipt", path="gasless"
        )

        outcome = await router.route_withdraw(USER, "aave", "5")

        assert outcome.status == "timeout"
        assert lending.withdraw.await_count == 1
        assert ExecutionTimeoutError.user_message in outcome.user_message
        assert len(transactions(ledger_client)) == 1

    @pytest.mark.asyncio
    async def test_insufficient_position_is_terminal(
        self, router, lending, balances, recovery
    ):
        balances.position_snapshot.return_value = BalanceSnapshot(
            token=AAVE_V3_POOL, eoa_balance=USDC, smart_wallet_balance=2 * USDC
        )

        outcome = await router.route_withdraw(USER, "aave", "5")

        assert outcome.status == "failed"
        lending.withdraw.assert_not_awaited()
        assert await recovery.get(USER) is None


class TestSwap:
    @pytest.mark.asyncio
    async def test_buy_uses_smart_wallet(self, router, swapper, smart, ledger_client):
        outcome = await router.route_swap(USER, "LCAP", "25", "buy")

        assert outcome.success
        swapper.quote.assert_awaited_once_with(BASE_USDC, LCAP_TOKEN, 25 * USDC, SMART)
        assert swapper.swap.await_args.args[0] == smart

        (record,) = transactions(ledger_client)
        assert record["operation"]["type"] == "SWAP"
        assert record["operation"]["to_amount"] == str(7 * 10**18)

    @pytest.mark.asyncio
    async def test_short_buy_is_parked(self, router, swapper, balances):
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=5 * USDC
        )

        outcome = await router.route_swap(USER, "lcap", "25", "buy")

        assert outcome.status == "pending"
        swapper.quote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_short_sell_is_terminal(
        self, router, swapper, balances, recovery, ledger_client
    ):
        balances.snapshot.return_value = BalanceSnapshot(
            token=LCAP_TOKEN, eoa_balance=10**18, smart_wallet_balance=10**18
        )

        outcome = await router.route_swap(USER, "lcap", "3", "sell")

        assert outcome.status == "failed"
        swapper.quote.assert_not_awaited()
        assert await recovery.get(USER) is None
        assert len(transactions(ledger_client)) == 1

    @pytest.mark.asyncio
    async def test_max_sell_from_eoa(self, router, swapper, balances, eoa):
        balances.snapshot.return_value = BalanceSnapshot(
            token=LCAP_TOKEN, eoa_balance=4 * 10**18, smart_wallet_balance=0
        )

        await router.route_swap(USER, "lcap", "max", "sell")

        swapper.quote.assert_awaited_once_with(LCAP_TOKEN, BASE_USDC, 4 * 10**18, EOA)
        assert swapper.swap.await_args.args[0] == eoa


class TestRecovery:
    @pytest.mark.asyncio
    async def test_partial_then_completed_deposit(
        self, router, lending, balances, recovery, ledger_client
    ):
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=10 * USDC
        )
        pending = await router.route_deposit(USER, "aave", "50")
        assert pending.status == "pending"

        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=30 * USDC
        )
        partial = await recovery.resolve_on_deposit(USER, 20 * USDC)
        assert partial.status == "partial"
        assert partial.remaining_shortage == 20 * USDC
        lending.deposit.assert_not_awaited()

        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=55 * USDC
        )
        done = await recovery.resolve_on_deposit(USER, 25 * USDC)

        assert done.status == "completed"
        assert done.outcome.success
        assert f"https://basescan.org/tx/{TX}" in done.message
        lending.deposit.assert_awaited_once()
        assert lending.deposit.await_args.args[1] == 50 * USDC
        assert await recovery.get(USER) is None
        assert len(transactions(ledger_client)) == 1

    @pytest.mark.asyncio
    async def test_fresh_balance_decides_completion(self, router, lending, balances, recovery):
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=10 * USDC
        )
        await router.route_deposit(USER, "aave", "50")

        # Reported deposit covers the shortage but the wallet balance does not.
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=45 * USDC
        )
        result = await recovery.resolve_on_deposit(USER, 40 * USDC)

        assert result.status == "partial"
        assert result.remaining_shortage == 5 * USDC
        lending.deposit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replay_renews_intent(self, router, lending, balances, recovery):
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=10 * USDC
        )
        await router.route_deposit(USER, "aave", "50")
        captured = await recovery.get(USER)

        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=50 * USDC
        )
        execute = AsyncMock(return_value=TransactionOutcome.succeeded(TX, path="gasless"))
        recovery.replay = execute
        await recovery.resolve_on_deposit(USER)

        (intent,) = execute.await_args.args
        assert intent.kind == "deposit"
        assert intent.amount == "50"
        assert intent.created_at >= captured.captured_at
        assert intent.created_at <= datetime.now(UTC)

    @pytest.mark.asyncio
    async def test_concurrent_deposit_callbacks_deposit_once(
        self, router, lending, balances, recovery, ledger_client
    ):
        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=10 * USDC
        )
        await router.route_deposit(USER, "aave", "25")

        balances.snapshot.return_value = BalanceSnapshot(
            token=BASE_USDC, smart_wallet_balance=50 * USDC
        )
        results = await asyncio.gather(
            recovery.resolve_on_deposit(USER, 20 * USDC),
            recovery.resolve_on_deposit(USER, 20 * USDC),
        )

        assert sorted(r.status for r in results) == ["completed", "none"]
        lending.deposit.assert_awaited_once()
        assert len(transactions(ledger_client)) == 1


class TestSerialization:
    @pytest.mark.asyncio
    async def test_same_user_intents_run_one_at_a_time(self, router, lending):
        release = asyncio.Event()
        events: list[str] = []

        async def deposit(wallet, amount, user_id):
            events.append(f"start {amount}")
            if amount == 10 * USDC:
                await release.wait()
            events.append(f"end {amount}")
            return TransactionOutcome.succeeded(TX, path="gasless")

        lending.deposit.side_effect = deposit

        first = asyncio.create_task(router.route_deposit(USER, "aave", "10"))
        while not events:
            await asyncio.sleep(0)
        second = asyncio.create_task(router.route_deposit(USER, "aave", "20"))
        for _ in range(20):
            await asyncio.sleep(0)

        assert events == [f"start {10 * USDC}"]

        release.set()
        outcomes = await asyncio.gather(first, second)

        assert all(o.success for o in outcomes)
        assert events == [
            f"start {10 * USDC}",
            f"end {10 * USDC}",
            f"start {20 * USDC}",
            f"end {20 * USDC}",
        ]
