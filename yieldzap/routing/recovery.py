"""Pending-intent capture and replay for deposits that were short of funds."""

from __future__ import annotations

import asyncio
import math
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Literal

from aiocache import Cache
from loguru import logger
from pydantic import BaseModel

from yieldzap.core.clients.protocols import DepositMonitorProtocol
from yieldzap.core.constants.base import (
    DEPOSIT_MONITOR_WINDOW_MINUTES,
    PENDING_INTENT_TTL_SECONDS,
)
from yieldzap.core.constants.chains import CHAIN_EXPLORER_URLS, CHAIN_ID_BASE
from yieldzap.core.constants.contracts import BASE_USDC_DECIMALS
from yieldzap.core.models import Intent, PendingIntent, TransactionOutcome, utc_now
from yieldzap.core.utils.units import format_token_amount
from yieldzap.routing import messages

ReplayFn = Callable[[Intent], Awaitable[TransactionOutcome]]
# Returns (available, required) in base units for the intent's funding wallet.
FundsCheckFn = Callable[[Intent], Awaitable[tuple[int, int]]]


class ResolveResult(BaseModel):
    status: Literal["completed", "partial", "none"]
    outcome: TransactionOutcome | None = None
    remaining_shortage: int | None = None
    expires_at: datetime | None = None
    message: str | None = None


class PendingIntentStore:
    """At most one pending intent per user, held in an aiocache memory backend."""

    def __init__(self, cache: Any | None = None):
        self._cache = cache or Cache(Cache.MEMORY)

    @staticmethod
    def key(user_id: str) -> str:
        return f"pending_intent:{user_id}"

    async def get(self, user_id: str) -> PendingIntent | None:
        raw = await self._cache.get(self.key(user_id))
        if raw is None:
            return None
        return PendingIntent.model_validate(raw)

    async def put(self, pending: PendingIntent, ttl_seconds: int) -> None:
        await self._cache.set(
            self.key(pending.user_id),
            pending.model_dump(mode="json"),
            ttl=max(int(ttl_seconds), 1),
        )

    async def delete(self, user_id: str) -> bool:
        return bool(await self._cache.delete(self.key(user_id)))


class RecoveryManager:
    def __init__(
        self,
        store: PendingIntentStore | None = None,
        monitor: DepositMonitorProtocol | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        ttl_seconds: int = PENDING_INTENT_TTL_SECONDS,
        window_minutes: int = DEPOSIT_MONITOR_WINDOW_MINUTES,
    ):
        self.store = store or PendingIntentStore()
        self.monitor = monitor
        self.clock = clock
        self.ttl_seconds = ttl_seconds
        self.window_minutes = window_minutes
        self.replay: ReplayFn | None = None
        self.funds_check: FundsCheckFn | None = None
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def attach(self, *, replay: ReplayFn, funds_check: FundsCheckFn) -> None:
        self.replay = replay
        self.funds_check = funds_check

    async def capture(self, intent: Intent, shortage: int) -> PendingIntent:
        """Store ``intent`` (replacing any earlier one) and start the deposit watch."""
        now = self.clock()
        pending = PendingIntent.capture(
            intent, shortage, now=now, ttl_seconds=self.ttl_seconds
        )
        log = logger.bind(user_id=intent.user_id, intent=intent.kind)
        if await self.store.get(intent.user_id) is not None:
            log.info("Superseding previous pending intent")
        await self.store.put(pending, self.ttl_seconds)
        log.info(
            f"Captured pending {intent.kind} of {intent.amount} "
            f"({intent.protocol_or_token}), shortage {shortage}, "
            f"expires {pending.expires_at.isoformat()}"
        )

        if self.monitor is not None:
            try:
                await self.monitor.start_monitoring(
                    intent.user_id,
                    self.window_minutes,
                    {
                        "kind": intent.kind,
                        "protocol_or_token": intent.protocol_or_token,
                        "amount": intent.amount,
                        "shortage": str(shortage),
                        "expires_at": pending.expires_at.isoformat(),
                    },
                )
            except Exception as exc:  # noqa: BLE001
                # The intent stays stored for the next deposit callback.
                log.exception(f"Failed to start deposit monitor: {exc}")
        return pending

    async def get(self, user_id: str) -> PendingIntent | None:
        pending = await self.store.get(user_id)
        if pending is None:
            return None
        if pending.is_expired(self.clock()):
            await self.store.delete(user_id)
            logger.bind(user_id=user_id).info("Pending intent expired")
            return None
        return pending

    async def cancel(self, user_id: str) -> bool:
        removed = await self.store.delete(user_id)
        if removed:
            logger.bind(user_id=user_id).info("Pending intent cancelled")
        return removed

    async def resolve_on_deposit(
        self, user_id: str, deposited_amount: int = 0
    ) -> ResolveResult:
        """Called by the deposit monitor whenever funds arrive.

        Completion is decided from freshly read balances; ``deposited_amount``
        is only logged.
        """
        async with self._locks[user_id]:
            return await self._resolve(user_id, deposited_amount)

    async def _resolve(self, user_id: str, deposited_amount: int) -> ResolveResult:
        log = logger.bind(user_id=user_id)
        pending = await self.get(user_id)
        if pending is None:
            return ResolveResult(status="none")
        if self.replay is None or self.funds_check is None:
            raise RuntimeError("RecoveryManager is not attached to a router")

        intent = pending.to_intent()
        available, required = await self.funds_check(intent)
        log.info(
            f"Deposit of {deposited_amount} observed; fresh balance {available}, "
            f"required {required}"
        )

        if available >= required:
            if not await self.store.delete(user_id):
                log.info("Pending intent already taken by another callback")
                return ResolveResult(status="none")
            outcome = await self.replay(intent.renewed())
            if outcome.success and outcome.tx_hash:
                text = messages.completion_message(
                    intent,
                    outcome.tx_hash,
                    CHAIN_EXPLORER_URLS[CHAIN_ID_BASE].rstrip("/"),
                )
            else:
                text = outcome.user_message
            return ResolveResult(status="completed", outcome=outcome, message=text)

        remaining = required - available
        updated = pending.model_copy(update={"shortage_amount": remaining})
        ttl = math.ceil((pending.expires_at - self.clock()).total_seconds())
        await self.store.put(updated, ttl)
        return ResolveResult(
            status="partial",
            remaining_shortage=remaining,
            expires_at=pending.expires_at,
            message=messages.partial_deposit_message(
                format_token_amount(deposited_amount, BASE_USDC_DECIMALS),
                format_token_amount(remaining, BASE_USDC_DECIMALS),
                max(math.ceil(ttl / 60), 0),
            ),
        )
