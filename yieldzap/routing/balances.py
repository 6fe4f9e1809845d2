from __future__ import annotations

import asyncio
from collections.abc import Awaitable

from loguru import logger
from pydantic import BaseModel

from yieldzap.core.adapters.LendingAdapter import LendingAdapter
from yieldzap.core.constants.chains import CHAIN_ID_BASE
from yieldzap.core.utils.tokens import get_token_balance
from yieldzap.routing.wallets import WalletResolver


class BalanceSnapshot(BaseModel):
    token: str
    eoa_balance: int = 0
    smart_wallet_balance: int = 0

    @property
    def total(self) -> int:
        return self.eoa_balance + self.smart_wallet_balance


async def _safe(read: Awaitable[int], label: str) -> int:
    try:
        return int(await read)
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Balance read failed for {label}: {exc}")
        return 0


async def _zero() -> int:
    return 0


class BalanceSnapshotService:
    """Fresh, uncached balance reads for both of a user's wallets."""

    def __init__(self, resolver: WalletResolver, chain_id: int = CHAIN_ID_BASE):
        self.resolver = resolver
        self.chain_id = chain_id

    async def snapshot(self, user_id: str, token: str) -> BalanceSnapshot:
        wallets = await self.resolver.wallets_for(user_id)

        def read(address: str | None) -> Awaitable[int]:
            if address is None:
                return _zero()
            return _safe(
                get_token_balance(token, self.chain_id, address), f"{token}@{address}"
            )

        eoa_balance, smart_balance = await asyncio.gather(
            read(wallets.eoa.address if wallets.eoa else None),
            read(wallets.smart_wallet.address if wallets.smart_wallet else None),
        )
        return BalanceSnapshot(
            token=token, eoa_balance=eoa_balance, smart_wallet_balance=smart_balance
        )

    async def native_balance(self, address: str) -> int:
        return await _safe(
            get_token_balance(None, self.chain_id, address), f"native@{address}"
        )

    async def position_snapshot(
        self, user_id: str, adapter: LendingAdapter
    ) -> BalanceSnapshot:
        """Underlying supplied to ``adapter`` by each wallet."""
        wallets = await self.resolver.wallets_for(user_id)

        def read(address: str | None) -> Awaitable[int]:
            if address is None:
                return _zero()
            return _safe(adapter.get_position(address), f"{adapter.protocol}@{address}")

        eoa_position, smart_position = await asyncio.gather(
            read(wallets.eoa.address if wallets.eoa else None),
            read(wallets.smart_wallet.address if wallets.smart_wallet else None),
        )
        return BalanceSnapshot(
            token=adapter.pool_address,
            eoa_balance=eoa_position,
            smart_wallet_balance=smart_position,
        )
