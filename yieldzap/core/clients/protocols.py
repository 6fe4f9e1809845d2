from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from yieldzap.core.clients.LedgerClient import PositionRecord, TransactionRecord
    from yieldzap.core.utils.wallets import EoaWallet, SmartWallet


class LedgerClientProtocol(Protocol):
    async def save_transaction(self, record: TransactionRecord) -> Any: ...

    async def save_position(self, record: PositionRecord) -> Any: ...


class WalletStoreProtocol(Protocol):
    async def get_wallet(self, user_id: str) -> EoaWallet | None: ...

    async def get_smart_wallet(self, user_id: str) -> SmartWallet | None: ...


class DepositMonitorProtocol(Protocol):
    async def start_monitoring(
        self, user_id: str, window_minutes: int, context: dict[str, Any]
    ) -> None: ...
