from __future__ import annotations

from typing import Any

from yieldzap.core.adapters.BaseAdapter import BaseAdapter
from yieldzap.core.adapters.decorators import status_tuple
from yieldzap.core.clients.LedgerClient import (
    LedgerClient,
    PositionRecord,
    TransactionRecord,
)
from yieldzap.core.clients.protocols import LedgerClientProtocol
from yieldzap.core.constants.base import ADAPTER_LEDGER


class LedgerAdapter(BaseAdapter):
    adapter_type: str = ADAPTER_LEDGER

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        ledger_client: LedgerClientProtocol | None = None,
    ):
        super().__init__("ledger_adapter", config)
        self.ledger_client = ledger_client or LedgerClient()

    @status_tuple
    async def record_transaction(self, record: TransactionRecord) -> Any:
        return await self.ledger_client.save_transaction(record)

    @status_tuple
    async def record_position(self, record: PositionRecord) -> Any:
        return await self.ledger_client.save_position(record)

    @status_tuple
    async def get_transactions(self, user_id: str) -> list[dict[str, Any]]:
        return await self.ledger_client.get_transactions(user_id)
