from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, Field

from yieldzap.core.adapters.models import OperationField
from yieldzap.core.config import get_ledger_dir
from yieldzap.core.models import IntentKind, TransactionOutcome, utc_now


class TransactionRecord(BaseModel):
    user_id: str
    intent_kind: IntentKind
    protocol: str
    amount: str
    token_address: str | None = None
    wallet_address: str | None = None
    outcome: TransactionOutcome
    operation: OperationField | None = None
    recorded_at: datetime = Field(default_factory=utc_now)


class PositionRecord(BaseModel):
    user_id: str
    protocol: str
    pool_address: str
    wallet_address: str
    amount: str
    apy: float | None = None
    tx_hash: str
    recorded_at: datetime = Field(default_factory=utc_now)


class LedgerClient:
    """Append-only JSON ledger of transaction outcomes and opened positions."""

    def __init__(self, ledger_dir: str | Path | None = None):
        self.ledger_dir = Path(ledger_dir) if ledger_dir else get_ledger_dir()
        self.ledger_dir.mkdir(parents=True, exist_ok=True)
        self.transactions_file = self.ledger_dir / "transactions.json"
        self.positions_file = self.ledger_dir / "positions.json"
        self._lock = asyncio.Lock()
        self._init_file(self.transactions_file, "transactions")
        self._init_file(self.positions_file, "positions")

    @staticmethod
    def _init_file(path: Path, key: str) -> None:
        if not path.exists():
            path.write_text(json.dumps({key: []}, indent=2))

    async def _append(self, path: Path, key: str, entry: dict[str, Any]) -> dict:
        entry = {"id": str(uuid4()), **entry}
        async with self._lock:
            data = json.loads(path.read_text())
            data.setdefault(key, []).append(entry)
            path.write_text(json.dumps(data, indent=2))
        logger.debug(f"Ledger {key} entry {entry['id']} written")
        return {"status": "success", "id": entry["id"]}

    async def save_transaction(self, record: TransactionRecord) -> dict[str, Any]:
        return await self._append(
            self.transactions_file, "transactions", record.model_dump(mode="json")
        )

    async def save_position(self, record: PositionRecord) -> dict[str, Any]:
        return await self._append(
            self.positions_file, "positions", record.model_dump(mode="json")
        )

    async def get_transactions(self, user_id: str) -> list[dict[str, Any]]:
        data = json.loads(self.transactions_file.read_text())
        return [t for t in data.get("transactions", []) if t.get("user_id") == user_id]
