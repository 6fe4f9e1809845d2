from __future__ import annotations

from abc import ABC
from typing import Any

from loguru import logger

from yieldzap.core.constants.chains import CHAIN_ID_BASE


class BaseAdapter(ABC):
    adapter_type: str | None = None

    def __init__(self, name: str, config: dict[str, Any] | None = None):
        self.name = name
        self.config = config or {}
        self.chain_id = int(self.config.get("chain_id") or CHAIN_ID_BASE)
        self.logger = logger.bind(adapter=self.__class__.__name__)
