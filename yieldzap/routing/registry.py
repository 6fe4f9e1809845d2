from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from yieldzap.adapters.aave_adapter.adapter import AaveAdapter
from yieldzap.adapters.compound_adapter.adapter import CompoundAdapter
from yieldzap.adapters.erc4626_adapter.adapter import build_vault_adapters
from yieldzap.adapters.fluid_adapter.adapter import FluidAdapter
from yieldzap.core.adapters.LendingAdapter import LendingAdapter
from yieldzap.core.errors import UnsupportedProtocolError

DEFAULT_ALIASES: dict[str, tuple[str, ...]] = {
    "aave": ("aave v3", "aave-v3", "aave_v3", "aave usdc"),
    "compound": ("compound v3", "compound-v3", "comet", "compound usdc"),
    "fluid": ("fluid usdc", "fusdc"),
    "morpho": ("morpho usdc", "morpho pyth", "metamorpho"),
    "morpho-re7": ("re7", "morpho re7", "morpho_re7", "re7 universal usdc"),
    "spark": ("spark usdc", "sparklend"),
    "seamless": ("seamless usdc",),
    "moonwell": ("moonwell usdc",),
}


def _normalize(name: str) -> str:
    return " ".join(str(name).strip().lower().split())


class ProtocolAdapterRegistry:
    """Protocol name (or alias) to adapter instance."""

    def __init__(self) -> None:
        self._adapters: dict[str, LendingAdapter] = {}
        self._aliases: dict[str, str] = {}

    def register(
        self, key: str, adapter: LendingAdapter, aliases: Iterable[str] = ()
    ) -> None:
        key = _normalize(key)
        self._adapters[key] = adapter
        self._aliases[key] = key
        for alias in aliases:
            self._aliases[_normalize(alias)] = key

    def adapter_for(self, protocol: str) -> LendingAdapter:
        key = self._aliases.get(_normalize(protocol))
        if key is None:
            raise UnsupportedProtocolError(protocol, self.keys())
        return self._adapters[key]

    def keys(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, protocol: str) -> bool:
        return _normalize(protocol) in self._aliases


def build_default_registry(
    config: dict[str, Any] | None = None, **executors: Any
) -> ProtocolAdapterRegistry:
    registry = ProtocolAdapterRegistry()
    adapters: dict[str, LendingAdapter] = {
        "aave": AaveAdapter(config, **executors),
        "compound": CompoundAdapter(config, **executors),
        "fluid": FluidAdapter(config, **executors),
        **build_vault_adapters(config, **executors),
    }
    for key, adapter in adapters.items():
        registry.register(key, adapter, DEFAULT_ALIASES.get(key, ()))
    return registry
