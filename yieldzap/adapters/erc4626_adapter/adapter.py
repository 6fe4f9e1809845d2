from __future__ import annotations

from typing import Any

from yieldzap.core.adapters.LendingAdapter import LendingAdapter
from yieldzap.core.constants.base import ADAPTER_ERC4626
from yieldzap.core.constants.contracts import (
    MOONWELL_USDC_VAULT,
    MORPHO_RE7_USDC_VAULT,
    MORPHO_USDC_VAULT,
    SEAMLESS_USDC_VAULT,
    SPARK_USDC_VAULT,
)
from yieldzap.core.constants.erc4626_abi import ERC4626_ABI
from yieldzap.core.errors import InsufficientBalanceError
from yieldzap.core.models import Call
from yieldzap.core.utils.web3 import web3_from_chain_id

# protocol key -> (vault, display name)
USDC_VAULTS: dict[str, tuple[str, str]] = {
    "morpho": (MORPHO_USDC_VAULT, "Morpho"),
    "morpho-re7": (MORPHO_RE7_USDC_VAULT, "Morpho Re7"),
    "spark": (SPARK_USDC_VAULT, "Spark"),
    "seamless": (SEAMLESS_USDC_VAULT, "Seamless"),
    "moonwell": (MOONWELL_USDC_VAULT, "Moonwell"),
}


class ERC4626VaultAdapter(LendingAdapter):
    """Generic ERC-4626 USDC vault. Only reachable through a smart wallet."""

    adapter_type = ADAPTER_ERC4626
    supports_standard = False

    def __init__(
        self,
        protocol: str,
        vault_address: str,
        display_name: str | None = None,
        config: dict[str, Any] | None = None,
        **executors: Any,
    ):
        self.protocol = protocol
        self.display_name = display_name or protocol
        self.vault_address = vault_address
        super().__init__(config, **executors)

    @property
    def spender(self) -> str:
        return self.vault_address

    def build_deposit_call(self, owner: str, amount: int) -> Call:
        return Call(
            to=self.vault_address,
            abi=ERC4626_ABI,
            fn_name="deposit",
            args=[int(amount), owner],
        )

    async def get_shares(self, wallet_address: str) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            vault = web3.eth.contract(address=self.vault_address, abi=ERC4626_ABI)
            shares = await vault.functions.balanceOf(
                web3.to_checksum_address(wallet_address)
            ).call(block_identifier="pending")
        return int(shares)

    async def build_withdraw_calls(
        self, owner: str, amount: int | None, *, claim_rewards: bool
    ) -> list[Call]:
        if amount is not None:
            return [
                Call(
                    to=self.vault_address,
                    abi=ERC4626_ABI,
                    fn_name="withdraw",
                    args=[int(amount), owner, owner],
                )
            ]
        # Vaults have no max sentinel: redeem exactly the shares held right now.
        shares = await self.get_shares(owner)
        if shares <= 0:
            raise InsufficientBalanceError(self.display_name, 1, 0)
        return [
            Call(
                to=self.vault_address,
                abi=ERC4626_ABI,
                fn_name="redeem",
                args=[shares, owner, owner],
            )
        ]

    async def get_position(self, wallet_address: str) -> int:
        shares = await self.get_shares(wallet_address)
        if not shares:
            return 0
        async with web3_from_chain_id(self.chain_id) as web3:
            vault = web3.eth.contract(address=self.vault_address, abi=ERC4626_ABI)
            assets = await vault.functions.convertToAssets(shares).call(
                block_identifier="pending"
            )
        return int(assets)


def build_vault_adapters(
    config: dict[str, Any] | None = None, **executors: Any
) -> dict[str, ERC4626VaultAdapter]:
    return {
        key: ERC4626VaultAdapter(key, vault, name, config, **executors)
        for key, (vault, name) in USDC_VAULTS.items()
    }
