from __future__ import annotations

from yieldzap.core.adapters.LendingAdapter import LendingAdapter
from yieldzap.core.constants.base import ADAPTER_FLUID, MAX_UINT256
from yieldzap.core.constants.contracts import FLUID_F_USDC
from yieldzap.core.constants.erc4626_abi import ERC4626_ABI
from yieldzap.core.models import Call
from yieldzap.core.utils.web3 import web3_from_chain_id


class FluidAdapter(LendingAdapter):
    """Fluid fUSDC lending token (ERC-4626 interface)."""

    adapter_type = ADAPTER_FLUID
    protocol = "fluid"
    display_name = "Fluid"

    @property
    def spender(self) -> str:
        return FLUID_F_USDC

    def build_deposit_call(self, owner: str, amount: int) -> Call:
        return Call(
            to=FLUID_F_USDC,
            abi=ERC4626_ABI,
            fn_name="deposit",
            args=[int(amount), owner],
        )

    async def build_withdraw_calls(
        self, owner: str, amount: int | None, *, claim_rewards: bool
    ) -> list[Call]:
        # fTokens accept uint256 max on withdraw and cap it to the owner's assets
        value = MAX_UINT256 if amount is None else int(amount)
        return [
            Call(
                to=FLUID_F_USDC,
                abi=ERC4626_ABI,
                fn_name="withdraw",
                args=[value, owner, owner],
            )
        ]

    async def get_position(self, wallet_address: str) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            token = web3.eth.contract(address=FLUID_F_USDC, abi=ERC4626_ABI)
            shares = await token.functions.balanceOf(
                web3.to_checksum_address(wallet_address)
            ).call(block_identifier="pending")
            if not shares:
                return 0
            assets = await token.functions.convertToAssets(int(shares)).call(
                block_identifier="pending"
            )
        return int(assets)
