from __future__ import annotations

from yieldzap.core.adapters.LendingAdapter import LendingAdapter
from yieldzap.core.constants.base import ADAPTER_AAVE, MAX_UINT256
from yieldzap.core.constants.contracts import AAVE_V3_A_USDC, AAVE_V3_POOL
from yieldzap.core.constants.lending_abi import AAVE_POOL_ABI
from yieldzap.core.models import Call
from yieldzap.core.utils.tokens import get_token_balance

REFERRAL_CODE = 0


class AaveAdapter(LendingAdapter):
    """Aave V3 USDC market on Base."""

    adapter_type = ADAPTER_AAVE
    protocol = "aave"
    display_name = "Aave"

    @property
    def spender(self) -> str:
        return AAVE_V3_POOL

    def build_deposit_call(self, owner: str, amount: int) -> Call:
        return Call(
            to=AAVE_V3_POOL,
            abi=AAVE_POOL_ABI,
            fn_name="supply",
            args=[self.asset, int(amount), owner, REFERRAL_CODE],
        )

    async def build_withdraw_calls(
        self, owner: str, amount: int | None, *, claim_rewards: bool
    ) -> list[Call]:
        # type(uint256).max tells the pool to burn the whole aToken balance
        value = MAX_UINT256 if amount is None else int(amount)
        return [
            Call(
                to=AAVE_V3_POOL,
                abi=AAVE_POOL_ABI,
                fn_name="withdraw",
                args=[self.asset, value, owner],
            )
        ]

    async def get_position(self, wallet_address: str) -> int:
        return await get_token_balance(AAVE_V3_A_USDC, self.chain_id, wallet_address)
