from __future__ import annotations

from yieldzap.core.adapters.LendingAdapter import LendingAdapter
from yieldzap.core.constants.base import ADAPTER_COMPOUND, MAX_UINT256
from yieldzap.core.constants.contracts import (
    COMPOUND_COMET_REWARDS,
    COMPOUND_COMET_USDC,
)
from yieldzap.core.constants.lending_abi import COMET_ABI, COMET_REWARDS_ABI
from yieldzap.core.models import Call
from yieldzap.core.utils.web3 import web3_from_chain_id


class CompoundAdapter(LendingAdapter):
    """Compound V3 (Comet) USDC market on Base, with COMP reward claims."""

    adapter_type = ADAPTER_COMPOUND
    protocol = "compound"
    display_name = "Compound"

    @property
    def spender(self) -> str:
        return COMPOUND_COMET_USDC

    def build_deposit_call(self, owner: str, amount: int) -> Call:
        return Call(
            to=COMPOUND_COMET_USDC,
            abi=COMET_ABI,
            fn_name="supply",
            args=[self.asset, int(amount)],
        )

    def build_claim_call(self, owner: str) -> Call:
        return Call(
            to=COMPOUND_COMET_REWARDS,
            abi=COMET_REWARDS_ABI,
            fn_name="claim",
            args=[COMPOUND_COMET_USDC, owner, True],
        )

    async def build_withdraw_calls(
        self, owner: str, amount: int | None, *, claim_rewards: bool
    ) -> list[Call]:
        # Comet treats uint256 max as "withdraw entire supplied balance", interest included.
        value = MAX_UINT256 if amount is None else int(amount)
        calls = [
            Call(
                to=COMPOUND_COMET_USDC,
                abi=COMET_ABI,
                fn_name="withdraw",
                args=[self.asset, value],
            )
        ]
        if claim_rewards:
            calls.append(self.build_claim_call(owner))
        return calls

    async def get_position(self, wallet_address: str) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            comet = web3.eth.contract(address=COMPOUND_COMET_USDC, abi=COMET_ABI)
            balance = await comet.functions.balanceOf(
                web3.to_checksum_address(wallet_address)
            ).call(block_identifier="pending")
        return int(balance)

    async def get_reward_owed(self, wallet_address: str) -> tuple[str, int]:
        """``(reward_token, amount)`` accrued to ``wallet_address``."""
        async with web3_from_chain_id(self.chain_id) as web3:
            rewards = web3.eth.contract(
                address=COMPOUND_COMET_REWARDS, abi=COMET_REWARDS_ABI
            )
            token, owed = await rewards.functions.getRewardOwed(
                COMPOUND_COMET_USDC, web3.to_checksum_address(wallet_address)
            ).call()
        return token, int(owed)
