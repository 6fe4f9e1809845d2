from collections.abc import Callable

from loguru import logger
from web3 import AsyncWeb3

from yieldzap.core.constants.base import MAX_UINT256
from yieldzap.core.constants.erc20_abi import ERC20_ABI
from yieldzap.core.errors import ApprovalIneffectiveError
from yieldzap.core.utils.transaction import encode_call, send_transaction
from yieldzap.core.utils.web3 import web3_from_chain_id

NATIVE_TOKEN_ADDRESSES: set = {
    "0x0000000000000000000000000000000000000000",
    "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee",
}


def is_native_token(token_address: str | None) -> bool:
    if token_address is None:
        return True
    normalized = str(token_address).strip().lower()
    if normalized in ("", "native", "eth"):
        return True
    return normalized in NATIVE_TOKEN_ADDRESSES


async def get_token_balance(
    token_address: str | None,
    chain_id: int,
    wallet_address: str,
    *,
    web3: AsyncWeb3 | None = None,
    block_identifier: str | int = "pending",
) -> int:
    async def _read_with_web3(w3: AsyncWeb3) -> int:
        checksum_wallet = w3.to_checksum_address(wallet_address)

        if is_native_token(token_address):
            balance = await w3.eth.get_balance(
                checksum_wallet,
                block_identifier=block_identifier,
            )
            return int(balance)

        checksum_token = w3.to_checksum_address(str(token_address))
        contract = w3.eth.contract(address=checksum_token, abi=ERC20_ABI)
        balance = await contract.functions.balanceOf(checksum_wallet).call(
            block_identifier=block_identifier
        )
        return int(balance)

    if web3 is None:
        async with web3_from_chain_id(chain_id) as w3:
            return await _read_with_web3(w3)
    return await _read_with_web3(web3)


async def get_token_allowance(
    token_address: str, chain_id: int, owner_address: str, spender_address: str
) -> int:
    async with web3_from_chain_id(chain_id) as web3:
        contract = web3.eth.contract(
            address=web3.to_checksum_address(token_address), abi=ERC20_ABI
        )
        allowance = await contract.functions.allowance(
            web3.to_checksum_address(owner_address),
            web3.to_checksum_address(spender_address),
        ).call(block_identifier="pending")
        return int(allowance)


def build_approve_transaction(
    from_address: str,
    chain_id: int,
    token_address: str,
    spender_address: str,
    amount: int,
) -> dict:
    return encode_call(
        target=token_address,
        abi=ERC20_ABI,
        fn_name="approve",
        args=[AsyncWeb3.to_checksum_address(spender_address), int(amount)],
        from_address=from_address,
        chain_id=chain_id,
    )


async def ensure_allowance(
    *,
    token_address: str,
    owner: str,
    spender: str,
    amount: int,
    chain_id: int,
    signing_callback: Callable,
    approval_amount: int = MAX_UINT256,
) -> str | None:
    """Approve ``spender`` if the current allowance is below ``amount``.

    Returns the approval tx hash, or ``None`` when no approval was needed. After
    approving, the allowance is read back; a still-short allowance raises
    ``ApprovalIneffectiveError``.
    """
    allowance = await get_token_allowance(token_address, chain_id, owner, spender)
    if allowance >= amount:
        return None

    approve_tx = build_approve_transaction(
        from_address=owner,
        chain_id=chain_id,
        token_address=token_address,
        spender_address=spender,
        amount=approval_amount,
    )
    txn_hash = await send_transaction(approve_tx, signing_callback)
    logger.info(f"Approval confirmed: {txn_hash}")

    allowance = await get_token_allowance(token_address, chain_id, owner, spender)
    if allowance < amount:
        raise ApprovalIneffectiveError(token_address, spender, amount, allowance)
    return txn_hash
