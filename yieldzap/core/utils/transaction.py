import asyncio
import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, Web3Exception

from yieldzap.core.constants.base import (
    DEFAULT_TRANSACTION_TIMEOUT,
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from yieldzap.core.errors import ExecutionTimeoutError, OnChainRevertError
from yieldzap.core.utils.web3 import (
    get_transaction_chain_id,
    web3_from_chain_id,
    web3s_from_chain_id,
)

# Offline instance; only used for ABI encoding.
_ENCODER = Web3()

FEE_HISTORY_BLOCKS = 10
FEE_HISTORY_PERCENTILE = 80


@dataclass
class RpcView:
    """What one RPC reports for a pending transaction."""

    gas: int
    nonce: int
    base_fee: int
    priority_fee: int


def _get_transaction_from_address(transaction: dict) -> str:
    if "from" not in transaction:
        raise ValueError("Transaction does not contain from address")
    return AsyncWeb3.to_checksum_address(transaction["from"])


def encode_calldata(abi: list[dict[str, Any]], fn_name: str, args: list[Any]) -> str:
    try:
        return _ENCODER.eth.contract(abi=abi).encode_abi(fn_name, args)
    except (ValueError, TypeError, Web3Exception) as exc:
        raise ValueError(f"Failed to encode {fn_name}: {exc}") from exc


def encode_call(
    *,
    target: str,
    abi: list[dict[str, Any]],
    fn_name: str,
    args: list[Any],
    from_address: str,
    chain_id: int,
    value: int = 0,
) -> dict[str, Any]:
    return {
        "chainId": int(chain_id),
        "from": AsyncWeb3.to_checksum_address(from_address),
        "to": AsyncWeb3.to_checksum_address(target),
        "data": encode_calldata(abi, fn_name, args),
        "value": int(value),
    }


async def _read_rpc_view(web3: AsyncWeb3, transaction: dict, sender: str) -> RpcView:
    async def estimate() -> int:
        try:
            return await web3.eth.estimate_gas(transaction, block_identifier="latest")
        except Exception as exc:  # noqa: BLE001
            logger.info(f"Gas estimate failed on {web3.provider.endpoint_uri}: {exc}")
            return 0

    gas, nonce, block, history = await asyncio.gather(
        estimate(),
        web3.eth.get_transaction_count(sender, block_identifier="pending"),
        web3.eth.get_block("latest"),
        web3.eth.fee_history(FEE_HISTORY_BLOCKS, "latest", [FEE_HISTORY_PERCENTILE]),
    )
    rewards = [r[0] for r in history.reward] or [0]
    return RpcView(
        gas=int(gas),
        nonce=int(nonce),
        base_fee=int(block.baseFeePerGas),
        priority_fee=sum(rewards) // len(rewards),
    )


async def prepare_transaction(transaction: dict) -> dict:
    """Fill gas, nonce and EIP-1559 fees, taking the highest value any RPC reports."""
    transaction = transaction.copy()
    # A stale limit would cap the estimate.
    transaction.pop("gas", None)
    sender = _get_transaction_from_address(transaction)

    async with web3s_from_chain_id(get_transaction_chain_id(transaction)) as web3s:
        views = await asyncio.gather(
            *[_read_rpc_view(web3, transaction, sender) for web3 in web3s]
        )

    gas = max(v.gas for v in views)
    if gas == 0:
        raise RuntimeError("Gas estimation failed on all RPCs")
    priority = int(max(v.priority_fee for v in views) * SUGGESTED_PRIORITY_FEE_MULTIPLIER)
    base_fee = max(v.base_fee for v in views)

    transaction["gas"] = math.ceil(gas * GAS_BUFFER_MULTIPLIER)
    transaction["nonce"] = max(v.nonce for v in views)
    transaction["maxPriorityFeePerGas"] = priority
    transaction["maxFeePerGas"] = int(base_fee * MAX_BASE_FEE_GROWTH_MULTIPLIER) + priority
    return transaction


async def simulate_transaction(transaction: dict) -> bytes:
    """Dry-run ``transaction`` with ``eth_call``; raises on revert."""
    call = {k: v for k, v in transaction.items() if k in ("from", "to", "data", "value")}
    async with web3_from_chain_id(get_transaction_chain_id(transaction)) as web3:
        return await web3.eth.call(call, block_identifier="pending")


def _hex_hash(value: Any) -> str:
    text = value.hex() if isinstance(value, bytes | bytearray) else str(value)
    return text if text.startswith("0x") else f"0x{text}"


async def broadcast_transaction(chain_id: int, signed_transaction: bytes) -> str:
    async with web3_from_chain_id(chain_id) as web3:
        return _hex_hash(await web3.eth.send_raw_transaction(signed_transaction))


async def wait_for_receipt(
    chain_id: int,
    txn_hash: str,
    poll_interval: float = 0.5,
    timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
) -> dict:
    async with web3_from_chain_id(chain_id) as web3:
        try:
            receipt = await web3.eth.wait_for_transaction_receipt(
                txn_hash, poll_latency=poll_interval, timeout=timeout
            )
        except TimeExhausted as exc:
            raise ExecutionTimeoutError(txn_hash, timeout) from exc
    return dict(receipt)


def _revert_error(txn_hash: str, receipt: dict, transaction: dict) -> OnChainRevertError:
    gas_used = int(receipt.get("gasUsed") or 0)
    gas_limit = int(transaction.get("gas") or 0)
    message = f"Transaction reverted (status={receipt.get('status')}): {txn_hash}"
    if gas_used and gas_limit:
        message += f" gasUsed={gas_used} gasLimit={gas_limit}"
        if gas_used >= gas_limit:
            message += " (likely out of gas)"
    return OnChainRevertError(txn_hash, message=message)


async def send_and_confirm(
    transaction: dict,
    sign_callback: Callable,
    *,
    timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
) -> tuple[str, dict]:
    """Sign, broadcast and wait; returns ``(tx_hash, receipt)``.

    Raises ``OnChainRevertError`` unless the receipt status is explicitly 1.
    """
    if sign_callback is None:
        raise ValueError("sign_callback must be provided to send transaction")

    chain_id = get_transaction_chain_id(transaction)
    transaction = await prepare_transaction(transaction)
    signed_transaction = await sign_callback(transaction)
    txn_hash = _hex_hash(await broadcast_transaction(chain_id, signed_transaction))
    logger.info(
        f"Broadcast {txn_hash} from {transaction['from']} to {transaction.get('to')} "
        f"(nonce={transaction.get('nonce')}, gas={transaction.get('gas')})"
    )

    receipt = await wait_for_receipt(chain_id, txn_hash, timeout=timeout)
    status = receipt.get("status")
    if status is None or int(status) != 1:
        raise _revert_error(txn_hash, receipt, transaction)
    return txn_hash, receipt


async def send_transaction(transaction: dict, sign_callback: Callable) -> str:
    txn_hash, _ = await send_and_confirm(transaction, sign_callback)
    return txn_hash


def make_sign_callback(private_key: str) -> Callable:
    account = Account.from_key(private_key)

    async def sign_callback(tx: dict) -> bytes:
        return account.sign_transaction(tx).raw_transaction

    return sign_callback
