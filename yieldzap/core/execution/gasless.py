"""Sponsored ERC-4337 execution for Coinbase Smart Wallets.

A call list is wrapped in a single ``executeBatch`` UserOperation. The paymaster
is reimbursed in ``gas_token`` (USDC), so the account needs no native ETH.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable, Sequence

import httpx
from loguru import logger

from yieldzap.core.clients.BundlerClient import BundlerClient
from yieldzap.core.clients.PaymasterClient import PaymasterClient
from yieldzap.core.constants.base import (
    CALL_GAS_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    PRE_VERIFICATION_GAS_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
    USER_OPERATION_POLL_INTERVAL,
    USER_OPERATION_TIMEOUT,
    VERIFICATION_GAS_MULTIPLIER,
)
from yieldzap.core.constants.chains import CHAIN_ID_BASE
from yieldzap.core.constants.contracts import ENTRY_POINT_V06
from yieldzap.core.constants.smart_wallet_abi import ENTRY_POINT_ABI
from yieldzap.core.errors import ExecutionTimeoutError, YieldzapError
from yieldzap.core.models import Call, TransactionOutcome
from yieldzap.core.utils.userop import (
    UserOperation,
    UserOpGasEstimate,
    UserOpReceipt,
    build_execute_batch_calldata,
    wrap_owner_signature,
)
from yieldzap.core.utils.wallets import SmartWallet
from yieldzap.core.utils.web3 import web3_from_chain_id

PaddingFn = Callable[[UserOpGasEstimate], UserOpGasEstimate]

# 65-byte placeholder ECDSA signature accepted by the wallet during estimation
_DUMMY_ECDSA_SIGNATURE = b"\xff" * 64 + b"\x1c"


def estimate_with_padding(raw: UserOpGasEstimate) -> UserOpGasEstimate:
    """Pad a bundler estimate for chained approve + act calls."""
    return UserOpGasEstimate(
        call_gas_limit=math.ceil(raw.call_gas_limit * CALL_GAS_MULTIPLIER),
        verification_gas_limit=math.ceil(
            raw.verification_gas_limit * VERIFICATION_GAS_MULTIPLIER
        ),
        pre_verification_gas=math.ceil(
            raw.pre_verification_gas * PRE_VERIFICATION_GAS_MULTIPLIER
        ),
    )


class GaslessExecutor:
    def __init__(
        self,
        *,
        bundler: BundlerClient | None = None,
        paymaster: PaymasterClient | None = None,
        pad_estimate: PaddingFn = estimate_with_padding,
        chain_id: int = CHAIN_ID_BASE,
        entry_point: str = ENTRY_POINT_V06,
        receipt_timeout: float = USER_OPERATION_TIMEOUT,
        poll_interval: float = USER_OPERATION_POLL_INTERVAL,
    ):
        self.bundler = bundler or BundlerClient()
        self.paymaster = paymaster or PaymasterClient()
        self.pad_estimate = pad_estimate
        self.chain_id = chain_id
        self.entry_point = entry_point
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

    async def _account_state(self, wallet: SmartWallet) -> tuple[bool, int, int, int]:
        """Returns ``(deployed, nonce, max_fee_per_gas, max_priority_fee_per_gas)``."""
        async with web3_from_chain_id(self.chain_id) as web3:
            entry_point = web3.eth.contract(address=self.entry_point, abi=ENTRY_POINT_ABI)
            code, nonce, block, priority_fee = await asyncio.gather(
                web3.eth.get_code(wallet.address),
                entry_point.functions.getNonce(wallet.address, 0).call(),
                web3.eth.get_block("latest"),
                web3.eth.max_priority_fee,
            )
        priority = int(priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER)
        max_fee = int(block.baseFeePerGas * MAX_BASE_FEE_GROWTH_MULTIPLIER) + priority
        return len(code) > 0, int(nonce), max_fee, priority

    async def _wait_for_receipt(self, user_op_hash: str) -> UserOpReceipt:
        """Poll until a receipt appears; poll errors are retried until the timeout."""
        try:
            async with asyncio.timeout(self.receipt_timeout):
                while True:
                    try:
                        receipt = await self.bundler.get_user_operation_receipt(
                            user_op_hash
                        )
                    except (YieldzapError, httpx.HTTPError) as exc:
                        logger.warning(f"Receipt poll for {user_op_hash} failed: {exc}")
                        receipt = None
                    if receipt is not None:
                        return receipt
                    await asyncio.sleep(self.poll_interval)
        except TimeoutError as exc:
            raise ExecutionTimeoutError(user_op_hash, self.receipt_timeout) from exc

    async def build_user_operation(
        self, wallet: SmartWallet, calls: Sequence[Call], gas_token: str
    ) -> UserOperation:
        deployed, nonce, max_fee, priority_fee = await self._account_state(wallet)
        if wallet.is_deployed or deployed:
            # Bundlers reject init code for an account that already exists.
            wallet = wallet.without_init_code()

        context = {"erc20": gas_token}
        user_op = UserOperation(
            sender=wallet.address,
            nonce=nonce,
            init_code=wallet.init_code,
            call_data=build_execute_batch_calldata(calls),
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=priority_fee,
            signature=wrap_owner_signature(wallet.owner_index, _DUMMY_ECDSA_SIGNATURE),
        )
        stub = await self.paymaster.get_paymaster_stub_data(
            user_op, self.entry_point, self.chain_id, context
        )
        user_op = user_op.model_copy(update={"paymaster_and_data": stub})

        raw = await self.bundler.estimate_user_operation_gas(user_op, self.entry_point)
        padded = self.pad_estimate(raw)
        logger.debug(f"UserOp gas estimate raw={raw} padded={padded}")
        user_op = user_op.model_copy(
            update={
                "call_gas_limit": padded.call_gas_limit,
                "verification_gas_limit": padded.verification_gas_limit,
                "pre_verification_gas": padded.pre_verification_gas,
            }
        )

        paymaster_and_data = await self.paymaster.get_paymaster_data(
            user_op, self.entry_point, self.chain_id, context
        )
        user_op = user_op.model_copy(update={"paymaster_and_data": paymaster_and_data})

        signature = await wallet.sign_hash(user_op.hash(self.entry_point, self.chain_id))
        return user_op.model_copy(
            update={"signature": wrap_owner_signature(wallet.owner_index, signature)}
        )

    async def execute(
        self, smart_wallet: SmartWallet, calls: Sequence[Call], gas_token: str
    ) -> TransactionOutcome:
        """Submit ``calls`` as one sponsored UserOperation and wait for inclusion.

        Paymaster and bundler rejections raise before anything reaches the chain.
        A missing receipt returns a ``timeout`` outcome; it is never resubmitted.
        """
        if not calls:
            raise ValueError("No calls to execute")
        log = logger.bind(sender=smart_wallet.address)

        user_op = await self.build_user_operation(smart_wallet, calls, gas_token)
        user_op_hash = await self.bundler.send_user_operation(user_op, self.entry_point)
        log.info(f"UserOperation submitted: {user_op_hash} ({len(calls)} calls)")

        try:
            receipt = await self._wait_for_receipt(user_op_hash)
        except ExecutionTimeoutError as exc:
            log.warning(str(exc))
            return TransactionOutcome.timed_out(
                str(exc), path="gasless", details={"user_op_hash": user_op_hash}
            )

        if not receipt.success:
            log.error(f"UserOperation {user_op_hash} reverted: {receipt.reason}")
            return TransactionOutcome.failed(
                f"UserOperation reverted: {receipt.reason or user_op_hash}",
                path="gasless",
                tx_hash=receipt.transaction_hash,
                gas_used=receipt.gas_used,
            )

        if not receipt.transaction_hash:
            return TransactionOutcome.failed(
                f"UserOperation {user_op_hash} receipt has no transaction hash",
                path="gasless",
            )

        log.info(f"UserOperation confirmed in {receipt.transaction_hash}")
        return TransactionOutcome.succeeded(
            receipt.transaction_hash,
            path="gasless",
            gas_used=receipt.gas_used,
            details={"user_op_hash": user_op_hash},
        )
