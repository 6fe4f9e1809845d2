from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from eth_abi import encode
from eth_utils import keccak, to_bytes, to_checksum_address
from pydantic import BaseModel

from yieldzap.core.constants.smart_wallet_abi import SMART_WALLET_ABI
from yieldzap.core.models import Call
from yieldzap.core.utils.transaction import encode_calldata


def _to_hex(value: int) -> str:
    return hex(int(value))


def _parse_hex(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(str(value), 16)


def _hexbytes(value: str) -> bytes:
    return to_bytes(hexstr=value) if value and value != "0x" else b""


class UserOperation(BaseModel):
    """ERC-4337 v0.6 UserOperation. Values are raw units; hex-encoded for RPC."""

    sender: str
    nonce: int
    init_code: str = "0x"
    call_data: str
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster_and_data: str = "0x"
    signature: str = "0x"

    def to_rpc_dict(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "nonce": _to_hex(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "callGasLimit": _to_hex(self.call_gas_limit),
            "verificationGasLimit": _to_hex(self.verification_gas_limit),
            "preVerificationGas": _to_hex(self.pre_verification_gas),
            "maxFeePerGas": _to_hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _to_hex(self.max_priority_fee_per_gas),
            "paymasterAndData": self.paymaster_and_data,
            "signature": self.signature,
        }

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        packed = encode(
            [
                "address",
                "uint256",
                "bytes32",
                "bytes32",
                "uint256",
                "uint256",
                "uint256",
                "uint256",
                "uint256",
                "bytes32",
            ],
            [
                to_checksum_address(self.sender),
                self.nonce,
                keccak(_hexbytes(self.init_code)),
                keccak(_hexbytes(self.call_data)),
                self.call_gas_limit,
                self.verification_gas_limit,
                self.pre_verification_gas,
                self.max_fee_per_gas,
                self.max_priority_fee_per_gas,
                keccak(_hexbytes(self.paymaster_and_data)),
            ],
        )
        return keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [keccak(packed), to_checksum_address(entry_point), int(chain_id)],
            )
        )


class UserOpGasEstimate(BaseModel):
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> UserOpGasEstimate:
        return cls(
            call_gas_limit=_parse_hex(data.get("callGasLimit")) or 0,
            verification_gas_limit=_parse_hex(data.get("verificationGasLimit")) or 0,
            pre_verification_gas=_parse_hex(data.get("preVerificationGas")) or 0,
        )


class UserOpReceipt(BaseModel):
    user_op_hash: str
    success: bool
    transaction_hash: str | None = None
    block_number: int | None = None
    gas_used: int | None = None
    reason: str | None = None

    @classmethod
    def from_rpc(cls, user_op_hash: str, data: dict[str, Any]) -> UserOpReceipt:
        receipt = data.get("receipt") or {}
        success = data.get("success")
        if success is None:
            success = receipt.get("status") == "0x1"
        return cls(
            user_op_hash=user_op_hash,
            success=bool(success),
            transaction_hash=receipt.get("transactionHash"),
            block_number=_parse_hex(receipt.get("blockNumber")),
            gas_used=_parse_hex(data.get("actualGasUsed") or receipt.get("gasUsed")),
            reason=data.get("reason"),
        )


def build_execute_batch_calldata(calls: Sequence[Call]) -> str:
    batch = [
        (to_checksum_address(call.to), int(call.value), _hexbytes(call.calldata))
        for call in calls
    ]
    return encode_calldata(SMART_WALLET_ABI, "executeBatch", [batch])


def wrap_owner_signature(owner_index: int, signature: bytes) -> str:
    """Coinbase Smart Wallet ``SignatureWrapper(uint256 ownerIndex, bytes signatureData)``."""
    return "0x" + encode(["(uint256,bytes)"], [(int(owner_index), signature)]).hex()
