from eth_abi import decode

from yieldzap.core.constants.contracts import BASE_USDC, ENTRY_POINT_V06
from yieldzap.core.constants.erc20_abi import ERC20_ABI
from yieldzap.core.models import Call
from yieldzap.core.utils.userop import (
    UserOperation,
    UserOpGasEstimate,
    UserOpReceipt,
    build_execute_batch_calldata,
    wrap_owner_signature,
)

SENDER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
SPENDER = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


def _user_op(**overrides) -> UserOperation:
    fields = {
        "sender": SENDER,
        "nonce": 3,
        "call_data": "0x1234",
        "call_gas_limit": 100_000,
        "verification_gas_limit": 200_000,
        "pre_verification_gas": 50_000,
        "max_fee_per_gas": 2_000_000,
        "max_priority_fee_per_gas": 1_000_000,
    }
    fields.update(overrides)
    return UserOperation(**fields)


class TestUserOperation:
    def test_rpc_dict_hex_encodes_numbers(self):
        rpc = _user_op().to_rpc_dict()
        assert rpc["nonce"] == "0x3"
        assert rpc["callGasLimit"] == hex(100_000)
        assert rpc["initCode"] == "0x"
        assert rpc["paymasterAndData"] == "0x"
        assert rpc["sender"] == SENDER

    def test_hash_is_32_bytes_and_deterministic(self):
        op = _user_op()
        h1 = op.hash(ENTRY_POINT_V06, 8453)
        assert len(h1) == 32
        assert h1 == _user_op().hash(ENTRY_POINT_V06, 8453)

    def test_hash_binds_chain_and_fields(self):
        op = _user_op()
        base = op.hash(ENTRY_POINT_V06, 8453)
        assert op.hash(ENTRY_POINT_V06, 1) != base
        assert _user_op(nonce=4).hash(ENTRY_POINT_V06, 8453) != base
        assert _user_op(paymaster_and_data="0xabcd").hash(ENTRY_POINT_V06, 8453) != base

    def test_hash_ignores_signature(self):
        op = _user_op()
        signed = op.model_copy(update={"signature": "0x" + "11" * 65})
        assert signed.hash(ENTRY_POINT_V06, 8453) == op.hash(ENTRY_POINT_V06, 8453)


class TestRpcParsing:
    def test_gas_estimate_from_hex(self):
        est = UserOpGasEstimate.from_rpc(
            {
                "callGasLimit": "0x10",
                "verificationGasLimit": "0x20",
                "preVerificationGas": "0x30",
            }
        )
        assert (est.call_gas_limit, est.verification_gas_limit, est.pre_verification_gas) == (
            16,
            32,
            48,
        )

    def test_receipt_success_flag(self):
        receipt = UserOpReceipt.from_rpc(
            "0xop",
            {
                "success": True,
                "actualGasUsed": "0x5208",
                "receipt": {"transactionHash": "0xtx", "blockNumber": "0x10"},
            },
        )
        assert receipt.success is True
        assert receipt.transaction_hash == "0xtx"
        assert receipt.gas_used == 21000
        assert receipt.block_number == 16

    def test_receipt_falls_back_to_status(self):
        receipt = UserOpReceipt.from_rpc(
            "0xop", {"receipt": {"transactionHash": "0xtx", "status": "0x0"}}
        )
        assert receipt.success is False
        assert receipt.transaction_hash == "0xtx"


class TestCalldata:
    def test_execute_batch_encodes_each_call(self):
        calls = [
            Call(to=BASE_USDC, abi=ERC20_ABI, fn_name="approve", args=[SPENDER, 1]),
            Call(to=SPENDER, data="0xdeadbeef"),
        ]
        data = build_execute_batch_calldata(calls)
        (batch,) = decode(["(address,uint256,bytes)[]"], bytes.fromhex(data[10:]))
        assert [entry[0].lower() for entry in batch] == [BASE_USDC.lower(), SPENDER.lower()]
        assert batch[1][2] == bytes.fromhex("deadbeef")
        assert batch[0][2] == bytes.fromhex(calls[0].calldata[2:])

    def test_wrap_owner_signature(self):
        signature = b"\x01" * 65
        wrapped = wrap_owner_signature(2, signature)
        ((owner_index, inner),) = decode(["(uint256,bytes)"], bytes.fromhex(wrapped[2:]))
        assert owner_index == 2
        assert inner == signature
