from unittest.mock import AsyncMock

import httpx
import pytest

from yieldzap.core.clients.BundlerClient import BundlerClient
from yieldzap.core.clients.PaymasterClient import (
    PaymasterClient,
    classify_paymaster_error,
)
from yieldzap.core.constants.contracts import BASE_USDC, ENTRY_POINT_V06
from yieldzap.core.errors import BundlerError, PaymasterRejectedError
from yieldzap.core.utils.userop import UserOperation

RPC_URL = "https://bundler.example/rpc"
USER_OP = UserOperation(
    sender="0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed", nonce=0, call_data="0x"
)


def _rpc_response(payload: dict, status: int = 200) -> httpx.Response:
    return httpx.Response(
        status, json=payload, request=httpx.Request("POST", RPC_URL)
    )


class TestClassifyPaymasterError:
    def test_unsupported_token_code(self):
        error = {"code": -32002, "message": "token", "data": {"acceptedTokens": []}}
        assert classify_paymaster_error(error) == "unsupported_token"

    def test_accepted_tokens_payload(self):
        error = {"code": -32000, "message": "nope", "data": {"acceptedTokens": [BASE_USDC]}}
        assert classify_paymaster_error(error) == "unsupported_token"

    def test_sponsorship_limit(self):
        error = {"code": -32001, "message": "sponsorship limit reached for policy"}
        assert classify_paymaster_error(error) == "sponsorship_limit"

    def test_entry_point_paymaster_code(self):
        assert classify_paymaster_error("AA33 reverted (or OOG)") == "rejected"

    def test_unrelated_error(self):
        assert classify_paymaster_error({"code": -32602, "message": "invalid nonce"}) is None


class TestBundlerClient:
    @pytest.mark.asyncio
    async def test_send_user_operation(self):
        client = BundlerClient(RPC_URL)
        client.client.request = AsyncMock(
            return_value=_rpc_response({"jsonrpc": "2.0", "id": 1, "result": "0xophash"})
        )
        result = await client.send_user_operation(USER_OP, ENTRY_POINT_V06)

        assert result == "0xophash"
        body = client.client.request.await_args.kwargs["json"]
        assert body["method"] == "eth_sendUserOperation"
        assert body["params"] == [USER_OP.to_rpc_dict(), ENTRY_POINT_V06]

    @pytest.mark.asyncio
    async def test_receipt_not_ready(self):
        client = BundlerClient(RPC_URL)
        client.client.request = AsyncMock(
            return_value=_rpc_response({"jsonrpc": "2.0", "id": 1, "result": None})
        )
        assert await client.get_user_operation_receipt("0xophash") is None

    @pytest.mark.asyncio
    async def test_plain_rpc_error_is_bundler_error(self):
        client = BundlerClient(RPC_URL)
        client.client.request = AsyncMock(
            return_value=_rpc_response(
                {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "invalid nonce"}}
            )
        )
        with pytest.raises(BundlerError) as exc_info:
            await client.send_user_operation(USER_OP, ENTRY_POINT_V06)
        assert exc_info.value.code == -32602

    @pytest.mark.asyncio
    async def test_paymaster_error_relayed_by_bundler(self):
        client = BundlerClient(RPC_URL)
        client.client.request = AsyncMock(
            return_value=_rpc_response(
                {
                    "jsonrpc": "2.0",
                    "id": 1,
                    "error": {"code": -32500, "message": "AA33 reverted: paymaster"},
                },
                status=400,
            )
        )
        with pytest.raises(PaymasterRejectedError) as exc_info:
            await client.estimate_user_operation_gas(USER_OP, ENTRY_POINT_V06)
        assert exc_info.value.reason == "rejected"

    @pytest.mark.asyncio
    async def test_missing_url(self, monkeypatch):
        monkeypatch.delenv("YIELDZAP_BUNDLER_URL", raising=False)
        client = BundlerClient(None)
        client.rpc_url = None
        with pytest.raises(RuntimeError, match="no RPC URL"):
            await client.get_user_operation_receipt("0xophash")


class TestPaymasterClient:
    @pytest.mark.asyncio
    async def test_stub_data_params(self):
        client = PaymasterClient(RPC_URL)
        client.client.request = AsyncMock(
            return_value=_rpc_response(
                {"jsonrpc": "2.0", "id": 1, "result": {"paymasterAndData": "0xpm"}}
            )
        )
        result = await client.get_paymaster_stub_data(
            USER_OP, ENTRY_POINT_V06, 8453, {"erc20": BASE_USDC}
        )

        assert result == "0xpm"
        body = client.client.request.await_args.kwargs["json"]
        assert body["method"] == "pm_getPaymasterStubData"
        assert body["params"][1:] == [ENTRY_POINT_V06, "0x2105", {"erc20": BASE_USDC}]

    @pytest.mark.asyncio
    async def test_unsupported_token(self):
        client = PaymasterClient(RPC_URL)
        client.client.request = AsyncMock(
            return_value=_rpc_response(
                {
                    "jsonrpc": "2.0",
                    "id": 1,
                    "error": {
                        "code": -32002,
                        "message": "token not accepted",
                        "data": {"acceptedTokens": [{"address": BASE_USDC}]},
                    },
                }
            )
        )
        with pytest.raises(PaymasterRejectedError) as exc_info:
            await client.get_paymaster_data(
                USER_OP, ENTRY_POINT_V06, 8453, {"erc20": "0x0000000000000000000000000000000000000001"}
            )
        assert exc_info.value.reason == "unsupported_token"
        assert "acceptedTokens" in exc_info.value.data

    @pytest.mark.asyncio
    async def test_other_errors_default_to_rejected(self):
        client = PaymasterClient(RPC_URL)
        client.client.request = AsyncMock(
            return_value=_rpc_response(
                {"jsonrpc": "2.0", "id": 1, "error": {"code": -32603, "message": "internal"}}
            )
        )
        with pytest.raises(PaymasterRejectedError) as exc_info:
            await client.get_paymaster_data(USER_OP, ENTRY_POINT_V06, 8453, {})
        assert exc_info.value.reason == "rejected"
