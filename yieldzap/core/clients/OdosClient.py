from __future__ import annotations

from typing import Any

import httpx

from yieldzap.core.clients.ApiClient import ApiClient
from yieldzap.core.config import get_odos_api_url
from yieldzap.core.constants.chains import CHAIN_ID_BASE
from yieldzap.core.errors import (
    QuoteRequestError,
    QuoteUnavailableError,
    RateLimitedError,
)

QUOTE_PATH = "/sor/quote/v2"
ASSEMBLE_PATH = "/sor/assemble"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body)
    return str(body)


class OdosClient(ApiClient):
    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{get_odos_api_url()}{path}"
        try:
            response = await self._request("POST", url, json=body)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = _error_detail(exc.response)
            if status == 429:
                retry_after = exc.response.headers.get("retry-after")
                raise RateLimitedError(
                    float(retry_after) if retry_after and retry_after.isdigit() else 60.0,
                    f"Odos rate limit: {detail}",
                ) from exc
            if status >= 500:
                raise QuoteUnavailableError(f"Odos unavailable ({status}): {detail}") from exc
            raise QuoteRequestError(f"Odos rejected request ({status}): {detail}") from exc
        except httpx.TimeoutException as exc:
            raise QuoteUnavailableError(f"Odos request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise QuoteUnavailableError(f"Odos request failed: {exc}") from exc
        return response.json()

    async def get_quote(
        self,
        *,
        input_token: str,
        output_token: str,
        amount: int,
        user_address: str,
        slippage_pct: float,
        chain_id: int = CHAIN_ID_BASE,
    ) -> dict[str, Any]:
        body = {
            "chainId": chain_id,
            "inputTokens": [{"tokenAddress": input_token, "amount": str(int(amount))}],
            "outputTokens": [{"tokenAddress": output_token, "proportion": 1}],
            "userAddr": user_address,
            "slippageLimitPercent": slippage_pct,
            "sourceBlacklist": [],
            "sourceWhitelist": [],
            "compact": True,
        }
        return await self._post(QUOTE_PATH, body)

    async def assemble(self, *, path_id: str, user_address: str) -> dict[str, Any]:
        body = {"userAddr": user_address, "pathId": path_id, "simulate": False}
        return await self._post(ASSEMBLE_PATH, body)


ODOS_CLIENT = OdosClient()
