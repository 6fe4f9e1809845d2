import time
from typing import Any

import httpx
from loguru import logger

from yieldzap.core.config import get_api_key
from yieldzap.core.constants.base import DEFAULT_HTTP_TIMEOUT


class ApiClient:
    def __init__(self, timeout: float = DEFAULT_HTTP_TIMEOUT):
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.headers = {
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        logger.debug(f"Making {method} request to {url}")
        start_time = time.time()

        merged_headers = dict(self.headers)
        api_key = get_api_key()
        if api_key:
            merged_headers["X-API-KEY"] = api_key
        if headers:
            merged_headers.update(headers)
        resp = await self.client.request(method, url, headers=merged_headers, **kwargs)

        elapsed = time.time() - start_time
        if resp.status_code >= 400:
            logger.warning(
                f"HTTP {resp.status_code} response for {method} {url} after {elapsed:.2f}s"
            )
        else:
            logger.debug(
                f"HTTP {resp.status_code} response for {method} {url} after {elapsed:.2f}s"
            )

        resp.raise_for_status()
        return resp

    async def close(self) -> None:
        await self.client.aclose()


class JsonRpcClient(ApiClient):
    """JSON-RPC 2.0 over HTTP; subclasses map ``error`` payloads to typed errors."""

    def __init__(self, rpc_url: str | None, timeout: float = DEFAULT_HTTP_TIMEOUT):
        super().__init__(timeout=timeout)
        self.rpc_url = rpc_url

    def _raise_rpc_error(self, method: str, error: dict[str, Any]) -> None:
        raise RuntimeError(f"{method} failed: {error}")

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        if not self.rpc_url:
            raise RuntimeError(f"{self.__class__.__name__} has no RPC URL configured")
        body = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            response = await self._request("POST", self.rpc_url, json=body)
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            # Some RPC servers answer JSON-RPC errors with a 4xx status.
            payload = _json_or_none(exc.response)
            if not payload or not payload.get("error"):
                raise
        error = payload.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            self._raise_rpc_error(method, error)
        return payload.get("result")


def _json_or_none(response: httpx.Response) -> dict[str, Any] | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None
