"""
MODULE OVERVIEW:
A minimal authenticated client for the messaging server's REST API.

WHAT IS HAPPENING HERE:
The driver needs exactly one method from the API (`messages.getLongPollServer`),
but the call convention is generic: `GET {base}/{method}?access_token=..&v=..`
answered by either `{"response": ...}` or `{"error": {"error_code", "error_msg"}}`.
Error payloads become ApiError; transport problems stay httpx errors.
"""
from typing import Any, Mapping, Protocol

import httpx

from lps_driver.shared.config import settings

class ApiError(Exception):
    def __init__(self, code: int | None, message: str):
        super().__init__(f"API error {code}: {message}")
        self.code = code
        self.message = message

class DirectoryApi(Protocol):
    async def call(self, method: str, params: Mapping[str, Any] | None = None) -> Any: ...

class ApiClient:
    def __init__(
        self,
        access_token: str = settings.ACCESS_TOKEN,
        base_url: str = settings.API_BASE_URL,
        version: str = settings.API_VERSION,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = settings.REQUEST_TIMEOUT_S,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip('/')
        self.version = version
        self.client = client or httpx.AsyncClient(timeout=timeout_s)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def call(self, method: str, params: Mapping[str, Any] | None = None) -> Any:
        query = dict(params or {})
        query["access_token"] = self.access_token
        query["v"] = self.version

        response = await self.client.get(f"{self.base_url}/{method}", params=query)
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as e:
            raise httpx.DecodingError(str(e), request=response.request)

        if not isinstance(body, dict):
            raise ApiError(None, f"unexpected body of type {type(body).__name__}")
        if "error" in body:
            error = body["error"] or {}
            raise ApiError(error.get("error_code"), error.get("error_msg", "unknown error"))
        return body.get("response")
