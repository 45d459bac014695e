"""
MODULE OVERVIEW:
The HTTP side of a single long-poll request.

WHAT IS HAPPENING HERE:
Notice the HTTPX timeout (35s) is deliberately HIGHER than the `wait=25` we ask
the server to hold the request for. An idle stream therefore comes back as an
empty success well before the client gives up. If the request really does run
past 35s, httpx raises a timeout which the loop treats as a transient error.

The request itself runs inside `race_cancellation`: if the user logs off while
we are parked on the server, the request is abandoned on the spot.
"""
from typing import Any, Protocol

import httpx

from lps_driver.client.auth import CancellationToken, race_cancellation
from lps_driver.shared.config import settings

class LongPollTransport(Protocol):
    async def get(self, url: str, token: CancellationToken) -> Any: ...

    async def aclose(self) -> None: ...

class HttpLongPollTransport:
    def __init__(self, client: httpx.AsyncClient | None = None, timeout_s: float = settings.REQUEST_TIMEOUT_S):
        self.client = client or httpx.AsyncClient(timeout=timeout_s)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _get_json(self, url: str) -> Any:
        response = await self.client.get(url)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            # undecodable bytes or malformed JSON
            raise httpx.DecodingError(str(e), request=response.request)

    async def get(self, url: str, token: CancellationToken) -> Any:
        return await race_cancellation(self._get_json(url), token)
