"""
MODULE OVERVIEW:
Fetches a fresh long-poll server descriptor from the directory API.

WHAT IS HAPPENING HERE:
One call, bounded by a 35s timeout, no retries. Whatever goes wrong (timeout,
network error, API error, a payload missing host/key/ts) is logged and reported
as `None`. Deciding when to try again is the PollLoop's job, not ours.
"""
import asyncio

import httpx
from loguru import logger
from pydantic import ValidationError

from lps_driver.client.api import ApiError, DirectoryApi
from lps_driver.shared.config import settings
from lps_driver.shared.models import ServerDescriptor

class ServerLocator:
    def __init__(
        self,
        api: DirectoryApi,
        method: str = settings.DIRECTORY_METHOD,
        timeout_s: float = settings.REQUEST_TIMEOUT_S,
    ):
        self.api = api
        self.method = method
        self.timeout_s = timeout_s

    async def acquire(self) -> ServerDescriptor | None:
        logger.info(f"protocol=long_poll event=lps_requested method={self.method}")
        try:
            payload = await asyncio.wait_for(self.api.call(self.method, {"use_ssl": 1}), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.warning(f"protocol=long_poll event=lps_failed reason='timeout after {self.timeout_s}s'")
            return None
        except (ApiError, httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"protocol=long_poll event=lps_failed reason='{e}'")
            return None

        try:
            server = ServerDescriptor.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"protocol=long_poll event=lps_failed reason='incomplete descriptor' errors={e.error_count()}")
            return None

        logger.info(f"protocol=long_poll event=lps_acquired host={server.host} ts={server.ts}")
        return server
