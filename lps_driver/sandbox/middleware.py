"""
MODULE OVERVIEW:
FastAPI middleware stamping every sandbox response with timing and cursor headers.

WHAT IS HAPPENING HERE:
`X-Process-Time-Ms` is the time FastAPI held the request. On `/im` that is mostly
time spent parked waiting for updates, so a 25s number there is a healthy empty
poll, not a slow server. `X-Sandbox-Ts` is the feed's cursor after the request,
which lets you line up what the driver asked for with what the sandbox had.
"""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

LONG_POLL_PATH = "/im"

class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.2f}"
        feed = getattr(request.app.state, "feed", None)
        if feed is not None:
            response.headers["X-Sandbox-Ts"] = str(feed.ts)

        if request.url.path == LONG_POLL_PATH:
            logger.debug(f"protocol=long_poll event=a_check_answered status={response.status_code} parked_ms={elapsed_ms:.0f}")
        else:
            logger.debug(f"protocol=sandbox event=request method={request.method} path={request.url.path} status={response.status_code} ms={elapsed_ms:.2f}")
        return response
