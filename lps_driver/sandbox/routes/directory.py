"""
MODULE OVERVIEW:
The sandbox's stand-in for the REST directory call `messages.getLongPollServer`.

WHAT IS HAPPENING HERE:
Same envelope as the real API: `{"response": {...}}` on success and
`{"error": {"error_code", "error_msg"}}` otherwise. Any non-empty access_token
is accepted; a missing one yields error 5, the API's "authorization failed".
"""
from fastapi import APIRouter, Depends, Query
from loguru import logger

from lps_driver.sandbox.routes.deps import get_feed
from lps_driver.sandbox.update_feed import UpdateFeed

router = APIRouter()

@router.get("/method/messages.getLongPollServer")
async def get_long_poll_server(
    access_token: str | None = Query(None),
    use_ssl: int = Query(0),
    v: str | None = Query(None),
    feed: UpdateFeed = Depends(get_feed),
):
    if not access_token:
        logger.info("protocol=long_poll event=lps_denied reason=no_access_token")
        return {"error": {"error_code": 5, "error_msg": "User authorization failed: no access_token passed."}}
    logger.info(f"protocol=long_poll event=lps_issued use_ssl={use_ssl} ts={feed.ts}")
    return {"response": feed.issue_server()}
