"""
MODULE OVERVIEW:
The a_check long-poll endpoint.

WHAT IS HAPPENING HERE:
If the feed can answer right away (failure, stale key, obsolete cursor, or
updates the client has not seen) we answer right away. Otherwise the request is
parked on an asyncio.Event for up to `wait` seconds. A push wakes every parked
request; a timeout answers with an empty update list and the unchanged cursor.
"""
import asyncio
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query

from lps_driver.sandbox.routes.deps import get_feed
from lps_driver.sandbox.update_feed import UpdateFeed
from lps_driver.shared.route_utils import log_connection

router = APIRouter()

@router.get("/im")
async def a_check(
    key: str = Query(...),
    ts: int = Query(...),
    act: str = Query("a_check"),
    wait: int = Query(25, ge=0, le=90),
    mode: int = Query(2),
    feed: UpdateFeed = Depends(get_feed),
):
    if act != "a_check":
        raise HTTPException(status_code=400, detail=f"unsupported act {act!r}")

    waiter_id = uuid.uuid4().hex[:8]
    await log_connection("long_poll:connect", waiter_id, {"ts": ts, "wait": wait, "mode": mode})
    wait_event = feed.register_long_poll(waiter_id)

    try:
        answer = feed.check(key, ts)
        if answer is None:
            try:
                await asyncio.wait_for(wait_event.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass
            answer = feed.check(key, ts) or {"ts": feed.ts, "updates": []}
        return answer
    finally:
        feed.unregister_long_poll(waiter_id)
        await log_connection("long_poll:disconnect", waiter_id)
