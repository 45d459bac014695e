"""
Endpoints that let a developer (or a test) drive the sandbox: push update
records, queue failure codes, rotate the key, read stats.
"""
from typing import Any

from fastapi import APIRouter, Depends, Path

from lps_driver.sandbox.routes.deps import get_feed
from lps_driver.sandbox.update_feed import UpdateFeed
from lps_driver.shared.models import SandboxStats

router = APIRouter()

@router.post("/sandbox/updates")
async def push_updates(records: list[list[Any]], feed: UpdateFeed = Depends(get_feed)):
    return {"ts": feed.push_updates(records)}

@router.post("/sandbox/failures/{code}")
async def inject_failure(code: int = Path(..., ge=1, le=3), feed: UpdateFeed = Depends(get_feed)):
    feed.inject_failure(code)
    return {"pending_failures": list(feed.pending_failures)}

@router.post("/sandbox/keys/expire")
async def expire_key(feed: UpdateFeed = Depends(get_feed)):
    feed.expire_key()
    return {"status": "ok"}

@router.get("/stats", response_model=SandboxStats)
async def get_stats(feed: UpdateFeed = Depends(get_feed)):
    return feed.get_stats()
