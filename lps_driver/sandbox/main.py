"""
MODULE OVERVIEW:
The FastAPI application factory for the sandbox messaging server.

WHAT IS HAPPENING HERE:
The sandbox speaks the two HTTP surfaces the driver consumes (the directory
method and the a_check long-poll endpoint) plus a few control endpoints.
The `lifespan` context manager optionally spawns a chatter generator as an
`asyncio.create_task` background loop and cancels it cleanly on shutdown.
"""

import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI
from loguru import logger

from lps_driver.sandbox.dummy_data import chatter_generator
from lps_driver.sandbox.middleware import TimingMiddleware
from lps_driver.sandbox.routes import control, directory, long_polling
from lps_driver.sandbox.update_feed import UpdateFeed
from lps_driver.shared.config import settings

async def chatter_runner(feed: UpdateFeed, interval_s: float):
    """Consumes the chatter generator and pushes every batch into the feed."""
    try:
        async for batch in chatter_generator(interval_s):
            feed.push_updates(batch)
    except asyncio.CancelledError:
        logger.debug("Chatter generator cancelled")

def create_app(
    feed: UpdateFeed | None = None,
    chatter_interval_s: float = settings.SANDBOX_CHATTER_INTERVAL_S,
) -> FastAPI:
    feed = feed or UpdateFeed(host=f"{settings.SANDBOX_HOST}:{settings.SANDBOX_PORT}/im")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        background_tasks = set()
        logger.info(f"Sandbox long-poll server starting, public host {feed.host}")
        if chatter_interval_s > 0:
            background_tasks.add(asyncio.create_task(chatter_runner(feed, chatter_interval_s)))
            logger.info(f"Started chatter generator every ~{chatter_interval_s}s.")

        yield

        logger.info("Sandbox shutting down. Cancelling background tasks...")
        for task in background_tasks:
            task.cancel()
        if background_tasks:
            await asyncio.gather(*background_tasks, return_exceptions=True)
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="lps-driver sandbox",
        description="A local long-poll messaging server for exercising the driver",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.feed = feed
    app.add_middleware(TimingMiddleware)

    app.include_router(directory.router, tags=["Directory"])
    app.include_router(long_polling.router, tags=["Long Poll"])
    app.include_router(control.router, tags=["Sandbox"])

    @app.get("/healthz", tags=["Ops"])
    async def health_check():
        return {"status": "ok"}

    return app
