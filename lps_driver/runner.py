"""
CLI entrypoint for lps-driver.
"""
import asyncio
import json
import sys
from typing import Optional

import httpx
import typer
from loguru import logger

from lps_driver.client.api import ApiClient
from lps_driver.client.cursor_store import FileCursorStore
from lps_driver.client.locator import ServerLocator
from lps_driver.client.poll_loop import PollLoop
from lps_driver.client.transport import HttpLongPollTransport
from lps_driver.client.visualizer import Visualizer
from lps_driver.shared.config import settings
from lps_driver.shared.events import CHANNELS
from lps_driver.shared.models import LongPollEvent, PresenceChanged

app = typer.Typer(help="Long-poll update stream driver")

@app.callback()
def main(log_level: str = typer.Option(settings.LOG_LEVEL, help="loguru level for stderr output")):
    logger.remove()
    logger.add(sys.stderr, level=log_level.upper())

def _sandbox_url() -> str:
    return f"http://{settings.SANDBOX_HOST}:{settings.SANDBOX_PORT}"

async def echo_event(event: LongPollEvent):
    detail = f" user_ids={event.joined()}" if isinstance(event, PresenceChanged) else ""
    typer.echo(f"{event.channel}{detail}")

async def watch_stream(
    token: str,
    api_base_url: str,
    cursor_file: str,
    duration: Optional[float],
    dashboard: bool,
) -> None:
    api = ApiClient(access_token=token, base_url=api_base_url)
    transport = HttpLongPollTransport()
    loop = PollLoop(ServerLocator(api), transport, cursor_store=FileCursorStore(cursor_file))
    if not dashboard:
        for channel in CHANNELS:
            loop.sink.subscribe(channel, echo_event)

    task = loop.init()
    watcher = Visualizer(loop).run(task) if dashboard else asyncio.wait({task})
    try:
        await asyncio.wait_for(watcher, timeout=duration)
    except asyncio.TimeoutError:
        logger.info(f"Watch duration of {duration}s elapsed")
    finally:
        await loop.stop()
        await transport.aclose()
        await api.aclose()

@app.command()
def watch(
    token: str = typer.Option(settings.ACCESS_TOKEN, help="API access token (or LPS_ACCESS_TOKEN)"),
    api_base_url: str = typer.Option(settings.API_BASE_URL, help="Directory API base URL"),
    cursor_file: str = typer.Option(settings.CURSOR_FILE, help="Where the last seen cursor is persisted"),
    duration: Optional[float] = typer.Option(None, help="Stop after this many seconds"),
    dashboard: bool = typer.Option(False, "--dashboard", help="Show the rich live dashboard"),
):
    """Subscribe to the update stream and print every emitted event."""
    if not token:
        typer.echo("An access token is required (--token or LPS_ACCESS_TOKEN).")
        raise typer.Exit(1)
    try:
        asyncio.run(watch_stream(token, api_base_url, cursor_file, duration, dashboard))
    except KeyboardInterrupt:
        pass

@app.command()
def sandbox(
    port: int = typer.Option(settings.SANDBOX_PORT, help="Port to listen on"),
    chatter: float = typer.Option(settings.SANDBOX_CHATTER_INTERVAL_S, help="Seconds between generated update batches, 0 disables"),
):
    """Start the local sandbox long-poll server using Uvicorn."""
    import uvicorn
    from lps_driver.sandbox.main import create_app
    from lps_driver.sandbox.update_feed import UpdateFeed

    feed = UpdateFeed(host=f"{settings.SANDBOX_HOST}:{port}/im")
    typer.echo(f"Starting sandbox on port {port}...")
    typer.echo(f"Watch it with: lps-driver watch --token sandbox --api-base-url http://{settings.SANDBOX_HOST}:{port}/method")
    uvicorn.run(create_app(feed, chatter_interval_s=chatter), host=settings.SANDBOX_HOST, port=port, log_level=settings.LOG_LEVEL.lower())

@app.command()
def push(records: str = typer.Argument(..., help='JSON list of update records, e.g. "[[4, 1, 0], [8, -42, 1]]"')):
    """Push update records into a running sandbox."""
    try:
        payload = json.loads(records)
    except ValueError as e:
        typer.echo(f"Invalid JSON: {e}")
        raise typer.Exit(1)
    resp = httpx.post(f"{_sandbox_url()}/sandbox/updates", json=payload)
    typer.echo(resp.json())

@app.command()
def fail(code: int = typer.Argument(..., min=1, max=3, help="failed code the next a_check answers with")):
    """Make the sandbox answer the next poll with `failed=<code>`."""
    resp = httpx.post(f"{_sandbox_url()}/sandbox/failures/{code}")
    typer.echo(resp.json())

if __name__ == "__main__":
    app()
