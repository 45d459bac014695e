"""
MODULE OVERVIEW:
The long-poll driver: acquire a server, poll it forever, recover from whatever
the server or the network throws at us.

WHAT IS HAPPENING HERE:
The loop is an explicit state machine driven by a single `while`:

    IDLE --start/restart--> ACQUIRING --descriptor--> POLLING --+
     ^                          |                       ^       |
     |    (5s RetryScheduler)   |                       +-------+  success / transport error
     +--- acquisition failed ---+                               |
                                ^------- failed=1/2/3 ----------+
                                         AuthError ------------> TERMINATED

Success advances the cursor and emits at most one MessageChanged and one
PresenceChanged. failed=2/3 only means the key went stale, so the cursor is
carried into the next acquisition. failed=1 means the backlog is gone: consumers
are told to drop cached state (HistoryReset) and the server picks a new cursor.
Each step returns to the `while`, so the stack never grows with the number of polls.
"""
import asyncio
from enum import Enum
from typing import Callable

import httpx
from loguru import logger

from lps_driver.client.auth import AuthState, UnauthorizedError
from lps_driver.client.classifier import classify
from lps_driver.client.cursor_store import CursorStore
from lps_driver.client.decoder import decode_updates
from lps_driver.client.locator import ServerLocator
from lps_driver.client.scheduler import RestartHandle, RetryScheduler
from lps_driver.client.transport import LongPollTransport
from lps_driver.shared.client_utils import build_poll_url, make_client_stats
from lps_driver.shared.config import settings
from lps_driver.shared.events import EventSink
from lps_driver.shared.models import (
    HistoryReset,
    LongPollEvent,
    PollAuthError,
    PollFailed,
    PollResponse,
    PollSuccess,
    ServerDescriptor,
)

class LoopState(str, Enum):
    IDLE = "IDLE"
    ACQUIRING = "ACQUIRING"
    POLLING = "POLLING"
    TERMINATED = "TERMINATED"

FAILURE_REASONS = {
    1: "history became obsolete",
    2: "key expired",
    3: "server error, new key needed",
}

class PollLoop:
    def __init__(
        self,
        locator: ServerLocator,
        transport: LongPollTransport,
        auth: AuthState | None = None,
        sink: EventSink | None = None,
        scheduler: RetryScheduler | None = None,
        cursor_store: CursorStore | None = None,
        wait_s: int = settings.LONG_POLL_WAIT_S,
        mode: int = settings.LONG_POLL_MODE,
    ):
        self.locator = locator
        self.transport = transport
        self.auth = auth or AuthState()
        self.sink = sink or EventSink()
        self.scheduler = scheduler or RetryScheduler()
        self.cursor_store = cursor_store
        self.wait_s = wait_s
        self.mode = mode

        self.state = LoopState.IDLE
        self.server: ServerDescriptor | None = None
        self.stats = make_client_stats()
        self.on_state_change: Callable[[LoopState], None] | None = None

        self._seed_ts: int | None = None
        self._pending_restart: RestartHandle | None = None
        self._task: asyncio.Task | None = None
        self._running = False

        self.auth.add_listener(self._on_auth_change)

    # ==========================
    # PUBLIC ENTRY POINTS
    # ==========================
    def init(self) -> asyncio.Task:
        """Cold start: seed the first acquisition with the persisted cursor, if any."""
        seed_ts = self.cursor_store.load() if self.cursor_store else None
        logger.info(f"protocol=long_poll event=init persisted_ts={seed_ts}")
        return self.start(seed_ts)

    def start(self, seed_ts: int | None = None) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            raise RuntimeError("poll loop is already running")
        self._task = asyncio.create_task(self.run(seed_ts))
        return self._task

    async def stop(self) -> None:
        self._terminate("stopped")
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def restart(self, seed_ts: int | None = None) -> None:
        """Re-enter ACQUIRING, optionally carrying a cursor into the new descriptor."""
        self._pending_restart = None
        self._seed_ts = seed_ts
        self.server = None
        self._set_state(LoopState.ACQUIRING)

    async def run(self, seed_ts: int | None = None) -> None:
        self._running = True
        logger.info("protocol=long_poll event=start_monitoring")
        self.restart(seed_ts)
        if not self.auth.authorized:
            self._terminate("not authorized")
        try:
            while self.state is not LoopState.TERMINATED:
                if self.state is LoopState.ACQUIRING:
                    await self._acquire()
                elif self.state is LoopState.POLLING:
                    await self._poll()
                else:
                    await self._wait_for_restart()
        finally:
            self._running = False
            self._terminate("loop exited")

    # ==========================
    # STATE MACHINE STEPS
    # ==========================
    def _set_state(self, state: LoopState):
        if state is self.state:
            return
        logger.debug(f"protocol=long_poll event=state from={self.state.value} to={state.value}")
        self.state = state
        if self.on_state_change:
            self.on_state_change(state)

    def _terminate(self, reason: str):
        if self._pending_restart is not None:
            self._pending_restart.cancel()
            self._pending_restart = None
        if self.state is not LoopState.TERMINATED:
            logger.info(f"protocol=long_poll event=terminated reason='{reason}'")
            self._set_state(LoopState.TERMINATED)

    def _on_auth_change(self, authorized: bool):
        if not authorized and self._running:
            self._terminate("user logged off")

    async def _acquire(self):
        seed_ts = self._seed_ts
        self._seed_ts = None
        server = await self.locator.acquire()
        if self.state is not LoopState.ACQUIRING:
            return

        if server is None:
            self.stats["acquisition_failures"] += 1
            logger.warning(
                f"protocol=long_poll event=lps_unavailable "
                f"reason='restart in {self.scheduler.delay_s}s'"
            )
            self._set_state(LoopState.IDLE)
            self._pending_restart = self.scheduler.schedule_restart(self.restart, None)
            return

        if seed_ts:
            logger.info(f"protocol=long_poll event=seed_cursor ts={seed_ts} server_ts={server.ts}")
            server.ts = seed_ts
        server.mode = self.mode
        self.server = server
        self.stats["acquisitions"] += 1
        self._set_state(LoopState.POLLING)

    async def _wait_for_restart(self):
        handle = self._pending_restart
        if handle is None:
            self._terminate("idle without a scheduled restart")
            return
        fired = await handle.wait()
        if not fired:
            self._terminate("scheduled restart cancelled")

    async def _poll(self):
        server = self.server
        url = build_poll_url(server, self.wait_s)
        logger.debug(f"protocol=long_poll event=poll host={server.host} ts={server.ts}")
        try:
            raw = await self.transport.get(url, self.auth.token())
        except (UnauthorizedError, httpx.HTTPError, httpx.InvalidURL) as e:
            raw = {"error": e}

        # the response may land after auth was revoked; it must not be processed
        if self.state is not LoopState.POLLING:
            return
        await self._handle(classify(raw))

    async def _handle(self, response: PollResponse):
        if isinstance(response, PollSuccess):
            await self._on_success(response)
        elif isinstance(response, PollFailed):
            logger.info(f"protocol=long_poll event=failed code={response.code} reason='{FAILURE_REASONS[response.code]}'")
            if response.code == 1:
                await self._publish(HistoryReset())
                if self.state is LoopState.POLLING:
                    self.restart(None)
            else:
                self.restart(self.server.ts)
        elif isinstance(response, PollAuthError):
            self._terminate(f"unauthorized: {response.reason}")
        else:
            self.stats["transport_errors"] += 1
            logger.warning(f"protocol=long_poll event=transport_error reason='{response.reason}' action=reissue")
            # yield to the event loop before the immediate re-issue
            await asyncio.sleep(0)

    async def _on_success(self, response: PollSuccess):
        self.server.ts = response.ts
        if self.cursor_store:
            self.cursor_store.save(response.ts)
        self.stats["polls_completed"] += 1

        batch = decode_updates(response.updates)
        if batch.unrecognized:
            self.stats["unknown_updates"] += len(batch.unrecognized)
            for record in batch.unrecognized:
                logger.warning(f"protocol=long_poll event=unknown_update ts={response.ts} record={record!r}")
        if batch.affected_user_ids:
            logger.info(f"protocol=long_poll event=users_changed user_ids={sorted(batch.affected_user_ids)}")

        for event in batch.events():
            await self._publish(event)

    async def _publish(self, event: LongPollEvent):
        self.stats["events_emitted"] += 1
        await self.sink.publish(event)
