"""
MODULE OVERVIEW:
The sandbox server's state registry: the update history, the current key and
cursor, and every long-poll request currently parked on the server.

WHAT IS HAPPENING HERE:
The cursor (`ts`) is a counter bumped once per pushed update record. A client
that says "I have seen everything up to ts=N" gets every retained record with
a cursor above N. History is bounded: once the records right after N have been
evicted the client can no longer resume and is told `failed=1`.
Waiting long polls hold an asyncio.Event that gets `.set()` on every push.
"""

import asyncio
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Tuple

from loguru import logger

from lps_driver.shared.models import SandboxStats

def _new_key() -> str:
    return uuid.uuid4().hex[:16]

class UpdateFeed:
    def __init__(self, host: str, history_size: int = 1000):
        self.host = host
        self.key = _new_key()
        self.ts = 1
        self.history: Deque[Tuple[int, List[Any]]] = deque(maxlen=history_size)
        self.pending_failures: Deque[int] = deque()
        self.long_poll_waiters: Dict[str, asyncio.Event] = {}
        self.total_updates_dispatched = 0
        self.startup_time = datetime.now(timezone.utc)

    # ==========================
    # DIRECTORY
    # ==========================
    def issue_server(self) -> dict:
        return {"server": self.host, "key": self.key, "ts": self.ts}

    def expire_key(self):
        self.key = _new_key()
        logger.info("protocol=long_poll event=key_expired")

    def inject_failure(self, code: int):
        self.pending_failures.append(code)
        logger.info(f"protocol=long_poll event=failure_injected code={code}")

    # ==========================
    # LONG POLL MANAGEMENT
    # ==========================
    def register_long_poll(self, waiter_id: str) -> asyncio.Event:
        event = asyncio.Event()
        self.long_poll_waiters[waiter_id] = event
        logger.debug(f"waiter_id={waiter_id} protocol=long_poll event=wait reason=registered")
        return event

    def unregister_long_poll(self, waiter_id: str):
        if waiter_id in self.long_poll_waiters:
            del self.long_poll_waiters[waiter_id]

    def _notify_long_polls(self):
        for event in self.long_poll_waiters.values():
            event.set()

    @property
    def oldest_ts(self) -> int:
        return self.history[0][0] if self.history else self.ts

    def push_updates(self, records: List[List[Any]]) -> int:
        for record in records:
            self.ts += 1
            self.history.append((self.ts, list(record)))
        self.total_updates_dispatched += len(records)
        self._notify_long_polls()
        return self.ts

    def check(self, key: str, ts: int) -> dict | None:
        """
        The immediate answer to an a_check request, or None when the client is
        up to date and should be parked until something is pushed.
        """
        if self.pending_failures:
            code = self.pending_failures.popleft()
            return {"failed": code, "ts": self.ts} if code == 1 else {"failed": code}
        if key != self.key:
            return {"failed": 2}
        if ts > self.ts or ts < self.oldest_ts - 1:
            return {"failed": 1, "ts": self.ts}
        updates = [record for record_ts, record in self.history if record_ts > ts]
        if updates:
            return {"ts": self.ts, "updates": updates}
        return None

    # ==========================
    # METRICS
    # ==========================
    def get_stats(self) -> SandboxStats:
        return SandboxStats(
            ts=self.ts,
            oldest_ts=self.oldest_ts,
            pending_long_polls=len(self.long_poll_waiters),
            pending_failures=list(self.pending_failures),
            total_updates_dispatched=self.total_updates_dispatched,
            uptime_s=(datetime.now(timezone.utc) - self.startup_time).total_seconds(),
            server_time=datetime.now(timezone.utc)
        )
