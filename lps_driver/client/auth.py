"""
MODULE OVERVIEW:
The "still authorized" feed and the cancellation token every poll races against.

WHAT IS HAPPENING HERE:
The session store pushes a boolean. While it stays True, every caller gets the
same CancellationToken. The moment it flips to False that token fires, waking
whatever request is holding it, and listeners (the PollLoop) are told so they can
stop. Flipping back to True hands out a fresh token; it does not restart anything.
"""
import asyncio
from typing import Awaitable, Callable, List, TypeVar

T = TypeVar("T")

class UnauthorizedError(Exception):
    type = "Unauthorized"

class CancellationToken:
    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

class AuthState:
    def __init__(self, authorized: bool = True):
        self._authorized = authorized
        self._token = CancellationToken()
        if not authorized:
            self._token.cancel()
        self._listeners: List[Callable[[bool], None]] = []

    @property
    def authorized(self) -> bool:
        return self._authorized

    def token(self) -> CancellationToken:
        return self._token

    def add_listener(self, callback: Callable[[bool], None]):
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[bool], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def set_authorized(self, value: bool):
        if value == self._authorized:
            return
        self._authorized = value
        if value:
            self._token = CancellationToken()
        else:
            self._token.cancel()
        for listener in list(self._listeners):
            listener(value)

async def race_cancellation(request: Awaitable[T], token: CancellationToken) -> T:
    """
    Await `request` unless `token` fires first. When the token wins, the request
    task is cancelled and UnauthorizedError is raised, whatever the request would
    have returned.
    """
    if token.cancelled:
        if asyncio.iscoroutine(request):
            request.close()
        raise UnauthorizedError("User unauthorized")

    request_task = asyncio.ensure_future(request)
    revoked_task = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({request_task, revoked_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (request_task, revoked_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(request_task, revoked_task, return_exceptions=True)

    if revoked_task in done or token.cancelled:
        raise UnauthorizedError("User logged off")
    return request_task.result()
