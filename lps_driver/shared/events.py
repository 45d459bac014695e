"""
MODULE OVERVIEW:
The outbound event channels exposed to consumers of the driver.

WHAT IS HAPPENING HERE:
A PollLoop owns exactly one EventSink. The sink has three named channels:
`message_changed`, `users_changed` and `history_reset`. Consumers subscribe
explicitly and get back a callable that undoes the subscription.
A failing subscriber is logged and skipped so one broken consumer cannot stall
the poll loop or starve the other subscribers.
"""

from typing import Awaitable, Callable, Dict, List
from loguru import logger
from .models import HistoryReset, LongPollEvent, MessageChanged, PresenceChanged

Subscriber = Callable[[LongPollEvent], Awaitable[None]]

CHANNELS = (MessageChanged.channel, PresenceChanged.channel, HistoryReset.channel)

class EventSink:
    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {channel: [] for channel in CHANNELS}

    def _channel(self, channel: str) -> List[Subscriber]:
        try:
            return self._subscribers[channel]
        except KeyError:
            raise ValueError(f"unknown channel {channel!r}, expected one of {CHANNELS}") from None

    def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], None]:
        self._channel(channel).append(callback)
        return lambda: self.unsubscribe(channel, callback)

    def unsubscribe(self, channel: str, callback: Subscriber) -> None:
        subscribers = self._channel(channel)
        if callback in subscribers:
            subscribers.remove(callback)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channel(channel))

    async def publish(self, event: LongPollEvent):
        # Iterate over a copy: a subscriber may unsubscribe itself while handling.
        for sub in list(self._channel(event.channel)):
            try:
                await sub(event)
            except Exception as e:
                logger.error(f"channel={event.channel} event=subscriber_error reason='{e}'")
