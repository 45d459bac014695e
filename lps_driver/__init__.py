"""
lps-driver

Keeps a self-healing long-poll subscription to a messaging server's update
stream and turns raw update records into message/presence/history events.
"""

from lps_driver.client.auth import AuthState
from lps_driver.client.poll_loop import LoopState, PollLoop
from lps_driver.shared.events import EventSink

__all__ = [
    "AuthState",
    "EventSink",
    "LoopState",
    "PollLoop",
]
