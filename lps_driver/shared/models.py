"""
MODULE OVERVIEW:
The typed data structures shared by the driver, its collaborators and the sandbox
server, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
Three families of models live here:
  1. `ServerDescriptor` - the host/key/cursor triple handed out by the directory.
  2. `PollResponse` - a discriminated union describing what one poll produced.
  3. Outbound events - what consumers of the `EventSink` actually receive.
"""
from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

# WHAT IS HAPPENING HERE:
# The directory returns {"server": ..., "key": ..., "ts": ...}. We expose the
# server as `host` but accept both names so tests and the sandbox can build one
# directly. A descriptor without a host, key or non-zero cursor is unusable, and
# so is a host httpx cannot turn into a poll URL (e.g. a non-numeric port).
class ServerDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    host: str = Field(alias="server", min_length=1)
    key: str = Field(min_length=1)
    ts: int = Field(gt=0)
    mode: int = 2

    @field_validator("host")
    @classmethod
    def host_must_form_a_url(cls, host: str) -> str:
        try:
            httpx.URL(f"http://{host}")
        except httpx.InvalidURL as e:
            raise ValueError(f"unusable host {host!r}: {e}")
        return host

# ==========================
# POLL RESPONSES
# ==========================
class PollSuccess(BaseModel):
    kind: Literal["success"] = "success"
    ts: int
    updates: list[Any]

class PollFailed(BaseModel):
    kind: Literal["failed"] = "failed"
    code: Literal[1, 2, 3]

class PollTransportError(BaseModel):
    kind: Literal["transport_error"] = "transport_error"
    reason: str

class PollAuthError(BaseModel):
    kind: Literal["auth_error"] = "auth_error"
    reason: str = "unauthorized"

PollResponse = Annotated[
    Union[PollSuccess, PollFailed, PollTransportError, PollAuthError],
    Field(discriminator="kind"),
]

# ==========================
# OUTBOUND EVENTS
# ==========================
# WHAT IS HAPPENING HERE:
# Each event class names the channel it is published on. Consumers subscribe to
# a channel, not to a class, so the channel names are the public contract.
class MessageChanged(BaseModel):
    channel: ClassVar[str] = "message_changed"

class PresenceChanged(BaseModel):
    channel: ClassVar[str] = "users_changed"

    user_ids: frozenset[int]

    def joined(self) -> str:
        """Comma-joined ids, the shape older consumers expect."""
        return ",".join(str(user_id) for user_id in sorted(self.user_ids))

class HistoryReset(BaseModel):
    channel: ClassVar[str] = "history_reset"

LongPollEvent = Union[MessageChanged, PresenceChanged, HistoryReset]

class DecodedBatch(BaseModel):
    message_changed_count: int = 0
    affected_user_ids: set[int] = Field(default_factory=set)
    unrecognized: list[Any] = Field(default_factory=list)

    def events(self) -> list[LongPollEvent]:
        """Coalesced events for one batch: MessageChanged first, then PresenceChanged."""
        events: list[LongPollEvent] = []
        if self.message_changed_count > 0:
            events.append(MessageChanged())
        if self.affected_user_ids:
            events.append(PresenceChanged(user_ids=frozenset(self.affected_user_ids)))
        return events

# WHAT IS HAPPENING HERE:
# What the sandbox server reports on /stats, so a developer can see how many
# long polls are parked and where the cursor currently is.
class SandboxStats(BaseModel):
    ts: int
    oldest_ts: int
    pending_long_polls: int
    pending_failures: list[int]
    total_updates_dispatched: int
    uptime_s: float
    server_time: datetime
