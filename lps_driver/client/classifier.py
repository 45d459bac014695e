"""
MODULE OVERVIEW:
Interprets one long-poll response body as a PollResponse.

WHAT IS HAPPENING HERE:
Fields are inspected in a fixed priority order:
  1. `failed` - the server's own failure codes (1 history obsolete, 2 key
     expired, 3 server error / new key needed).
  2. `error` - set by the loop itself when the request raised. An error whose
     type is "unauthorized" is fatal, anything else is a transient transport error.
  3. otherwise a success carrying `ts` and `updates`.
A body that fits none of these is a transport error: a malformed success must
never be silently treated as an empty one.
"""
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from lps_driver.shared.models import (
    PollAuthError,
    PollFailed,
    PollResponse,
    PollSuccess,
    PollTransportError,
)

FAILURE_CODES = (1, 2, 3)

def _error_type(error: Any) -> str:
    if isinstance(error, Mapping):
        return str(error.get("type", ""))
    return str(getattr(error, "type", ""))

def _error_reason(error: Any) -> str:
    if isinstance(error, Mapping):
        return str(error.get("message") or error.get("type") or error)
    return str(error) or type(error).__name__

def classify(raw: Any) -> PollResponse:
    if not isinstance(raw, Mapping):
        return PollTransportError(reason=f"unexpected response body of type {type(raw).__name__}")

    if "failed" in raw:
        code = raw["failed"]
        if isinstance(code, int) and not isinstance(code, bool) and code in FAILURE_CODES:
            return PollFailed(code=code)
        return PollTransportError(reason=f"unknown failure code {code!r}")

    if "error" in raw:
        error = raw["error"]
        if _error_type(error).lower() == "unauthorized":
            return PollAuthError(reason=_error_reason(error))
        return PollTransportError(reason=_error_reason(error))

    try:
        return PollSuccess.model_validate({"ts": raw.get("ts"), "updates": raw.get("updates")})
    except ValidationError as e:
        return PollTransportError(reason=f"malformed success response ({e.error_count()} errors)")
