from datetime import datetime, timezone

from lps_driver.shared.models import ServerDescriptor

def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Every PollLoop calls this once in __init__.
    Keys: polls_completed, events_emitted, acquisitions, acquisition_failures,
          transport_errors, unknown_updates, connected_at.
    """
    return {
        "polls_completed": 0,
        "events_emitted": 0,
        "acquisitions": 0,
        "acquisition_failures": 0,
        "transport_errors": 0,
        "unknown_updates": 0,
        "connected_at": datetime.now(timezone.utc).isoformat()
    }

def build_poll_url(server: ServerDescriptor, wait_s: int) -> str:
    """
    The a_check request for one poll. The host already carries its path
    (e.g. `im.example.com/nim42`), so it is used as-is after the scheme.
    """
    return (
        f"http://{server.host}?act=a_check&key={server.key}"
        f"&ts={server.ts}&wait={wait_s}&mode={server.mode}"
    )
