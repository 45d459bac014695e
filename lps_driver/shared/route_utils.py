from loguru import logger

async def log_connection(protocol: str, waiter_id: str, extra: dict | None = None) -> None:
    """
    Single structured log entry for a parked request.
    Writes: protocol, waiter_id and any extra fields.
    The long-poll route calls this once on connect and once on disconnect.
    """
    log_str = f"protocol={protocol} waiter_id={waiter_id}"
    for k, v in (extra or {}).items():
        log_str += f" {k}={v}"
    logger.debug(log_str)
