"""
Persistence of the last seen long-poll cursor across process restarts.
"""
import json
from pathlib import Path
from typing import Protocol

from loguru import logger

class CursorStore(Protocol):
    def load(self) -> int | None: ...

    def save(self, ts: int) -> None: ...

class MemoryCursorStore:
    def __init__(self, ts: int | None = None):
        self.ts = ts

    def load(self) -> int | None:
        return self.ts

    def save(self, ts: int) -> None:
        self.ts = ts

class FileCursorStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> int | None:
        if not self.path.exists():
            return None
        try:
            ts = json.loads(self.path.read_text(encoding="utf-8")).get("ts")
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"event=cursor_load_failed path={self.path} reason='{e}'")
            return None
        # a zero or missing cursor means "no cursor", same as a fresh install
        if isinstance(ts, int) and not isinstance(ts, bool) and ts > 0:
            return ts
        return None

    def save(self, ts: int) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps({"ts": ts}), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            # losing one save only costs a replay of updates on the next cold start
            logger.warning(f"event=cursor_save_failed path={self.path} reason='{e}'")
