from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from luffy_v1.storage import MessagePackStore


MAX_LOG_ROWS = 2000


class LoggerService:
    def __init__(self, store: MessagePackStore) -> None:
        self.store = store
        self._listeners: list[Callable[[dict[str, object]], None]] = []

    def subscribe(self, listener: Callable[[dict[str, object]], None]) -> None:
        self._listeners.append(listener)

    def log(self, event: str, **data: object) -> None:
        row = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "event": event,
            "data": {key: _plain(value) for key, value in data.items()},
        }
        logs = self.store.data["logs"]
        logs.append(row)
        if len(logs) > MAX_LOG_ROWS:
            del logs[: len(logs) - MAX_LOG_ROWS]
        self.store.touch()
        print(f"[{row['ts']}] {event} {row['data']}")
        for listener in self._listeners:
            try:
                listener(row)
            except Exception:  # noqa: BLE001
                continue


def _plain(value: object) -> object:
    # msgpack only takes primitive rows
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return str(value)
