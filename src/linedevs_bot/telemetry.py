"""
In-process telemetry: a bounded log buffer and bot counters.

Both objects are created once in main() and passed to the bot and the
status web server.
"""

import logging
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List

from .security import sanitize_output


class LogRingBuffer(logging.Handler):
    """Logging handler keeping the newest records for the /api/logs feed."""

    def __init__(self, capacity: int = 1000, level: int = logging.INFO):
        super().__init__(level=level)
        self._records: Deque[Dict[str, Any]] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._records.maxlen

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = sanitize_output(self.format(record))
        except Exception:
            self.handleError(record)
            return
        self._records.append({
            "level": record.levelname,
            "msg": message,
            "ts": int(record.created * 1000),
        })

    def tail(self, limit: int = 200) -> List[Dict[str, Any]]:
        """Newest `limit` records, oldest first."""
        if limit <= 0:
            return []
        return list(self._records)[-limit:]

    def __len__(self) -> int:
        return len(self._records)


@dataclass
class BotMetrics:
    """Counters and status shown on the dashboard."""

    started_at: float = field(default_factory=time.time)
    status: str = "starting"
    counters: Counter = field(default_factory=Counter)
    active_window_seconds: float = 3600
    _active_users: Dict[int, float] = field(default_factory=dict)

    def incr(self, name: str, amount: int = 1) -> None:
        self.counters[name] += amount

    def _prune(self, now: float) -> None:
        cutoff = now - self.active_window_seconds
        stale = [user_id for user_id, ts in self._active_users.items() if ts <= cutoff]
        for user_id in stale:
            del self._active_users[user_id]

    def touch_user(self, user_id: int) -> None:
        now = time.time()
        self._prune(now)
        self._active_users[user_id] = now

    def active_users(self) -> int:
        """Users seen within the activity window."""
        self._prune(time.time())
        return len(self._active_users)

    def snapshot(self, **extra: Any) -> Dict[str, Any]:
        """JSON-ready view of the current metrics."""
        data: Dict[str, Any] = {
            "status": self.status,
            "uptime": round(time.time() - self.started_at),
            "uptimeStart": int(self.started_at * 1000),
            "activeUsers": self.active_users(),
            "counters": dict(self.counters),
        }
        data.update(extra)
        return data
