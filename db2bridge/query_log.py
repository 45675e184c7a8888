"""SQL query log shared by the queries a bridge executes."""

import logging
import sys
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

sql_logger = logging.getLogger("db2bridge.sql")

CHANNELS = ("stderr", "default")

_RULE = "─" * 80


@dataclass
class LoggedQuery:
    """One executed statement."""

    sql: str
    time_ms: float


class QueryLog:
    """Collects executed SQL and optionally echoes it to log channels.

    A ``QueryLog`` is owned by a :class:`~db2bridge.core.bridge.Bridge` and
    passed explicitly to whatever executes SQL. The enable flag, channel list
    and buffer are guarded by a lock so one log can be shared across threads.

    Channels:
        stderr: framed block written to ``sys.stderr``
        default: debug record on the ``db2bridge.sql`` logger
    """

    def __init__(self, enabled: bool = False, channels: Iterable[str] | None = None):
        self._lock = threading.Lock()
        self._enabled = enabled
        self._channels: list[str] = list(channels) if channels else ["default"]
        self._entries: list[LoggedQuery] = []
        self._formatter: Callable[[str], str] | None = None

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    @property
    def channels(self) -> list[str]:
        with self._lock:
            return list(self._channels)

    def enable(self, channels: str | Iterable[str] = "stderr") -> str:
        """Start recording queries.

        Args:
            channels: Channel name or names to echo to ("stderr", "default")

        Returns:
            Human readable confirmation naming the active channels

        Raises:
            ValueError: If a channel name is unknown
        """
        if isinstance(channels, str):
            channels = [channels]
        channels = list(channels)
        unknown = [c for c in channels if c not in CHANNELS]
        if unknown:
            raise ValueError(f"Unknown query log channel(s): {', '.join(unknown)}. Use one of: {', '.join(CHANNELS)}")

        with self._lock:
            self._enabled = True
            self._channels = channels
        return f"Logging to: {', '.join(channels)}"

    def disable(self) -> None:
        with self._lock:
            self._enabled = False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def entries(self) -> list[LoggedQuery]:
        """Snapshot of the recorded queries, oldest first."""
        with self._lock:
            return list(self._entries)

    def set_formatter(self, formatter: Callable[[str], str] | None) -> None:
        """Set a callable used to format SQL before it is echoed."""
        with self._lock:
            self._formatter = formatter

    def record(self, sql: str, time_ms: float) -> None:
        """Record one executed statement if logging is enabled."""
        with self._lock:
            if not self._enabled:
                return
            self._entries.append(LoggedQuery(sql=sql, time_ms=time_ms))
            channels = list(self._channels)
            formatter = self._formatter

        text = formatter(sql) if formatter else sql
        for channel in channels:
            if channel == "stderr":
                print(f"{_RULE}\nSQL ({time_ms:.2f}ms):\n{text}\n{_RULE}", file=sys.stderr)
            else:
                sql_logger.debug("SQL (%.2fms): %s", time_ms, text)
