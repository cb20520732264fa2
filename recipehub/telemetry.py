# recipehub/telemetry.py
from __future__ import annotations

import json
import logging
import random
import string
import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from recipehub.models import EventType, UserEvent

LOG = logging.getLogger(__name__)

EventSink = Callable[[List[UserEvent]], Awaitable[Any]]

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class LogEntry:
    timestamp: str
    level: str
    component: str
    action: str
    data: Any = None
    error: Optional[Dict[str, str]] = None


def new_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"server-{int(time.time() * 1000)}-{suffix}"


class Telemetry:
    """
    Per-process debug log and analytics queue.

    Built once by the application at startup and closed at shutdown; routes get
    it through a dependency instead of importing a module-level instance.
      - info/warn/error/debug keep the last `max_logs` entries in memory
      - track() queues user_events rows, flush() hands them to `sink`
    """

    def __init__(
        self,
        sink: Optional[EventSink] = None,
        *,
        max_logs: int = 100,
        enabled: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.sink = sink
        self.enabled = enabled
        self.max_logs = max(1, int(max_logs))
        self.logger = logger or LOG
        self._logs: Deque[LogEntry] = deque(maxlen=self.max_logs)
        self._queue: List[UserEvent] = []
        self.closed = False

    # -------------------- debug log --------------------
    def _add(self, level: str, component: str, action: str, data: Any = None, error: Optional[BaseException] = None) -> LogEntry:
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            level=level,
            component=component,
            action=action,
            data=data,
            error={"name": type(error).__name__, "message": str(error)} if error else None,
        )
        self._logs.append(entry)
        if self.enabled:
            msg = "[%s] %s"
            args: tuple = (component, action)
            if data is not None:
                msg += " %s"
                args += (data,)
            self.logger.log(_LEVELS[level], msg, *args, exc_info=error if level == "error" else None)
        return entry

    def info(self, component: str, action: str, data: Any = None) -> LogEntry:
        return self._add("info", component, action, data)

    def warn(self, component: str, action: str, data: Any = None) -> LogEntry:
        return self._add("warn", component, action, data)

    def error(self, component: str, action: str, error: Optional[BaseException] = None, data: Any = None) -> LogEntry:
        return self._add("error", component, action, data, error)

    def debug(self, component: str, action: str, data: Any = None) -> LogEntry:
        return self._add("debug", component, action, data)

    def logs(self) -> List[LogEntry]:
        return list(self._logs)

    def logs_as_json(self) -> str:
        return json.dumps([asdict(e) for e in self._logs], ensure_ascii=False, indent=2, default=str)

    def clear(self) -> None:
        self._logs.clear()

    # -------------------- analytics --------------------
    def track(
        self,
        event_type: EventType | str,
        *,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        page_path: Optional[str] = None,
        page_title: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> UserEvent:
        if self.closed:
            raise RuntimeError("telemetry is closed")
        event = UserEvent(
            event_type=EventType(event_type),
            user_id=user_id,
            # anonymous visitors are tracked by session only
            session_id=None if user_id else (session_id or new_session_id()),
            event_data=data or {},
            page_path=page_path,
            page_title=page_title,
            user_agent=user_agent,
        )
        self._queue.append(event)
        return event

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def flush(self) -> int:
        if not self._queue:
            return 0
        batch, self._queue = self._queue, []
        if self.sink is None:
            self.debug("telemetry", "flush without sink", {"dropped": len(batch)})
            return 0
        try:
            await self.sink(batch)
        except Exception as e:
            # analytics are best-effort; the batch is not retried
            self.error("telemetry", "flush failed", e, {"dropped": len(batch)})
            return 0
        return len(batch)

    async def close(self) -> int:
        if self.closed:
            return 0
        sent = await self.flush()
        self.closed = True
        return sent
