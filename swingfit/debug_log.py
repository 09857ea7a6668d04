from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional
from loguru import logger

# (level, message, data)
Observer = Callable[[str, str, Optional[dict]], None]

LEVELS = ('info', 'warn', 'error')


@dataclass
class DebugEntry:
    level: str
    message: str
    data: Optional[dict] = None
    timestamp: datetime = field(default_factory=datetime.now)


class DebugLog:
    """Observer that keeps the most recent events for a debug panel."""

    def __init__(self, max_entries: int = 50):
        self.entries: Deque[DebugEntry] = deque(maxlen=max_entries)

    def __call__(self, level: str, message: str, data: Optional[dict] = None):
        if level not in LEVELS:
            level = 'info'

        self.entries.appendleft(DebugEntry(level=level, message=message, data=data))

        log = {'info': logger.info, 'warn': logger.warning, 'error': logger.error}[level]
        log(f"{message} {data}" if data else message)

    def latest(self, count: int = 10) -> List[DebugEntry]:
        return list(self.entries)[:count]

    def clear(self):
        self.entries.clear()

    def to_list(self) -> List[Dict[str, Any]]:
        return [
            {
                'timestamp': entry.timestamp.isoformat(),
                'level': entry.level,
                'message': entry.message,
                'data': entry.data
            }
            for entry in self.entries
        ]


def notify(observer: Optional[Observer], level: str, message: str, data: Optional[dict] = None):
    if observer is not None:
        observer(level, message, data)
