# Directory: utils
# Filename: access_log.py

import collections
import dataclasses
import datetime
import logging
import uuid
from typing import Callable, Deque, Iterator, List, Optional

LOG_CAPACITY = 50
LOG_STATUSES = ('SUCCESS', 'FAILED', 'PENDING', 'LOCKDOWN')


@dataclasses.dataclass(frozen=True)
class AccessLogEntry:
    id: str
    timestamp: datetime.datetime
    action: str
    status: str


class AccessLog:
    """
    Newest-first access history, bounded to the most recent LOG_CAPACITY entries.

    Entries are only ever created by `append`. Timestamps come from the injected
    clock and are clamped so a new entry is never older than the current newest
    one, keeping iteration in non-increasing timestamp order.
    """
    def __init__(self,
                 clock: Optional[Callable[[], datetime.datetime]] = None,
                 capacity: int = LOG_CAPACITY,
                 logger_instance: Optional[logging.Logger] = None):
        self.clock = clock or datetime.datetime.now
        self.capacity = capacity
        self.logger = logger_instance or logging.getLogger("AccessLog")
        self._entries: Deque[AccessLogEntry] = collections.deque(maxlen=capacity)

    def append(self, action: str, status: str = 'SUCCESS') -> AccessLogEntry:
        if status not in LOG_STATUSES:
            raise ValueError(f"Unknown access log status '{status}'. Expected one of {LOG_STATUSES}.")
        timestamp = self.clock()
        if self._entries and timestamp < self._entries[0].timestamp:
            timestamp = self._entries[0].timestamp
        entry = AccessLogEntry(id=uuid.uuid4().hex, timestamp=timestamp, action=action, status=status)
        self._entries.appendleft(entry)
        self.logger.info(f"[{status}] {action}")
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self.logger.info("Access history cleared.")

    def entries(self) -> List[AccessLogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AccessLogEntry]:
        return iter(list(self._entries))

    def __getitem__(self, index: int) -> AccessLogEntry:
        return self._entries[index]
