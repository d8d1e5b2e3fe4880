"""Injectable clock so date math and OVERDUE derivation are testable"""

from abc import ABC, abstractmethod
from datetime import datetime, date, timedelta, timezone
import threading


class Clock(ABC):
    """Source of the current time"""

    @abstractmethod
    def now(self) -> datetime:
        pass

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a moment; tests move it explicitly"""

    def __init__(self, moment: datetime):
        if isinstance(moment, date) and not isinstance(moment, datetime):
            moment = datetime(moment.year, moment.month, moment.day, 12, 0, tzinfo=timezone.utc)
        self._moment = moment
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._moment

    def set(self, moment: datetime) -> None:
        with self._lock:
            self._moment = moment

    def advance(self, days: int = 0, **kwargs) -> None:
        with self._lock:
            self._moment = self._moment + timedelta(days=days, **kwargs)
