"""时间来源：衰减、冷却、连续天数都从这里读“现在”。"""
from datetime import datetime, timedelta, timezone
from typing import Optional


class SystemClock:
    """真实时钟（UTC）。"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """可手动拨动的时钟，用于测试与回放。"""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs) -> datetime:
        """前进一段时间，参数同 timedelta。"""
        self._now = self._now + timedelta(**kwargs)
        return self._now
