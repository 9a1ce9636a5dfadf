"""连续照料天数。

按 UTC 自然日分桶（不用设备本地时区），双方客户端得到同一组“照料日”。
最近的照料日是今天或昨天时连续天数仍然有效，更早则归零。
"""
from collections import Counter
from datetime import date, timedelta
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from couple_pet.pet.models import CareAction

ONE_DAY = timedelta(days=1)


class DayCount(BaseModel):
    """某一天的照料次数。"""
    day: date
    actions: int


class CareStreakInfo(BaseModel):
    """由照料记录推导，不持久化。"""
    current_streak: int = Field(0, description="截至今天的连续天数")
    longest_streak: int = Field(0, description="历史最长连续天数")
    last_care_date: Optional[date] = Field(None, description="最近照料日（UTC）")
    history: List[DayCount] = Field(default_factory=list, description="按日期升序的每日次数")


def care_day(action: CareAction) -> date:
    return action.timestamp.date()


def _current(days_desc: List[date], today: date) -> int:
    days = [d for d in days_desc if d <= today]
    if not days or days[0] < today - ONE_DAY:
        return 0
    count = 1
    prev = days[0]
    for d in days[1:]:
        if d != prev - ONE_DAY:
            break
        count += 1
        prev = d
    return count


def _longest(days_asc: List[date]) -> int:
    longest = run = 0
    prev = None
    for d in days_asc:
        run = run + 1 if prev is not None and d == prev + ONE_DAY else 1
        longest = max(longest, run)
        prev = d
    return longest


def calculate_streak(log: Iterable[CareAction], today: date) -> CareStreakInfo:
    """记录可以是任意顺序；同一 id 只计一次。"""
    seen = {}
    for action in log:
        seen.setdefault(action.id, action)
    if not seen:
        return CareStreakInfo()
    per_day = Counter(care_day(a) for a in seen.values())
    days_asc = sorted(per_day)
    return CareStreakInfo(
        current_streak=_current(days_asc[::-1], today),
        longest_streak=_longest(days_asc),
        last_care_date=days_asc[-1],
        history=[DayCount(day=d, actions=per_day[d]) for d in days_asc],
    )
