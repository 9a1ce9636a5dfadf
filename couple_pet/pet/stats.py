"""数值模型：限幅与按绝对流逝时间的线性衰减。

衰减只取决于锚点时间（last_care_at，未照料过则 created_at）与“现在”之差，
不依赖本地计时器，两台设备从同一时间戳推算会得到同样的结果。
"""
import math
from datetime import datetime

from couple_pet.config import ATTENTION_THRESHOLD, STAT_DECAY_PER_HOUR, STAT_MAX, STAT_MIN
from couple_pet.pet.models import Pet, PetStage, PetStats, as_utc

STAT_NAMES = ("hunger", "happiness", "energy")


def clamp(value: float) -> int:
    """限制到 [0, 100] 的整数。"""
    return int(max(STAT_MIN, min(STAT_MAX, value)))


def hours_between(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / 3600.0


def decay(stat: str, hours_elapsed: float) -> int:
    """某项数值在 hours_elapsed 小时内的衰减量（<= 0，按整点数向下取整）。"""
    if hours_elapsed <= 0:
        return 0
    return -math.floor(STAT_DECAY_PER_HOUR[stat] * hours_elapsed)


def decay_stats(stats: PetStats, hours_elapsed: float) -> PetStats:
    return PetStats(**{
        name: clamp(getattr(stats, name) + decay(name, hours_elapsed))
        for name in STAT_NAMES
    })


def apply_deltas(stats: PetStats, deltas: dict) -> PetStats:
    return PetStats(**{
        name: clamp(getattr(stats, name) + deltas.get(name, 0))
        for name in STAT_NAMES
    })


def current_stats(pet: Pet, now: datetime) -> PetStats:
    """宠物在 now 时刻的数值投影。"""
    return decay_stats(pet.stats, hours_between(pet.decay_anchor, now))


def stat_status(value: int) -> str:
    """critical / low / moderate / healthy。"""
    if value <= 25:
        return "critical"
    if value <= 50:
        return "low"
    if value <= 75:
        return "moderate"
    return "healthy"


def needs_attention(pet: Pet, now: datetime) -> bool:
    """任一数值低于阈值即需要照顾；蛋不需要。"""
    if pet.stage == PetStage.EGG:
        return False
    stats = current_stats(pet, now)
    return any(getattr(stats, name) < ATTENTION_THRESHOLD for name in STAT_NAMES)


def mood_message(pet: Pet, now: datetime) -> str:
    stats = current_stats(pet, now)
    avg = sum(getattr(stats, name) for name in STAT_NAMES) / len(STAT_NAMES)
    if avg >= 80:
        return "I'm so happy!"
    if avg >= 60:
        return "Feeling pretty good!"
    if avg >= 40:
        return "Could use some attention..."
    if avg >= 20:
        return "I really need care..."
    return "I'm not feeling well at all..."
