"""照料结算：校验冷却、应用效果表、生成照料记录。

冷却按照料类型分别计算（从该类型最近一次的时间起算，双方共用），
所以喂完可以马上陪玩。本地与权威存储调用同一套校验。
"""
import uuid
from datetime import datetime
from typing import Iterable, Optional, Tuple

from couple_pet.config import (
    CARE_COOLDOWN_SECONDS,
    CARE_EFFECTS,
    CO_OP_BONUS_POINTS,
    CO_OP_WINDOW_SECONDS,
    XP_REWARDS,
)
from couple_pet.errors import CareRejected
from couple_pet.pet.models import CareAction, CareActionType, Pet, PetStage, as_utc
from couple_pet.pet.personality import nudge
from couple_pet.pet.stats import apply_deltas, decay_stats, hours_between


def last_action_of_type(log: Iterable[CareAction], action_type: CareActionType) -> Optional[CareAction]:
    """记录中该类型最近的一条（不分是谁做的）。"""
    action_type = CareActionType(action_type)
    latest = None
    for action in log:
        if action.action_type != action_type:
            continue
        if latest is None or (action.timestamp, action.id) > (latest.timestamp, latest.id):
            latest = action
    return latest


def cooldown_remaining(last_action: Optional[CareAction], now: datetime) -> float:
    """距离冷却结束还有多少秒，0 表示可以照料。"""
    if last_action is None:
        return 0.0
    elapsed = (as_utc(now) - last_action.timestamp).total_seconds()
    return max(0.0, CARE_COOLDOWN_SECONDS - elapsed)


def can_perform(
    pet: Pet,
    action_type: CareActionType,
    last_action: Optional[CareAction],
    now: datetime,
) -> bool:
    """蛋阶段不能照料；同类照料冷却未结束也不能。

    last_action 是该类型最近的一条；类型不同的记录不构成冷却。
    """
    if pet.stage == PetStage.EGG:
        return False
    if last_action is not None and last_action.action_type != CareActionType(action_type):
        return True
    return cooldown_remaining(last_action, now) <= 0


def check(pet: Pet, action_type: CareActionType, log: Iterable[CareAction], now: datetime) -> None:
    """不能照料时抛出 CareRejected，附带原因。"""
    action_type = CareActionType(action_type)
    if pet.stage == PetStage.EGG:
        raise CareRejected(CareRejected.EGG_STAGE, action_type.value)
    remaining = cooldown_remaining(last_action_of_type(log, action_type), now)
    if remaining > 0:
        raise CareRejected(CareRejected.COOLDOWN, action_type.value, remaining)


def check_at(pet: Pet, action: CareAction, log: Iterable[CareAction]) -> None:
    """按记录自身的时间校验一条（可能迟到的）照料。

    前后两侧冷却时长内都不能有同类记录；离线补交的旧记录不会被之后的记录挡住。
    """
    if pet.stage == PetStage.EGG:
        raise CareRejected(CareRejected.EGG_STAGE, action.action_type.value)
    for other in log:
        if other.id == action.id or other.action_type != action.action_type:
            continue
        gap = abs((action.timestamp - other.timestamp).total_seconds())
        if gap < CARE_COOLDOWN_SECONDS:
            raise CareRejected(CareRejected.COOLDOWN, action.action_type.value, CARE_COOLDOWN_SECONDS - gap)


def co_op_bonus(
    log: Iterable[CareAction],
    actor_id: str,
    action_type: CareActionType,
    now: datetime,
) -> Tuple[int, bool]:
    """另一半在窗口内做过同类照料时给合作奖励。"""
    action_type = CareActionType(action_type)
    now = as_utc(now)
    for action in log:
        if action.actor_id == actor_id or action.action_type != action_type:
            continue
        elapsed = (now - action.timestamp).total_seconds()
        if 0 <= elapsed <= CO_OP_WINDOW_SECONDS:
            return CO_OP_BONUS_POINTS, True
    return 0, False


def apply_action(pet: Pet, action: CareAction) -> Pet:
    """把一条照料记录作用到宠物上（不做校验，回放也走这里）。"""
    kind = action.action_type.value
    stats = decay_stats(pet.stats, hours_between(pet.decay_anchor, action.timestamp))
    stats = apply_deltas(stats, CARE_EFFECTS[kind])
    anchor = action.timestamp
    if pet.last_care_at is not None and pet.last_care_at > anchor:
        anchor = pet.last_care_at
    return pet.model_copy(update={
        "stats": stats,
        "personality": nudge(pet.personality, action.action_type),
        "xp": pet.xp + XP_REWARDS[kind] + action.bonus_points,
        "last_care_at": anchor,
    })


def apply(
    pet: Pet,
    action_type: CareActionType,
    actor_id: str,
    log: Iterable[CareAction],
    now: datetime,
    action_id: Optional[str] = None,
) -> Tuple[Pet, CareAction]:
    """校验并执行一次照料，返回 (新宠物, 照料记录)。被拒绝时没有任何副作用。"""
    log = list(log)
    action_type = CareActionType(action_type)
    check(pet, action_type, log, now)
    bonus, is_co_op = co_op_bonus(log, actor_id, action_type, now)
    action = CareAction(
        id=action_id or uuid.uuid4().hex,
        pet_id=pet.id,
        actor_id=actor_id,
        action_type=action_type,
        timestamp=now,
        bonus_points=bonus,
        is_co_op=is_co_op,
    )
    return apply_action(pet, action), action
