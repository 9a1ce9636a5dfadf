"""纪念规则与解锁。

规则是有序的静态列表，每条都是 (宠物, 照料记录, 连续天数, 情侣上下文) 上的纯判断。
可以在每次照料后反复调用：已解锁的标题直接跳过，不会重复创建。
"""
import logging
from datetime import date, datetime
from typing import Callable, Iterable, List, NamedTuple, Optional

from couple_pet.pet.models import CareAction, Pet, PetStage
from couple_pet.progress.models import CoupleContext, Milestone, MilestoneProgress
from couple_pet.progress.streak import CareStreakInfo, calculate_streak

logger = logging.getLogger(__name__)


class MilestoneRule(NamedTuple):
    id: str
    title: str
    description: str
    icon: str
    check: Callable[[Pet, List[CareAction], CareStreakInfo, CoupleContext], bool]


MILESTONE_RULES = (
    MilestoneRule(
        "first_care", "First Care", "Performed your first care action", "💝",
        lambda pet, log, streak, ctx: len(log) >= 1,
    ),
    MilestoneRule(
        "streak_3", "3-Day Streak", "Cared for your pet for 3 days in a row", "🔥",
        lambda pet, log, streak, ctx: streak.current_streak >= 3,
    ),
    MilestoneRule(
        "streak_7", "Week Warrior", "Cared for your pet for 7 days in a row", "⭐",
        lambda pet, log, streak, ctx: streak.current_streak >= 7,
    ),
    MilestoneRule(
        "streak_30", "Monthly Master", "Cared for your pet for 30 days in a row", "👑",
        lambda pet, log, streak, ctx: streak.current_streak >= 30,
    ),
    MilestoneRule(
        "first_evolution", "First Evolution", "Your pet evolved for the first time", "✨",
        lambda pet, log, streak, ctx: pet.stage != PetStage.EGG,
    ),
    MilestoneRule(
        "max_stage", "Fully Grown", "Your pet reached its final stage", "🏆",
        lambda pet, log, streak, ctx: pet.stage == PetStage.ELDER,
    ),
    MilestoneRule(
        "first_video_call", "Video Call", "Had your first video call together", "📹",
        lambda pet, log, streak, ctx: ctx.video_calls_completed > 0,
    ),
    MilestoneRule(
        "distance_traveled", "World Traveler", "Traveled 1000 virtual miles together", "🌍",
        lambda pet, log, streak, ctx: ctx.distance_traveled >= 1000,
    ),
    MilestoneRule(
        "anniversary_7", "One Week Together", "Celebrated one week as co-parents", "💑",
        lambda pet, log, streak, ctx: ctx.days_together >= 7,
    ),
    MilestoneRule(
        "anniversary_30", "One Month Together", "Celebrated one month as co-parents", "💕",
        lambda pet, log, streak, ctx: ctx.days_together >= 30,
    ),
)


def check_and_create(
    pet: Pet,
    log: Iterable[CareAction],
    existing: Iterable[Milestone],
    now: datetime,
    context: Optional[CoupleContext] = None,
    today: Optional[date] = None,
) -> List[Milestone]:
    """返回本次新解锁的纪念（每个标题最多一条）。持久化由调用方负责。"""
    log = list(log)
    context = context or CoupleContext()
    streak = calculate_streak(log, today or now.date())
    titles = {m.title for m in existing if m.couple_id == pet.couple_id}
    unlocked = []
    for rule in MILESTONE_RULES:
        if rule.title in titles:
            continue
        if rule.check(pet, log, streak, context):
            titles.add(rule.title)
            unlocked.append(Milestone(
                couple_id=pet.couple_id,
                title=rule.title,
                description=rule.description,
                icon=rule.icon,
                achieved_at=now,
            ))
            logger.info("milestone unlocked for couple %s: %s", pet.couple_id, rule.title)
    return unlocked


def milestone_progress(existing: Iterable[Milestone]) -> MilestoneProgress:
    """已完成数 / 规则总数。进化产生的阶段纪念不在规则表里，不计入。"""
    rule_titles = {rule.title for rule in MILESTONE_RULES}
    completed = len({m.title for m in existing} & rule_titles)
    total = len(MILESTONE_RULES)
    return MilestoneProgress(completed=completed, total=total, percent=round(completed / total * 100))
