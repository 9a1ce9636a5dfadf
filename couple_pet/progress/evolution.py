"""进化状态机：连续照料天数达标后前进一个阶段，绝不跳级、绝不后退。"""
import logging
from datetime import datetime
from typing import Dict, Optional

from couple_pet.config import STAGE_DAY_REQUIREMENTS
from couple_pet.pet.models import Pet, PetStage, STAGE_ORDER
from couple_pet.progress.models import (
    EvolutionEligibility,
    EvolutionProgress,
    EvolutionRequirement,
    EvolutionResult,
    EvolutionStatus,
    Milestone,
)
from couple_pet.progress.streak import CareStreakInfo

logger = logging.getLogger(__name__)


def _build_requirements() -> Dict[PetStage, EvolutionRequirement]:
    table = {}
    for i, stage in enumerate(STAGE_ORDER):
        next_stage = STAGE_ORDER[i + 1] if i + 1 < len(STAGE_ORDER) else None
        table[stage] = EvolutionRequirement(
            stage=stage,
            days_required=STAGE_DAY_REQUIREMENTS[stage.value],
            next_stage=next_stage,
        )
    return table


EVOLUTION_REQUIREMENTS = _build_requirements()

STAGE_ICONS = {
    PetStage.EGG: "🥚",
    PetStage.BABY: "👶",
    PetStage.CHILD: "🧒",
    PetStage.TEEN: "🧑",
    PetStage.ADULT: "👨",
    PetStage.ELDER: "🧓",
}


def next_stage(stage: PetStage) -> Optional[PetStage]:
    return EVOLUTION_REQUIREMENTS[PetStage(stage)].next_stage


def stage_milestone_title(stage: PetStage) -> str:
    return f"{PetStage(stage).display_name} Stage"


def _percent(current: int, required: int) -> float:
    if required <= 0:
        return 100.0
    return min(100.0, current / required * 100)


def eligibility(pet: Pet, streak: CareStreakInfo) -> EvolutionEligibility:
    """当前阶段的进化资格。终极阶段永远不可进化，进度 100%。"""
    req = EVOLUTION_REQUIREMENTS[pet.stage]
    if req.next_stage is None:
        return EvolutionEligibility(
            stage=pet.stage,
            required_days=req.days_required,
            current_days=streak.current_streak,
            progress_percent=100.0,
            is_eligible=False,
        )
    return EvolutionEligibility(
        stage=pet.stage,
        required_days=req.days_required,
        current_days=streak.current_streak,
        progress_percent=_percent(streak.current_streak, req.days_required),
        is_eligible=streak.current_streak >= req.days_required,
    )


def progress(pet: Pet, streak: CareStreakInfo) -> EvolutionProgress:
    req = EVOLUTION_REQUIREMENTS[pet.stage]
    elig = eligibility(pet, streak)
    return EvolutionProgress(
        current_stage=pet.stage,
        next_stage=req.next_stage,
        current_streak_days=streak.current_streak,
        days_until_next=0 if req.next_stage is None else max(0, req.days_required - streak.current_streak),
        progress_percent=elig.progress_percent,
        can_evolve=elig.is_eligible,
        has_reached_max_stage=req.next_stage is None,
    )


def evolve(
    pet: Pet,
    streak: CareStreakInfo,
    now: datetime,
    from_stage: Optional[PetStage] = None,
) -> EvolutionResult:
    """进化一级并生成一条以目标阶段命名的纪念。

    from_stage 是请求方看到的阶段；宠物已经越过它说明是重复请求，直接返回 ALREADY_APPLIED。
    不满足条件或已是终极阶段时拒绝，宠物原样返回。
    """
    if from_stage is not None and pet.stage.order > PetStage(from_stage).order:
        return EvolutionResult(status=EvolutionStatus.ALREADY_APPLIED, pet=pet, previous_stage=PetStage(from_stage))
    target = next_stage(pet.stage)
    if target is None:
        return EvolutionResult(status=EvolutionStatus.TERMINAL, pet=pet, previous_stage=pet.stage)
    if not eligibility(pet, streak).is_eligible:
        return EvolutionResult(status=EvolutionStatus.INELIGIBLE, pet=pet, previous_stage=pet.stage)

    evolved = pet.model_copy(update={"stage": target})
    milestone = Milestone(
        couple_id=pet.couple_id,
        title=stage_milestone_title(target),
        description=f"{pet.name or 'Your pet'} evolved to {target.display_name}!",
        icon=STAGE_ICONS[target],
        achieved_at=now,
    )
    logger.info("pet %s evolved %s -> %s", pet.id, pet.stage.value, target.value)
    return EvolutionResult(
        status=EvolutionStatus.EVOLVED,
        pet=evolved,
        previous_stage=pet.stage,
        new_stage=target,
        milestone=milestone,
    )
