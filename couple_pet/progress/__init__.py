"""连续照料、进化与纪念。"""
from couple_pet.progress.models import (
    CoupleContext,
    EvolutionEligibility,
    EvolutionResult,
    EvolutionStatus,
    Milestone,
    MilestoneProgress,
)
from couple_pet.progress.streak import CareStreakInfo, calculate_streak

__all__ = [
    "CareStreakInfo",
    "CoupleContext",
    "EvolutionEligibility",
    "EvolutionResult",
    "EvolutionStatus",
    "Milestone",
    "MilestoneProgress",
    "calculate_streak",
]
