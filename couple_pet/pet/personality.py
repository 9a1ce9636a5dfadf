"""性格模型：照料让特质小幅增长，主导特质取最大值。"""
from couple_pet.config import PERSONALITY_NUDGES, TRAIT_MAX
from couple_pet.pet.models import CareActionType, Personality, Trait, TRAIT_ORDER


def nudge(personality: Personality, action_type: CareActionType) -> Personality:
    """按照料类型增加特质权重，各自封顶 100，从不回落。"""
    increments = PERSONALITY_NUDGES.get(CareActionType(action_type).value, {})
    updated = personality.model_dump()
    for trait, amount in increments.items():
        updated[trait] = min(TRAIT_MAX, updated[trait] + amount)
    return Personality(**updated)


def dominant_trait(personality: Personality) -> Trait:
    """最大权重的特质；并列时取 TRAIT_ORDER 中靠前的那个。"""
    best = TRAIT_ORDER[0]
    for trait in TRAIT_ORDER[1:]:
        if personality.weight(trait) > personality.weight(best):
            best = trait
    return best
