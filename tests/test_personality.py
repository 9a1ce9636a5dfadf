"""性格增量与主导特质测试。"""
from couple_pet.pet.models import CareActionType, Personality, Trait
from couple_pet.pet.personality import dominant_trait, nudge


def test_default_split_tie_breaks_to_playful() -> None:
    assert dominant_trait(Personality()) == Trait.PLAYFUL


def test_nudges() -> None:
    p = nudge(Personality(), CareActionType.PET)
    assert p.affectionate == 27.0
    assert dominant_trait(p) == Trait.AFFECTIONATE

    p = nudge(Personality(), CareActionType.GROOM)
    assert p.calm == 26.0 and p.affectionate == 26.0
    # calm 与 affectionate 并列，calm 在前
    assert dominant_trait(p) == Trait.CALM

    p = nudge(Personality(), CareActionType.WALK)
    assert p.playful == 26.0 and p.mischievous == 25.5


def test_traits_capped_and_never_decrease() -> None:
    p = Personality(playful=99.5)
    p = nudge(p, CareActionType.PLAY)
    assert p.playful == 100.0
    p = nudge(p, CareActionType.PLAY)
    assert p.playful == 100.0
    assert p.calm == 25.0


def test_missing_traits_default() -> None:
    p = Personality.model_validate({"playful": None, "calm": 40})
    assert p.playful == 25.0
    assert p.calm == 40.0
