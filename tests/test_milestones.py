"""纪念解锁与进度测试。"""
from datetime import datetime, timedelta, timezone

from couple_pet.pet.models import CareAction, CareActionType, PetStage, new_pet
from couple_pet.progress.milestones import MILESTONE_RULES, check_and_create, milestone_progress
from couple_pet.progress.models import CoupleContext, Milestone

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def _daily_log(days: int):
    return [
        CareAction(
            pet_id="p1",
            actor_id="alice",
            action_type=CareActionType.FEED,
            timestamp=NOW - timedelta(days=i),
        )
        for i in range(days)
    ]


def test_first_care_and_streak() -> None:
    pet = new_pet("c1", created_at=NOW - timedelta(days=5), stage=PetStage.BABY)
    unlocked = check_and_create(pet, _daily_log(3), [], NOW)
    titles = [m.title for m in unlocked]
    assert titles == ["First Care", "3-Day Streak", "First Evolution"]
    assert all(m.couple_id == "c1" and m.achieved_at == NOW for m in unlocked)


def test_rescan_is_idempotent() -> None:
    pet = new_pet("c1", created_at=NOW, stage=PetStage.BABY)
    log = _daily_log(1)
    first = check_and_create(pet, log, [], NOW)
    assert len(first) == 2
    assert check_and_create(pet, log, first, NOW) == []


def test_existing_titles_from_other_couple_do_not_count() -> None:
    pet = new_pet("c1", created_at=NOW)
    other = Milestone(couple_id="c2", title="First Care")
    unlocked = check_and_create(pet, _daily_log(1), [other], NOW)
    assert [m.title for m in unlocked] == ["First Care"]


def test_context_rules() -> None:
    pet = new_pet("c1", created_at=NOW)
    ctx = CoupleContext(days_together=30, video_calls_completed=1, distance_traveled=1200)
    titles = {m.title for m in check_and_create(pet, [], [], NOW, context=ctx)}
    assert titles == {"Video Call", "World Traveler", "One Week Together", "One Month Together"}


def test_progress_counts_rule_titles_only() -> None:
    done = [
        Milestone(couple_id="c1", title="First Care"),
        Milestone(couple_id="c1", title="First Care"),
        Milestone(couple_id="c1", title="Baby Stage"),
    ]
    progress = milestone_progress(done)
    assert progress.completed == 1
    assert progress.total == len(MILESTONE_RULES) == 10
    assert progress.percent == 10
