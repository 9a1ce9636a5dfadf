"""同步协调测试：乐观照料、离线排队、远端拒绝撤回、双端收敛。"""
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from couple_pet.clock import FixedClock
from couple_pet.errors import CareRejected, PermanentRemoteError, TransientRemoteError
from couple_pet.pet.models import CareAction, CareActionType, Pet, PetStage, Trait, new_pet
from couple_pet.pet.projection import replay
from couple_pet.progress.models import CoupleContext, EvolutionStatus
from couple_pet.sync.coordinator import SyncCoordinator, SyncStatus
from couple_pet.sync.events import EventHub
from couple_pet.sync.outbox import OperationKind, Outbox
from couple_pet.sync.store import LocalPetStore

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FlakyStore:
    """包一层本地存储，offline 时所有调用都临时失败。"""

    def __init__(self, inner: LocalPetStore):
        self.inner = inner
        self.offline = False

    def __getattr__(self, name):
        attr = getattr(self.inner, name)

        def call(*args, **kwargs):
            if self.offline:
                raise TransientRemoteError("offline")
            return attr(*args, **kwargs)

        return call


class RejectingStore:
    """照料写入永久失败，其余调用照常。"""

    def __init__(self, inner: LocalPetStore):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def append_care_action(self, action):
        raise PermanentRemoteError("HTTP 400: invalid action", status_code=400)


def _setup(tmp: str, stage: PetStage = PetStage.BABY, hub: EventHub = None):
    store = LocalPetStore(base_dir=Path(tmp), hub=hub)
    pet = store.create_pet(new_pet("c1", name="豆豆", created_at=T0, stage=stage))
    return store, pet


def test_care_synced() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp)
        clock = FixedClock(T0 + timedelta(hours=10))
        coordinator = SyncCoordinator.load(store, pet.id, clock=clock)
        outcome = coordinator.perform_care("alice", CareActionType.FEED)
        assert outcome.status == SyncStatus.SYNCED
        assert outcome.pet.stats.hunger == 80
        assert outcome.pet.stats.energy == 75
        assert outcome.pet.stats.happiness == 70
        # First Evolution 在加载时已解锁
        assert [m.title for m in outcome.new_milestones] == ["First Care"]
        assert len(coordinator.outbox) == 0

        stored = store.get_pet(pet.id)
        assert stored.xp == 10
        assert stored.stats == outcome.pet.stats
        assert len(store.list_care_actions(pet.id)) == 1
        assert {m.title for m in store.list_milestones("c1")} == {"First Care", "First Evolution"}


def test_local_rejection_leaves_state_untouched() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp)
        clock = FixedClock(T0)
        coordinator = SyncCoordinator.load(store, pet.id, clock=clock)
        coordinator.perform_care("alice", CareActionType.FEED)
        before = coordinator.pet
        clock.advance(minutes=2)
        assert coordinator.can_perform(CareActionType.FEED) is False
        assert coordinator.cooldown_remaining(CareActionType.FEED) == pytest.approx(180)
        with pytest.raises(CareRejected):
            coordinator.perform_care("bob", CareActionType.FEED)
        assert coordinator.pet == before
        assert len(coordinator.state.care_log) == 1


def test_egg_rejected_locally() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp, stage=PetStage.EGG)
        coordinator = SyncCoordinator.load(store, pet.id, clock=FixedClock(T0))
        with pytest.raises(CareRejected) as exc:
            coordinator.perform_care("alice", CareActionType.PLAY)
        assert exc.value.reason == CareRejected.EGG_STAGE
        assert store.list_care_actions(pet.id) == []


def test_transient_failure_keeps_local_state_and_queues() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp)
        remote = FlakyStore(store)
        coordinator = SyncCoordinator.load(remote, pet.id, clock=FixedClock(T0 + timedelta(hours=1)))

        remote.offline = True
        outcome = coordinator.perform_care("alice", CareActionType.PLAY)
        assert outcome.status == SyncStatus.PENDING
        assert outcome.retryable is True
        assert isinstance(outcome.error, TransientRemoteError)
        assert coordinator.pet.xp == 20
        assert len(coordinator.outbox) >= 2
        assert coordinator.outbox.pending()[0].attempts >= 1
        assert store.list_care_actions(pet.id) == []

        remote.offline = False
        report = coordinator.flush_outbox()
        assert report.remaining == 0
        assert report.rejected == []
        assert [a.id for a in store.list_care_actions(pet.id)] == [outcome.action.id]
        assert store.get_pet(pet.id).xp == 20
        assert "First Care" in {m.title for m in store.list_milestones("c1")}


def test_remote_rejection_is_withdrawn() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp)
        clock = FixedClock(T0)
        # 不挂实时事件，两端互相看不到对方的照料
        alice = SyncCoordinator.load(store, pet.id, clock=clock)
        bob = SyncCoordinator.load(store, pet.id, clock=clock)

        assert alice.perform_care("alice", CareActionType.FEED).status == SyncStatus.SYNCED
        clock.advance(minutes=1)
        outcome = bob.perform_care("bob", CareActionType.FEED)

        assert outcome.status == SyncStatus.REJECTED_REMOTELY
        assert isinstance(outcome.error, CareRejected)
        assert outcome.action.id not in bob.state.care_log
        assert bob.pet.xp == 0
        assert bob.pet.stats == pet.stats
        assert bob.pet.last_care_at is None
        assert len(bob.outbox) == 0
        assert len(store.list_care_actions(pet.id)) == 1
        assert store.get_pet(pet.id).xp == 10

        bob.refresh()
        assert bob.pet == alice.pet


def test_partners_converge_through_realtime() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        hub = EventHub()
        store, pet = _setup(tmp, hub=hub)
        clock = FixedClock(T0 + timedelta(hours=3))
        alice = SyncCoordinator.load(store, pet.id, clock=clock)
        bob = SyncCoordinator.load(store, pet.id, clock=clock)
        alice.attach(hub)
        bob.attach(hub)

        alice.perform_care("alice", CareActionType.FEED)
        assert bob.pet == alice.pet
        assert set(bob.state.care_log) == set(alice.state.care_log)

        clock.advance(minutes=6)
        outcome = bob.perform_care("bob", CareActionType.FEED)
        assert outcome.status == SyncStatus.SYNCED
        assert outcome.action.is_co_op is True
        assert alice.pet == bob.pet
        assert alice.pet.xp == 30
        assert alice.derived() == bob.derived()
        assert alice.state.milestone_titles() == bob.state.milestone_titles()
        # 同标题只有一条记录
        assert len(store.list_milestones("c1")) == len(alice.state.milestones)

        bob.detach()
        assert hub.subscriber_count(pet.id) == 1


def test_merge_order_does_not_matter() -> None:
    with tempfile.TemporaryDirectory() as tmp_a, tempfile.TemporaryDirectory() as tmp_b:
        _, pet = _setup(tmp_a)
        store_b = LocalPetStore(base_dir=Path(tmp_b))
        store_b.create_pet(pet)
        clock = FixedClock(T0 + timedelta(hours=2))
        first = SyncCoordinator.load(LocalPetStore(base_dir=Path(tmp_a)), pet.id, clock=clock)
        second = SyncCoordinator.load(store_b, pet.id, clock=clock)

        a = CareAction(pet_id=pet.id, actor_id="alice", action_type=CareActionType.FEED,
                       timestamp=T0 + timedelta(hours=1))
        b = CareAction(pet_id=pet.id, actor_id="bob", action_type=CareActionType.PLAY,
                       timestamp=T0 + timedelta(hours=1, minutes=1))

        assert first.handle_care_action_inserted(a) is True
        assert first.handle_care_action_inserted(b) is True
        assert second.handle_care_action_inserted(b) is True
        assert second.handle_care_action_inserted(a) is True
        # 重复投递忽略
        assert second.handle_care_action_inserted(a) is False

        assert first.pet == second.pet
        assert first.pet == replay(pet, [b, a])
        assert first.derived() == second.derived()
        assert first.state.milestone_titles() == second.state.milestone_titles()


def test_stage_never_regresses_on_stale_snapshot() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp, stage=PetStage.CHILD)
        coordinator = SyncCoordinator.load(store, pet.id, clock=FixedClock(T0))
        stale = pet.model_copy(update={"stage": PetStage.BABY, "xp": 0})
        coordinator.handle_pet_changed(stale)
        assert coordinator.pet.stage == PetStage.CHILD


def test_degraded_remote_personality_uses_defaults() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp)
        coordinator = SyncCoordinator.load(store, pet.id, clock=FixedClock(T0 + timedelta(hours=1)))
        degraded = Pet.model_validate({
            **pet.model_dump(),
            "personality": None,
            "last_care_at": T0 + timedelta(minutes=30),
        })
        coordinator.handle_pet_changed(degraded)
        assert coordinator.pet.personality.calm == 25.0
        assert coordinator.derived().dominant_trait == Trait.PLAYFUL


def test_evolve_through_coordinator() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        hub = EventHub()
        store, pet = _setup(tmp, stage=PetStage.EGG, hub=hub)
        clock = FixedClock(T0)
        alice = SyncCoordinator.load(store, pet.id, clock=clock)
        bob = SyncCoordinator.load(store, pet.id, clock=clock)
        alice.attach(hub)
        bob.attach(hub)

        result = alice.evolve()
        assert result.status == EvolutionStatus.EVOLVED
        assert alice.pet.stage == PetStage.BABY
        assert store.get_pet(pet.id).stage == PetStage.BABY
        assert bob.pet.stage == PetStage.BABY

        # 另一端拿着旧阶段重复请求
        again = bob.evolve(from_stage=PetStage.EGG)
        assert again.status == EvolutionStatus.ALREADY_APPLIED

        titles = [m.title for m in store.list_milestones("c1")]
        assert titles.count("Baby Stage") == 1
        assert "First Evolution" in titles

        blocked = alice.evolve()
        assert blocked.status == EvolutionStatus.INELIGIBLE
        assert alice.derived().progress.days_until_next == 3


def test_context_milestones() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp, stage=PetStage.EGG)
        coordinator = SyncCoordinator.load(store, pet.id, clock=FixedClock(T0))
        unlocked = coordinator.set_context(CoupleContext(days_together=8))
        assert [m.title for m in unlocked] == ["One Week Together"]
        assert coordinator.set_context(CoupleContext(days_together=9)) == []
        assert [m.title for m in store.list_milestones("c1")] == ["One Week Together"]


def test_permanent_failure_keeps_local_state() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store, pet = _setup(tmp)
        coordinator = SyncCoordinator.load(RejectingStore(store), pet.id, clock=FixedClock(T0 + timedelta(hours=1)))
        outcome = coordinator.perform_care("alice", CareActionType.FEED)

        assert outcome.status == SyncStatus.FAILED
        assert isinstance(outcome.error, PermanentRemoteError)
        assert outcome.retryable is False
        assert outcome.action.id in coordinator.state.care_log
        assert coordinator.pet.xp == 10
        assert coordinator.pet.last_care_at == T0 + timedelta(hours=1)

        failed = coordinator.outbox.failed()
        assert len(failed) == 1
        assert failed[0].kind == OperationKind.APPEND_CARE_ACTION
        assert failed[0].payload["id"] == outcome.action.id
        assert failed[0].last_error.startswith("HTTP 400")
        assert coordinator.pending_count() == 0
        assert store.list_care_actions(pet.id) == []


def test_shared_outbox_only_flushes_own_pet() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store = LocalPetStore(base_dir=Path(tmp) / "store")
        pet_a = store.create_pet(new_pet("c1", created_at=T0, stage=PetStage.BABY))
        pet_b = store.create_pet(new_pet("c2", created_at=T0, stage=PetStage.BABY))
        outbox_path = Path(tmp) / "outbox.json"
        clock = FixedClock(T0 + timedelta(hours=1))

        remote_a = FlakyStore(store)
        coordinator_a = SyncCoordinator.load(remote_a, pet_a.id, clock=clock, outbox=Outbox(outbox_path))
        remote_a.offline = True
        assert coordinator_a.perform_care("alice", CareActionType.FEED).status == SyncStatus.PENDING

        shared = Outbox(outbox_path)
        coordinator_b = SyncCoordinator.load(store, pet_b.id, clock=clock, outbox=shared)
        report = coordinator_b.flush_outbox()
        assert report.remaining == 0
        assert coordinator_b.pending_count() == 0
        # A 的操作原样留在队列里，B 的宠物没有被改写
        assert shared.has_pending(OperationKind.APPEND_CARE_ACTION, pet_id=pet_a.id)
        assert shared.has_pending(OperationKind.UPDATE_PET_STATS, pet_id=pet_a.id)
        assert store.get_pet(pet_b.id).xp == 0
        assert store.get_pet(pet_a.id).xp == 0

        remote_a.offline = False
        assert coordinator_a.flush_outbox().remaining == 0
        assert store.get_pet(pet_a.id).xp == 10
        assert len(store.list_care_actions(pet_a.id)) == 1


def test_refresh_reads_full_history() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store = LocalPetStore(base_dir=Path(tmp))
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        pet = store.create_pet(new_pet("c1", created_at=start - timedelta(days=1), stage=PetStage.ADULT))
        kinds = list(CareActionType)
        for day in range(61):
            for hour in range(9):
                store.append_care_action(CareAction(
                    pet_id=pet.id,
                    actor_id="alice" if hour % 2 else "bob",
                    action_type=kinds[hour % len(kinds)],
                    timestamp=start + timedelta(days=day, hours=hour),
                ))
        clock = FixedClock(start + timedelta(days=60, hours=12))
        coordinator = SyncCoordinator.load(store, pet.id, clock=clock)

        assert len(coordinator.state.care_log) == 61 * 9
        assert coordinator.streak().current_streak == 61
        assert coordinator.eligibility().is_eligible is True
        assert coordinator.pet == replay(pet, store.list_care_actions(pet.id, limit=None))
