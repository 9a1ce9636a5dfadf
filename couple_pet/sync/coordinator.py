"""同步协调：本地乐观修改 + 远端权威副本 + 另一半的实时事件。

所有写操作都先进待同步队列再按顺序发送，远端临时失败时本地状态保留、操作留在队列里；
远端判定冷却未结束时撤回这条乐观记录并从记录重算。
收到远端变化时按 id 合并照料记录，再重算数值、连续天数、进化资格与纪念，
所以无论哪一方先看到哪条记录，看到同一个并集就得到同一个结果。
"""
import logging
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from couple_pet.clock import SystemClock
from couple_pet.errors import CareRejected, PermanentRemoteError, TransientRemoteError
from couple_pet.pet import care
from couple_pet.pet.models import CareAction, CareActionType, Pet, PetStage, PetStats, Trait, as_utc
from couple_pet.pet.projection import ordered, replay
from couple_pet.pet.stats import current_stats, needs_attention
from couple_pet.progress import evolution, milestones
from couple_pet.progress.models import (
    CoupleContext,
    EvolutionEligibility,
    EvolutionProgress,
    EvolutionResult,
    Milestone,
    MilestoneProgress,
)
from couple_pet.progress.streak import CareStreakInfo, calculate_streak
from couple_pet.sync.events import CareActionInserted, EventHub, PetEvent, PetRowChanged
from couple_pet.sync.outbox import OperationKind, Outbox, PendingOperation
from couple_pet.sync.remote import RemotePetStore

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"  # 临时失败，已入队等待重试
    REJECTED_REMOTELY = "rejected_remotely"  # 权威端拒绝，本地已撤回
    FAILED = "failed"  # 永久失败，本地保留


class SharedPetState(BaseModel):
    """一只宠物的本地状态：宠物投影、照料记录（按 id）、已解锁纪念、情侣上下文。"""
    pet: Pet
    care_log: Dict[str, CareAction] = Field(default_factory=dict)
    milestones: List[Milestone] = Field(default_factory=list)
    context: CoupleContext = Field(default_factory=CoupleContext)

    def log(self) -> List[CareAction]:
        return ordered(self.care_log.values())

    def milestone_titles(self) -> Set[str]:
        return {m.title for m in self.milestones}


class DerivedState(BaseModel):
    """某一时刻由状态推导出的全部展示数据。"""
    stats: PetStats
    dominant_trait: Trait
    needs_attention: bool
    streak: CareStreakInfo
    eligibility: EvolutionEligibility
    progress: EvolutionProgress
    milestone_progress: MilestoneProgress


class CareOutcome(BaseModel):
    """一次照料的结果。本地已经生效，status 描述远端同步情况。"""
    action: CareAction
    pet: Pet
    status: SyncStatus
    error: Optional[Exception] = None
    new_milestones: List[Milestone] = Field(default_factory=list)
    eligibility: Optional[EvolutionEligibility] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def retryable(self) -> bool:
        return self.status == SyncStatus.PENDING


class FlushReport(BaseModel):
    sent: int = 0
    remaining: int = 0
    rejected: List[CareAction] = Field(default_factory=list)
    failed: List[PendingOperation] = Field(default_factory=list)
    errors: Dict[str, Exception] = Field(default_factory=dict, description="操作 ID -> 错误")

    model_config = ConfigDict(arbitrary_types_allowed=True)


class SyncCoordinator:
    """持有 SharedPetState，所有修改都经过这里的方法。"""

    def __init__(
        self,
        state: SharedPetState,
        remote: RemotePetStore,
        clock=None,
        outbox: Optional[Outbox] = None,
    ):
        self.state = state
        self.remote = remote
        self.clock = clock or SystemClock()
        self.outbox = outbox if outbox is not None else Outbox()
        self._flushing = False
        self._unsubscribe = None

    @classmethod
    def load(
        cls,
        remote: RemotePetStore,
        pet_id: str,
        clock=None,
        outbox: Optional[Outbox] = None,
        context: Optional[CoupleContext] = None,
    ) -> "SyncCoordinator":
        """从远端拉取宠物、照料记录与纪念后构建。"""
        state = SharedPetState(pet=remote.get_pet(pet_id), context=context or CoupleContext())
        coordinator = cls(state, remote, clock=clock, outbox=outbox)
        coordinator.refresh()
        return coordinator

    @property
    def pet(self) -> Pet:
        return self.state.pet

    def _now(self) -> datetime:
        return as_utc(self.clock.now())

    def _today(self) -> date:
        return self._now().date()

    # ---- 订阅 ----

    def attach(self, hub: EventHub) -> None:
        self.detach()
        self._unsubscribe = hub.subscribe(self.state.pet.id, self.handle_event)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ---- 推导 ----

    def streak(self) -> CareStreakInfo:
        return calculate_streak(self.state.care_log.values(), self._today())

    def eligibility(self) -> EvolutionEligibility:
        return evolution.eligibility(self.state.pet, self.streak())

    def derived(self) -> DerivedState:
        now = self._now()
        pet = self.state.pet
        streak = self.streak()
        return DerivedState(
            stats=current_stats(pet, now),
            dominant_trait=pet.dominant_trait,
            needs_attention=needs_attention(pet, now),
            streak=streak,
            eligibility=evolution.eligibility(pet, streak),
            progress=evolution.progress(pet, streak),
            milestone_progress=milestones.milestone_progress(self.state.milestones),
        )

    def cooldown_remaining(self, action_type: CareActionType) -> float:
        last = care.last_action_of_type(self.state.care_log.values(), action_type)
        return care.cooldown_remaining(last, self._now())

    def can_perform(self, action_type: CareActionType) -> bool:
        last = care.last_action_of_type(self.state.care_log.values(), action_type)
        return care.can_perform(self.state.pet, action_type, last, self._now())

    # ---- 本地操作 ----

    def perform_care(self, actor_id: str, action_type: CareActionType) -> CareOutcome:
        """乐观执行照料并尝试同步。本地校验不通过时抛 CareRejected，状态不变。"""
        pet, action = care.apply(
            self.state.pet, action_type, actor_id, self.state.care_log.values(), self._now(),
        )
        before = self.state.milestone_titles()
        self.state.pet = pet
        self.state.care_log[action.id] = action
        logger.info("pet %s: %s by %s", pet.id, action.action_type.value, actor_id)

        append_op = self.outbox.add(OperationKind.APPEND_CARE_ACTION, pet.id, action.model_dump(mode="json"))
        self.outbox.add(OperationKind.UPDATE_PET_STATS, pet.id)
        report = self.flush_outbox()

        if any(a.id == action.id for a in report.rejected):
            return CareOutcome(
                action=action,
                pet=self.state.pet,
                status=SyncStatus.REJECTED_REMOTELY,
                error=report.errors.get(append_op.id),
                eligibility=self.eligibility(),
            )

        self._scan_milestones()
        self.flush_outbox()
        new_milestones = [m for m in self.state.milestones if m.title not in before]

        if any(op.id == append_op.id for op in report.failed):
            status, error = SyncStatus.FAILED, report.errors.get(append_op.id)
        elif report.remaining:
            status, error = SyncStatus.PENDING, next(iter(report.errors.values()), None)
        else:
            status, error = SyncStatus.SYNCED, None
        return CareOutcome(
            action=action,
            pet=self.state.pet,
            status=status,
            error=error,
            new_milestones=new_milestones,
            eligibility=self.eligibility(),
        )

    def evolve(self, from_stage: Optional[PetStage] = None) -> EvolutionResult:
        """进化一级。from_stage 为调用方看到的阶段，用于识别重复请求。"""
        pet = self.state.pet
        result = evolution.evolve(
            pet, self.streak(), self._now(), from_stage=from_stage if from_stage is not None else pet.stage,
        )
        if not result.success:
            logger.info("pet %s evolve skipped: %s", pet.id, result.status.value)
            return result
        self.state.pet = result.pet
        if result.milestone.title not in self.state.milestone_titles():
            self.state.milestones.append(result.milestone)
            self.outbox.add(OperationKind.CREATE_MILESTONE, pet.id, result.milestone.model_dump(mode="json"))
        self.outbox.add(OperationKind.UPDATE_STAGE, pet.id, {"stage": result.new_stage.value})
        self._scan_milestones()
        self.flush_outbox()
        return result

    def set_context(self, context: CoupleContext) -> List[Milestone]:
        """更新情侣上下文（在一起天数等）并检查纪念。"""
        before = self.state.milestone_titles()
        self.state.context = context
        self._scan_milestones()
        self.flush_outbox()
        return [m for m in self.state.milestones if m.title not in before]

    # ---- 远端变化 ----

    def handle_event(self, event: PetEvent) -> None:
        if isinstance(event, CareActionInserted):
            self.handle_care_action_inserted(event.action)
        elif isinstance(event, PetRowChanged):
            self.handle_pet_changed(event.pet)

    def handle_care_action_inserted(self, action: CareAction) -> bool:
        """合并一条远端照料记录。已知 id（重复投递、自己的回声）返回 False。"""
        if action.pet_id != self.state.pet.id or action.id in self.state.care_log:
            return False
        self.state.care_log[action.id] = action
        logger.info("pet %s: merged %s by %s", action.pet_id, action.action_type.value, action.actor_id)
        self._recompute()
        self._scan_milestones()
        self.flush_outbox()
        return True

    def handle_pet_changed(self, remote_pet: Pet) -> None:
        """远端宠物行变化。阶段取较后者，绝不回退；数值以覆盖更完整记录的一方为准。"""
        local = self.state.pet
        if remote_pet.id != local.id:
            return
        update = {"xp": max(local.xp, remote_pet.xp)}
        if remote_pet.stage.order > local.stage.order:
            update["stage"] = remote_pet.stage
            logger.info("pet %s: stage advanced remotely to %s", local.id, remote_pet.stage.value)
        if remote_pet.last_care_at is not None and (
            local.last_care_at is None or remote_pet.last_care_at > local.last_care_at
        ):
            update.update({
                "stats": remote_pet.stats,
                "personality": remote_pet.personality,
                "last_care_at": remote_pet.last_care_at,
            })
        self.state.pet = local.model_copy(update=update)
        self._recompute()
        self._scan_milestones()
        self.flush_outbox()

    def refresh(self) -> None:
        """完整拉取一次远端。远端错误直接抛给调用方。"""
        pet_id = self.state.pet.id
        remote_pet = self.remote.get_pet(pet_id)
        for action in self.remote.list_care_actions(pet_id, limit=None):
            if action.pet_id == pet_id:
                self.state.care_log.setdefault(action.id, action)
        for milestone in self.remote.list_milestones(self.state.pet.couple_id):
            self._adopt_milestone(milestone)
        self.handle_pet_changed(remote_pet)

    # ---- 队列 ----

    def pending_count(self) -> int:
        return len(self.outbox.pending(self.state.pet.id))

    def flush_outbox(self) -> FlushReport:
        """按顺序发送这只宠物的待同步操作，遇到临时失败就停下，剩下的留到下次。

        队列可以与其他宠物共用，别的宠物的操作原样留在队列里。
        """
        report = FlushReport(remaining=self.pending_count())
        if self._flushing:
            return report
        self._flushing = True
        attempted = set()
        pet_id = self.state.pet.id
        try:
            while True:
                op = next((o for o in self.outbox.pending(pet_id) if o.id not in attempted), None)
                if op is None:
                    break
                attempted.add(op.id)
                try:
                    self._send(op)
                except TransientRemoteError as e:
                    logger.warning("sync %s deferred: %s", op.kind.value, e)
                    self.outbox.record_attempt(op.id, str(e))
                    report.errors[op.id] = e
                    break
                except CareRejected as e:
                    logger.warning("care action %s rejected remotely: %s", op.payload.get("id"), e.reason)
                    self.outbox.remove(op.id)
                    rejected = CareAction.model_validate(op.payload)
                    self._withdraw(rejected)
                    report.rejected.append(rejected)
                    report.errors[op.id] = e
                except PermanentRemoteError as e:
                    logger.error("sync %s failed: %s", op.kind.value, e)
                    self.outbox.mark_failed(op.id, str(e))
                    report.failed.append(op)
                    report.errors[op.id] = e
                else:
                    self.outbox.remove(op.id)
                    report.sent += 1
        finally:
            self._flushing = False
        report.remaining = self.pending_count()
        return report

    def _send(self, op: PendingOperation) -> None:
        if op.kind == OperationKind.APPEND_CARE_ACTION:
            self.remote.append_care_action(CareAction.model_validate(op.payload))
        elif op.kind == OperationKind.UPDATE_PET_STATS:
            self.remote.update_pet_stats(self.state.pet)
        elif op.kind == OperationKind.UPDATE_STAGE:
            self.remote.update_stage(op.pet_id, PetStage(op.payload["stage"]))
        elif op.kind == OperationKind.CREATE_MILESTONE:
            self._adopt_milestone(self.remote.create_milestone(Milestone.model_validate(op.payload)))

    # ---- 内部 ----

    def _withdraw(self, action: CareAction) -> None:
        """撤回被权威端拒绝的乐观记录，从剩余记录强制重算。"""
        self.state.care_log.pop(action.id, None)
        self._recompute(force=True)
        self.outbox.add(OperationKind.UPDATE_PET_STATS, self.state.pet.id)

    def _recompute(self, force: bool = False) -> None:
        current = self.state.pet
        replayed = replay(current, self.state.care_log.values(), floor_xp=not force)
        if not force and current.last_care_at is not None and (
            replayed.last_care_at is None or current.last_care_at > replayed.last_care_at
        ):
            # 快照里包含还没收到的照料记录，先保留快照
            self.state.pet = current.model_copy(update={"xp": max(current.xp, replayed.xp)})
            return
        self.state.pet = replayed

    def _scan_milestones(self) -> List[Milestone]:
        unlocked = milestones.check_and_create(
            self.state.pet,
            self.state.care_log.values(),
            self.state.milestones,
            self._now(),
            context=self.state.context,
        )
        for milestone in unlocked:
            self.state.milestones.append(milestone)
            self.outbox.add(OperationKind.CREATE_MILESTONE, self.state.pet.id, milestone.model_dump(mode="json"))
        return unlocked

    def _adopt_milestone(self, milestone: Milestone) -> None:
        """以远端记录为准（同标题替换本地那条）。"""
        if milestone.couple_id != self.state.pet.couple_id:
            return
        self.state.milestones = [m for m in self.state.milestones if m.title != milestone.title]
        self.state.milestones.append(milestone)
