"""本地权威存储（JSON 文件）。离线使用和测试时充当远端。

照料写入时按同一套规则校验冷却与蛋阶段，客户端只在本地检查绕不过去。
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from couple_pet.config import STORE_DIR, ensure_dirs
from couple_pet.errors import PetNotFound
from couple_pet.pet import care
from couple_pet.pet.models import CareAction, Pet, PetStage
from couple_pet.progress.models import Milestone
from couple_pet.sync.events import CareActionInserted, EventHub, PetRowChanged
from couple_pet.sync.remote import DEFAULT_HISTORY_LIMIT

logger = logging.getLogger(__name__)


class LocalPetStore:
    """按宠物与情侣分文件保存；可选挂一个 EventHub 模拟实时推送。"""

    def __init__(self, base_dir: Optional[Path] = None, hub: Optional[EventHub] = None):
        self.base_dir = base_dir or STORE_DIR
        self.hub = hub
        if base_dir is None:
            ensure_dirs()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _pet_path(self, pet_id: str) -> Path:
        return self.base_dir / f"pet_{pet_id}.json"

    def _care_path(self, pet_id: str) -> Path:
        return self.base_dir / f"care_{pet_id}.json"

    def _milestones_path(self, couple_id: str) -> Path:
        return self.base_dir / f"milestones_{couple_id}.json"

    def _write_pet(self, pet: Pet) -> None:
        with open(self._pet_path(pet.id), "w", encoding="utf-8") as f:
            f.write(pet.model_dump_json(indent=2))
        if self.hub is not None:
            self.hub.publish(PetRowChanged(pet_id=pet.id, pet=pet))

    def _load_list(self, path: Path) -> list:
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save_list(self, path: Path, items: list) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(items, f, indent=2, ensure_ascii=False)

    def _care_log(self, pet_id: str) -> List[CareAction]:
        return [CareAction.model_validate(item) for item in self._load_list(self._care_path(pet_id))]

    def create_pet(self, pet: Pet) -> Pet:
        if not self._pet_path(pet.id).exists():
            self._write_pet(pet)
            logger.info("created pet %s for couple %s", pet.id, pet.couple_id)
        return self.get_pet(pet.id)

    def get_pet(self, pet_id: str) -> Pet:
        path = self._pet_path(pet_id)
        if not path.exists():
            raise PetNotFound(pet_id)
        with open(path, "r", encoding="utf-8") as f:
            return Pet.model_validate(json.load(f))

    def update_pet_stats(self, pet: Pet) -> Pet:
        stored = self.get_pet(pet.id)
        last_care_at = pet.last_care_at
        if stored.last_care_at is not None and (last_care_at is None or stored.last_care_at > last_care_at):
            # 已有更新的照料，旧快照不覆盖
            return stored
        updated = stored.model_copy(update={
            "stats": pet.stats,
            "personality": pet.personality,
            "xp": max(stored.xp, pet.xp),
            "last_care_at": last_care_at,
        })
        self._write_pet(updated)
        return updated

    def append_care_action(self, action: CareAction) -> CareAction:
        log = self._care_log(action.pet_id)
        for existing in log:
            if existing.id == action.id:
                return existing
        pet = self.get_pet(action.pet_id)
        # 以记录自身的时间判定冷却，迟到的离线记录同样受约束
        care.check_at(pet, action, log)
        items = self._load_list(self._care_path(action.pet_id))
        items.append(action.model_dump(mode="json"))
        self._save_list(self._care_path(action.pet_id), items)
        if self.hub is not None:
            self.hub.publish(CareActionInserted(pet_id=action.pet_id, action=action))
        return action

    def update_stage(self, pet_id: str, stage: PetStage) -> Pet:
        stored = self.get_pet(pet_id)
        stage = PetStage(stage)
        if stage.order <= stored.stage.order:
            return stored
        updated = stored.model_copy(update={"stage": stage})
        self._write_pet(updated)
        logger.info("pet %s stage stored as %s", pet_id, stage.value)
        return updated

    def create_milestone(self, milestone: Milestone) -> Milestone:
        existing = self.list_milestones(milestone.couple_id)
        for m in existing:
            if m.title == milestone.title:
                return m
        items = self._load_list(self._milestones_path(milestone.couple_id))
        items.append(milestone.model_dump(mode="json"))
        self._save_list(self._milestones_path(milestone.couple_id), items)
        return milestone

    def list_milestones(self, couple_id: str) -> List[Milestone]:
        items = [Milestone.model_validate(item) for item in self._load_list(self._milestones_path(couple_id))]
        return sorted(items, key=lambda m: m.achieved_at, reverse=True)

    def list_care_actions(self, pet_id: str, limit: Optional[int] = DEFAULT_HISTORY_LIMIT) -> List[CareAction]:
        log = sorted(self._care_log(pet_id), key=lambda a: (a.timestamp, a.id), reverse=True)
        return log if limit is None else log[:limit]
