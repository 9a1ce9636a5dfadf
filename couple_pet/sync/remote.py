"""远端持久化接口。

所有方法失败时抛 TransientRemoteError（可重试）或 PermanentRemoteError；
权威端判定照料冷却未结束时抛 CareRejected。
"""
from typing import List, Optional, Protocol

from couple_pet.pet.models import CareAction, Pet, PetStage
from couple_pet.progress.models import Milestone

DEFAULT_HISTORY_LIMIT = 500


class RemotePetStore(Protocol):

    def create_pet(self, pet: Pet) -> Pet:
        ...

    def get_pet(self, pet_id: str) -> Pet:
        ...

    def update_pet_stats(self, pet: Pet) -> Pet:
        """写入数值、性格、经验与最近照料时间。"""
        ...

    def append_care_action(self, action: CareAction) -> CareAction:
        """同一 id 重复提交返回已有记录。"""
        ...

    def update_stage(self, pet_id: str, stage: PetStage) -> Pet:
        """只前进；远端已在该阶段或更后时不变。"""
        ...

    def create_milestone(self, milestone: Milestone) -> Milestone:
        """同一情侣同一标题已存在时返回已有记录。"""
        ...

    def list_milestones(self, couple_id: str) -> List[Milestone]:
        ...

    def list_care_actions(self, pet_id: str, limit: Optional[int] = DEFAULT_HISTORY_LIMIT) -> List[CareAction]:
        """按时间倒序。limit 为 None 时返回全部记录。"""
        ...
