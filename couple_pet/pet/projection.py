"""从照料记录重算宠物投影。

记录是只增集合，按 (timestamp, id) 排序回放，插入顺序不同也会得到同一结果。
两份数值快照不直接合并，一律从合并后的记录重算。
"""
from typing import Dict, Iterable, List

from couple_pet.pet.care import apply_action
from couple_pet.pet.models import CareAction, Personality, Pet


def merge_logs(*logs: Iterable[CareAction]) -> Dict[str, CareAction]:
    """按 id 取并集。同一 id 的记录不可变，先到的保留。"""
    merged: Dict[str, CareAction] = {}
    for log in logs:
        for action in log:
            merged.setdefault(action.id, action)
    return merged


def ordered(log: Iterable[CareAction]) -> List[CareAction]:
    return sorted(merge_logs(log).values(), key=lambda a: (a.timestamp, a.id))


def replay(pet: Pet, log: Iterable[CareAction], floor_xp: bool = True) -> Pet:
    """从 base_stats 与平均性格出发依次回放记录。

    floor_xp 为真时经验不低于宠物现有值；撤回被远端拒绝的乐观记录时传 False。
    """
    projected = pet.model_copy(update={
        "stats": pet.base_stats,
        "personality": Personality(),
        "xp": 0,
        "last_care_at": None,
    })
    for action in ordered(log):
        if action.pet_id == pet.id:
            projected = apply_action(projected, action)
    if floor_xp:
        projected = projected.model_copy(update={"xp": max(pet.xp, projected.xp)})
    return projected
