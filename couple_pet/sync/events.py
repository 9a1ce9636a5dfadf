"""实时事件：宠物行变化、照料记录插入。按宠物 ID 分发，进程内实现。"""
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Union

from pydantic import BaseModel, Field

from couple_pet.pet.models import CareAction, Pet

logger = logging.getLogger(__name__)


class PetRowChanged(BaseModel):
    """远端宠物记录变了（数值、阶段等）。"""
    pet_id: str
    pet: Pet


class CareActionInserted(BaseModel):
    """远端新增了一条照料记录（通常是另一半做的）。"""
    pet_id: str
    action: CareAction


PetEvent = Union[PetRowChanged, CareActionInserted]
Handler = Callable[[PetEvent], None]


class EventHub:
    """订阅与派发。订阅返回一个取消函数。"""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, pet_id: str, handler: Handler) -> Callable[[], None]:
        self._handlers[pet_id].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers.get(pet_id, []):
                self._handlers[pet_id].remove(handler)

        return unsubscribe

    def publish(self, event: PetEvent) -> None:
        for handler in list(self._handlers.get(event.pet_id, [])):
            handler(event)

    def subscriber_count(self, pet_id: str) -> int:
        return len(self._handlers.get(pet_id, []))
