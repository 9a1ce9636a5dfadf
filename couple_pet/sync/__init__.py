"""同步：远端存储接口、本地/REST 实现、待同步队列、实时事件与协调器。"""
from couple_pet.sync.coordinator import CareOutcome, DerivedState, SharedPetState, SyncCoordinator, SyncStatus
from couple_pet.sync.events import CareActionInserted, EventHub, PetRowChanged
from couple_pet.sync.outbox import OperationKind, Outbox
from couple_pet.sync.remote import RemotePetStore
from couple_pet.sync.store import LocalPetStore

__all__ = [
    "CareActionInserted",
    "CareOutcome",
    "DerivedState",
    "EventHub",
    "LocalPetStore",
    "OperationKind",
    "Outbox",
    "PetRowChanged",
    "RemotePetStore",
    "SharedPetState",
    "SyncCoordinator",
    "SyncStatus",
]
