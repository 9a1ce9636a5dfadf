"""待同步队列：远端临时失败的写操作留在这里，下次同步时按顺序重试。"""
import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class OperationKind(str, Enum):
    APPEND_CARE_ACTION = "append_care_action"
    UPDATE_PET_STATS = "update_pet_stats"
    UPDATE_STAGE = "update_stage"
    CREATE_MILESTONE = "create_milestone"


class PendingOperation(BaseModel):
    """一条待发送的写操作。"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: OperationKind
    pet_id: str
    payload: dict = Field(default_factory=dict)
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Outbox:
    """有序队列；给了 path 就持久化到 JSON 文件，重启后仍在。

    永久失败的操作移到 failed 列表，不会悄悄丢掉。
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self._pending: List[PendingOperation] = []
        self._failed: List[PendingOperation] = []
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        self._pending = [PendingOperation.model_validate(op) for op in data.get("pending", [])]
        self._failed = [PendingOperation.model_validate(op) for op in data.get("failed", [])]

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "pending": [op.model_dump(mode="json") for op in self._pending],
            "failed": [op.model_dump(mode="json") for op in self._failed],
        }
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def add(self, kind: OperationKind, pet_id: str, payload: Optional[dict] = None) -> PendingOperation:
        """入队。数值更新只保留一条，发送时总是带最新快照。"""
        if kind == OperationKind.UPDATE_PET_STATS:
            for op in self._pending:
                if op.kind == kind and op.pet_id == pet_id:
                    return op
        op = PendingOperation(kind=kind, pet_id=pet_id, payload=payload or {})
        self._pending.append(op)
        self._save()
        return op

    def pending(self, pet_id: Optional[str] = None) -> List[PendingOperation]:
        """给了 pet_id 只返回这只宠物的操作。"""
        return [op for op in self._pending if pet_id is None or op.pet_id == pet_id]

    def failed(self, pet_id: Optional[str] = None) -> List[PendingOperation]:
        return [op for op in self._failed if pet_id is None or op.pet_id == pet_id]

    def remove(self, op_id: str) -> None:
        self._pending = [op for op in self._pending if op.id != op_id]
        self._save()

    def record_attempt(self, op_id: str, error: str) -> None:
        for op in self._pending:
            if op.id == op_id:
                op.attempts += 1
                op.last_error = error
        self._save()

    def mark_failed(self, op_id: str, error: str) -> None:
        for op in self._pending:
            if op.id == op_id:
                op.attempts += 1
                op.last_error = error
                self._failed.append(op)
        self.remove(op_id)

    def has_pending(self, kind: Optional[OperationKind] = None, pet_id: Optional[str] = None) -> bool:
        return any(kind is None or op.kind == kind for op in self.pending(pet_id))

    def __len__(self) -> int:
        return len(self._pending)
