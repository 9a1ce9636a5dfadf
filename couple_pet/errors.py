"""引擎错误分类：校验拒绝、远端临时失败、远端永久失败。"""
from typing import Optional


class CouplePetError(Exception):
    """所有引擎错误的基类。"""


class CareRejected(CouplePetError):
    """照料被拒绝（蛋阶段或冷却中）。不产生任何状态变化。"""

    EGG_STAGE = "egg_stage"
    COOLDOWN = "cooldown"

    def __init__(self, reason: str, action_type: str, remaining_seconds: float = 0.0):
        self.reason = reason
        self.action_type = action_type
        self.remaining_seconds = remaining_seconds
        super().__init__(f"{action_type} rejected: {reason}")


class RemoteError(CouplePetError):
    """远端存储失败。retryable 决定调用方是否可自动重试。"""

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TransientRemoteError(RemoteError):
    """网络中断、超时、5xx 等可重试的失败。"""

    retryable = True


class PermanentRemoteError(RemoteError):
    """记录不存在、参数非法等重试也无用的失败。"""


class PetNotFound(PermanentRemoteError):
    """远端没有这只宠物。"""

    def __init__(self, pet_id: str):
        self.pet_id = pet_id
        super().__init__(f"pet {pet_id} not found", status_code=404)
