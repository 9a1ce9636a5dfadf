"""成长与纪念数据模型：进化要求、纪念里程碑、情侣关系上下文。"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from couple_pet.pet.models import Pet, PetStage, as_utc


class EvolutionRequirement(BaseModel):
    """某阶段进化到下一阶段所需的连续照料天数。静态配置。"""
    stage: PetStage
    days_required: int = Field(..., ge=0)
    next_stage: Optional[PetStage] = Field(None, description="终极阶段为 None")

    model_config = ConfigDict(frozen=True)


class EvolutionEligibility(BaseModel):
    stage: PetStage
    required_days: int
    current_days: int
    progress_percent: float = Field(..., ge=0, le=100)
    is_eligible: bool


class EvolutionProgress(BaseModel):
    """给界面展示用的进化进度。"""
    current_stage: PetStage
    next_stage: Optional[PetStage]
    current_streak_days: int
    days_until_next: int
    progress_percent: float
    can_evolve: bool
    has_reached_max_stage: bool


class EvolutionStatus(str, Enum):
    EVOLVED = "evolved"
    ALREADY_APPLIED = "already_applied"  # 重复请求，已经进化过
    INELIGIBLE = "ineligible"
    TERMINAL = "terminal"


class Milestone(BaseModel):
    """情侣的一次性纪念，同一情侣内按 title 去重，只创建不修改。"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="纪念 ID")
    couple_id: str = Field(..., description="情侣 ID")
    title: str = Field(..., description="标题，去重键")
    description: str = Field("", description="说明")
    icon: str = Field("", description="图标")
    achieved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @field_validator("achieved_at")
    @classmethod
    def _utc(cls, v):
        return as_utc(v)


class EvolutionResult(BaseModel):
    status: EvolutionStatus
    pet: Pet
    previous_stage: PetStage
    new_stage: Optional[PetStage] = None
    milestone: Optional[Milestone] = None

    @property
    def success(self) -> bool:
        return self.status == EvolutionStatus.EVOLVED


class CoupleContext(BaseModel):
    """纪念规则可用的情侣关系数据。"""
    days_together: int = Field(0, ge=0, description="在一起天数")
    video_calls_completed: int = Field(0, ge=0, description="视频通话次数")
    distance_traveled: float = Field(0.0, ge=0, description="一起走过的虚拟里程")


class MilestoneProgress(BaseModel):
    completed: int
    total: int
    percent: int
