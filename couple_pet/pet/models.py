"""共养宠物与照料记录数据模型。"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from couple_pet.config import DEFAULT_STAT_VALUE, DEFAULT_TRAIT_VALUE, STAT_MAX, STAT_MIN, TRAIT_MAX


class PetSpecies(str, Enum):
    """物种（仅外观）。"""
    DRAGON = "dragon"
    CAT = "cat"
    FOX = "fox"
    PUPPY = "puppy"


class PetStage(str, Enum):
    """成长阶段，按声明顺序只进不退。"""
    EGG = "egg"
    BABY = "baby"
    CHILD = "child"
    TEEN = "teen"
    ADULT = "adult"
    ELDER = "elder"

    @property
    def order(self) -> int:
        return STAGE_ORDER.index(self)

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


STAGE_ORDER = list(PetStage)


class Trait(str, Enum):
    """性格特质。声明顺序即平局时的优先顺序。"""
    PLAYFUL = "playful"
    CALM = "calm"
    MISCHIEVOUS = "mischievous"
    AFFECTIONATE = "affectionate"


TRAIT_ORDER = tuple(Trait)


class CareActionType(str, Enum):
    """照料类型。"""
    FEED = "feed"
    PLAY = "play"
    WALK = "walk"
    PET = "pet"
    GROOM = "groom"


def as_utc(value: datetime) -> datetime:
    """无时区的时间按 UTC 处理，有时区的统一换算到 UTC。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PetStats(BaseModel):
    """三项数值，整数 0-100。"""
    hunger: int = Field(DEFAULT_STAT_VALUE, description="饱腹，100 为吃饱")
    happiness: int = Field(DEFAULT_STAT_VALUE, description="心情")
    energy: int = Field(DEFAULT_STAT_VALUE, description="精力")

    @field_validator("hunger", "happiness", "energy", mode="before")
    @classmethod
    def _bound(cls, v):
        if v is None:
            return DEFAULT_STAT_VALUE
        return max(STAT_MIN, min(STAT_MAX, int(round(float(v)))))


class Personality(BaseModel):
    """四项性格权重，各自上限 100。缺失项按平均分配补齐。"""
    playful: float = DEFAULT_TRAIT_VALUE
    calm: float = DEFAULT_TRAIT_VALUE
    mischievous: float = DEFAULT_TRAIT_VALUE
    affectionate: float = DEFAULT_TRAIT_VALUE

    @field_validator("playful", "calm", "mischievous", "affectionate", mode="before")
    @classmethod
    def _cap(cls, v):
        if v is None:
            return DEFAULT_TRAIT_VALUE
        return max(0.0, min(TRAIT_MAX, float(v)))

    def weight(self, trait: Trait) -> float:
        return getattr(self, trait.value)


class Pet(BaseModel):
    """共养宠物。stats 是衰减锚点（last_care_at 或 created_at）时刻的数值。"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="宠物唯一 ID")
    couple_id: str = Field(..., description="所属情侣 ID")
    name: str = Field("", description="名字")
    species: PetSpecies = Field(PetSpecies.DRAGON, description="物种")
    color: str = Field("#FFFFFF", description="颜色")
    stage: PetStage = Field(PetStage.EGG, description="成长阶段")
    stats: PetStats = Field(default_factory=PetStats)
    base_stats: PetStats = Field(default_factory=PetStats, description="创建时数值，回放起点")
    personality: Personality = Field(default_factory=Personality)
    xp: int = Field(0, ge=0, description="经验，只增不减")
    created_at: datetime = Field(default_factory=_utcnow)
    last_care_at: Optional[datetime] = Field(None, description="最近一次照料时间")

    @field_validator("stats", "base_stats", "personality", mode="before")
    @classmethod
    def _default_when_missing(cls, v):
        # 远端记录残缺时退回默认值
        return {} if v is None else v

    @field_validator("created_at", "last_care_at")
    @classmethod
    def _utc(cls, v):
        return as_utc(v) if v is not None else v

    @property
    def dominant_trait(self) -> Trait:
        from couple_pet.pet.personality import dominant_trait
        return dominant_trait(self.personality)

    @property
    def decay_anchor(self) -> datetime:
        return self.last_care_at or self.created_at


class CareAction(BaseModel):
    """一次照料的不可变记录，按 id 去重合并。"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="记录唯一 ID")
    pet_id: str = Field(..., description="宠物 ID")
    actor_id: str = Field(..., description="执行照料的一方")
    action_type: CareActionType = Field(..., description="照料类型")
    timestamp: datetime = Field(..., description="发生时间")
    bonus_points: int = Field(0, ge=0, description="合作奖励经验")
    is_co_op: bool = Field(False, description="是否触发合作奖励")

    model_config = ConfigDict(frozen=True)

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v):
        return as_utc(v)


def new_pet(
    couple_id: str,
    name: str = "",
    species: PetSpecies = PetSpecies.DRAGON,
    color: str = "#FFFFFF",
    created_at: Optional[datetime] = None,
    stage: PetStage = PetStage.EGG,
) -> Pet:
    """按默认值创建一只新宠物（蛋、80/80/80、性格平均）。"""
    created = as_utc(created_at) if created_at else _utcnow()
    return Pet(
        couple_id=couple_id,
        name=name,
        species=species,
        color=color,
        stage=stage,
        created_at=created,
    )
