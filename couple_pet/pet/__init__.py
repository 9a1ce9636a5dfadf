"""宠物数值、照料与性格。"""
from couple_pet.pet.models import (
    CareAction,
    CareActionType,
    Personality,
    Pet,
    PetSpecies,
    PetStage,
    PetStats,
    Trait,
    new_pet,
)
from couple_pet.pet.projection import replay

__all__ = [
    "CareAction",
    "CareActionType",
    "Personality",
    "Pet",
    "PetSpecies",
    "PetStage",
    "PetStats",
    "Trait",
    "new_pet",
    "replay",
]
