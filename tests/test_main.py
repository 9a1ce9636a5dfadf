"""命令行入口测试。"""
import argparse
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from couple_pet import main
from couple_pet.clock import FixedClock
from couple_pet.pet.models import PetSpecies, PetStage
from couple_pet.sync.store import LocalPetStore

T0 = datetime(2024, 2, 14, 9, 30, tzinfo=timezone.utc)


def test_new_pet_uses_clock(monkeypatch, capsys) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store = LocalPetStore(base_dir=Path(tmp))
        monkeypatch.setattr(main, "_clock", lambda: FixedClock(T0))
        monkeypatch.setattr(main, "_remote", lambda: store)

        args = argparse.Namespace(couple_id="c1", name="豆豆", species="cat", color="#FFCC00")
        assert main.cmd_new(args) == 0
        pet_id = capsys.readouterr().out.strip()

        pet = store.get_pet(pet_id)
        assert pet.created_at == T0
        assert pet.species == PetSpecies.CAT
        assert pet.stage == PetStage.EGG
