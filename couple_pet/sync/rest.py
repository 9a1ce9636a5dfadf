"""PostgREST 风格的远端存储：pets / care_actions / milestones 三张表。

照料写入走 rpc/record_care_action，由服务端校验冷却；返回 COOLDOWN_ACTIVE 时抛 CareRejected。
网络错误、超时、5xx、限流视为临时失败；其余 4xx 视为永久失败。
"""
import logging
from typing import List, Optional

import requests

from couple_pet.config import API_KEY, API_TIMEOUT, API_URL
from couple_pet.errors import CareRejected, PermanentRemoteError, PetNotFound, TransientRemoteError
from couple_pet.pet.models import CareAction, Pet, PetStage
from couple_pet.progress.models import Milestone
from couple_pet.sync.remote import DEFAULT_HISTORY_LIMIT

logger = logging.getLogger(__name__)

TRANSIENT_STATUS = {408, 425, 429, 500, 502, 503, 504}


def pet_to_row(pet: Pet) -> dict:
    return {
        "id": pet.id,
        "couple_id": pet.couple_id,
        "name": pet.name,
        "species": pet.species.value,
        "color": pet.color,
        "current_stage": pet.stage.value,
        "hunger": pet.stats.hunger,
        "happiness": pet.stats.happiness,
        "energy": pet.stats.energy,
        "base_stats": pet.base_stats.model_dump(),
        "personality_type": pet.personality.model_dump(),
        "xp": pet.xp,
        "created_at": pet.created_at.isoformat(),
        "last_care_at": pet.last_care_at.isoformat() if pet.last_care_at else None,
    }


def pet_from_row(row: dict) -> Pet:
    """库表字段映射到 Pet；缺失的性格、数值按默认值补齐。"""
    stats = {k: row.get(k) for k in ("hunger", "happiness", "energy")}
    return Pet.model_validate({
        "id": row["id"],
        "couple_id": row["couple_id"],
        "name": row.get("name") or "",
        "species": row.get("species") or "dragon",
        "color": row.get("color") or "#FFFFFF",
        "stage": row.get("current_stage") or "egg",
        "stats": stats,
        "base_stats": row.get("base_stats"),
        "personality": row.get("personality_type"),
        "xp": row.get("xp") or 0,
        "created_at": row["created_at"],
        "last_care_at": row.get("last_care_at"),
    })


def action_to_row(action: CareAction) -> dict:
    return {
        "id": action.id,
        "pet_id": action.pet_id,
        "user_id": action.actor_id,
        "action_type": action.action_type.value,
        "timestamp": action.timestamp.isoformat(),
        "bonus_points": action.bonus_points,
        "co_op_bonus": action.is_co_op,
    }


def action_from_row(row: dict) -> CareAction:
    return CareAction(
        id=row["id"],
        pet_id=row["pet_id"],
        actor_id=row["user_id"],
        action_type=row["action_type"],
        timestamp=row["timestamp"],
        bonus_points=row.get("bonus_points") or 0,
        is_co_op=bool(row.get("co_op_bonus")),
    )


class RestPetStore:
    """远端客户端。base_url 形如 https://xxx.supabase.co，不带 /rest/v1。"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = API_TIMEOUT,
    ):
        self.base_url = (base_url or API_URL).rstrip("/")
        self.api_key = api_key or API_KEY
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, prefer: Optional[str] = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(self, method: str, path: str, params=None, json_body=None, prefer: Optional[str] = None):
        url = f"{self.base_url}/rest/v1/{path}"
        try:
            r = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransientRemoteError(f"request failed: {e}") from e
        if r.status_code in TRANSIENT_STATUS:
            raise TransientRemoteError(f"HTTP {r.status_code}: {r.text[:200]}", status_code=r.status_code)
        if r.status_code >= 400:
            raise PermanentRemoteError(f"HTTP {r.status_code}: {r.text[:200]}", status_code=r.status_code)
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise PermanentRemoteError(f"response is not JSON: {r.text[:200]}", status_code=r.status_code) from e

    def _single_pet(self, rows, pet_id: str) -> Pet:
        if not rows:
            raise PetNotFound(pet_id)
        return pet_from_row(rows[0])

    def create_pet(self, pet: Pet) -> Pet:
        rows = self._request(
            "POST", "pets", json_body=pet_to_row(pet),
            prefer="resolution=ignore-duplicates,return=representation",
        )
        if not rows:
            return self.get_pet(pet.id)
        return pet_from_row(rows[0])

    def get_pet(self, pet_id: str) -> Pet:
        rows = self._request("GET", "pets", params={"id": f"eq.{pet_id}", "select": "*"})
        return self._single_pet(rows, pet_id)

    def update_pet_stats(self, pet: Pet) -> Pet:
        body = {
            "hunger": pet.stats.hunger,
            "happiness": pet.stats.happiness,
            "energy": pet.stats.energy,
            "personality_type": pet.personality.model_dump(),
            "xp": pet.xp,
            "last_care_at": pet.last_care_at.isoformat() if pet.last_care_at else None,
        }
        rows = self._request(
            "PATCH", "pets", params={"id": f"eq.{pet.id}"}, json_body=body, prefer="return=representation",
        )
        return self._single_pet(rows, pet.id)

    def append_care_action(self, action: CareAction) -> CareAction:
        result = self._request("POST", "rpc/record_care_action", json_body={
            "p_action": action_to_row(action),
        })
        result = result or {}
        if not result.get("success", False):
            code = result.get("code")
            if code == "COOLDOWN_ACTIVE":
                raise CareRejected(
                    CareRejected.COOLDOWN,
                    action.action_type.value,
                    float(result.get("cooldown_remaining") or 0),
                )
            if code == "EGG_STAGE":
                raise CareRejected(CareRejected.EGG_STAGE, action.action_type.value)
            if code == "PET_NOT_FOUND":
                raise PetNotFound(action.pet_id)
            raise PermanentRemoteError(f"record_care_action failed: {result.get('error') or code}")
        if result.get("action"):
            return action_from_row(result["action"])
        return action

    def update_stage(self, pet_id: str, stage: PetStage) -> Pet:
        stage = PetStage(stage)
        earlier = [s.value for s in PetStage if s.order < stage.order]
        # 只更新仍处于更早阶段的行，远端已前进时不回退
        params = {"id": f"eq.{pet_id}"}
        if earlier:
            params["current_stage"] = f"in.({','.join(earlier)})"
        self._request(
            "PATCH", "pets", params=params, json_body={"current_stage": stage.value}, prefer="return=representation",
        )
        return self.get_pet(pet_id)

    def create_milestone(self, milestone: Milestone) -> Milestone:
        rows = self._request(
            "POST", "milestones", json_body=milestone.model_dump(mode="json"),
            params={"on_conflict": "couple_id,title"},
            prefer="resolution=ignore-duplicates,return=representation",
        )
        if rows:
            return Milestone.model_validate(rows[0])
        for m in self.list_milestones(milestone.couple_id):
            if m.title == milestone.title:
                return m
        return milestone

    def list_milestones(self, couple_id: str) -> List[Milestone]:
        rows = self._request("GET", "milestones", params={
            "couple_id": f"eq.{couple_id}",
            "order": "achieved_at.desc",
        })
        return [Milestone.model_validate(row) for row in rows or []]

    def _care_page(self, pet_id: str, limit: int, offset: int) -> List[CareAction]:
        rows = self._request("GET", "care_actions", params={
            "pet_id": f"eq.{pet_id}",
            "order": "timestamp.desc,id.desc",
            "limit": str(limit),
            "offset": str(offset),
        })
        return [action_from_row(row) for row in rows or []]

    def list_care_actions(self, pet_id: str, limit: Optional[int] = DEFAULT_HISTORY_LIMIT) -> List[CareAction]:
        """limit 为 None 时按页取完全部记录。"""
        if limit is not None:
            return self._care_page(pet_id, limit, 0)
        actions: List[CareAction] = []
        while True:
            page = self._care_page(pet_id, DEFAULT_HISTORY_LIMIT, len(actions))
            actions.extend(page)
            if len(page) < DEFAULT_HISTORY_LIMIT:
                return actions
