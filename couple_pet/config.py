"""共养宠物全局配置：数值表、冷却、进化要求与数据路径。"""
import os
from pathlib import Path

# 项目根目录（couple_pet 包所在目录的上一级）
ROOT_DIR = Path(__file__).resolve().parent.parent
# 数据目录：本地权威存储、待同步队列
DATA_DIR = ROOT_DIR / "data"
STORE_DIR = DATA_DIR / "store"
OUTBOX_PATH = DATA_DIR / "outbox.json"

# 远端（PostgREST 风格）接口，未配置则只用本地存储
API_URL = os.environ.get("COUPLE_PET_API_URL", "").strip()
API_KEY = os.environ.get("COUPLE_PET_API_KEY", "").strip()
API_TIMEOUT = 15

# 数值范围
STAT_MIN = 0
STAT_MAX = 100
TRAIT_MAX = 100.0

# 新宠物默认值
DEFAULT_STAT_VALUE = 80
DEFAULT_TRAIT_VALUE = 25.0

# 每小时衰减（饥饿最快，精力最慢）
STAT_DECAY_PER_HOUR = {
    "hunger": 2.0,
    "happiness": 1.5,
    "energy": 1.0,
}

# 照料效果表：带符号增量
CARE_EFFECTS = {
    "feed": {"hunger": 20, "energy": 5, "happiness": 5},
    "play": {"hunger": -5, "energy": -10, "happiness": 25},
    "walk": {"hunger": -10, "energy": -15, "happiness": 15},
    "pet": {"hunger": 0, "energy": 0, "happiness": 10},
    "groom": {"hunger": 0, "energy": -5, "happiness": 15},
}

# 同类照料冷却（秒）
CARE_COOLDOWN_SECONDS = 5 * 60

# 经验奖励
XP_REWARDS = {
    "feed": 10,
    "play": 20,
    "walk": 15,
    "pet": 5,
    "groom": 10,
}

# 合作奖励：另一半在窗口内做过同类照料
CO_OP_WINDOW_SECONDS = 10 * 60
CO_OP_BONUS_POINTS = 10

# 性格增量
PERSONALITY_NUDGES = {
    "play": {"playful": 2.0},
    "pet": {"affectionate": 2.0},
    "groom": {"calm": 1.0, "affectionate": 1.0},
    "feed": {"affectionate": 1.0},
    "walk": {"playful": 1.0, "mischievous": 0.5},
}

# 各阶段进化所需连续照料天数
STAGE_DAY_REQUIREMENTS = {
    "egg": 0,
    "baby": 3,
    "child": 14,
    "teen": 30,
    "adult": 60,
    "elder": 100,
}

# 需要关注的阈值
ATTENTION_THRESHOLD = 30


def ensure_dirs() -> None:
    """确保数据目录存在。"""
    for d in (DATA_DIR, STORE_DIR):
        d.mkdir(parents=True, exist_ok=True)
