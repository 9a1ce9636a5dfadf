"""命令行入口：创建宠物、查看状态、照料、进化、同步待发送操作。

配置了 COUPLE_PET_API_URL 时连接远端，否则使用本地 JSON 存储。
"""
import argparse
import logging
import sys

from couple_pet import __version__
from couple_pet.clock import SystemClock
from couple_pet.config import API_URL, OUTBOX_PATH, ensure_dirs
from couple_pet.errors import CareRejected, CouplePetError
from couple_pet.pet.models import CareActionType, PetSpecies, new_pet
from couple_pet.pet.stats import STAT_NAMES, mood_message, stat_status
from couple_pet.sync.coordinator import SyncCoordinator, SyncStatus
from couple_pet.sync.outbox import Outbox
from couple_pet.sync.rest import RestPetStore
from couple_pet.sync.store import LocalPetStore

logger = logging.getLogger("couple_pet")


def _clock():
    return SystemClock()


def _remote():
    if API_URL:
        return RestPetStore()
    return LocalPetStore()


def _coordinator(pet_id: str) -> SyncCoordinator:
    return SyncCoordinator.load(_remote(), pet_id, clock=_clock(), outbox=Outbox(OUTBOX_PATH))


def _print_status(coordinator: SyncCoordinator) -> None:
    pet = coordinator.pet
    derived = coordinator.derived()
    print(f"{pet.name or pet.id} ({pet.species.value}, {pet.stage.display_name})  XP {pet.xp}")
    for name in STAT_NAMES:
        value = getattr(derived.stats, name)
        print(f"  {name:<10}{value:>4}  {stat_status(value)}")
    print(f"  性格: {derived.dominant_trait.value}")
    print(f"  {mood_message(pet, coordinator.clock.now())}")
    print(f"  连续照料 {derived.streak.current_streak} 天（最长 {derived.streak.longest_streak} 天）")
    if derived.progress.has_reached_max_stage:
        print("  已是最终阶段")
    else:
        print(
            f"  下一阶段 {derived.progress.next_stage.display_name}: "
            f"还需 {derived.progress.days_until_next} 天 ({derived.progress.progress_percent:.0f}%)"
        )
    mp = derived.milestone_progress
    print(f"  纪念 {mp.completed}/{mp.total} ({mp.percent}%)")
    if coordinator.pending_count():
        print(f"  待同步操作 {coordinator.pending_count()} 条")


def cmd_new(args: argparse.Namespace) -> int:
    pet = new_pet(
        args.couple_id,
        name=args.name,
        species=PetSpecies(args.species),
        color=args.color,
        created_at=_clock().now(),
    )
    pet = _remote().create_pet(pet)
    print(pet.id)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    _print_status(_coordinator(args.pet_id))
    return 0


def cmd_care(args: argparse.Namespace) -> int:
    coordinator = _coordinator(args.pet_id)
    try:
        outcome = coordinator.perform_care(args.actor_id, CareActionType(args.action))
    except CareRejected as e:
        if e.reason == CareRejected.COOLDOWN:
            print(f"{e.action_type} 冷却中，还需 {int(e.remaining_seconds)} 秒")
        else:
            print("还是一颗蛋，先孵化吧")
        return 1
    print(f"{outcome.action.action_type.value}: {outcome.status.value}")
    if outcome.action.is_co_op:
        print(f"  合作奖励 +{outcome.action.bonus_points}")
    for m in outcome.new_milestones:
        print(f"  {m.icon} {m.title}")
    if outcome.eligibility and outcome.eligibility.is_eligible:
        print("  可以进化了！")
    return 1 if outcome.status == SyncStatus.REJECTED_REMOTELY else 0


def cmd_evolve(args: argparse.Namespace) -> int:
    coordinator = _coordinator(args.pet_id)
    result = coordinator.evolve()
    if not result.success:
        print(f"未进化: {result.status.value}")
        return 1
    print(f"{result.previous_stage.display_name} -> {result.new_stage.display_name}")
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    coordinator = _coordinator(args.pet_id)
    report = coordinator.flush_outbox()
    print(f"已发送 {report.sent} 条，剩余 {report.remaining} 条，失败 {len(coordinator.outbox.failed(coordinator.pet.id))} 条")
    return 0 if report.remaining == 0 else 1


def main() -> int:
    parser = argparse.ArgumentParser(description=f"共养宠物 {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    p = subparsers.add_parser("new", help="创建宠物")
    p.add_argument("couple_id", help="情侣 ID")
    p.add_argument("--name", default="", help="名字")
    p.add_argument("--species", default=PetSpecies.DRAGON.value, choices=[s.value for s in PetSpecies])
    p.add_argument("--color", default="#FFFFFF")
    p.set_defaults(func=cmd_new)

    p = subparsers.add_parser("status", help="查看宠物状态")
    p.add_argument("pet_id")
    p.set_defaults(func=cmd_status)

    p = subparsers.add_parser("care", help="照料宠物")
    p.add_argument("pet_id")
    p.add_argument("actor_id", help="照料者 ID")
    p.add_argument("action", choices=[t.value for t in CareActionType])
    p.set_defaults(func=cmd_care)

    p = subparsers.add_parser("evolve", help="进化一级")
    p.add_argument("pet_id")
    p.set_defaults(func=cmd_evolve)

    p = subparsers.add_parser("sync", help="发送待同步操作")
    p.add_argument("pet_id")
    p.set_defaults(func=cmd_sync)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    ensure_dirs()
    try:
        return args.func(args)
    except CouplePetError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
