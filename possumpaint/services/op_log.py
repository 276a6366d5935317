"""
possumpaint.services.op_log
~~~~~~~~~~~~~~~~~~~~~~~~~~~

操作日志仓库：按房间维护两条有界的操作序列，并组装回放快照。

- 绒毛序列（``furOps``）：``paint`` 追加，``clear_fur`` 清空
- 花朵序列（``flowerOps``）：播种 / 玫瑰相关操作追加，``clear_flowers`` 清空
- 其它类型：只广播，不持久化

序列超过上限时从头部淘汰最旧的操作。快照固定为“先绒毛、后花朵”，
客户端按位置顺序回放，拼接顺序不能改变。
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from possumpaint.schemas.world_state import Operation, RoomState, WorldState

MAX_FUR_OPS: int = 50000
MAX_FLOWER_OPS: int = 12000


class OpKind(Enum):
    """操作类型的封闭枚举。未知类型统一归为 ``PASS_THROUGH``。"""

    FUR_APPEND = "fur_append"
    FUR_CLEAR = "fur_clear"
    FLOWER_APPEND = "flower_append"
    FLOWER_CLEAR = "flower_clear"
    PASS_THROUGH = "pass_through"


_KIND_BY_TYPE: dict[str, OpKind] = {
    "paint": OpKind.FUR_APPEND,
    "clear_fur": OpKind.FUR_CLEAR,
    "seed": OpKind.FLOWER_APPEND,
    "cheese_seed": OpKind.FLOWER_APPEND,
    "rose_pick": OpKind.FLOWER_APPEND,
    "rose_place_ball": OpKind.FLOWER_APPEND,
    "rose_place_flower": OpKind.FLOWER_APPEND,
    "clear_flowers": OpKind.FLOWER_CLEAR,
}


def classify(operation: Operation) -> OpKind:
    """根据 ``type`` 字段判定操作类型。"""
    raw = operation.get("type")
    op_type = "" if raw is None else str(raw)
    return _KIND_BY_TYPE.get(op_type, OpKind.PASS_THROUGH)


class SaveScheduling(Protocol):
    def schedule_save(self) -> None: ...


class OperationLog:
    """按房间划分的有界操作日志。

    Attributes:
        world: 被本仓库修改的世界状态（与持久化调度器共享同一实例）。
        scheduler: 每次变更后通知的持久化调度器。
    """

    def __init__(
        self,
        world: WorldState,
        scheduler: SaveScheduling,
        *,
        max_fur_ops: int = MAX_FUR_OPS,
        max_flower_ops: int = MAX_FLOWER_OPS,
    ) -> None:
        self.world = world
        self.scheduler = scheduler
        self.max_fur_ops = max_fur_ops
        self.max_flower_ops = max_flower_ops

    def apply(self, room: str, operation: Operation) -> OpKind:
        """把一条操作写入房间日志，返回判定出的操作类型。

        未知类型不是错误，调用方仍会广播它，只是这里不做任何事。
        """
        kind = classify(operation)
        if kind is OpKind.PASS_THROUGH:
            return kind

        state = self.world.room(room)
        if kind is OpKind.FUR_CLEAR:
            state.fur_ops = []
        elif kind is OpKind.FLOWER_CLEAR:
            state.flower_ops = []
        elif kind is OpKind.FUR_APPEND:
            _append_bounded(state.fur_ops, operation, self.max_fur_ops)
        else:
            _append_bounded(state.flower_ops, operation, self.max_flower_ops)

        self.scheduler.schedule_save()
        return kind

    def snapshot(self, room: str) -> list[Operation]:
        """返回 ``furOps + flowerOps``。首次访问的房间会被懒创建。"""
        state = self.world.room(room)
        return [*state.fur_ops, *state.flower_ops]

    def snapshot_message(self, room: str) -> dict[str, Any]:
        """组装新订阅者收到的第一条消息。"""
        return {
            "sender": "server",
            "room": room,
            "type": "snapshot",
            "payload": {"ops": self.snapshot(room)},
        }

    def room_ids(self) -> list[str]:
        """所有已知房间（包括从磁盘恢复的）。"""
        return list(self.world.rooms)

    def op_counts(self, room: str) -> tuple[int, int]:
        """返回房间的 ``(绒毛操作数, 花朵操作数)``，不会创建房间。"""
        state: RoomState | None = self.world.rooms.get(room)
        if state is None:
            return 0, 0
        return len(state.fur_ops), len(state.flower_ops)


def _append_bounded(ops: list[Operation], operation: Operation, limit: int) -> None:
    ops.append(operation)
    overflow = len(ops) - limit
    if overflow > 0:
        del ops[:overflow]
