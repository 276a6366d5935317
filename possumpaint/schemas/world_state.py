"""
possumpaint.schemas.world_state
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

世界状态的 Pydantic 模型，同时也是持久化文件的格式::

    {"rooms": {"<roomId>": {"furOps": [...], "flowerOps": [...]}}}

操作本身对服务端是不透明的 JSON 对象，原样保存、原样回放。
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

Operation = dict[str, Any]


class RoomState(BaseModel):
    """单个房间的两条独立操作序列。"""

    model_config = ConfigDict(populate_by_name=True)

    fur_ops: list[Operation] = Field(default_factory=list, alias="furOps")
    flower_ops: list[Operation] = Field(default_factory=list, alias="flowerOps")


class WorldState(BaseModel):
    """房间 ID → 房间状态的映射。房间只会懒创建，从不删除。"""

    rooms: dict[str, RoomState] = Field(default_factory=dict)

    def room(self, room_id: str) -> RoomState:
        """获取房间状态，不存在则创建空房间。"""
        state = self.rooms.get(room_id)
        if state is None:
            state = RoomState()
            self.rooms[room_id] = state
        return state

    def to_json(self) -> str:
        """序列化为持久化文件内容。"""
        return self.model_dump_json(by_alias=True)
