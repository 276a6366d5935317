"""
possumpaint.services.room_broadcaster
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间广播中心：维护各房间的在线订阅连接，负责消息扇出与保活 ping。

所有注册表操作都是同步函数，运行在同一个事件循环上，
中途没有挂起点，因此“订阅 + 发送快照”天然是原子的：
新连接的快照一定先于任何实时广播到达。
"""
from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from typing import Any, Protocol

from possumpaint.core.logging import get_logger
from possumpaint.core.sse import PING_FRAME, encode_data

logger = get_logger(__name__)

KEEPALIVE_SECONDS: float = 15.0


class Sink(Protocol):
    """订阅连接的写端。``send`` 返回 ``False`` 表示写入失败、连接已不可用。"""

    def send(self, frame: str) -> bool: ...

    def close(self) -> None: ...


class QueueSink:
    """基于有界 ``asyncio.Queue`` 的 SSE 写端。

    HTTP 响应生成器从队列取帧写给客户端。队列满说明客户端消费过慢，
    按写入失败处理。关闭时清空积压并放入 ``None`` 结束标记。
    """

    def __init__(self, maxsize: int = 1024) -> None:
        self.queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, frame: str) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(None)


class RoomBroadcaster:
    """按房间划分的订阅注册表与广播器。

    Attributes:
        snapshot_provider: ``room -> 快照消息``，订阅时作为第一条消息发送。
    """

    def __init__(self, snapshot_provider: Callable[[str], dict[str, Any]]) -> None:
        self.snapshot_provider = snapshot_provider
        self._rooms: dict[str, dict[int, Sink]] = {}
        self._ids = itertools.count(1)
        self._ping_task: asyncio.Task[None] | None = None

    # ── 订阅管理 ──────────────────────────────────────────────────────

    def subscribe(self, room: str, sink: Sink) -> int:
        """注册连接并立即发送房间快照，返回连接 ID。"""
        conn_id = next(self._ids)
        self._rooms.setdefault(room, {})[conn_id] = sink
        if not self._deliver(room, conn_id, sink, encode_data(self.snapshot_provider(room))):
            logger.info("快照发送失败，连接已移除 | room=%s | conn=%d", room, conn_id)
        return conn_id

    def unsubscribe(self, room: str, conn_id: int) -> None:
        """移除连接。重复移除是空操作；房间空了就从注册表中删除。"""
        connections = self._rooms.get(room)
        if connections is None:
            return
        connections.pop(conn_id, None)
        if not connections:
            del self._rooms[room]

    # ── 广播 ──────────────────────────────────────────────────────────

    def broadcast(self, room: str, message: dict[str, Any]) -> int:
        """向房间内所有连接发送消息，返回成功送达的连接数。"""
        connections = self._rooms.get(room)
        if not connections:
            return 0
        frame = encode_data(message)
        delivered = 0
        for conn_id, sink in list(connections.items()):
            if self._deliver(room, conn_id, sink, frame):
                delivered += 1
        return delivered

    def ping_all(self) -> None:
        """向所有房间的所有连接写一条保活注释帧。"""
        for room, connections in list(self._rooms.items()):
            for conn_id, sink in list(connections.items()):
                self._deliver(room, conn_id, sink, PING_FRAME)

    def _deliver(self, room: str, conn_id: int, sink: Sink, frame: str) -> bool:
        # 单个连接失败只移除它自己，不能中断对其它连接的扇出
        try:
            ok = sink.send(frame)
        except Exception as exc:
            logger.debug("写入连接异常 | room=%s | conn=%d | %s", room, conn_id, exc)
            ok = False
        if not ok:
            logger.debug("移除失效连接 | room=%s | conn=%d", room, conn_id)
            self.unsubscribe(room, conn_id)
            sink.close()
        return ok

    # ── 保活任务 ──────────────────────────────────────────────────────

    def start_pinging(self, interval: float = KEEPALIVE_SECONDS) -> None:
        """启动后台保活任务，防止中间代理因空闲断开长连接。"""
        if self._ping_task is not None and not self._ping_task.done():
            return
        self._ping_task = asyncio.get_running_loop().create_task(self._ping_loop(interval))

    async def _ping_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.ping_all()

    async def stop_pinging(self) -> None:
        """取消保活任务并等待其退出。"""
        task, self._ping_task = self._ping_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def close_all(self) -> None:
        """关闭所有连接的写端并清空注册表。"""
        for connections in self._rooms.values():
            for sink in connections.values():
                sink.close()
        self._rooms.clear()

    # ── 状态查询 ──────────────────────────────────────────────────────

    def online_count(self, room: str) -> int:
        """房间当前在线连接数。"""
        return len(self._rooms.get(room, {}))

    def rooms(self) -> list[str]:
        """当前至少有一个连接的房间。"""
        return list(self._rooms)
