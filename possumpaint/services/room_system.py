"""
possumpaint.services.room_system
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间系统：组装并持有世界状态、持久化调度器、操作日志、广播中心与提交入口，
定义它们的启动与关闭顺序。

在 FastAPI lifespan 中创建并挂载于 ``app.state.room_system``。
"""
from __future__ import annotations

from possumpaint.core.config import Settings
from possumpaint.core.logging import get_logger
from possumpaint.schemas.world_state import Operation
from possumpaint.services.gateway import IngressGateway
from possumpaint.services.op_log import OperationLog
from possumpaint.services.persistence import SaveScheduler, StateFile
from possumpaint.services.room_broadcaster import RoomBroadcaster, Sink

logger = get_logger(__name__)


class RoomSystem:
    """多人房间系统（每个进程一个实例）。

    - ``join(room, sink)``   → 订阅房间，先收到快照
    - ``leave(room, id)``    → 退订（幂等）
    - ``submit(room, raw)``  → 校验、写日志、广播

    Attributes:
        state_file: 世界状态文件。
        scheduler: 防抖持久化调度器。
        op_log: 操作日志仓库。
        broadcaster: 房间广播中心。
        gateway: 提交入口。
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.state_file = StateFile(settings.STATE_FILE)
        world = self.state_file.load()
        self.scheduler = SaveScheduler(
            world, self.state_file, delay=settings.SAVE_DEBOUNCE_SECONDS,
        )
        self.op_log = OperationLog(
            world,
            self.scheduler,
            max_fur_ops=settings.MAX_FUR_OPS,
            max_flower_ops=settings.MAX_FLOWER_OPS,
        )
        self.broadcaster = RoomBroadcaster(self.op_log.snapshot_message)
        self.gateway = IngressGateway(
            self.op_log, self.broadcaster, max_bytes=settings.MAX_MESSAGE_BYTES,
        )

    def start(self) -> None:
        """启动后台保活任务。需在事件循环中调用。"""
        self.broadcaster.start_pinging(self.settings.KEEPALIVE_SECONDS)
        logger.info(
            "房间系统已启动 | state=%s | rooms=%d",
            self.state_file.path, len(self.op_log.room_ids()),
        )

    def join(self, room: str, sink: Sink) -> int:
        """订阅房间，返回连接 ID。"""
        conn_id = self.broadcaster.subscribe(room, sink)
        logger.info(
            "连接加入房间 | room=%s | conn=%d | 在线: %d",
            room, conn_id, self.broadcaster.online_count(room),
        )
        return conn_id

    def leave(self, room: str, conn_id: int) -> None:
        """退订房间。"""
        self.broadcaster.unsubscribe(room, conn_id)
        logger.info(
            "连接离开房间 | room=%s | conn=%d | 在线: %d",
            room, conn_id, self.broadcaster.online_count(room),
        )

    def submit(self, room: str, raw_body: bytes) -> Operation:
        """提交一条操作，见 ``IngressGateway.submit``。"""
        return self.gateway.submit(room, raw_body)

    async def shutdown(self) -> None:
        """停止保活、等待后台写入、同步落盘，最后关闭所有连接。"""
        await self.broadcaster.stop_pinging()
        await self.scheduler.wait_for_pending_write()
        self.scheduler.flush_now()
        self.broadcaster.close_all()
        logger.info("房间系统已关闭")
