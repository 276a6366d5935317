"""
possumpaint.services.persistence
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

世界状态持久化：防抖合并写入 + 关闭时同步落盘。

持久化是尽力而为的：内存中的 ``WorldState`` 才是权威数据，
磁盘读写失败只记日志，不会影响请求处理，也不会让进程退出。
"""
from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from possumpaint.core.logging import get_logger
from possumpaint.schemas.world_state import WorldState

logger = get_logger(__name__)

SAVE_DEBOUNCE_SECONDS: float = 0.2


class StateFile:
    """世界状态文件的读写封装。

    Attributes:
        path: 状态文件路径。
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> WorldState:
        """读取世界状态。文件缺失或损坏时返回空世界，从不抛出异常。"""
        if not self.path.exists():
            logger.info("状态文件不存在，使用空世界 | path=%s", self.path)
            return WorldState()
        try:
            text = self.path.read_text(encoding="utf-8")
            world = WorldState.model_validate_json(text)
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            logger.warning("状态文件读取失败，使用空世界 | path=%s | %s", self.path, exc)
            return WorldState()
        logger.info("世界状态已加载 | path=%s | rooms=%d", self.path, len(world.rooms))
        return world

    def save(self, text: str) -> None:
        """原子写入：先写同目录临时文件，再 ``os.replace`` 覆盖。"""
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=directory, prefix=f".{self.path.name}.", suffix=".tmp",
        )
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as fp:
                fp.write(text)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)


class SaveScheduler:
    """防抖持久化调度器。

    窗口内的多次 ``schedule_save()`` 只产生一次写入；写入时读取的是
    触发时刻的完整世界状态，因此窗口内的所有变更都会被带上。

    Attributes:
        world: 需要持久化的世界状态。
        state_file: 目标状态文件。
        delay: 防抖窗口（秒）。
    """

    def __init__(
        self,
        world: WorldState,
        state_file: StateFile,
        *,
        delay: float = SAVE_DEBOUNCE_SECONDS,
    ) -> None:
        self.world = world
        self.state_file = state_file
        self.delay = delay
        self._timer: asyncio.TimerHandle | None = None
        self._write_task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        """是否有尚未触发的防抖定时器。"""
        return self._timer is not None

    def schedule_save(self) -> None:
        """安排一次写入。已有定时器等待中时直接返回。"""
        if self._timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        try:
            text = self.world.to_json()
        except ValueError as exc:
            logger.error("世界状态序列化失败: %s", exc)
            return
        self._write_task = asyncio.get_running_loop().create_task(self._write(text))

    async def _write(self, text: str) -> None:
        # 文件写入放到线程池，避免阻塞事件循环上的请求处理
        try:
            await asyncio.to_thread(self.state_file.save, text)
        except Exception as exc:
            # 后台任务没有人等待结果，异常必须在这里记日志
            logger.error("世界状态保存失败 | path=%s | %s", self.state_file.path, exc)
        else:
            logger.debug("世界状态已保存 | bytes=%d", len(text))

    async def wait_for_pending_write(self) -> None:
        """等待正在进行的后台写入结束（不会触发新的写入）。"""
        task = self._write_task
        if task is not None and not task.done():
            await task

    def flush_now(self) -> None:
        """取消防抖定时器，同步写入一次完整世界状态。仅在关闭时调用。"""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        try:
            self.state_file.save(self.world.to_json())
        except (OSError, ValueError) as exc:
            logger.error("关闭时保存世界状态失败 | path=%s | %s", self.state_file.path, exc)
        else:
            logger.info("世界状态已落盘 | rooms=%d", len(self.world.rooms))
