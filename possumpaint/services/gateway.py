"""
possumpaint.services.gateway
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

提交入口：房间名净化、请求体读取与校验、服务端打戳，
以及“先写日志、再广播”的处理顺序。
"""
from __future__ import annotations

import json
import math
import re
import time
from collections.abc import AsyncIterator
from typing import Any

from possumpaint.core.logging import get_logger
from possumpaint.schemas.world_state import Operation
from possumpaint.services.op_log import OperationLog
from possumpaint.services.room_broadcaster import RoomBroadcaster

logger = get_logger(__name__)

DEFAULT_ROOM: str = "main"
MAX_ROOM_LENGTH: int = 32
MAX_MESSAGE_BYTES: int = 48 * 1024

_ROOM_DISALLOWED = re.compile(r"[^A-Za-z0-9_-]")

REASON_TOO_LARGE = "Payload too large"
REASON_INVALID_JSON = "Invalid JSON"
REASON_INVALID_PAYLOAD = "Invalid payload"


class SubmitRejected(Exception):
    """提交被拒绝。``reason`` 会原样返回给提交方。"""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def sanitize_room(value: Any) -> str:
    """只保留 ``[A-Za-z0-9_-]``，截断到 32 个字符；结果为空时回落到 ``main``。"""
    if value is None:
        return DEFAULT_ROOM
    room = _ROOM_DISALLOWED.sub("", str(value).strip())[:MAX_ROOM_LENGTH]
    return room or DEFAULT_ROOM


def server_timestamp_ms() -> int:
    """服务端时间戳（epoch 毫秒）。"""
    return int(time.time() * 1000)


async def read_body(
    chunks: AsyncIterator[bytes],
    limit: int = MAX_MESSAGE_BYTES,
    *,
    declared_length: str | None = None,
) -> bytes:
    """分块读取请求体，累计超过上限立即中止。

    Args:
        chunks: 请求体字节流，通常是 ``request.stream()``。
        limit: 允许的最大字节数。
        declared_length: ``Content-Length`` 头，已声明超限时不读取直接拒绝。

    Raises:
        SubmitRejected: 请求体超过上限。
    """
    if declared_length is not None and declared_length.isdigit() and int(declared_length) > limit:
        raise SubmitRejected(REASON_TOO_LARGE)

    total = 0
    parts: list[bytes] = []
    async for chunk in chunks:
        total += len(chunk)
        if total > limit:
            raise SubmitRejected(REASON_TOO_LARGE)
        parts.append(chunk)
    return b"".join(parts)


def _reject_constant(name: str) -> float:
    raise SubmitRejected(REASON_INVALID_JSON)


def _parse_finite_float(text: str) -> float:
    # 1e999 之类会溢出成 inf，浏览器端无法解析回传的帧
    value = float(text)
    if not math.isfinite(value):
        raise SubmitRejected(REASON_INVALID_JSON)
    return value


def decode_operation(raw: bytes) -> Operation:
    """把请求体解析为操作对象。

    只有完全为空的请求体视为 ``{}``；``NaN``、``Infinity`` 等非标准 JSON
    会被拒绝，因为它们会写进快照，让之后加入的客户端都无法解析。
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(
            raw.decode("utf-8"),
            parse_constant=_reject_constant,
            parse_float=_parse_finite_float,
        )
    except ValueError as exc:
        # 包括 UnicodeDecodeError、JSONDecodeError 以及超长整数的转换错误
        raise SubmitRejected(REASON_INVALID_JSON) from exc
    if not isinstance(parsed, dict):
        raise SubmitRejected(REASON_INVALID_PAYLOAD)
    return parsed


class IngressGateway:
    """提交流水线：校验 → 打戳 → 写日志 → 广播。

    Attributes:
        op_log: 操作日志仓库。
        broadcaster: 房间广播中心。
        max_bytes: 单条提交的最大字节数。
    """

    def __init__(
        self,
        op_log: OperationLog,
        broadcaster: RoomBroadcaster,
        *,
        max_bytes: int = MAX_MESSAGE_BYTES,
    ) -> None:
        self.op_log = op_log
        self.broadcaster = broadcaster
        self.max_bytes = max_bytes

    def submit(self, room: Any, raw_body: bytes) -> Operation:
        """处理一条已读取完毕的提交，返回打戳后的操作。

        整个过程是同步的：写日志与广播之间不会插入其它请求。

        Raises:
            SubmitRejected: 请求体过大或不是 JSON 对象。
        """
        room_id = sanitize_room(room)
        if len(raw_body) > self.max_bytes:
            raise SubmitRejected(REASON_TOO_LARGE)
        operation = decode_operation(raw_body)

        operation["room"] = room_id
        operation["serverTs"] = server_timestamp_ms()

        kind = self.op_log.apply(room_id, operation)
        delivered = self.broadcaster.broadcast(room_id, operation)
        logger.debug(
            "操作已接收 | room=%s | type=%s | kind=%s | delivered=%d",
            room_id, operation.get("type"), kind.value, delivered,
        )
        return operation
