"""
possumpaint.core.sse
~~~~~~~~~~~~~~~~~~~~

Server-Sent Events 帧编码。

推送协议只用到两种帧：
  - 注释帧 ``: <text>\\n\\n``：连接确认与保活 ping，客户端 ``EventSource`` 会忽略
  - 数据帧 ``data: <json>\\n\\n``：快照与实时操作
"""
from __future__ import annotations

import json
from typing import Any

CONNECTED_FRAME: str = ": connected\n\n"
PING_FRAME: str = ": ping\n\n"


def encode_comment(text: str) -> str:
    """编码一个 SSE 注释帧。"""
    return f": {text}\n\n"


def encode_data(message: dict[str, Any]) -> str:
    """把消息序列化为单行 JSON 数据帧。

    ``json.dumps`` 默认转义换行，因此整条消息总在一行 ``data:`` 内。
    ``NaN`` / ``Infinity`` 不是标准 JSON，遇到时抛出 ``ValueError``。
    """
    payload = json.dumps(message, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    return f"data: {payload}\n\n"
