"""
possumpaint.api.events
~~~~~~~~~~~~~~~~~~~~~~

多人房间 HTTP 接口：SSE 订阅 + 操作提交。

端点:
  - ``GET  /events?room=R`` → SSE 推送流：连接确认、房间快照，之后是实时操作与保活 ping
  - ``POST /send?room=R``   → 提交一条 JSON 操作，成功 204，失败 400 ``{"error": ...}``
"""
from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from possumpaint.api.deps import get_room_system
from possumpaint.core.logging import get_logger
from possumpaint.core.sse import CONNECTED_FRAME
from possumpaint.schemas.responses import ErrorResponse
from possumpaint.services.gateway import SubmitRejected, read_body, sanitize_room
from possumpaint.services.room_broadcaster import QueueSink
from possumpaint.services.room_system import RoomSystem

logger = get_logger(__name__)

router: APIRouter = APIRouter()

_SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    # 关闭 nginx 一类代理的响应缓冲，否则推送会被攒批
    "X-Accel-Buffering": "no",
}


async def event_stream(system: RoomSystem, room: str, sink: QueueSink) -> AsyncIterator[str]:
    """单个订阅连接的 SSE 帧生成器。

    先输出连接确认注释，再订阅房间（快照作为队列里的第一帧），
    之后转发队列中的帧，直到写端被关闭或客户端断开。
    """
    conn_id: int | None = None
    try:
        yield CONNECTED_FRAME
        conn_id = system.join(room, sink)
        while True:
            frame = await sink.queue.get()
            if frame is None:
                break
            yield frame
    finally:
        if conn_id is not None:
            system.leave(room, conn_id)
        sink.close()


@router.get("/events", summary="订阅房间推送流")
async def subscribe_events(
    room: str | None = Query(None, description="房间 ID，非法字符会被剔除"),
    system: RoomSystem = Depends(get_room_system),
) -> StreamingResponse:
    """建立 SSE 长连接。客户端断开时生成器被取消，连接随之退订。"""
    room_id = sanitize_room(room)
    sink = QueueSink(maxsize=system.settings.SUBSCRIBER_QUEUE_SIZE)
    return StreamingResponse(
        event_stream(system, room_id, sink),
        media_type="text/event-stream; charset=utf-8",
        headers=_SSE_HEADERS,
    )


@router.post(
    "/send",
    status_code=204,
    summary="提交房间操作",
    responses={400: {"model": ErrorResponse}},
)
async def send_operation(
    request: Request,
    room: str | None = Query(None, description="房间 ID，非法字符会被剔除"),
    system: RoomSystem = Depends(get_room_system),
) -> Response:
    """读取并校验请求体，写入房间日志后广播给房间内所有连接。"""
    try:
        raw = await read_body(
            request.stream(),
            system.settings.MAX_MESSAGE_BYTES,
            declared_length=request.headers.get("content-length"),
        )
        system.submit(room, raw)
    except SubmitRejected as exc:
        logger.info("提交被拒绝 | room=%s | reason=%s", sanitize_room(room), exc.reason)
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=exc.reason).model_dump(),
        )
    return Response(status_code=204)
