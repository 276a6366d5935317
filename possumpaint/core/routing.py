"""
possumpaint.core.routing
~~~~~~~~~~~~~~~~~~~~~~~~

路径后缀路由：让应用可以挂在反向代理的任意子路径下。

托管平台常把应用挂到 ``/garden/`` 之类的前缀，代理转发时并不剥离前缀，
因此 ``/garden/events``、``/garden/send/`` 也必须落到对应端点上。
"""
from __future__ import annotations

from collections.abc import Iterable

from starlette.types import ASGIApp, Receive, Scope, Send


def normalize_route(path: str, suffixes: Iterable[str]) -> str:
    """去掉结尾斜杠，并把以已知端点结尾的路径折叠为该端点。

    例如 ``/garden/events/`` → ``/events``，而 ``/css/app.css`` 保持不变。
    """
    normalized = path.rstrip("/") or "/"
    for suffix in suffixes:
        if normalized == suffix or normalized.endswith(suffix):
            return suffix
    return normalized


class SuffixRouteMiddleware:
    """纯 ASGI 中间件，在路由匹配前改写 ``scope["path"]``。

    不使用 ``BaseHTTPMiddleware``，避免包装 SSE 长连接的流式响应。
    """

    def __init__(self, app: ASGIApp, suffixes: Iterable[str]) -> None:
        self.app = app
        self.suffixes = tuple(suffixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            path = scope.get("path", "/")
            routed = normalize_route(path, self.suffixes)
            # 只改写 API 端点，静态资源路径保持原样（包括结尾斜杠）
            if routed in self.suffixes and routed != path:
                scope = dict(scope)
                scope["path"] = routed
                scope["raw_path"] = routed.encode("latin-1")
        await self.app(scope, receive, send)
