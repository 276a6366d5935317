"""
possumpaint.api.static
~~~~~~~~~~~~~~~~~~~~~~

静态页面托管：把画布前端与资源文件挂在站点根路径下。

``StaticFiles`` 会把请求路径限制在根目录内，越界路径直接 404。
"""
from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from possumpaint.core.logging import get_logger

logger = get_logger(__name__)


def mount_static(app: FastAPI, root: Path, default_page: str) -> bool:
    """挂载静态目录，``/`` 返回默认页面。目录不存在时跳过并返回 ``False``。

    必须在所有 API 路由注册之后调用，否则根路径挂载会遮住它们。
    """
    if not root.is_dir():
        logger.warning("静态目录不存在，跳过挂载 | root=%s", root)
        return False

    index_path = root / default_page

    @app.api_route("/", methods=["GET", "HEAD"], include_in_schema=False)
    async def default_page_view() -> FileResponse:
        if not index_path.is_file():
            raise HTTPException(status_code=404, detail="Not found")
        return FileResponse(index_path, headers={"Cache-Control": "no-cache"})

    app.mount("/", StaticFiles(directory=root), name="static")
    logger.info("静态目录已挂载 | root=%s | default=%s", root, default_page)
    return True
