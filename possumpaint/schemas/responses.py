"""
possumpaint.schemas.responses
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

HTTP 应答体。前端直接读取 ``error`` / ``ok`` 字段，因此不套统一的信封结构。
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """提交失败时的应答体。"""

    error: str = Field(..., description="人类可读的拒绝原因")


class HealthResponse(BaseModel):
    """存活检查应答体。"""

    ok: bool = Field(default=True, description="服务是否存活")
