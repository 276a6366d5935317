"""
possumpaint.core.config
~~~~~~~~~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）

部署在 cPanel / Passenger 之类的托管平台时，端口可能通过 ``PORT``、
``NODEJS_PORT`` 或 ``APP_PORT`` 任一变量注入，绑定地址可能来自 ``IP``。
"""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="PossumPaint Multiplayer", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )

    # ── 服务 ──────────────────────────────────────────────────────────
    HOST: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("IP", "HOST"),
        description="服务监听地址（托管平台需绑定全部网卡）",
    )
    PORT: int = Field(
        default=4173,
        validation_alias=AliasChoices("PORT", "NODEJS_PORT", "APP_PORT"),
        description="服务监听端口",
    )
    LOG_LEVEL: str = Field(default="INFO", description="日志级别（可被环境属性覆盖）")

    # ── 静态资源 ──────────────────────────────────────────────────────
    STATIC_ROOT: Path = Field(default=Path("public"), description="静态文件根目录")
    DEFAULT_PAGE: str = Field(
        default="fur-paint-canvas.html",
        description="访问 ``/`` 时返回的默认页面",
    )

    # ── 操作日志 / 持久化 ─────────────────────────────────────────────
    STATE_FILE: Path = Field(
        default=Path(".possumpaint-state.json"),
        description="世界状态持久化文件（不要放在静态目录下）",
    )
    MAX_FUR_OPS: int = Field(default=50000, ge=1, description="每个房间保留的最大绒毛绘制操作数")
    MAX_FLOWER_OPS: int = Field(default=12000, ge=1, description="每个房间保留的最大花朵操作数")
    SAVE_DEBOUNCE_SECONDS: float = Field(
        default=0.2, ge=0, description="持久化写入的防抖窗口（秒）",
    )

    # ── 推送 / 入口 ───────────────────────────────────────────────────
    MAX_MESSAGE_BYTES: int = Field(default=48 * 1024, ge=1, description="单条提交的最大字节数")
    KEEPALIVE_SECONDS: float = Field(default=15.0, gt=0, description="SSE 保活 ping 间隔（秒）")
    SUBSCRIBER_QUEUE_SIZE: int = Field(
        default=1024, ge=1, description="每个订阅连接待发送帧的队列上限",
    )
    CORS_ALLOW_ORIGINS: list[str] = Field(default=["*"], description="允许的跨域来源")
    SHUTDOWN_GRACE_SECONDS: int = Field(
        default=3, ge=0, description="关闭时等待连接结束的秒数，超时后强制断开 SSE 长连接",
    )

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── 环境判断 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        """当前是否为生产环境。"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_test(self) -> bool:
        """当前是否为测试环境。"""
        return self.ENVIRONMENT == "test"

    @property
    def is_dev(self) -> bool:
        """当前是否为开发环境。"""
        return self.ENVIRONMENT == "dev"

    # ── 环境差异化行为 ────────────────────────────────────────────────

    @property
    def debug(self) -> bool:
        """是否开启 debug 模式。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def reload(self) -> bool:
        """是否开启热重载。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def effective_log_level(self) -> str:
        """根据环境自动推断日志级别。

        - dev  → INFO
        - test → DEBUG（方便排查测试失败）
        - prod → WARNING（减少噪音）

        如果环境变量中显式设置了 LOG_LEVEL，会覆盖此默认推断。
        """
        env_log = os.getenv("LOG_LEVEL")
        if env_log:
            return env_log
        return {
            "dev": "INFO",
            "test": "DEBUG",
            "prod": "WARNING",
        }.get(self.ENVIRONMENT, "INFO")


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


settings: Settings = get_settings()
