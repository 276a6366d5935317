"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures：把状态文件与静态目录指向临时目录，
使测试不会读写工作目录下的真实世界状态。
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="possumpaint-tests-"))
_STATIC_ROOT = _TMP_ROOT / "public"
_STATIC_ROOT.mkdir()
(_STATIC_ROOT / "fur-paint-canvas.html").write_text(
    "<!doctype html><title>PossumPaint</title>", encoding="utf-8",
)
(_STATIC_ROOT / "app.js").write_text("console.log('possum');", encoding="utf-8")

os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置
os.environ.setdefault("STATE_FILE", str(_TMP_ROOT / "state.json"))
os.environ.setdefault("STATIC_ROOT", str(_STATIC_ROOT))

from possumpaint.core.config import Settings  # noqa: E402
from possumpaint.services.room_system import RoomSystem  # noqa: E402


@pytest.fixture()
def test_settings(tmp_path: Any) -> Settings:
    """指向临时状态文件、防抖窗口很短的配置。"""
    return Settings(
        STATE_FILE=tmp_path / "state.json",
        STATIC_ROOT=tmp_path / "public",
        SAVE_DEBOUNCE_SECONDS=0.02,
        KEEPALIVE_SECONDS=0.02,
        SUBSCRIBER_QUEUE_SIZE=16,
    )


@pytest.fixture()
def room_system(test_settings: Settings) -> RoomSystem:
    """全新的房间系统（空世界）。"""
    return RoomSystem(test_settings)


def paint(n: int = 0, **extra: Any) -> dict[str, Any]:
    """构造一条绒毛绘制操作。"""
    return {"type": "paint", "n": n, **extra}


def seed(n: int = 0, **extra: Any) -> dict[str, Any]:
    """构造一条播种操作。"""
    return {"type": "seed", "n": n, **extra}
