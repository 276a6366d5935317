"""
tests.test_op_log
~~~~~~~~~~~~~~~~~

OperationLog 操作日志仓库单元测试。

验证：
- 操作类型判定（封闭枚举 + 透传）
- 追加 / 清空语义与有界淘汰（最旧优先）
- 快照拼接顺序与懒创建
- 只有变更才会触发持久化
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import paint, seed
from possumpaint.schemas.world_state import WorldState
from possumpaint.services.op_log import MAX_FLOWER_OPS, MAX_FUR_OPS, OperationLog, OpKind, classify


def make_log(**kwargs: int) -> tuple[OperationLog, MagicMock]:
    scheduler = MagicMock()
    return OperationLog(WorldState(), scheduler, **kwargs), scheduler


# ── 类型判定 ──────────────────────────────────────────────────────────

class TestClassify:
    """测试 ``type`` 字段到 OpKind 的映射。"""

    @pytest.mark.parametrize(
        ("op_type", "kind"),
        [
            ("paint", OpKind.FUR_APPEND),
            ("clear_fur", OpKind.FUR_CLEAR),
            ("seed", OpKind.FLOWER_APPEND),
            ("cheese_seed", OpKind.FLOWER_APPEND),
            ("rose_pick", OpKind.FLOWER_APPEND),
            ("rose_place_ball", OpKind.FLOWER_APPEND),
            ("rose_place_flower", OpKind.FLOWER_APPEND),
            ("clear_flowers", OpKind.FLOWER_CLEAR),
            ("cursor", OpKind.PASS_THROUGH),
            ("", OpKind.PASS_THROUGH),
        ],
    )
    def test_known_and_unknown_types(self, op_type: str, kind: OpKind) -> None:
        assert classify({"type": op_type}) is kind

    def test_missing_type_is_pass_through(self) -> None:
        """缺少 type 字段不是错误，只是透传。"""
        assert classify({"x": 1}) is OpKind.PASS_THROUGH

    def test_type_is_case_sensitive(self) -> None:
        assert classify({"type": "PAINT"}) is OpKind.PASS_THROUGH


# ── 追加 / 清空 ───────────────────────────────────────────────────────

class TestApply:
    """测试 apply 的分派语义。"""

    def test_paint_and_seed_go_to_separate_sequences(self) -> None:
        log, _ = make_log()
        log.apply("a", paint(1))
        log.apply("a", seed(1))
        log.apply("a", paint(2))

        assert log.op_counts("a") == (2, 1)

    def test_clear_fur_keeps_flowers(self) -> None:
        """clear_fur 之后快照中只剩花朵操作。"""
        log, _ = make_log()
        log.apply("a", paint(1))
        log.apply("a", seed(1))
        log.apply("a", {"type": "clear_fur"})

        assert log.snapshot("a") == [seed(1)]

    def test_clear_flowers_keeps_fur(self) -> None:
        log, _ = make_log()
        log.apply("a", paint(1))
        log.apply("a", {"type": "rose_pick"})
        log.apply("a", {"type": "clear_flowers"})

        assert log.snapshot("a") == [paint(1)]

    def test_pass_through_is_not_persisted(self) -> None:
        """未知类型不写日志，也不安排持久化。"""
        log, scheduler = make_log()
        kind = log.apply("a", {"type": "cursor", "x": 3})

        assert kind is OpKind.PASS_THROUGH
        assert log.snapshot("a") == []
        scheduler.schedule_save.assert_not_called()

    def test_every_mutation_schedules_save(self) -> None:
        log, scheduler = make_log()
        log.apply("a", paint())
        log.apply("a", {"type": "clear_fur"})
        log.apply("a", seed())
        log.apply("a", {"type": "clear_flowers"})

        assert scheduler.schedule_save.call_count == 4

    def test_rooms_are_independent(self) -> None:
        log, _ = make_log()
        log.apply("a", paint(1))
        log.apply("b", {"type": "clear_fur"})

        assert log.snapshot("a") == [paint(1)]
        assert log.snapshot("b") == []


# ── 有界淘汰 ──────────────────────────────────────────────────────────

class TestBounds:
    """测试序列上限与 FIFO 淘汰。"""

    def test_default_limits(self) -> None:
        log, _ = make_log()

        assert log.max_fur_ops == MAX_FUR_OPS == 50000
        assert log.max_flower_ops == MAX_FLOWER_OPS == 12000

    def test_oldest_fur_ops_evicted_first(self) -> None:
        log, _ = make_log(max_fur_ops=3)
        for i in range(5):
            log.apply("a", paint(i))

        assert [op["n"] for op in log.snapshot("a")] == [2, 3, 4]

    def test_oldest_flower_ops_evicted_first(self) -> None:
        log, _ = make_log(max_flower_ops=2)
        for i in range(4):
            log.apply("a", seed(i))

        assert [op["n"] for op in log.snapshot("a")] == [2, 3]

    def test_full_fur_log_keeps_most_recent(self) -> None:
        """写满默认上限后再追加一条，保留最近的 MAX_FUR_OPS 条且顺序不变。"""
        log, _ = make_log()
        for i in range(MAX_FUR_OPS + 1):
            log.apply("a", paint(i))

        ops = log.snapshot("a")
        assert len(ops) == MAX_FUR_OPS
        assert ops[0]["n"] == 1
        assert ops[-1]["n"] == MAX_FUR_OPS

    def test_fur_limit_does_not_touch_flowers(self) -> None:
        log, _ = make_log(max_fur_ops=1, max_flower_ops=5)
        log.apply("a", seed(0))
        log.apply("a", paint(0))
        log.apply("a", paint(1))

        assert log.op_counts("a") == (1, 1)


# ── 快照 ──────────────────────────────────────────────────────────────

class TestSnapshot:
    """测试快照组装。"""

    def test_fur_ops_come_before_flower_ops(self) -> None:
        """快照按“先绒毛、后花朵”拼接，不按时间交错。"""
        log, _ = make_log()
        log.apply("a", seed(1))
        log.apply("a", paint(1))
        log.apply("a", seed(2))
        log.apply("a", paint(2))

        assert log.snapshot("a") == [paint(1), paint(2), seed(1), seed(2)]

    def test_snapshot_creates_room_lazily_without_saving(self) -> None:
        log, scheduler = make_log()

        assert log.snapshot("fresh") == []
        assert "fresh" in log.room_ids()
        scheduler.schedule_save.assert_not_called()

    def test_snapshot_is_a_copy(self) -> None:
        log, _ = make_log()
        log.apply("a", paint(1))
        log.snapshot("a").append(paint(99))

        assert log.snapshot("a") == [paint(1)]

    def test_snapshot_message_shape(self) -> None:
        log, _ = make_log()
        log.apply("a", paint(1))

        assert log.snapshot_message("a") == {
            "sender": "server",
            "room": "a",
            "type": "snapshot",
            "payload": {"ops": [paint(1)]},
        }

    def test_op_counts_does_not_create_room(self) -> None:
        log, _ = make_log()

        assert log.op_counts("ghost") == (0, 0)
        assert log.room_ids() == []
