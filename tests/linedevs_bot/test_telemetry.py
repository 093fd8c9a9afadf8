"""
Tests for the log ring buffer and bot metrics.
"""

import logging

from src.linedevs_bot.telemetry import BotMetrics, LogRingBuffer


def make_logger(buffer, name="test.telemetry"):
    logger = logging.getLogger(name)
    logger.handlers = [buffer]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


class TestLogRingBuffer:

    def test_capacity(self):
        buffer = LogRingBuffer(capacity=3)
        logger = make_logger(buffer)
        for i in range(5):
            logger.info(f"line {i}")

        assert len(buffer) == 3
        assert [r["msg"] for r in buffer.tail()] == ["line 2", "line 3", "line 4"]
        assert buffer.capacity == 3

    def test_record_shape(self):
        buffer = LogRingBuffer()
        make_logger(buffer).warning("careful")

        record = buffer.tail(1)[0]
        assert record["level"] == "WARNING"
        assert record["msg"] == "careful"
        assert isinstance(record["ts"], int)

    def test_level_filter(self):
        buffer = LogRingBuffer(level=logging.INFO)
        make_logger(buffer).debug("noise")
        assert len(buffer) == 0

    def test_secrets_masked(self):
        buffer = LogRingBuffer()
        make_logger(buffer).info("calling api?key=abc123")
        assert "abc123" not in buffer.tail(1)[0]["msg"]

    def test_tail_limits(self):
        buffer = LogRingBuffer()
        logger = make_logger(buffer)
        for i in range(4):
            logger.info(str(i))

        assert [r["msg"] for r in buffer.tail(2)] == ["2", "3"]
        assert buffer.tail(0) == []


class TestBotMetrics:

    def test_counters(self):
        metrics = BotMetrics()
        metrics.incr("tokens_consumed")
        metrics.incr("tokens_consumed", 2)
        assert metrics.counters["tokens_consumed"] == 3

    def test_active_users(self):
        metrics = BotMetrics()
        metrics.touch_user(1)
        metrics.touch_user(1)
        metrics.touch_user(2)
        assert metrics.active_users() == 2

    def test_snapshot(self):
        metrics = BotMetrics(status="online")
        metrics.incr("unlinks")

        snapshot = metrics.snapshot(linkedAccounts=4)

        assert snapshot["status"] == "online"
        assert snapshot["counters"] == {"unlinks": 1}
        assert snapshot["linkedAccounts"] == 4
        assert snapshot["uptime"] >= 0
        assert set(snapshot) >= {"uptimeStart", "activeUsers"}

    def test_stale_users_are_dropped(self):
        metrics = BotMetrics(active_window_seconds=60)
        metrics.touch_user(1)
        metrics.touch_user(2)
        metrics._active_users[1] -= 120

        assert metrics.active_users() == 1
        assert list(metrics._active_users) == [2]

    def test_touch_prunes_without_snapshots(self):
        metrics = BotMetrics(active_window_seconds=60)
        for user_id in range(100):
            metrics.touch_user(user_id)
        for user_id in range(100):
            metrics._active_users[user_id] -= 120

        metrics.touch_user(500)

        assert list(metrics._active_users) == [500]
