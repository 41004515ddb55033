import logging

import pytest
from pydantic import ValidationError

from models import ExecutorKind, StreamSettings
from utils import (
    InvalidArgumentError,
    WorkerPool,
    get_performance_summary,
    measure_performance,
    setup_logging,
    split_partitions,
)


def _square_all(partition):
    return [x * x for x in partition]


class TestStreamSettings:
    """Test configuration defaults, validation and environment loading"""

    def test_defaults(self):
        settings = StreamSettings()
        assert settings.max_workers >= 1
        assert settings.chunk_size == 256
        assert settings.executor is ExecutorKind.THREAD
        assert settings.log_level == "INFO"
        assert settings.wave_size == settings.max_workers * 256

    @pytest.mark.parametrize("field, value", [
        ("max_workers", 0),
        ("chunk_size", 0),
        ("executor", "fiber"),
        ("log_level", "chatty"),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            StreamSettings(**{field: value})

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LAZYSTREAM_MAX_WORKERS", "3")
        monkeypatch.setenv("LAZYSTREAM_CHUNK_SIZE", "16")
        monkeypatch.setenv("LAZYSTREAM_EXECUTOR", "process")
        monkeypatch.setenv("LAZYSTREAM_LOG_LEVEL", " debug ")

        settings = StreamSettings.from_env()
        assert settings.max_workers == 3
        assert settings.chunk_size == 16
        assert settings.executor is ExecutorKind.PROCESS
        assert settings.log_level == "DEBUG"

    def test_from_env_ignores_blank_values(self, monkeypatch):
        monkeypatch.setenv("LAZYSTREAM_CHUNK_SIZE", "  ")
        monkeypatch.delenv("LAZYSTREAM_MAX_WORKERS", raising=False)
        assert StreamSettings.from_env().chunk_size == 256


class TestWorkerPool:
    """Test the partition executor"""

    def test_split_partitions(self):
        assert split_partitions([1, 2, 3, 4, 5, 6, 7], 3) == [[1, 2, 3], [4, 5, 6], [7]]
        assert split_partitions([], 3) == []
        with pytest.raises(InvalidArgumentError):
            split_partitions([1], 0)

    def test_ordered_results(self):
        with WorkerPool(max_workers=3) as pool:
            results = list(pool.map_partitions(_square_all, [[1, 2], [3], [4, 5]]))
            stats = pool.get_worker_stats()

        assert results == [[1, 4], [9], [16, 25]]
        assert stats["partitions_processed"] == 3
        assert stats["kind"] == "thread"
        assert pool.executor is None, "Leaving the context should stop the pool"

    def test_unordered_results(self):
        with WorkerPool(max_workers=2) as pool:
            results = list(pool.map_partitions(_square_all, [[1], [2], [3]], ordered=False))
        assert sorted(results) == [[1], [4], [9]]

    def test_not_started(self):
        pool = WorkerPool(max_workers=1)
        with pytest.raises(RuntimeError, match="not started"):
            list(pool.map_partitions(_square_all, [[1]]))

    def test_process_pool(self):
        with WorkerPool(max_workers=2, kind=ExecutorKind.PROCESS) as pool:
            results = list(pool.map_partitions(_square_all, [[1, 2], [3]]))
        assert results == [[1, 4], [9]]

    def test_process_pool_rejects_unpicklable_task(self):
        with WorkerPool(max_workers=1, kind=ExecutorKind.PROCESS) as pool:
            with pytest.raises(InvalidArgumentError, match="picklable"):
                list(pool.map_partitions(lambda p: p, [[1]]))
            assert pool.get_worker_stats()["partitions_processed"] == 0

    def test_failure_stops_without_waiting(self, monkeypatch):
        waits = []
        pool = WorkerPool(max_workers=2)
        original_stop = pool.stop
        monkeypatch.setattr(pool, "stop", lambda wait=True: waits.append(wait) or original_stop(wait))

        with pytest.raises(RuntimeError, match="caller failed"):
            with pool:
                list(pool.map_partitions(_square_all, [[1], [0]]))
                raise RuntimeError("caller failed")

        assert waits == [False]
        assert pool.executor is None

    def test_clean_exit_waits(self, monkeypatch):
        waits = []
        pool = WorkerPool(max_workers=2)
        original_stop = pool.stop
        monkeypatch.setattr(pool, "stop", lambda wait=True: waits.append(wait) or original_stop(wait))

        with pool:
            list(pool.map_partitions(_square_all, [[1]]))

        assert waits == [True]


class TestPerformanceAndLogging:
    """Test measurement helpers and logging setup"""

    def test_measure_performance_records_result(self):
        info = measure_performance("sum", sum, range(100))

        assert info["result"] == 4950
        assert info["success"] is True
        assert info["execution_time_ms"] >= 0
        assert info["memory_usage_mb"] >= 0

        summary = get_performance_summary()
        assert summary["total_operations"] == 1
        assert summary["operations"][0]["operation"] == "sum"
        assert "result" not in summary["operations"][0]

    def test_measure_performance_reraises(self):
        def broken():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            measure_performance("broken", broken)

        record = get_performance_summary()["operations"][0]
        assert record["success"] is False
        assert "missing" in record["error"]

    def test_setup_logging(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            logger = setup_logging("DEBUG")
            assert logger.name == "lazystream"
            assert root.level == logging.DEBUG
            assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
