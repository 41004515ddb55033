"""
Shared helpers for lazystream: error types, logging setup, the partition
worker pool used by parallel evaluation, and performance measurement.
"""

import gc
import logging
import pickle
import sys
import time
import tracemalloc
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from models import ExecutorKind

logger = logging.getLogger(__name__)


# ---------- Errors ----------

class StreamError(Exception):
    """Base class for stream misuse errors."""
    pass


class AlreadyConsumedError(StreamError):
    """Raised when a stream stage is reused after being chained, consumed or closed."""
    pass


class InvalidArgumentError(StreamError, ValueError):
    """Raised for out-of-range arguments such as a negative limit."""
    pass


class EmptySequenceError(StreamError, ValueError):
    """Raised when an operation needs at least one element and got none."""
    pass


# ---------- Logging ----------

def setup_logging(level: str = "INFO") -> logging.Logger:
    """Setup structured console logging for lazystream"""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True
    )
    return logging.getLogger('lazystream')


# ---------- Worker pool ----------

def split_partitions(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    """Cut a sequence into contiguous partitions of at most `size` elements."""
    if size < 1:
        raise InvalidArgumentError(f"Partition size must be >= 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


class WorkerPool:
    """Runs one callable per partition on a thread or process executor."""

    def __init__(self, max_workers: int = 4, kind: ExecutorKind = ExecutorKind.THREAD):
        self.max_workers = max_workers
        self.kind = ExecutorKind(kind)
        self.executor: Optional[Executor] = None
        self.partitions_processed = 0
        self.start_time = time.time()
        self._checked_task = None

    def start(self) -> "WorkerPool":
        if self.kind is ExecutorKind.PROCESS:
            self.executor = ProcessPoolExecutor(max_workers=self.max_workers)
        else:
            self.executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="lazystream"
            )
        logger.debug(f"Started {self.kind.value} worker pool with {self.max_workers} workers")
        return self

    def stop(self, wait: bool = True) -> None:
        # Partitions not yet started are dropped; running ones finish.
        if self.executor:
            self.executor.shutdown(wait=wait, cancel_futures=True)
            self.executor = None
            logger.debug(
                f"Worker pool stopped after {self.partitions_processed} partitions "
                f"in {time.time() - self.start_time:.3f}s"
            )

    def __enter__(self) -> "WorkerPool":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        # A failed pool may never drain; only an early close still waits.
        failed = exc_type is not None and issubclass(exc_type, Exception)
        if failed:
            logger.warning(f"Stopping {self.kind.value} worker pool without waiting after {exc_type.__name__}")
        self.stop(wait=not failed)

    def map_partitions(self, task: Callable[[Any], Any], partitions: Iterable[Any],
                       ordered: bool = True) -> Iterator[Any]:
        """
        Submit every partition, then yield results in submission order
        (ordered) or as workers finish. Worker exceptions are re-raised here.
        """
        if self.executor is None:
            raise RuntimeError("Worker pool not started")
        if self.kind is ExecutorKind.PROCESS and task is not self._checked_task:
            self._check_picklable(task)

        futures = [self.executor.submit(task, partition) for partition in partitions]
        for future in (futures if ordered else as_completed(futures)):
            result = future.result()
            self.partitions_processed += 1
            yield result

    def _check_picklable(self, task) -> None:
        try:
            pickle.dumps(task)
        except (pickle.PicklingError, AttributeError, TypeError) as e:
            raise InvalidArgumentError(
                f"Process executor needs picklable stages and collectors "
                f"(module-level functions, no lambdas): {e}"
            ) from e
        self._checked_task = task

    def get_worker_stats(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'max_workers': self.max_workers,
            'partitions_processed': self.partitions_processed,
            'uptime_seconds': time.time() - self.start_time,
        }


# ---------- Performance measurement ----------

_performance_metrics = {
    "operations": [],
    "total_time_ms": 0.0,
    "operation_count": 0
}


def measure_performance(operation_name: str, func, *args, **kwargs) -> Dict[str, Any]:
    """Measure a call's wall time and peak traced memory; the result is returned under 'result'."""
    tracemalloc.start()
    gc.collect()
    start_time = time.perf_counter()
    info: Dict[str, Any] = {"operation": operation_name, "timestamp": time.time()}

    try:
        info["result"] = func(*args, **kwargs)
        info["success"] = True
        return info
    except Exception as e:
        info["success"] = False
        info["error"] = str(e)
        raise
    finally:
        info["execution_time_ms"] = (time.perf_counter() - start_time) * 1000
        _, peak = tracemalloc.get_traced_memory()
        info["memory_usage_mb"] = peak / 1024 / 1024
        tracemalloc.stop()

        record = {k: v for k, v in info.items() if k != "result"}
        _performance_metrics["operations"].append(record)
        _performance_metrics["total_time_ms"] += info["execution_time_ms"]
        _performance_metrics["operation_count"] += 1


def get_performance_summary() -> Dict[str, Any]:
    """Get summary of all performance metrics"""
    count = _performance_metrics["operation_count"]
    return {
        "total_operations": count,
        "total_time_ms": _performance_metrics["total_time_ms"],
        "avg_time_ms": _performance_metrics["total_time_ms"] / count if count else 0.0,
        "operations": list(_performance_metrics["operations"]),
    }


def clear_performance_metrics():
    """Clear all performance metrics"""
    global _performance_metrics
    _performance_metrics = {
        "operations": [],
        "total_time_ms": 0.0,
        "operation_count": 0
    }
