"""
Collectors: mutable reduction recipes for LazyStream.collect().

A Collector bundles four functions:
  supplier()                  -> new empty container
  accumulator(container, x)   -> container after adding x
  combiner(left, right)       -> container holding both (used to merge partitions)
  finisher(container)         -> final result

Parallel evaluation gives every partition its own container and merges them
with the combiner, so containers never need locking.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, NamedTuple, Optional

from utils import InvalidArgumentError


def _identity(x):
    return x


class Collector(NamedTuple):
    supplier: Callable[[], Any]
    accumulator: Callable[[Any, Any], Any]
    combiner: Callable[[Any, Any], Any]
    finisher: Callable[[Any], Any] = _identity


@dataclass
class SummaryStatistics:
    """Running count/sum/min/max of numbers; average is derived."""
    count: int = 0
    sum: Any = 0
    min: Optional[Any] = None
    max: Optional[Any] = None

    def accept(self, value) -> "SummaryStatistics":
        self.count += 1
        self.sum += value
        if self.min is None or value < self.min:
            self.min = value
        if self.max is None or value > self.max:
            self.max = value
        return self

    def combine(self, other: "SummaryStatistics") -> "SummaryStatistics":
        """Fold another partition's statistics into this one"""
        if other.count:
            self.count += other.count
            self.sum += other.sum
            self.min = other.min if self.min is None else min(self.min, other.min)
            self.max = other.max if self.max is None else max(self.max, other.max)
        return self

    @property
    def average(self) -> float:
        return self.sum / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "sum": self.sum,
            "min": self.min,
            "max": self.max,
            "average": self.average,
        }

    def __str__(self) -> str:
        # An empty summary shows the identities of min and max.
        low = float("inf") if self.min is None else self.min
        high = float("-inf") if self.max is None else self.max
        return (
            f"SummaryStatistics{{count={self.count}, sum={self.sum}, min={low}, "
            f"average={self.average:.6f}, max={high}}}"
        )


# --------- module-level steps (picklable for process pools) ----------
# Factories only ever combine these functions and the small classes below, so
# a Collector pickles whenever the user callables it wraps do.

def _append(container, x):
    container.append(x)
    return container


def _extend(left, right):
    left.extend(right)
    return left


def _add(container, x):
    container.add(x)
    return container


def _union(left, right):
    left |= right
    return left


def _increment(n, _):
    return n + 1


def _plus(left, right):
    return left + right


def _summarize(stats, x):
    return stats.accept(x)


def _combine_stats(left, right):
    return left.combine(right)


def _join_parts(parts):
    return "".join(parts)


def _new_mean():
    return [0, 0]


def _merge_mean(left, right):
    left[0] += right[0]
    left[1] += right[1]
    return left


def _finish_mean(acc):
    return acc[0] / acc[1] if acc[1] else 0.0


class _Joiner:
    def __init__(self, separator, prefix, suffix):
        self.separator = separator
        self.prefix = prefix
        self.suffix = suffix

    def __call__(self, parts):
        return self.prefix + self.separator.join(parts) + self.suffix


class _SumOf:
    def __init__(self, fn):
        self.fn = fn

    def __call__(self, total, x):
        return total + self.fn(x)


class _MeanOf:
    def __init__(self, fn):
        self.fn = fn

    def __call__(self, acc, x):
        acc[0] += self.fn(x)
        acc[1] += 1
        return acc


class _SummarizeOf:
    def __init__(self, fn):
        self.fn = fn

    def __call__(self, stats, x):
        return stats.accept(self.fn(x))


class _Constant:
    def __init__(self, value):
        self.value = value

    def __call__(self):
        return self.value


class _MapThen:
    def __init__(self, fn, accumulator):
        self.fn = fn
        self.accumulator = accumulator

    def __call__(self, container, x):
        return self.accumulator(container, self.fn(x))


class _FilterThen:
    def __init__(self, predicate, accumulator):
        self.predicate = predicate
        self.accumulator = accumulator

    def __call__(self, container, x):
        return self.accumulator(container, x) if self.predicate(x) else container


class _GroupStep:
    def __init__(self, key_fn, downstream):
        self.key_fn = key_fn
        self.downstream = downstream

    def __call__(self, groups, x):
        key = self.key_fn(x)
        container = groups[key] if key in groups else self.downstream.supplier()
        groups[key] = self.downstream.accumulator(container, x)
        return groups


class _GroupMerge:
    def __init__(self, downstream):
        self.downstream = downstream

    def __call__(self, left, right):
        for key, container in right.items():
            left[key] = self.downstream.combiner(left[key], container) if key in left else container
        return left


class _GroupFinish:
    def __init__(self, downstream):
        self.downstream = downstream

    def __call__(self, groups):
        return {key: self.downstream.finisher(container) for key, container in groups.items()}


class _PartitionSupply:
    def __init__(self, downstream):
        self.downstream = downstream

    def __call__(self):
        return {False: self.downstream.supplier(), True: self.downstream.supplier()}


class _PartitionStep:
    def __init__(self, predicate, downstream):
        self.predicate = predicate
        self.downstream = downstream

    def __call__(self, parts, x):
        key = bool(self.predicate(x))
        parts[key] = self.downstream.accumulator(parts[key], x)
        return parts


class _PartitionMerge:
    def __init__(self, downstream):
        self.downstream = downstream

    def __call__(self, left, right):
        return {key: self.downstream.combiner(left[key], right[key]) for key in (False, True)}


class _PartitionFinish:
    def __init__(self, downstream):
        self.downstream = downstream

    def __call__(self, parts):
        return {key: self.downstream.finisher(parts[key]) for key in (False, True)}


class _DictPut:
    """Accumulator and combiner for to_dict(); a repeated key needs `merge`."""

    def __init__(self, key_fn, value_fn, merge):
        self.key_fn = key_fn
        self.value_fn = value_fn
        self.merge = merge

    def put(self, mapping_, key, value):
        if key in mapping_:
            if self.merge is None:
                raise InvalidArgumentError(f"Duplicate key {key!r}")
            value = self.merge(mapping_[key], value)
        mapping_[key] = value
        return mapping_

    def __call__(self, mapping_, x):
        return self.put(mapping_, self.key_fn(x), self.value_fn(x))

    def combine(self, left, right):
        for key, value in right.items():
            self.put(left, key, value)
        return left


# --------- factories ----------

def to_list() -> Collector:
    return Collector(list, _append, _extend)


def to_set() -> Collector:
    return Collector(set, _add, _union)


def to_tuple() -> Collector:
    return Collector(list, _append, _extend, tuple)


def counting() -> Collector:
    return Collector(int, _increment, _plus)


def joining(separator: str = "", prefix: str = "", suffix: str = "") -> Collector:
    """Concatenate string elements; non-str elements raise TypeError like str.join."""
    if not (separator or prefix or suffix):
        return Collector(list, _append, _extend, _join_parts)
    return Collector(list, _append, _extend, _Joiner(separator, prefix, suffix))


def summing(fn: Callable[[Any], Any] = _identity) -> Collector:
    return Collector(int, _SumOf(fn), _plus)


def averaging(fn: Callable[[Any], Any] = _identity) -> Collector:
    """Arithmetic mean of fn(x); 0.0 for no elements."""
    return Collector(_new_mean, _MeanOf(fn), _merge_mean, _finish_mean)


def summarizing(fn: Optional[Callable[[Any], Any]] = None) -> Collector:
    if fn is None:
        return Collector(SummaryStatistics, _summarize, _combine_stats)
    return Collector(SummaryStatistics, _SummarizeOf(fn), _combine_stats)


def mapping(fn: Callable[[Any], Any], downstream: Collector) -> Collector:
    return Collector(
        downstream.supplier,
        _MapThen(fn, downstream.accumulator),
        downstream.combiner,
        downstream.finisher,
    )


def filtering(predicate: Callable[[Any], bool], downstream: Collector) -> Collector:
    return Collector(
        downstream.supplier,
        _FilterThen(predicate, downstream.accumulator),
        downstream.combiner,
        downstream.finisher,
    )


def reducing(identity: Any, op: Callable[[Any, Any], Any]) -> Collector:
    return Collector(_Constant(identity), op, op)


def grouping_by(key_fn: Callable[[Any], Any], downstream: Optional[Collector] = None) -> Collector:
    """Group into a dict keyed by key_fn(x); keys keep first-encounter order."""
    downstream = downstream or to_list()
    return Collector(dict, _GroupStep(key_fn, downstream), _GroupMerge(downstream), _GroupFinish(downstream))


def partitioning_by(predicate: Callable[[Any], bool],
                    downstream: Optional[Collector] = None) -> Collector:
    """Split into {False: ..., True: ...}; both keys are always present."""
    downstream = downstream or to_list()
    return Collector(
        _PartitionSupply(downstream),
        _PartitionStep(predicate, downstream),
        _PartitionMerge(downstream),
        _PartitionFinish(downstream),
    )


def to_dict(key_fn: Callable[[Any], Any], value_fn: Callable[[Any], Any] = _identity,
            merge: Optional[Callable[[Any, Any], Any]] = None) -> Collector:
    """Build a dict; a repeated key needs `merge` or raises InvalidArgumentError."""
    put = _DictPut(key_fn, value_fn, merge)
    return Collector(dict, put, put.combine)
