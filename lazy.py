"""
Lazy, single-use streams.

A LazyStream is a chain of deferred stages over a source iterable. Nothing is
pulled from the source until a terminal operation runs, and every stage object
can be chained from or evaluated exactly once.
"""

import functools
import logging
from contextlib import closing
from enum import Enum
from itertools import chain, dropwhile, islice, takewhile
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

import collectors
from models import StreamSettings
from utils import (
    AlreadyConsumedError,
    EmptySequenceError,
    InvalidArgumentError,
    WorkerPool,
    split_partitions,
)

logger = logging.getLogger(__name__)


class _Sentinel(Enum):
    MISSING = "missing"


# Marks "no value" where None is a legitimate element; survives pickling.
MISSING = _Sentinel.MISSING

# Stages that look at one element at a time and can run inside a partition.
STATELESS_OPS = frozenset({"map", "filter", "flat_map", "map_multi", "peek"})

Stage = Tuple[str, Any]


# --------- stage implementations ----------

def _limit(iterator, n):
    # Never pulls element n+1 from upstream.
    if n <= 0:
        return
    for count, x in enumerate(iterator, 1):
        yield x
        if count >= n:
            return


def _distinct(iterator):
    seen = set()
    unhashable = []
    for x in iterator:
        try:
            if x in seen:
                continue
            seen.add(x)
        except TypeError:
            if x in unhashable:
                continue
            unhashable.append(x)
        yield x


def _sorted(iterator, key, reverse):
    yield from sorted(iterator, key=key, reverse=reverse)


def _peek(iterator, action):
    for x in iterator:
        action(x)
        yield x


def _map_multi(iterator, fn):
    buffer = []
    for x in iterator:
        fn(x, buffer.append)
        yield from buffer
        buffer.clear()


def _apply_stages(iterator: Iterator[Any], stages: List[Stage]) -> Iterator[Any]:
    """Wrap an iterator in one generator per stage, first stage innermost."""
    for op, arg in stages:
        if op == "map":
            iterator = map(arg, iterator)
        elif op == "filter":
            iterator = filter(arg, iterator)
        elif op == "flat_map":
            iterator = chain.from_iterable(map(arg, iterator))
        elif op == "map_multi":
            iterator = _map_multi(iterator, arg)
        elif op == "peek":
            iterator = _peek(iterator, arg)
        elif op == "distinct":
            iterator = _distinct(iterator)
        elif op == "sorted":
            iterator = _sorted(iterator, *arg)
        elif op == "limit":
            iterator = _limit(iterator, arg)
        elif op == "skip":
            iterator = islice(iterator, arg, None)
        elif op == "take_while":
            iterator = takewhile(arg, iterator)
        elif op == "drop_while":
            iterator = dropwhile(arg, iterator)
        else:
            raise ValueError(f"Unknown op: {op}")
    return iterator


def _closing_iter(resource, iterator):
    with closing(resource):
        yield from iterator


def _first_stateful(stages: List[Stage]) -> int:
    for index, (op, _) in enumerate(stages):
        if op not in STATELESS_OPS:
            return index
    return len(stages)


# --------- terminal folds ----------
# A fold reduces one partition to a partial result and merges the partials.
# Sequential evaluation is a single partition covering the whole source.

class _Fold:
    # True when partials merge in encounter order even after unordered().
    order_sensitive = False

    def __call__(self, iterator):
        raise NotImplementedError

    def merge(self, partials: List[Any]) -> Any:
        raise NotImplementedError

    def settled(self, partial) -> bool:
        """True when this partial alone decides the answer."""
        return False


class _ListFold(_Fold):
    def __call__(self, iterator):
        return list(iterator)

    def merge(self, partials):
        return list(chain.from_iterable(partials))


class _CollectFold(_Fold):
    order_sensitive = True

    def __init__(self, collector: collectors.Collector):
        self.collector = collector

    def __call__(self, iterator):
        container = self.collector.supplier()
        accumulate = self.collector.accumulator
        for x in iterator:
            container = accumulate(container, x)
        return container

    def merge(self, partials):
        if not partials:
            return self.collector.finisher(self.collector.supplier())
        return self.collector.finisher(functools.reduce(self.collector.combiner, partials))


class _ReduceFold(_Fold):
    order_sensitive = True

    def __init__(self, accumulator, initial=MISSING, combiner=None):
        self.accumulator = accumulator
        self.initial = initial
        self.combiner = combiner

    def __call__(self, iterator):
        acc = self.initial
        for x in iterator:
            acc = x if acc is MISSING else self.accumulator(acc, x)
        return acc

    def merge(self, partials):
        values = [p for p in partials if p is not MISSING]
        if not values:
            if self.initial is MISSING:
                raise EmptySequenceError("reduce() of an empty stream with no initial value")
            return self.initial
        if len(values) == 1:
            return values[0]
        return functools.reduce(self.combiner, values)


class _CountFold(_Fold):
    def __call__(self, iterator):
        return sum(1 for _ in iterator)

    def merge(self, partials):
        return sum(partials)


class _MatchFold(_Fold):
    def __init__(self, predicate, kind: str):
        self.predicate = predicate
        self.kind = kind

    def __call__(self, iterator):
        hits = map(self.predicate, iterator)
        if self.kind == "any":
            return any(hits)
        if self.kind == "all":
            return all(hits)
        return not any(hits)

    def merge(self, partials):
        if self.kind == "any":
            return any(partials)
        return all(partials)

    def settled(self, partial):
        return partial if self.kind == "any" else not partial


class _FirstFold(_Fold):
    def __call__(self, iterator):
        return next(iterator, MISSING)

    def merge(self, partials):
        return next((p for p in partials if p is not MISSING), MISSING)

    def settled(self, partial):
        return partial is not MISSING


class _ExtremeFold(_Fold):
    order_sensitive = True

    def __init__(self, pick, key=None):
        self.pick = pick
        self.key = key

    def __call__(self, iterator):
        return self.pick(iterator, key=self.key, default=MISSING)

    def merge(self, partials):
        return self.pick((p for p in partials if p is not MISSING), key=self.key, default=MISSING)


class _ForEachFold(_Fold):
    def __init__(self, action):
        self.action = action

    def __call__(self, iterator):
        for x in iterator:
            self.action(x)

    def merge(self, partials):
        return None


class _InPlace:
    """Adapts a mutating (container, x) -> None function to return the container."""

    def __init__(self, fn):
        self.fn = fn

    def __call__(self, container, x):
        self.fn(container, x)
        return container


class _PartitionTask:
    """Runs stateless stages plus a fold over one partition on a worker."""

    def __init__(self, stages: List[Stage], fold: _Fold):
        self.stages = stages
        self.fold = fold

    def __call__(self, partition):
        return self.fold(_apply_stages(iter(partition), self.stages))


# --------- sources ----------

def _generate(supplier):
    while True:
        yield supplier()


def _iterate(seed, fn, has_next):
    value = seed
    while has_next is None or has_next(value):
        yield value
        value = fn(value)


class _ConcatSource:
    def __init__(self, first: "LazyStream", second: "LazyStream"):
        self.first = first
        self.second = second

    def __iter__(self):
        yield from self.first._pull()
        yield from self.second._pull()


class _PipelineHead:
    """State shared by every stage of one pipeline."""

    def __init__(self, source: Iterable[Any], settings: Optional[StreamSettings] = None,
                 parallel: bool = False):
        self.source = source
        self.settings = settings
        self.parallel = parallel
        self.ordered = True
        self.close_handlers: List[Callable[[], None]] = []
        self.closed = False

    def close(self):
        if self.closed:
            return
        self.closed = True
        errors = []
        for handler in self.close_handlers:
            try:
                handler()
            except Exception as e:
                logger.error(f"Close handler {handler!r} failed: {e}", exc_info=True)
                errors.append(e)
        if errors:
            raise errors[0]


class LazyStream:
    """
    A chainable, single-use lazy stream. Intermediate operations return a new
    stage and link the old one; terminal operations pull elements through the
    whole chain once. Reusing a linked or consumed stage raises
    AlreadyConsumedError.
    """

    def __init__(self, source: Iterable[Any], settings: Optional[StreamSettings] = None,
                 parallel: bool = False):
        self._head = _PipelineHead(source, settings, parallel)
        self._upstream: Optional["LazyStream"] = None
        self._op: Optional[Stage] = None
        self._linked = False

    # --------- factories ----------
    @classmethod
    def of(cls, *items):
        return cls(items)

    @classmethod
    def of_nullable(cls, item):
        """One-element stream, or an empty one when item is None"""
        return cls(() if item is None else (item,))

    @classmethod
    def empty(cls):
        return cls(())

    @classmethod
    def parallel_of(cls, iterable: Iterable[Any], settings: Optional[StreamSettings] = None):
        return cls(iterable, settings, parallel=True)

    @classmethod
    def generate(cls, supplier: Callable[[], Any]):
        """Infinite stream of supplier() results; bound it with limit() or take_while()"""
        return cls(_generate(supplier))

    @classmethod
    def iterate(cls, seed, fn: Callable[[Any], Any], has_next: Optional[Callable[[Any], bool]] = None):
        """seed, fn(seed), fn(fn(seed)), ... stopping before the first value failing has_next"""
        return cls(_iterate(seed, fn, has_next))

    @classmethod
    def concat(cls, first: "LazyStream", second: "LazyStream"):
        """Elements of first, then second. Both inputs are linked and cannot be reused."""
        if first is second:
            raise AlreadyConsumedError("cannot concatenate a stream with itself")
        first._check_usable()
        second._check_usable()
        first._linked = second._linked = True

        stream = cls(
            _ConcatSource(first, second),
            settings=first._head.settings,
            parallel=first.is_parallel or second.is_parallel,
        )
        stream._head.close_handlers.extend([first.close, second.close])
        return stream

    @classmethod
    def builder(cls) -> "StreamBuilder":
        return StreamBuilder(cls)

    # --------- chainable operators (lazy) ----------
    def filter(self, predicate: Callable[[Any], bool]):
        return self._chain(("filter", predicate))

    def map(self, fn: Callable[[Any], Any]):
        return self._chain(("map", fn))

    def flat_map(self, fn: Callable[[Any], Iterable[Any]]):
        """fn returns an iterable per element; results are flattened in order"""
        return self._chain(("flat_map", fn))

    def map_multi(self, fn: Callable[[Any, Callable[[Any], None]], None]):
        """fn(x, emit) may call emit any number of times per element"""
        return self._chain(("map_multi", fn))

    def peek(self, action: Callable[[Any], None]):
        return self._chain(("peek", action))

    def distinct(self):
        return self._chain(("distinct", None))

    def sorted(self, key: Optional[Callable[[Any], Any]] = None, reverse: bool = False):
        return self._chain(("sorted", (key, reverse)))

    def limit(self, n: int):
        return self._chain(("limit", _check_count(n, "limit")))

    def skip(self, n: int):
        return self._chain(("skip", _check_count(n, "skip")))

    def take_while(self, predicate: Callable[[Any], bool]):
        return self._chain(("take_while", predicate))

    def drop_while(self, predicate: Callable[[Any], bool]):
        return self._chain(("drop_while", predicate))

    def map_to_int(self, fn: Callable[[Any], int]):
        from numeric import IntStream
        return self._chain(("map", fn), IntStream)

    def map_to_float(self, fn: Callable[[Any], float]):
        from numeric import FloatStream
        return self._chain(("map", fn), FloatStream)

    # --------- evaluation mode ----------
    def parallel(self):
        stage = self._chain()
        stage._head.parallel = True
        return stage

    def sequential(self):
        stage = self._chain()
        stage._head.parallel = False
        return stage

    def unordered(self):
        """Allow parallel results to be merged in completion order"""
        stage = self._chain()
        stage._head.ordered = False
        return stage

    def on_close(self, handler: Callable[[], None]):
        stage = self._chain()
        stage._head.close_handlers.append(handler)
        return stage

    @property
    def is_parallel(self) -> bool:
        return self._head.parallel

    # --------- terminal operations ----------
    def for_each(self, action: Callable[[Any], None]) -> None:
        """Apply action to every element; in parallel mode from worker threads, in any order"""
        self._evaluate(_ForEachFold(action))

    def for_each_ordered(self, action: Callable[[Any], None]) -> None:
        """Apply action on the calling thread in encounter order, even in parallel mode"""
        stages = self._begin_terminal()
        for x in self._element_iterator(stages, ordered=True):
            action(x)

    def to_list(self) -> List[Any]:
        return self._evaluate(_ListFold())

    def to_set(self) -> set:
        return self.collect(collectors.to_set())

    def to_tuple(self) -> tuple:
        return tuple(self.to_list())

    def iterator(self) -> Iterator[Any]:
        """
        Pull elements one at a time. In parallel mode the returned generator
        holds a worker pool until exhausted; close() it to release the pool early.
        """
        stages = self._begin_terminal()
        return self._element_iterator(stages, self._head.ordered)

    def __iter__(self):
        return self.iterator()

    def collect(self, collector, accumulator=None, combiner=None):
        """
        collect(collector) with a collectors.Collector, or
        collect(supplier, accumulator, combiner) where accumulator and
        combiner mutate their first argument in place (list.append, list.extend).
        """
        if accumulator is not None:
            if combiner is None:
                raise InvalidArgumentError("collect(supplier, accumulator, combiner) needs a combiner")
            collector = collectors.Collector(collector, _InPlace(accumulator), _InPlace(combiner))
        elif not isinstance(collector, collectors.Collector):
            raise InvalidArgumentError(f"Expected a Collector, got {type(collector).__name__}")
        return self._evaluate(_CollectFold(collector))

    def reduce(self, accumulator: Callable[[Any, Any], Any], initial=MISSING,
               combiner: Optional[Callable[[Any, Any], Any]] = None):
        """
        Left fold. Without `initial` an empty stream raises EmptySequenceError.
        Parallel streams need an explicit associative `combiner` to merge
        partition results; `initial` must then be a true identity.
        """
        self._check_usable()
        if self._head.parallel and combiner is None:
            raise InvalidArgumentError("parallel reduce() needs an explicit combiner")
        return self._evaluate(_ReduceFold(accumulator, initial, combiner))

    def count(self) -> int:
        return self._evaluate(_CountFold())

    def min(self, key: Optional[Callable[[Any], Any]] = None, default=MISSING):
        return self._extreme(min, key, default)

    def max(self, key: Optional[Callable[[Any], Any]] = None, default=MISSING):
        return self._extreme(max, key, default)

    def find_first(self, default=None):
        result = self._evaluate(_FirstFold(), ordered=True)
        return default if result is MISSING else result

    def find_any(self, default=None):
        """Some element; in parallel mode whichever partition finishes first"""
        result = self._evaluate(_FirstFold(), ordered=False)
        return default if result is MISSING else result

    def any_match(self, predicate: Callable[[Any], bool]) -> bool:
        return self._evaluate(_MatchFold(predicate, "any"))

    def all_match(self, predicate: Callable[[Any], bool]) -> bool:
        return self._evaluate(_MatchFold(predicate, "all"))

    def none_match(self, predicate: Callable[[Any], bool]) -> bool:
        return self._evaluate(_MatchFold(predicate, "none"))

    # --------- resources ----------
    def close(self) -> None:
        """Run close handlers once, in registration order"""
        self._linked = True
        self._head.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        mode = "parallel" if self._head.parallel else "sequential"
        return f"<{type(self).__name__} stages={len(self._stages())} {mode}>"

    # --------- helpers ----------
    @classmethod
    def _from_upstream(cls, upstream: "LazyStream", op: Optional[Stage]):
        stage = cls.__new__(cls)
        stage._head = upstream._head
        stage._upstream = upstream
        stage._op = op
        stage._linked = False
        return stage

    def _check_usable(self):
        if self._linked or self._head.closed:
            raise AlreadyConsumedError("stream has already been operated upon or closed")

    def _link(self):
        self._check_usable()
        self._linked = True

    def _chain(self, op: Optional[Stage] = None, cls=None):
        self._link()
        return (cls or type(self))._from_upstream(self, op)

    def _stages(self) -> List[Stage]:
        stages = []
        stage = self
        while stage is not None:
            if stage._op is not None:
                stages.append(stage._op)
            stage = stage._upstream
        stages.reverse()
        return stages

    def _begin_terminal(self) -> List[Stage]:
        self._link()
        return self._stages()

    @property
    def _settings(self) -> StreamSettings:
        if self._head.settings is None:
            self._head.settings = StreamSettings.from_env()
        return self._head.settings

    def _pull(self) -> Iterator[Any]:
        """Element iterator for an already-linked concat input"""
        return self._element_iterator(self._stages(), self._head.ordered)

    def _element_iterator(self, stages: List[Stage], ordered: bool) -> Iterator[Any]:
        if not self._head.parallel:
            return _apply_stages(iter(self._head.source), stages)
        split = _first_stateful(stages)
        elements = self._parallel_elements(stages[:split], ordered)
        return _closing_iter(elements, _apply_stages(elements, stages[split:]))

    def _evaluate(self, fold: _Fold, ordered: Optional[bool] = None):
        stages = self._begin_terminal()
        if ordered is None:
            ordered = self._head.ordered or fold.order_sensitive

        if not self._head.parallel:
            logger.debug(f"Evaluating {len(stages)} stages sequentially with {type(fold).__name__}")
            return fold.merge([fold(_apply_stages(iter(self._head.source), stages))])

        split = _first_stateful(stages)
        if split < len(stages):
            # Stateful stages run on this thread over the parallel prefix's output.
            with closing(self._parallel_elements(stages[:split], ordered)) as elements:
                return fold.merge([fold(_apply_stages(elements, stages[split:]))])

        partials = []
        with closing(self._parallel_partials(stages, fold, ordered)) as results:
            for partial in results:
                partials.append(partial)
                if fold.settled(partial):
                    break
        return fold.merge(partials)

    def _parallel_elements(self, stages: List[Stage], ordered: bool) -> Iterator[Any]:
        with closing(self._parallel_partials(stages, _ListFold(), ordered)) as chunks:
            for chunk in chunks:
                yield from chunk

    def _parallel_partials(self, stages: List[Stage], fold: _Fold, ordered: bool) -> Iterator[Any]:
        """
        Pull the source in waves of max_workers * chunk_size elements and run
        each chunk-sized partition through stages + fold on the worker pool.
        Stops pulling as soon as the consumer stops iterating.
        """
        settings = self._settings
        source = iter(self._head.source)
        task = _PartitionTask(stages, fold)
        with WorkerPool(settings.max_workers, settings.executor) as pool:
            while True:
                wave = list(islice(source, settings.wave_size))
                if not wave:
                    return
                partitions = split_partitions(wave, settings.chunk_size)
                logger.debug(f"Dispatching wave of {len(wave)} elements as {len(partitions)} partitions")
                yield from pool.map_partitions(task, partitions, ordered)
                if len(wave) < settings.wave_size:
                    return

    def _extreme(self, pick, key, default):
        result = self._evaluate(_ExtremeFold(pick, key))
        if result is MISSING:
            if default is MISSING:
                raise EmptySequenceError(f"{pick.__name__}() of an empty stream")
            return default
        return result


def _check_count(n, op: str) -> int:
    if isinstance(n, bool) or not isinstance(n, int) or n < 0:
        raise InvalidArgumentError(f"{op}() requires a non-negative integer, got {n!r}")
    return n


class StreamBuilder:
    """Collects elements one by one, then builds a stream once."""

    def __init__(self, stream_cls=LazyStream):
        self._stream_cls = stream_cls
        self._items: List[Any] = []
        self._built = False

    def accept(self, item) -> None:
        if self._built:
            raise AlreadyConsumedError("builder has already been built")
        self._items.append(item)

    def add(self, item) -> "StreamBuilder":
        self.accept(item)
        return self

    def build(self) -> LazyStream:
        if self._built:
            raise AlreadyConsumedError("builder has already been built")
        self._built = True
        return self._stream_cls(tuple(self._items))
