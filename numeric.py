"""Number-specialised streams: sums, averages, summary statistics and ranges."""

import operator

import collectors
from collectors import SummaryStatistics
from lazy import MISSING, LazyStream
from utils import EmptySequenceError


class NumericStream(LazyStream):
    """LazyStream whose elements are numbers."""

    def sum(self):
        return self.reduce(operator.add, self._zero, operator.add)

    def average(self, default=MISSING) -> float:
        stats = self.summary_statistics()
        if stats.count == 0:
            if default is MISSING:
                raise EmptySequenceError("average() of an empty stream")
            return default
        return stats.average

    def summary_statistics(self) -> SummaryStatistics:
        stats = self.collect(collectors.summarizing())
        if stats.count == 0:
            stats.sum = self._zero
        return stats

    def boxed(self) -> LazyStream:
        """Drop the numeric specialisation"""
        return self._chain(None, LazyStream)

    def as_float_stream(self) -> "FloatStream":
        return self._chain(("map", float), FloatStream)

    _zero = 0


class IntStream(NumericStream):
    @classmethod
    def range(cls, start: int, stop: int):
        """start inclusive, stop exclusive"""
        return cls(range(start, stop))

    @classmethod
    def range_closed(cls, start: int, stop: int):
        """start and stop both inclusive"""
        return cls(range(start, stop + 1))


class FloatStream(NumericStream):
    _zero = 0.0
