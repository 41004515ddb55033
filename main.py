"""
lazystream demonstration

Walks through the stream API section by section, printing results:
- creation factories
- intermediate (lazy) operations
- terminal operations
- short-circuiting operations
- parallel evaluation
- numeric streams and collectors

Run all sections:      python main.py
Run selected sections: python main.py creation parallel
"""

import random
import sys
from typing import Callable, Dict, List, Optional

import collectors
from lazy import LazyStream
from models import StreamSettings
from numeric import FloatStream, IntStream
from utils import (
    AlreadyConsumedError,
    get_performance_summary,
    measure_performance,
    setup_logging,
)


def _header(title: str):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def demo_creation():
    """Ways to build a stream"""
    _header("1️⃣  CREATION")

    letters = ["a", "b", "c"]
    print("Sequential stream:", LazyStream(letters).to_list())
    print("Parallel stream:", LazyStream.parallel_of(letters).to_list())
    print("Tuple stream:", LazyStream(("x", "y", "z")).to_list())

    numbers = {1: "one", 2: "two", 3: "three"}
    print("Dict keys:", LazyStream(numbers.keys()).to_list())
    print("Dict values:", LazyStream(numbers.values()).to_list())
    print("Dict items:", LazyStream(numbers.items()).map(lambda kv: f"{kv[0]}={kv[1]}").to_list())

    print("of():", LazyStream.of("p", "q", "r").to_list())
    print("of_nullable (value):", LazyStream.of_nullable("not null").to_list())
    print("of_nullable (None):", LazyStream.of_nullable(None).to_list())
    print("empty():", LazyStream.empty().to_list())

    # generate() and iterate() are infinite unless bounded
    print("generate (limited):", LazyStream.generate(random.random).limit(3).to_list())
    print("iterate (limited):", LazyStream.iterate(1, lambda n: n + 1).limit(5).to_list())
    print("iterate with has_next:", LazyStream.iterate(1, lambda n: n + 1, has_next=lambda n: n <= 5).to_list())

    first = LazyStream.of("A", "B")
    second = LazyStream.of("C", "D")
    print("concat():", LazyStream.concat(first, second).to_list())
    try:
        first.to_list()
    except AlreadyConsumedError as e:
        print(f"Reusing a concat input fails: {e}")

    builder = LazyStream.builder().add("build1")
    if random.random() < 0.5:
        builder.add("build-extra")
    builder.add("build2")
    print("builder():", builder.build().to_list())


def demo_intermediate():
    """Lazy transformations"""
    _header("2️⃣  INTERMEDIATE OPERATIONS")

    numbers = [1, 2, 3, 4, 5, 2, 3]
    print("Original list:", numbers)
    print("filter even:", LazyStream(numbers).filter(lambda n: n % 2 == 0).to_list())
    print("map square:", LazyStream(numbers).map(lambda n: n * n).to_list())
    print("map_to_int sum:", LazyStream(numbers).map_to_int(lambda n: n).sum())
    print("flat_map:", LazyStream([[1, 2], [3, 4], [5]]).flat_map(lambda xs: xs).to_list())
    print("distinct:", LazyStream(numbers).distinct().to_list())
    print("sorted:", LazyStream(numbers).sorted().to_list())
    print("sorted reverse:", LazyStream(numbers).sorted(reverse=True).to_list())
    print("limit(3):", LazyStream(numbers).limit(3).to_list())
    print("skip(2):", LazyStream(numbers).skip(2).to_list())
    print("take_while < 4:", LazyStream(numbers).take_while(lambda n: n < 4).to_list())
    print("drop_while < 4:", LazyStream(numbers).drop_while(lambda n: n < 4).to_list())

    def twice(ch, emit):
        emit(ch + "1")
        emit(ch + "2")

    print("map_multi:", LazyStream.of("a", "b", "c").map_multi(twice).to_list())

    peeked = (
        LazyStream(numbers)
        .peek(lambda n: print(f"  peek: {n}"))
        .map(lambda n: n * 10)
    )
    print("Pipeline with peek built; nothing printed yet.")
    print("After peek & multiply by 10:", peeked.to_list())


def demo_terminal():
    """Operations that pull results"""
    _header("3️⃣  TERMINAL OPERATIONS")

    numbers = [1, 2, 3, 4, 5, 2, 3]
    print("Original list:", numbers)

    seen: List[int] = []
    LazyStream.parallel_of(numbers).for_each(seen.append)
    print("for_each (parallel, any order):", seen)
    print("for_each_ordered (parallel): ", end="")
    LazyStream.parallel_of(numbers).for_each_ordered(lambda n: print(n, end=" "))
    print()

    print("to_list():", LazyStream(numbers).to_list())
    print("to_tuple():", LazyStream(numbers).to_tuple())
    print("to_set():", LazyStream(numbers).to_set())

    print("reduce(add):", LazyStream(numbers).reduce(lambda a, b: a + b))
    print("reduce(add, 0):", LazyStream(numbers).reduce(lambda a, b: a + b, 0))
    print("reduce concat:", LazyStream(numbers).map(str).reduce(lambda s, n: s + n + "-", ""))
    print("reduce(add, 0, add) parallel:",
          LazyStream.parallel_of(numbers).reduce(lambda a, b: a + b, 0, lambda a, b: a + b))

    print("collect(supplier, accumulator, combiner):",
          LazyStream(numbers).collect(list, list.append, list.extend))
    print("collect(joining):", LazyStream(numbers).map(str).collect(collectors.joining(", ")))
    print("collect(grouping_by parity):",
          LazyStream(numbers).collect(collectors.grouping_by(lambda n: "even" if n % 2 == 0 else "odd")))
    print("collect(partitioning_by > 2, counting):",
          LazyStream(numbers).collect(collectors.partitioning_by(lambda n: n > 2, collectors.counting())))

    print("count():", LazyStream(numbers).count())
    print(f"min(): {LazyStream(numbers).min()}, max(): {LazyStream(numbers).max()}")
    print("summary_statistics():", LazyStream(numbers).map_to_int(int).summary_statistics())

    print("any_match even?", LazyStream(numbers).any_match(lambda n: n % 2 == 0))
    print("all_match positive?", LazyStream(numbers).all_match(lambda n: n > 0))
    print("none_match negative?", LazyStream(numbers).none_match(lambda n: n < 0))

    print("find_first():", LazyStream(numbers).find_first())
    print("find_any() (parallel):", LazyStream.parallel_of(numbers).find_any())

    print("iterator(): ", end="")
    for n in LazyStream(numbers).iterator():
        print(n, end=" ")
    print()

    stream = LazyStream(numbers)
    stream.count()
    try:
        stream.count()
    except AlreadyConsumedError as e:
        print(f"Second terminal operation fails: {e}")


def demo_short_circuit():
    """Operations that stop pulling early"""
    _header("4️⃣  SHORT-CIRCUIT OPERATIONS")

    print("find_first even:", LazyStream.of(1, 3, 5, 6, 7, 8).filter(lambda n: n % 2 == 0).find_first())
    print("find_any even (parallel):",
          LazyStream.of(1, 2, 3, 4, 5).parallel().filter(lambda n: n % 2 == 0).find_any())
    print("any_match empty string?", LazyStream.of("a", "b", "", "c").any_match(lambda s: s == ""))
    print("all_match positive?", LazyStream.of(1, 2, 3, -1).all_match(lambda n: n > 0))
    print("none_match negative (all positive):", LazyStream.of(1, 2, 3).none_match(lambda n: n < 0))
    print("none_match negative (contains negative):", LazyStream.of(1, -2, 3).none_match(lambda n: n < 0))

    pulled: List[int] = []
    first_three = IntStream.iterate(1, lambda n: n + 1).peek(pulled.append).limit(3).boxed().to_list()
    print(f"limit(3) on an infinite source: {first_three} (pulled {len(pulled)} elements)")
    print("take_while < 5:", IntStream.range(1, 10).take_while(lambda n: n < 5).to_list())
    print("drop_while < 5:", IntStream.range(1, 10).drop_while(lambda n: n < 5).to_list())

    values = IntStream.range_closed(1, 10).to_list()
    print("Parallel sum:", IntStream(values).parallel().sum())
    print("parallel for_each: ", end="")
    printed: List[int] = []
    IntStream(values).parallel().for_each(printed.append)
    print(" ".join(str(n) for n in printed))
    print("parallel for_each_ordered: ", end="")
    IntStream(values).parallel().for_each_ordered(lambda n: print(n, end=" "))
    print()


def demo_parallel(settings: Optional[StreamSettings] = None):
    """Evaluation modes"""
    _header("5️⃣  PARALLEL EVALUATION")
    settings = settings or StreamSettings(max_workers=4, chunk_size=2)
    numbers = [1, 2, 3, 4, 5]

    stream = LazyStream(numbers, settings).parallel()
    print("is_parallel after parallel():", stream.is_parallel)
    stream = stream.sequential()
    print("is_parallel after sequential():", stream.is_parallel)
    stream.close()

    print("unordered parallel map x2:",
          LazyStream(numbers, settings).unordered().parallel().map(lambda n: n * 2).to_list())

    with LazyStream(numbers).on_close(lambda: print("Stream closed!")) as closable:
        print("Closable stream result:", closable.to_list())

    big = range(1, 200_001)
    seq = measure_performance(
        "sequential_sum_of_squares",
        lambda: LazyStream(big).map(lambda n: n * n).reduce(lambda a, b: a + b, 0),
    )
    par = measure_performance(
        "parallel_sum_of_squares",
        lambda: LazyStream(big, StreamSettings(chunk_size=10_000)).parallel()
        .map(lambda n: n * n).reduce(lambda a, b: a + b, 0, lambda a, b: a + b),
    )
    print(f"Sequential: {seq['result']} in {seq['execution_time_ms']:.1f} ms")
    print(f"Parallel:   {par['result']} in {par['execution_time_ms']:.1f} ms")
    print(f"Results equal: {seq['result'] == par['result']}")
    print(f"Measured {get_performance_summary()['total_operations']} operations")


def demo_numeric():
    """Number-specialised streams"""
    _header("6️⃣  NUMERIC STREAMS")

    print("IntStream sum:", IntStream.of(1, 2, 3, 4, 5).sum())
    print("IntStream average:", IntStream.of(1, 2, 3, 4, 5).average(default=0))
    print("IntStream min:", IntStream.of(1, 2, 3, 4, 5).min())
    print("IntStream max:", IntStream.of(1, 2, 3, 4, 5).max())
    print("IntStream summary_statistics:", IntStream.of(1, 2, 3, 4, 5).summary_statistics())
    print("Boxed IntStream:", IntStream.of(1, 2, 3, 4, 5).boxed().to_list())
    print("IntStream.range(1, 5):", IntStream.range(1, 5).to_list())
    print("IntStream.range_closed(1, 5):", IntStream.range_closed(1, 5).to_list())
    print("IntStream -> FloatStream:", IntStream.of(10, 20, 30).as_float_stream().to_list())
    print("FloatStream sum:", FloatStream.of(100.0, 200.0, 300.0).sum())
    print("FloatStream average:", FloatStream.of(1.5, 2.5, 3.5).average(default=0))


SECTIONS: Dict[str, Callable[[], None]] = {
    "creation": demo_creation,
    "intermediate": demo_intermediate,
    "terminal": demo_terminal,
    "short_circuit": demo_short_circuit,
    "parallel": demo_parallel,
    "numeric": demo_numeric,
}


def main(argv: Optional[List[str]] = None) -> int:
    names = list(argv if argv is not None else sys.argv[1:]) or list(SECTIONS)
    unknown = [name for name in names if name not in SECTIONS]
    if unknown:
        print(f"Unknown section(s): {', '.join(unknown)}. Choose from: {', '.join(SECTIONS)}")
        return 2

    setup_logging(StreamSettings.from_env().log_level)
    print("🚀 LAZYSTREAM DEMONSTRATION")
    for name in names:
        SECTIONS[name]()
    print("\n🎉 DEMONSTRATION COMPLETE!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
