import operator

import pytest
import collectors
from lazy import LazyStream
from models import StreamSettings
from numeric import IntStream
from utils import AlreadyConsumedError, StreamError


SETTINGS = StreamSettings(max_workers=2, chunk_size=2)

SHAPES = {
    "plain": lambda: LazyStream([1, 2, 3]),
    "filtered": lambda: LazyStream([1, 2, 3]).filter(lambda x: x > 1),
    "limited": lambda: LazyStream.iterate(1, lambda x: x + 1).limit(3),
    "sorted": lambda: LazyStream([3, 1, 2]).sorted(),
    "parallel": lambda: LazyStream([1, 2, 3], SETTINGS).parallel().map(lambda x: x * 2),
    "concat": lambda: LazyStream.concat(LazyStream.of(1), LazyStream.of(2, 3)),
    "numeric": lambda: IntStream.range(1, 4),
    "built": lambda: LazyStream.builder().add(1).add(2).build(),
}

TERMINALS = {
    "to_list": lambda s: s.to_list(),
    "count": lambda s: s.count(),
    "for_each": lambda s: s.for_each(lambda x: None),
    "for_each_ordered": lambda s: s.for_each_ordered(lambda x: None),
    "reduce": lambda s: s.reduce(operator.add, 0, operator.add),
    "collect": lambda s: s.collect(collectors.to_list()),
    "min": lambda s: s.min(default=None),
    "max": lambda s: s.max(default=None),
    "find_first": lambda s: s.find_first(),
    "find_any": lambda s: s.find_any(),
    "any_match": lambda s: s.any_match(bool),
    "all_match": lambda s: s.all_match(bool),
    "none_match": lambda s: s.none_match(bool),
    "iterator": lambda s: list(s.iterator()),
}


class TestSingleUse:
    """Test the Unconsumed -> Consumed lifecycle of stream stages"""

    @pytest.mark.parametrize("shape", sorted(SHAPES))
    @pytest.mark.parametrize("terminal", sorted(TERMINALS))
    def test_second_terminal_operation_fails(self, shape, terminal):
        stream = SHAPES[shape]()
        TERMINALS[terminal](stream)

        for name, op in TERMINALS.items():
            with pytest.raises(AlreadyConsumedError):
                op(stream)

    def test_chaining_twice_from_one_stage_fails(self):
        stream = LazyStream(range(5))
        stream.map(lambda x: x + 1)

        with pytest.raises(AlreadyConsumedError):
            stream.filter(lambda x: x > 1)

    def test_terminal_on_linked_upstream_fails(self):
        stream = LazyStream(range(5))
        doubled = stream.map(lambda x: x * 2)

        with pytest.raises(AlreadyConsumedError):
            stream.to_list()
        assert doubled.to_list() == [0, 2, 4, 6, 8]

    def test_chaining_from_consumed_stage_fails(self):
        stream = LazyStream(range(5))
        stream.count()

        with pytest.raises(AlreadyConsumedError):
            stream.map(str)

    def test_mode_switches_also_link(self):
        stream = LazyStream(range(5))
        stream.parallel()

        with pytest.raises(AlreadyConsumedError):
            stream.sequential()

    def test_error_hierarchy(self):
        assert issubclass(AlreadyConsumedError, StreamError)

    def test_iter_protocol_consumes(self):
        stream = LazyStream.of(1, 2, 3)
        assert [x for x in stream] == [1, 2, 3]

        with pytest.raises(AlreadyConsumedError):
            iter(stream)


class TestConcat:
    """Test concatenation and its effect on the input streams"""

    def test_concat_order(self):
        result = LazyStream.concat(LazyStream.of("A", "B"), LazyStream.of("C", "D")).to_list()
        assert result == ["A", "B", "C", "D"]

    def test_concat_links_inputs(self):
        first = LazyStream.of(1, 2)
        second = LazyStream.of(3)
        LazyStream.concat(first, second)

        with pytest.raises(AlreadyConsumedError):
            first.to_list()
        with pytest.raises(AlreadyConsumedError):
            second.map(str)

    def test_concat_of_consumed_input_fails(self):
        first = LazyStream.of(1, 2)
        first.to_list()
        second = LazyStream.of(3)

        with pytest.raises(AlreadyConsumedError):
            LazyStream.concat(first, second)
        # The untouched input stays usable
        assert second.to_list() == [3]

    def test_concat_with_itself_fails(self):
        stream = LazyStream.of(1)
        with pytest.raises(AlreadyConsumedError):
            LazyStream.concat(stream, stream)

    def test_concat_is_lazy_across_inputs(self, pull_counter):
        first = LazyStream.of(-2, -1)
        second = LazyStream(pull_counter.source())
        result = LazyStream.concat(first, second).limit(4).to_list()

        assert result == [-2, -1, 0, 1]
        assert pull_counter.pulled == 2

    def test_concat_keeps_input_stages(self):
        first = LazyStream(range(5)).filter(lambda x: x % 2 == 0)
        second = LazyStream(range(3)).map(lambda x: x * 100)
        assert LazyStream.concat(first, second).to_list() == [0, 2, 4, 0, 100, 200]

    def test_concat_parallel_if_either_is(self):
        first = LazyStream.of(1, 2)
        second = LazyStream(range(3, 8), SETTINGS).parallel()
        combined = LazyStream.concat(first, second)

        assert combined.is_parallel
        assert combined.to_list() == [1, 2, 3, 4, 5, 6, 7]

    def test_closing_concat_closes_inputs(self):
        closed = []
        first = LazyStream.of(1).on_close(lambda: closed.append("first"))
        second = LazyStream.of(2).on_close(lambda: closed.append("second"))

        with LazyStream.concat(first, second) as combined:
            assert combined.to_list() == [1, 2]

        assert closed == ["first", "second"]


class TestClose:
    """Test close handlers and context-manager support"""

    def test_handlers_run_once_in_order(self):
        calls = []
        stream = (
            LazyStream.of(1, 2, 3)
            .on_close(lambda: calls.append(1))
            .on_close(lambda: calls.append(2))
        )
        assert stream.to_list() == [1, 2, 3]
        assert calls == [], "Terminal operations do not close the stream"

        stream.close()
        stream.close()
        assert calls == [1, 2]

    def test_context_manager_closes(self):
        calls = []
        with LazyStream.of(1).on_close(lambda: calls.append("closed")) as stream:
            assert stream.to_list() == [1]
        assert calls == ["closed"]

    def test_closed_stream_cannot_be_used(self):
        stream = LazyStream.of(1, 2)
        stream.close()

        with pytest.raises(AlreadyConsumedError):
            stream.to_list()

    def test_failing_handler_does_not_stop_others(self):
        calls = []

        def boom():
            raise RuntimeError("first failure")

        def boom_again():
            raise KeyError("second failure")

        stream = (
            LazyStream.of(1)
            .on_close(boom)
            .on_close(lambda: calls.append("ran"))
            .on_close(boom_again)
        )

        with pytest.raises(RuntimeError, match="first failure"):
            stream.close()
        assert calls == ["ran"]


class TestBuilder:
    """Test step-by-step stream construction"""

    def test_builder_add_and_accept(self):
        builder = LazyStream.builder()
        builder.add("build1").add("build2")
        builder.accept("build3")
        assert builder.build().to_list() == ["build1", "build2", "build3"]

    def test_builder_is_single_use(self):
        builder = LazyStream.builder().add(1)
        builder.build()

        with pytest.raises(AlreadyConsumedError):
            builder.add(2)
        with pytest.raises(AlreadyConsumedError):
            builder.build()

    def test_numeric_builder_keeps_type(self):
        stream = IntStream.builder().add(4).add(6).build()
        assert isinstance(stream, IntStream)
        assert stream.sum() == 10
