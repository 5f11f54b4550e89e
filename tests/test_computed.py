"""Tests for Computed values."""

import gc

import pytest

from cascadex import (
    Atom,
    CellStatus,
    Computed,
    Reaction,
    ReactiveUsageError,
    Runtime,
    transaction,
)


class TestComputed:
    def test_lazy_eval(self, runtime):
        call_count = 0
        a = Atom(runtime, 5)

        def fn(v):
            nonlocal call_count
            call_count += 1
            return v * 2

        c = Computed(runtime, [a], fn)
        assert call_count == 0  # not yet evaluated
        assert c.get() == 10
        assert call_count == 1

    def test_eager_evaluates_at_construction(self, runtime):
        calls = []
        a = Atom(runtime, 1)
        Computed(runtime, [a], lambda v: calls.append(v), eager=True)
        assert calls == [1]

    def test_caches_until_dirty(self, runtime):
        call_count = 0
        a = Atom(runtime, {"items": [1, 2]})

        def fn(v):
            nonlocal call_count
            call_count += 1
            return {"total": sum(v["items"])}

        c = Computed(runtime, [a], fn)
        first = c.get()
        second = c.get()
        assert call_count == 1  # cached, no re-eval
        assert first == second == {"total": 3}

    def test_invalidation(self, runtime):
        a = Atom(runtime, 5)
        c = Computed(runtime, [a], lambda v: v * 2)
        assert c.get() == 10
        a.set(10)
        assert c.get() == 20

    def test_evaluator_receives_values_in_declared_order(self, runtime):
        first = Atom(runtime, "Ada")
        last = Atom(runtime, "Lovelace")
        full = Computed(runtime, [last, first], lambda l, f: f"{l}, {f}")
        assert full.get() == "Lovelace, Ada"

    def test_chained_computed(self, runtime):
        a = Atom(runtime, 3)
        doubled = Computed(runtime, [a], lambda v: v * 2)
        quadrupled = Computed(runtime, [doubled], lambda v: v * 2)
        assert quadrupled.get() == 12
        a.set(5)
        assert quadrupled.get() == 20

    def test_unchanged_result_stops_propagation(self, runtime):
        calls = []
        a = Atom(runtime, 3)
        parity = Computed(runtime, [a], lambda v: v % 2)
        label = Computed(runtime, [parity], lambda p: calls.append(p) or ("odd" if p else "even"))
        assert label.get() == "odd"
        a.set(5)  # parity unchanged
        assert label.get() == "odd"
        assert calls == [1]

    def test_dispose(self, runtime):
        a = Atom(runtime, 5)
        c = Computed(runtime, [a], lambda v: v * 2)
        c.get()
        c.dispose()
        assert c not in runtime.graph
        a.set(10)
        assert c.get() == 10  # detached: keeps its last value

    def test_propagates_to_reactions(self, runtime):
        a = Atom(runtime, 5)
        c = Computed(runtime, [a], lambda v: v * 2)
        log = []
        Reaction(runtime, [c], lambda v: log.append(v), fire_immediately=True)
        assert log == [10]
        a.set(10)
        assert log == [10, 20]

    def test_repr(self, runtime):
        a = Atom(runtime, 1)
        c = Computed(runtime, [a], lambda v: v + 1, name="plus_one")
        assert "dirty" in repr(c)
        c.get()
        assert repr(c) == "Computed(plus_one, settled=2)"


class TestGlitchFreedom:
    def test_diamond_evaluates_once_with_consistent_inputs(self, runtime):
        a = Atom(runtime, 1)
        left = Computed(runtime, [a], lambda v: v + 1)
        right = Computed(runtime, [a], lambda v: v * 10)
        seen = []

        def combine(l, r):
            seen.append((l, r))
            return l + r

        bottom = Computed(runtime, [left, right], combine, eager=True)
        a.set(2)
        assert bottom.get() == 23
        assert seen == [(2, 10), (3, 20)]

    def test_batch_recomputes_once(self, runtime):
        a = Atom(runtime, 0)
        b = Atom(runtime, 0)
        seen = []
        Computed(runtime, [a, b], lambda x, y: seen.append((x, y)), eager=True)

        with runtime.transaction():
            a.set(1)
            b.set(2)

        # Never the partial (1, 0)
        assert seen == [(0, 0), (1, 2)]

    def test_read_inside_batch_is_fresh(self, runtime):
        a = Atom(runtime, 1)
        c = Computed(runtime, [a], lambda v: v * 3)
        with transaction(runtime):
            a.set(2)
            assert c.get() == 6

    def test_unread_computed_stays_lazy(self, runtime):
        calls = []
        a = Atom(runtime, 1)
        Computed(runtime, [a], lambda v: calls.append(v))
        a.set(2)
        a.set(3)
        assert calls == []


class TestEvaluatorFaults:
    def test_fault_is_captured_on_the_cell(self, runtime):
        a = Atom(runtime, 1)

        def explode(v):
            if v > 1:
                raise RuntimeError("boom")
            return v

        c = Computed(runtime, [a], explode)
        assert c.get() == 1
        a.set(2)
        assert c.get() == 1  # previous settled value
        assert c.status is CellStatus.ERROR
        assert str(c.error) == "boom"

    def test_fault_does_not_break_siblings(self, runtime):
        a = Atom(runtime, 1)
        broken = Computed(runtime, [a], lambda v: 1 / (v - 2), eager=True)
        healthy = Computed(runtime, [a], lambda v: v + 1, eager=True)
        a.set(2)
        assert broken.status is CellStatus.ERROR
        assert healthy.get() == 3

    def test_recovers_after_fault(self, runtime):
        a = Atom(runtime, 0)
        c = Computed(runtime, [a], lambda v: 10 // v)
        assert c.status is CellStatus.ERROR
        a.set(5)
        assert c.get() == 2
        assert c.status is CellStatus.SETTLED
        assert c.error is None

    def test_state_view_tracks_errors(self, runtime):
        a = Atom(runtime, 1)
        c = Computed(runtime, [a], lambda v: 10 // v)
        assert c.state.get().value == 10
        a.set(0)
        state = c.state.get()
        assert state.status is CellStatus.ERROR
        assert isinstance(state.error, ZeroDivisionError)


class TestMisuse:
    def test_non_callable_evaluator(self, runtime):
        with pytest.raises(ReactiveUsageError, match="callable"):
            Computed(runtime, [], "not a function")

    def test_non_cell_dependency(self, runtime):
        with pytest.raises(ReactiveUsageError, match="cells"):
            Computed(runtime, [42], lambda v: v)

    def test_no_dependencies_evaluates_once(self, runtime):
        calls = []
        c = Computed(runtime, [], lambda: calls.append(1) or "constant")
        assert c.get() == "constant"
        assert c.get() == "constant"
        assert calls == [1]


class TestCrossRuntime:
    def test_foreign_cell_is_mirrored(self):
        source_rt = Runtime(name="source")
        reader_rt = Runtime(name="reader")
        price = Atom(source_rt, 10)
        with_tax = Computed(reader_rt, [price], lambda p: p * 1.5)
        assert with_tax.get() == 15
        price.set(20)
        assert with_tax.get() == 30
        assert with_tax.dependencies[0].runtime is reader_rt

    def test_disposed_reader_stops_listening(self):
        source_rt = Runtime(name="source")
        reader_rt = Runtime(name="reader")
        price = Atom(source_rt, 10)
        Computed(reader_rt, [price], lambda p: p, eager=True)
        assert len(source_rt.graph) == 2  # atom + bridge
        reader_rt.dispose()
        assert len(source_rt.graph) == 1

    def test_collected_reader_stops_listening(self):
        source_rt = Runtime(name="source")
        price = Atom(source_rt, 10)
        calls = []
        reader_rt = Runtime(name="reader")
        Computed(reader_rt, [price], lambda p: calls.append(p), eager=True)
        assert calls == [10]
        assert len(source_rt.graph) == 2  # atom + bridge

        del reader_rt
        gc.collect()
        price.set(20)

        assert calls == [10]
        assert len(source_rt.graph) == 1
