"""Integration tests for the dagcalc Calculator facade."""

from __future__ import annotations

import pytest

from dagcalc import (
    DEFAULT_OPERATORS,
    CalcEngine,
    Calculator,
    CircularReferenceError,
    Graph,
    InvalidReferenceError,
    Operator,
    OperatorTable,
    ParseError,
    RecalcResult,
    Value,
    populate,
)


def _xyz() -> Calculator:
    calc = Calculator()
    calc.load({"x": "3", "y": "5", "z": "x + y"})
    return calc


class TestDefineAndRead:
    def test_chain(self) -> None:
        calc = _xyz()
        assert calc.value("z") == 8
        calc.define("x", "10")
        assert calc.value("z") == 15

    def test_undefined_reads_none(self) -> None:
        calc = Calculator()
        assert calc.value("nothing") is None
        assert calc.evaluate("nothing") is None

    def test_clear(self) -> None:
        calc = _xyz()
        var = calc.define("y", None)
        assert var.expr is calc.graph.NULL
        assert calc.value("y") is None

    def test_evaluate_expression(self) -> None:
        calc = Calculator()
        assert calc.evaluate("2 + 3 * 4") == 14
        assert calc.evaluate("(2 + 3) * 4") == 20
        assert calc.evaluate("- 2 + 5") == 3
        assert calc.evaluate("2 ** 3 ** 2") == 512
        assert calc.evaluate("7 % 4") == 3
        assert calc.evaluate("ceil(2.1) + floor(2.9)") == 5
        assert calc.evaluate('"a" + "b"') == "ab"

    def test_values(self) -> None:
        assert _xyz().values() == {"x": 3, "y": 5, "z": 8}

    def test_forward_reference(self) -> None:
        calc = Calculator()
        calc.define("total", "price * qty")
        calc.define("price", "2.5")
        calc.define("qty", "4")
        assert calc.value("total") == 10.0


    def test_null_reads_as_zero_in_arithmetic(self) -> None:
        calc = Calculator()
        assert calc.evaluate("nothing + 1") == 1
        assert calc.evaluate("nothing * 4") == 0

    def test_description(self) -> None:
        calc = Calculator()
        var = calc.define("rate", "12", description="hourly rate")
        assert calc.graph.lookup_variable("rate").description == "hourly rate"
        calc.define("rate", "13")
        assert var.description == "hourly rate"

    def test_long_chain(self) -> None:
        calc = Calculator()
        calc.define("v0", "0")
        for i in range(1, 1500):
            calc.define(f"v{i}", f"v{i - 1} + 1")
        assert calc.value("v1499") == 1499
        result = calc.recalculate({"v0": "1"})
        assert result.changed_variables == 1500
        assert calc.value("v1499") == 1500

class TestCycles:
    def test_redefining_into_cycle_fails(self) -> None:
        calc = _xyz()
        with pytest.raises(CircularReferenceError, match="x"):
            calc.define("x", "z")
        assert calc.value("x") == 3
        assert calc.value("z") == 8

    def test_self_reference(self) -> None:
        calc = Calculator()
        with pytest.raises(CircularReferenceError):
            calc.define("a", "a + 1")


class TestFunctionApplication:
    def test_function_receives_resolved_values(self) -> None:
        calc = Calculator()
        seen: list[list[object]] = []

        def func(graph: Graph, args: list[Value]) -> Value:
            seen.append([a.value for a in args])
            return graph.NULL

        calc.graph.register_function("func", func)
        calc.evaluate("func(3+5, true|false)")
        assert seen == [[8, True]]

    def test_unregistered_function_fails_at_evaluation(self) -> None:
        calc = Calculator()
        calc.define("bad", "nope(1)")
        with pytest.raises(InvalidReferenceError, match="nope"):
            calc.value("bad")

    def test_memoized_between_reads(self) -> None:
        calc = Calculator()
        calls: list[int] = []

        def tick(graph: Graph, args: list[Value]) -> Value:
            calls.append(1)
            return graph.new_num(len(calls))

        calc.graph.register_function("tick", tick)
        calc.define("t", "tick()")
        assert calc.value("t") == 1
        assert calc.value("t") == 1
        calc.define("other", "0")
        assert calc.value("t") == 2


class TestConfiguration:
    def test_custom_operator_table(self) -> None:
        table = OperatorTable([Operator("+", 10), Operator("*", 5)])
        calc = Calculator(operators=table)
        # "*" now binds looser than "+"
        assert calc.evaluate("2 * 3 + 4") == 14

    def test_supplied_graph_used_as_is(self) -> None:
        g = Graph()
        calc = Calculator(graph=g)
        assert calc.graph is g
        calc.define("f", "1 + 1")
        with pytest.raises(InvalidReferenceError):
            calc.value("f")

    def test_default_table_not_mutated(self) -> None:
        calc = Calculator()
        calc.parser.operators.set(Operator("+", 1))
        assert DEFAULT_OPERATORS["+"].bp == 10

    def test_is_calc_engine(self) -> None:
        assert isinstance(Calculator(), CalcEngine)

    def test_calculators_isolated(self) -> None:
        a = Calculator()
        b = Calculator(graph=populate(Graph()))
        a.define("x", "1")
        assert b.value("x") is None


class TestParseFailures:
    def test_parse_error_leaves_binding(self) -> None:
        calc = _xyz()
        with pytest.raises(ParseError):
            calc.define("x", "1 +")
        assert calc.value("x") == 3

    def test_lexical_errors_recovered(self) -> None:
        calc = Calculator()
        calc.define("x", "1 + @2")
        assert calc.value("x") == 3
        assert len(calc.parser.errors) == 1


class TestRecalculate:
    def test_deltas(self) -> None:
        calc = _xyz()
        result = calc.recalculate({"x": "10"})
        assert isinstance(result, RecalcResult)
        changes = {d.name: (d.old_value, d.new_value) for d in result.deltas}
        assert changes == {"x": (3, 10), "z": (8, 15)}
        assert result.total_variables == 3
        assert result.changed_variables == 2
        assert result.propagation_ratio == pytest.approx(2 / 3)
        assert result.generation == calc.graph.generation

    def test_new_variable_reported(self) -> None:
        calc = _xyz()
        result = calc.recalculate({"w": "z * 2"})
        assert [(d.name, d.old_value, d.new_value) for d in result.deltas] == [("w", None, 16)]

    def test_no_change(self) -> None:
        calc = _xyz()
        result = calc.recalculate({"x": "3.0"})
        assert result.deltas == ()

    def test_tolerance(self) -> None:
        calc = _xyz()
        result = calc.recalculate({"x": "3.001"}, tolerance=0.01)
        assert result.deltas == ()

    def test_cycle_applies_nothing(self) -> None:
        calc = _xyz()
        with pytest.raises(CircularReferenceError):
            calc.recalculate({"y": "100", "x": "z"})
        assert calc.value("y") == 5
        assert calc.value("x") == 3
        assert calc.value("z") == 8

    def test_cycle_after_new_name_leaves_no_trace(self) -> None:
        calc = _xyz()
        before = calc.graph.generation
        with pytest.raises(CircularReferenceError, match="x"):
            calc.recalculate({"w": "1", "x": "z"})
        assert calc.values() == {"x": 3, "y": 5, "z": 8}
        assert "w" not in calc.graph
        assert calc.graph.generation == before

    def test_cycle_through_batch_definitions(self) -> None:
        calc = Calculator()
        calc.load({"a": "1", "b": "2"})
        with pytest.raises(CircularReferenceError, match="b"):
            calc.recalculate({"a": "b", "b": "a + 1"})
        assert calc.values() == {"a": 1, "b": 2}

    def test_batch_may_swap_dependencies(self) -> None:
        calc = Calculator()
        calc.load({"a": "1", "b": "a"})
        calc.recalculate({"b": "2", "a": "b"})
        assert calc.values() == {"a": 2, "b": 2}

    def test_parse_error_applies_nothing(self) -> None:
        calc = _xyz()
        before = calc.graph.generation
        with pytest.raises(ParseError):
            calc.recalculate({"y": "100", "x": "1 +"})
        assert calc.value("y") == 5
        assert calc.graph.generation == before

    def test_evaluation_error_reported(self) -> None:
        calc = _xyz()
        result = calc.recalculate({"y": "missing(1)"})
        by_name = {d.name: d for d in result.deltas}
        assert by_name["y"].error == "Invalid reference: missing"
        assert by_name["z"].error is not None
        assert by_name["z"].new_value is None

    def test_error_cleared(self) -> None:
        calc = _xyz()
        calc.define("y", "1 / 0")
        result = calc.recalculate({"y": "1"})
        changes = {d.name: (d.old_value, d.new_value, d.error) for d in result.deltas}
        assert changes == {"y": (None, 1, None), "z": (None, 4, None)}
