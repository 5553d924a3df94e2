"""Calculator: embedding facade over a graph, the builtins and the parser.

Usage::

    calc = Calculator()
    calc.load({"x": "3", "y": "5", "z": "x + y"})
    calc.value("z")                      # 8
    result = calc.recalculate({"x": "10"})
    [(d.name, d.old_value, d.new_value) for d in result.deltas]
    # [("x", 3, 10), ("z", 8, 15)]
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from dagcalc._errors import CalcError, CircularReferenceError
from dagcalc._expr import Expr, Var
from dagcalc._functions import populate
from dagcalc._graph import Graph
from dagcalc._parser import FormulaParser
from dagcalc._protocol import RecalcResult, VarDelta
from dagcalc._resolver import OperatorTable

logger = logging.getLogger(__name__)


def _values_differ(a: Any, b: Any, tolerance: float) -> bool:
    """Check if two values differ beyond tolerance."""
    if a is None and b is None:
        return False
    if a is None or b is None:
        return True
    if type(a) is bool or type(b) is bool:
        return type(a) is not type(b) or a != b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return abs(float(a) - float(b)) > tolerance
    return a != b


class Calculator:
    """Evaluates named formulas kept in a :class:`Graph`.

    A fresh graph is populated with the builtin functions; a supplied
    graph is used as is.
    """

    def __init__(
        self,
        graph: Graph | None = None,
        operators: OperatorTable | None = None,
    ) -> None:
        if graph is None:
            graph = populate(Graph())
        self.graph = graph
        self.parser = FormulaParser(graph, operators)

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def parse(self, source: str) -> Expr:
        """Parse *source* into an expression of this calculator's graph."""
        expr = self.parser.parse(source)
        for err in self.parser.errors:
            logger.debug("Recovered from lexical error in %r: %s", source, err)
        return expr

    def define(
        self, name: str, source: str | None, description: str | None = None,
    ) -> Var:
        """Bind *name* to the parsed *source*; None clears it to NULL."""
        expr = None if source is None else self.parse(source)
        return self.graph.set_value(name, expr, description)

    def load(self, definitions: Mapping[str, str | None]) -> None:
        """Define each entry of *definitions* in iteration order."""
        for name, source in definitions.items():
            self.define(name, source)

    # ------------------------------------------------------------------
    # Reading values
    # ------------------------------------------------------------------

    def value(self, name: str) -> Any:
        """Current plain value of *name*; None when undefined."""
        var = self.graph.lookup_variable(name)
        if var is None:
            return self.graph.NULL.value
        return var.latest_value.value

    def evaluate(self, source: str) -> Any:
        """Parse and evaluate *source* without binding it to a variable."""
        return self.parse(source).latest_value.value

    def values(self) -> dict[str, Any]:
        """Current plain value of every defined variable."""
        return {var.name: var.latest_value.value for var in self.graph}

    # ------------------------------------------------------------------
    # Batch recalculation
    # ------------------------------------------------------------------

    def recalculate(
        self,
        assignments: Mapping[str, str | None],
        tolerance: float = 1e-10,
    ) -> RecalcResult:
        """Apply *assignments* as one batch and report variables that changed.

        Every source is parsed and the whole batch is checked for circular
        references before anything is rebound, so a failing batch leaves the
        graph, its variable table and its generation untouched.
        """
        parsed = {
            name: (self.graph.NULL if source is None else self.parse(source))
            for name, source in assignments.items()
        }

        pending: dict[str, Expr] = {}
        for name, expr in parsed.items():
            if self.graph.refers_to(expr, name, pending):
                logger.debug("Rejected batch of %d assignment(s) at %s", len(parsed), name)
                raise CircularReferenceError(name)
            pending[name] = expr

        old_values = self._snapshot()
        for name, expr in parsed.items():
            self.graph.set_value(name, expr)
        new_values = self._snapshot()

        deltas: list[VarDelta] = []
        for name, (new_val, new_err) in new_values.items():
            old_val, old_err = old_values.get(name, (None, None))
            if new_err is not None:
                if new_err != old_err:
                    deltas.append(VarDelta(name, old_val, None, error=new_err))
                continue
            if old_err is not None or _values_differ(old_val, new_val, tolerance):
                deltas.append(VarDelta(name, old_val, new_val))

        return RecalcResult(
            assignments=dict(assignments),
            deltas=tuple(deltas),
            total_variables=len(new_values),
            generation=self.graph.generation,
        )

    def _snapshot(self) -> dict[str, tuple[Any, str | None]]:
        """name -> (value, error message) for every defined variable."""
        out: dict[str, tuple[Any, str | None]] = {}
        for var in self.graph:
            try:
                out[var.name] = (var.latest_value.value, None)
            except (CalcError, ArithmeticError, TypeError, ValueError) as e:
                logger.debug("Cannot evaluate %s: %s", var.name, e)
                out[var.name] = (None, str(e))
        return out

    def __repr__(self) -> str:
        return f"<Calculator {self.graph!r}>"
