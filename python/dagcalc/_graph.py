"""Expression graph: owns literals, functions, units and named variables.

The graph guarantees no variable's definition can reach its own name by
following variable references, and carries the generation counter that
expression caches are stamped with.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from dagcalc._errors import CircularReferenceError
from dagcalc._expr import Expr, FuncCall, Value, Var, VarRef
from dagcalc._functions import FunctionRegistry
from dagcalc._protocol import NativeFunction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Units:
    """Unit descriptor: numerator and denominator unit names.

    Obtain instances through :meth:`Graph.intern_units` so that equal name
    sets share one instance.
    """

    num: frozenset[str]
    den: frozenset[str]

    def __str__(self) -> str:
        num = "*".join(sorted(self.num)) or "1"
        if not self.den:
            return num
        return f"{num}/{'*'.join(sorted(self.den))}"


class Graph:
    """Owning context for expressions, variables, functions and units.

    Usage::

        g = Graph()
        g.register_function("+", lambda graph, args: graph.new_num(sum(a.value for a in args)))
        g.set_value("x", g.new_num(3))
        g.set_value("y", g.new_func("+", [g.new_var_ref("x"), g.new_num(2)]))
        g.lookup_variable("y").latest_value.value  # 5
    """

    def __init__(self) -> None:
        self.generation = 0
        self.NULL = Value(self, None)
        self.ZERO = Value(self, 0)
        self.ONE = Value(self, 1)
        self.TRUE = Value(self, True)
        self.FALSE = Value(self, False)
        self.functions = FunctionRegistry()
        # insertion ordered: creation order of variables
        self._vars: dict[str, Var] = {}
        self._units: dict[tuple[frozenset[str], frozenset[str]], Units] = {}

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    def register_function(self, name: str, func: NativeFunction) -> Graph:
        """Install or overwrite a native function. Returns the graph for chaining."""
        self.functions.register(name, func)
        return self

    def get_function(self, name: str) -> NativeFunction | None:
        return self.functions.get(name)

    def intern_units(
        self, num: Iterable[str] | None, den: Iterable[str] | None
    ) -> Units:
        """Canonical :class:`Units` for the given names, independent of order."""
        key = (frozenset(num or ()), frozenset(den or ()))
        units = self._units.get(key)
        if units is None:
            units = Units(*key)
            self._units[key] = units
        return units

    # ------------------------------------------------------------------
    # Expression constructors
    # ------------------------------------------------------------------

    def new_bool(self, value: bool) -> Value:
        return self.TRUE if value else self.FALSE

    def new_num(self, value: int | float) -> Value:
        if type(value) is int:
            if value == 0:
                return self.ZERO
            if value == 1:
                return self.ONE
        return Value(self, value)

    def new_str(self, value: str) -> Value:
        return Value(self, value)

    def new_literal(self, value: Any) -> Value:
        """Wrap a plain Python value, reusing singletons where they apply."""
        if value is None:
            return self.NULL
        if isinstance(value, bool):
            return self.new_bool(value)
        if isinstance(value, (int, float)):
            return self.new_num(value)
        if isinstance(value, str):
            return self.new_str(value)
        raise TypeError(f"Unsupported literal type: {type(value).__name__}")

    def new_func(self, name: str, args: Iterable[Expr]) -> FuncCall:
        """Build a function call. The function name is only checked at evaluation."""
        args = list(args)
        for arg in args:
            self._check_owner(arg)
        return FuncCall(self, name, args)

    def new_var_ref(self, name: str) -> VarRef:
        return VarRef(self, name)

    def new_var(self, name: str, expr: Expr | None = None, description: str | None = None) -> Var:
        return self.set_value(name, expr, description)

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def lookup_variable(self, name: str, create: bool = False) -> Var | None:
        """Return the variable called *name*, creating an empty one if asked."""
        var = self._vars.get(name)
        if var is None and create:
            var = Var(self, name, self.NULL)
            self._vars[name] = var
        return var

    def set_value(
        self, name: str, expr: Expr | None, description: str | None = None,
    ) -> Var:
        """Bind *name* to *expr* (NULL when None) and bump the generation.

        Raises CircularReferenceError, leaving any previous binding in place,
        if *expr* can reach *name* through variable references. A given
        *description* replaces the variable's current one.
        """
        if expr is None:
            expr = self.NULL
        self._check_owner(expr)
        if self.refers_to(expr, name):
            logger.debug("Rejected circular definition for %s", name)
            raise CircularReferenceError(name)
        var = self._vars.get(name)
        if var is None:
            var = self._vars[name] = Var(self, name, expr)
        else:
            var.expr = expr
        if description is not None:
            var.description = description
        self.generation += 1
        logger.debug("Bound %s (generation %d)", name, self.generation)
        return var

    def refers_to(
        self, expr: Expr, name: str, pending: Mapping[str, Expr] | None = None,
    ) -> bool:
        """True if *expr* reaches variable *name* through the live reference graph.

        References to other bound variables are followed into their current
        definitions, or into their entry in *pending* when it has one. Each
        variable is expanded at most once.
        """
        stack: list[Expr] = [expr]
        expanded: set[str] = set()
        while stack:
            node = stack.pop()
            if isinstance(node, Value):
                continue
            if isinstance(node, VarRef):
                if node.name == name:
                    return True
                if node.name in expanded:
                    continue
                expanded.add(node.name)
                if pending is not None and node.name in pending:
                    stack.append(pending[node.name])
                    continue
                var = self._vars.get(node.name)
                if var is not None:
                    stack.append(var.expr)
            elif isinstance(node, FuncCall):
                stack.extend(node.args)
            else:
                raise TypeError(f"Unknown expression node: {node!r}")
        return False

    def variable_names(self) -> list[str]:
        return list(self._vars)

    def __contains__(self, name: object) -> bool:
        return name in self._vars

    def __iter__(self) -> Iterator[Var]:
        return iter(list(self._vars.values()))

    def _check_owner(self, expr: Expr) -> None:
        if expr.graph is not self:
            raise ValueError(f"{expr!r} belongs to a different graph")

    def __repr__(self) -> str:
        return f"<Graph vars={len(self._vars)} generation={self.generation}>"
