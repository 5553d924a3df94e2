"""Expression nodes: literal values, function calls, variable references.

Nodes are structurally immutable once built. Each node memoizes its last
evaluated value together with the graph generation it was computed at;
any variable redefinition bumps the generation and so invalidates every
cached value on the next read.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dagcalc._errors import InvalidReferenceError

if TYPE_CHECKING:
    from dagcalc._graph import Graph


class Expr:
    """Base class for expression nodes owned by a :class:`Graph`."""

    __slots__ = ("graph", "_last_generation", "_latest")

    def __init__(self, graph: Graph) -> None:
        self.graph = graph
        self._last_generation = -1
        self._latest: Value | None = None

    @property
    def latest_value(self) -> Value:
        """Current value, recomputed only if the graph changed since the last read."""
        if self._latest is not None and self._is_current():
            return self._latest
        return self._refresh()

    def _is_current(self) -> bool:
        return self._latest is not None and self._last_generation >= self.graph.generation

    def _refresh(self) -> Value:
        """Evaluate stale dependencies bottom-up on an explicit stack, then self.

        A node is evaluated only after every node it reads has been stamped
        with the current generation, so ``_eval`` never recurses.
        """
        generation = self.graph.generation
        result = self.graph.NULL
        stack: list[tuple[Expr, bool]] = [(self, False)]
        while stack:
            node, ready = stack.pop()
            if node._is_current():
                continue
            if ready:
                result = node._eval()
                node._latest = result
                node._last_generation = generation
                continue
            stack.append((node, True))
            # reversed so arguments evaluate left to right
            stack.extend((dep, False) for dep in reversed(node._dependencies()))
        return result

    def _dependencies(self) -> tuple[Expr, ...]:
        return ()

    def _eval(self) -> Value:
        raise NotImplementedError

    def debug_value(self) -> Any:
        raise NotImplementedError


class Value(Expr):
    """Immutable literal: None, bool, int, float or str."""

    __slots__ = ("value",)

    def __init__(self, graph: Graph, value: Any) -> None:
        super().__init__(graph)
        self.value = value

    @property
    def latest_value(self) -> Value:
        return self

    def _is_current(self) -> bool:
        return True

    def _eval(self) -> Value:
        return self

    def debug_value(self) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"Value({self.value!r})"


class FuncCall(Expr):
    """Applies a named native function to the values of its arguments."""

    __slots__ = ("name", "args")

    def __init__(self, graph: Graph, name: str, args: list[Expr]) -> None:
        super().__init__(graph)
        self.name = name
        self.args = tuple(args)

    def _dependencies(self) -> tuple[Expr, ...]:
        return self.args

    def _eval(self) -> Value:
        values = [arg.latest_value for arg in self.args]
        func = self.graph.get_function(self.name)
        if func is None:
            raise InvalidReferenceError(self.name)
        return func(self.graph, values)

    def debug_value(self) -> Any:
        return {"func": self.name, "args": [a.debug_value() for a in self.args]}

    def __repr__(self) -> str:
        args = ", ".join(repr(a) for a in self.args)
        return f"FuncCall({self.name!r}, [{args}])"


class VarRef(Expr):
    """Reference to a variable by name, resolved at evaluation time."""

    __slots__ = ("name",)

    def __init__(self, graph: Graph, name: str) -> None:
        super().__init__(graph)
        self.name = name

    def _dependencies(self) -> tuple[Expr, ...]:
        var = self.graph.lookup_variable(self.name)
        return () if var is None else (var.expr,)

    def _eval(self) -> Value:
        var = self.graph.lookup_variable(self.name)
        if var is None:
            return self.graph.NULL
        return var.latest_value

    def debug_value(self) -> Any:
        return f"Var({self.name})"

    def __repr__(self) -> str:
        return f"VarRef({self.name!r})"


class Var:
    """Named slot holding the current defining expression of a variable.

    Only :meth:`Graph.set_value` rebinds ``expr``.
    """

    __slots__ = ("graph", "name", "expr", "description")

    def __init__(self, graph: Graph, name: str, expr: Expr, description: str = "") -> None:
        self.graph = graph
        self.name = name
        self.expr = expr
        self.description = description

    @property
    def latest_value(self) -> Value:
        return self.expr.latest_value

    def __repr__(self) -> str:
        return f"<Var {self.name}={self.expr!r}>"
