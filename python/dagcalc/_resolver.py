"""Operator-precedence resolver: flat term/operator chains to expression trees.

A chain such as ``- 3 + - 5`` arrives from the front end as the flat list
``["-", Value(3), "+", "-", Value(5)]``. :class:`Resolver` nests it with
precedence climbing driven by an :class:`OperatorTable`::

    table = OperatorTable([
        Operator("+", 10, prefix_bp=100),
        Operator("-", 10, prefix_bp=100),
        Operator("*", 30),
    ])
    tree = Resolver(graph, table).resolve(chain)
    tree.debug_value()  # {"func": "+", "args": [{"func": "-", "args": [3]}, ...]}

Each operator becomes a :class:`FuncCall` named after its symbol, so the
graph must register a function under that symbol before evaluation.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from dagcalc._errors import ParseError
from dagcalc._expr import Expr

if TYPE_CHECKING:
    from dagcalc._graph import Graph


class Assoc(enum.Enum):
    LEFT = -1
    NONE = 0
    RIGHT = 1


@dataclass(frozen=True)
class Operator:
    """Binding behaviour of one operator symbol.

    ``prefix_bp`` is the binding power of the operand when the operator is
    used in prefix position; None means the operator cannot be prefix.
    """

    symbol: str
    bp: int
    assoc: Assoc = Assoc.LEFT
    prefix_bp: int | None = None

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("Operator symbol must be non-empty")
        if self.bp < 0:
            raise ValueError(f"Binding power of {self.symbol!r} must be non-negative")
        if self.prefix_bp is not None and self.prefix_bp < 0:
            raise ValueError(f"Prefix binding power of {self.symbol!r} must be non-negative")


class OperatorTable:
    """Mapping of operator symbol to :class:`Operator`."""

    def __init__(self, operators: Iterable[Operator] = ()) -> None:
        self._ops: dict[str, Operator] = {}
        for op in operators:
            self.set(op)

    def set(self, op: Operator) -> OperatorTable:
        self._ops[op.symbol] = op
        return self

    def get(self, symbol: str) -> Operator | None:
        return self._ops.get(symbol)

    def __getitem__(self, symbol: str) -> Operator:
        op = self._ops.get(symbol)
        if op is None:
            raise ParseError(f"Invalid operator: {symbol}")
        return op

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._ops

    def __iter__(self) -> Iterator[Operator]:
        return iter(self._ops.values())

    def copy(self) -> OperatorTable:
        return OperatorTable(self._ops.values())


DEFAULT_OPERATORS = OperatorTable([
    Operator("|", 4),
    Operator("^", 5),
    Operator("+", 10, prefix_bp=100),
    Operator("-", 10, prefix_bp=100),
    Operator("*", 30),
    Operator("/", 30),
    Operator("%", 30),
    Operator("**", 40, Assoc.RIGHT),
])


ChainItem = Union[str, Expr]


class OpChain:
    """Flat alternating sequence of terms and operator symbols.

    Strings are operators, :class:`Expr` instances are terms. A chain may
    open with one or more operators (prefix position).
    """

    __slots__ = ("items",)

    def __init__(self, items: Iterable[ChainItem] = ()) -> None:
        self.items: list[ChainItem] = []
        self.push(*items)

    def push(self, *items: ChainItem) -> OpChain:
        for item in items:
            if not isinstance(item, (str, Expr)):
                raise TypeError(f"Chain items must be operator strings or expressions, got {item!r}")
            self.items.append(item)
        return self

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return f"OpChain({self.items!r})"


class Resolver:
    """Precedence-climbing resolver bound to a graph and an operator table."""

    def __init__(self, graph: Graph, operators: OperatorTable) -> None:
        self.graph = graph
        self.operators = operators

    def resolve(self, chain: OpChain | Iterable[ChainItem]) -> Expr:
        """Nest *chain* into a single expression, or raise ParseError."""
        items = chain.items if isinstance(chain, OpChain) else list(chain)
        if len(items) == 1 and isinstance(items[0], Expr):
            return items[0]
        return _Climb(self.graph, self.operators, items).run()


class _Climb:
    """One pass over a chain with a forward-only cursor."""

    def __init__(self, graph: Graph, operators: OperatorTable, items: list[ChainItem]) -> None:
        self.graph = graph
        self.operators = operators
        self.items = items
        self.pos = 0

    def run(self) -> Expr:
        out = self.parse(0)
        if self.pos < len(self.items):
            raise ParseError(f"Unexpected item after expression: {self.items[self.pos]!r}")
        return out

    def next(self) -> ChainItem:
        if self.pos >= len(self.items):
            raise ParseError("No more tokens")
        item = self.items[self.pos]
        self.pos += 1
        return item

    def peek_bp(self) -> int:
        item = self.items[self.pos]
        if not isinstance(item, str):
            raise ParseError(f"Expected an operator, found {item!r}")
        return self.operators[item].bp

    def nud(self, item: ChainItem) -> Expr:
        if isinstance(item, Expr):
            return item
        op = self.operators[item]
        if op.prefix_bp is None:
            raise ParseError(f"{op.symbol} is not a valid prefix operator")
        return self.graph.new_func(op.symbol, [self.parse(op.prefix_bp)])

    def led(self, item: ChainItem, left: Expr) -> Expr:
        if not isinstance(item, str):
            raise ParseError(f"Expected an operator, found {item!r}")
        op = self.operators[item]
        if op.assoc is Assoc.LEFT:
            return self.graph.new_func(op.symbol, [left, self.parse(op.bp)])
        if op.assoc is Assoc.RIGHT:
            return self.graph.new_func(op.symbol, [left, self.parse(op.bp - 1)])
        raise ParseError(f"Operator {op.symbol} is non-associative")

    def parse(self, min_bp: int) -> Expr:
        left = self.nud(self.next())
        while self.pos < len(self.items) and self.peek_bp() > min_bp:
            left = self.led(self.next(), left)
        return left
