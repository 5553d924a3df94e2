"""Function registry and the builtin native function library."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dagcalc._expr import Value
    from dagcalc._graph import Graph
    from dagcalc._protocol import NativeFunction


# ---------------------------------------------------------------------------
# Builtin implementations - pure Python, no external deps.
# Each takes the owning graph and a list of evaluated argument Values and
# returns a Value built by that graph.
# ---------------------------------------------------------------------------


def _numbers(name: str, args: list[Value]) -> list[Any]:
    """Raw argument values, rejecting anything that is not a number or bool.

    NULL counts as 0.
    """
    out: list[Any] = []
    for arg in args:
        val = 0 if arg.value is None else arg.value
        if not isinstance(val, (int, float)):
            raise TypeError(f"{name}: non-numeric argument {val!r}")
        out.append(val)
    return out


def _integers(name: str, args: list[Value]) -> list[int]:
    out: list[int] = []
    for val in _numbers(name, args):
        if isinstance(val, float):
            if not val.is_integer():
                raise TypeError(f"{name}: non-integer argument {val!r}")
            val = int(val)
        out.append(int(val))
    return out


def _expect(name: str, args: list[Value], count: int) -> None:
    if len(args) != count:
        plural = "argument" if count == 1 else "arguments"
        raise ValueError(f"{name} requires exactly {count} {plural}")


def _builtin_plus(graph: Graph, args: list[Value]) -> Value:
    # strings concatenate when every argument is a string
    if args and all(isinstance(a.value, str) for a in args):
        return graph.new_str("".join(a.value for a in args))
    return graph.new_literal(sum(_numbers("+", args)))


def _builtin_mult(graph: Graph, args: list[Value]) -> Value:
    return graph.new_literal(math.prod(_numbers("*", args)))


def _builtin_minus(graph: Graph, args: list[Value]) -> Value:
    nums = _numbers("-", args)
    if not nums:
        raise ValueError("- requires at least 1 argument")
    if len(nums) == 1:
        return graph.new_literal(-nums[0])
    out = nums[0]
    for n in nums[1:]:
        out -= n
    return graph.new_literal(out)


def _builtin_div(graph: Graph, args: list[Value]) -> Value:
    nums = _numbers("/", args)
    if not nums:
        raise ValueError("/ requires at least 1 argument")
    out = nums[0]
    for n in nums[1:]:
        out /= n
    return graph.new_literal(out)


def _builtin_mod(graph: Graph, args: list[Value]) -> Value:
    _expect("%", args, 2)
    a, b = _numbers("%", args)
    return graph.new_literal(a % b)


def _builtin_pow(graph: Graph, args: list[Value]) -> Value:
    _expect("**", args, 2)
    a, b = _numbers("**", args)
    return graph.new_literal(a ** b)


def _builtin_root(graph: Graph, args: list[Value]) -> Value:
    _expect("root", args, 2)
    a, b = _numbers("root", args)
    return graph.new_literal(a ** (1 / b))


def _builtin_xor(graph: Graph, args: list[Value]) -> Value:
    _expect("^", args, 2)
    if all(isinstance(a.value, bool) for a in args):
        return graph.new_bool(args[0].value ^ args[1].value)
    a, b = _integers("^", args)
    return graph.new_literal(a ^ b)


def _builtin_or(graph: Graph, args: list[Value]) -> Value:
    _expect("|", args, 2)
    if all(isinstance(a.value, bool) for a in args):
        return graph.new_bool(args[0].value or args[1].value)
    a, b = _integers("|", args)
    return graph.new_literal(a | b)


def _unary(name: str, fn: Any) -> NativeFunction:
    def _builtin(graph: Graph, args: list[Value]) -> Value:
        _expect(name, args, 1)
        (val,) = _numbers(name, args)
        return graph.new_literal(fn(val))

    _builtin.__name__ = f"_builtin_{name}"
    return _builtin


def _round_half_up(val: float) -> int:
    return math.floor(val + 0.5)


_BUILTINS: dict[str, NativeFunction] = {
    # Arithmetic operators
    "+": _builtin_plus,
    "*": _builtin_mult,
    "-": _builtin_minus,
    "/": _builtin_div,
    "%": _builtin_mod,
    "**": _builtin_pow,
    # Bitwise operators
    "^": _builtin_xor,
    "|": _builtin_or,
    # Math
    "ceil": _unary("ceil", math.ceil),
    "floor": _unary("floor", math.floor),
    "round": _unary("round", _round_half_up),
    "root": _builtin_root,
    "log": _unary("log", math.log),
    "log10": _unary("log10", math.log10),
    "log2": _unary("log2", math.log2),
}


class FunctionRegistry:
    """Registry of native function implementations, keyed by exact name.

    Starts empty unless given initial functions; see :func:`populate`.
    """

    def __init__(self, functions: Mapping[str, NativeFunction] | None = None) -> None:
        self._functions: dict[str, NativeFunction] = dict(functions or {})

    def register(self, name: str, func: NativeFunction) -> None:
        self._functions[name] = func

    def get(self, name: str) -> NativeFunction | None:
        return self._functions.get(name)

    def has(self, name: str) -> bool:
        return name in self._functions

    @property
    def supported_functions(self) -> frozenset[str]:
        return frozenset(self._functions.keys())


def populate(graph: Graph) -> Graph:
    """Register every builtin on *graph* and return it."""
    for name, func in _BUILTINS.items():
        graph.register_function(name, func)
    return graph
