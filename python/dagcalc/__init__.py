"""dagcalc - lazily evaluated, cycle-free named formulas.

Usage::

    from dagcalc import Calculator

    calc = Calculator()
    calc.define("x", "3")
    calc.define("y", "5")
    calc.define("z", "x + y")
    calc.value("z")  # 8

    calc.define("x", "z")  # raises CircularReferenceError, x stays 3
"""

from dagcalc._errors import CalcError, CircularReferenceError, InvalidReferenceError, ParseError
from dagcalc._evaluator import Calculator
from dagcalc._expr import Expr, FuncCall, Value, Var, VarRef
from dagcalc._functions import FunctionRegistry, populate
from dagcalc._graph import Graph, Units
from dagcalc._parser import FormulaParser, LexError, Token, tokenize
from dagcalc._protocol import CalcEngine, NativeFunction, RecalcResult, VarDelta
from dagcalc._resolver import DEFAULT_OPERATORS, Assoc, OpChain, Operator, OperatorTable, Resolver

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Assoc",
    "CalcEngine",
    "CalcError",
    "Calculator",
    "CircularReferenceError",
    "DEFAULT_OPERATORS",
    "Expr",
    "FormulaParser",
    "FuncCall",
    "FunctionRegistry",
    "Graph",
    "InvalidReferenceError",
    "LexError",
    "NativeFunction",
    "OpChain",
    "Operator",
    "OperatorTable",
    "ParseError",
    "RecalcResult",
    "Resolver",
    "Token",
    "Units",
    "Value",
    "Var",
    "VarDelta",
    "VarRef",
    "populate",
    "tokenize",
]
