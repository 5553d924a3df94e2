"""Native function and CalcEngine protocols, recalculation result dataclasses."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from dagcalc._expr import Value, Var
    from dagcalc._graph import Graph


class NativeFunction(Protocol):
    """Signature of a registered function: ``(graph, resolved_args) -> Value``."""

    def __call__(self, graph: Graph, args: list[Value]) -> Value: ...


@dataclass(frozen=True)
class VarDelta:
    """A single variable's value change from recalculation."""

    name: str
    old_value: float | int | str | bool | None
    new_value: float | int | str | bool | None
    error: str | None = None  # evaluation failure after the change, if any


@dataclass(frozen=True)
class RecalcResult:
    """Result of a batch of variable redefinitions."""

    assignments: dict[str, str | None]  # name -> new source text
    deltas: tuple[VarDelta, ...]  # variables that changed
    total_variables: int = 0
    generation: int = 0  # graph generation after the batch

    @property
    def changed_variables(self) -> int:
        return len(self.deltas)

    @property
    def propagation_ratio(self) -> float:
        if self.total_variables == 0:
            return 0.0
        return len(self.deltas) / self.total_variables


@runtime_checkable
class CalcEngine(Protocol):
    """Protocol for embeddable calculation engines."""

    def define(self, name: str, source: str | None) -> Var:
        """Parse *source* and bind it to *name* (None clears it to NULL)."""
        ...

    def value(self, name: str) -> Any:
        """Current plain value of *name*, re-evaluating as needed."""
        ...

    def recalculate(
        self,
        assignments: Mapping[str, str | None],
        tolerance: float = 1e-10,
    ) -> RecalcResult:
        """Apply a batch of definitions and report which variables changed."""
        ...
