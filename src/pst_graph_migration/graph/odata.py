"""Structured OData ``$filter`` expressions.

Filters are built as small predicate trees and serialized in one place, so
quoting lives in :func:`render_literal` instead of at every call site.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pst_graph_migration.utils.dates import odata_datetime

type FilterValue = str | int | bool | datetime
type Operator = Literal["eq", "ne", "ge", "gt", "le", "lt"]


def render_literal(value: FilterValue) -> str:
    """Serialize a value as an OData literal.

    Args:
        value: Python value.

    Returns:
        OData literal text; strings are single-quoted with ``'`` doubled.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, datetime):
        return odata_datetime(value)
    return "'" + value.replace("'", "''") + "'"


class FilterExpr(ABC):
    """A node of a ``$filter`` predicate tree."""

    @abstractmethod
    def render(self, prefix: str = "") -> str:
        """Serialize the expression.

        Args:
            prefix: Lambda variable path prepended to property names.

        Returns:
            OData filter text.
        """

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class Comparison(FilterExpr):
    """``<property> <op> <literal>``."""

    field: str
    op: Operator
    value: FilterValue

    def render(self, prefix: str = "") -> str:
        """Serialize as ``prefix/field op literal``."""
        return f"{prefix}{self.field} {self.op} {render_literal(self.value)}"


@dataclass(frozen=True)
class AllOf(FilterExpr):
    """Conjunction of clauses."""

    clauses: tuple[FilterExpr, ...]

    def render(self, prefix: str = "") -> str:
        """Join clauses with ``and``."""
        return " and ".join(clause.render(prefix) for clause in self.clauses)


@dataclass(frozen=True)
class AnyOf(FilterExpr):
    """``collection/any(alias:predicate)`` lambda over a collection property."""

    collection: str
    predicate: FilterExpr
    alias: str = "e"

    def render(self, prefix: str = "") -> str:
        """Serialize as an ``any`` lambda."""
        inner = self.predicate.render(f"{self.alias}/")
        return f"{prefix}{self.collection}/any({self.alias}:{inner})"


def eq(field: str, value: FilterValue) -> Comparison:
    """Build ``field eq value``."""
    return Comparison(field=field, op="eq", value=value)


def ge(field: str, value: FilterValue) -> Comparison:
    """Build ``field ge value``."""
    return Comparison(field=field, op="ge", value=value)


def le(field: str, value: FilterValue) -> Comparison:
    """Build ``field le value``."""
    return Comparison(field=field, op="le", value=value)


def all_of(*clauses: FilterExpr | None) -> FilterExpr:
    """Combine clauses with ``and``, ignoring ``None`` placeholders.

    Args:
        *clauses: Clauses; ``None`` entries are dropped.

    Returns:
        The single remaining clause, or an :class:`AllOf`.

    Raises:
        ValueError: If no clause remains.
    """
    present = tuple(clause for clause in clauses if clause is not None)
    if not present:
        raise ValueError("all_of() needs at least one clause")
    if len(present) == 1:
        return present[0]
    return AllOf(clauses=present)


def any_of(collection: str, predicate: FilterExpr, *, alias: str = "e") -> AnyOf:
    """Build ``collection/any(alias:predicate)``."""
    return AnyOf(collection=collection, predicate=predicate, alias=alias)
