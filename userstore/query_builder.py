"""Assemble paginated user searches from optional filter criteria.

Each predicate is built together with its bound value: the value travels
inside the clause as a :func:`~sqlalchemy.bindparam`, and the accumulator
records the pair in a single append.  Clauses and parameters therefore
cannot drift out of order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Column, ColumnElement, Select, bindparam, select

from .models import USER_COLUMNS, users
from .records import QueryFilter

__all__ = ["SearchQuery", "build_search_query"]


@dataclass(frozen=True, slots=True)
class SearchQuery:
    """A ready-to-execute search and the values bound to its placeholders, in order."""

    statement: Select[Any]
    parameters: tuple[Any, ...]


class _PredicateAccumulator:
    def __init__(self) -> None:
        self._pairs: list[tuple[ColumnElement[bool], Any]] = []

    def add(self, column: Column[Any], value: Any) -> None:
        # Blank strings from form input count as "not filtered".
        if value is None or value == "":
            return
        self._pairs.append((column == bindparam(column.key, value, type_=column.type), value))

    @property
    def clauses(self) -> list[ColumnElement[bool]]:
        return [clause for clause, _ in self._pairs]

    @property
    def values(self) -> list[Any]:
        return [value for _, value in self._pairs]


def build_search_query(query_filter: QueryFilter) -> SearchQuery:
    """Return the SELECT for *query_filter* ordered by id and paginated.

    Predicates appear in the order department, role, active and only for
    criteria that are set.
    """

    predicates = _PredicateAccumulator()
    predicates.add(users.c.department, query_filter.department)
    predicates.add(users.c.role, query_filter.role)
    predicates.add(users.c.active, query_filter.active)

    statement = (
        select(*USER_COLUMNS)
        .where(*predicates.clauses)
        .order_by(users.c.id.asc())
        .limit(query_filter.size)
        .offset(query_filter.offset)
    )
    parameters = (*predicates.values, query_filter.size, query_filter.offset)
    return SearchQuery(statement=statement, parameters=parameters)
