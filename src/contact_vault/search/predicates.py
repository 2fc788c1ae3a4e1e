"""Predicate tree produced by the query compiler.

Nodes are frozen dataclasses, so a compiled tree cannot change after it is
built. Each node can be evaluated against any object exposing the searchable
attributes via matches(); contact_vault.search.sql translates the same tree
into a SQLAlchemy clause for the record store.

Substring matching is case-insensitive everywhere. A null field never
contains a term.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from contact_vault.core.fields import SEARCHABLE_FIELDS


@dataclass(frozen=True)
class MatchAll:
    """Matches every record. Compiled from an empty query."""

    def matches(self, record: Any) -> bool:
        return True


@dataclass(frozen=True)
class Contains:
    """Matches when ANY of `fields` contains `term` as a substring."""

    term: str
    fields: tuple[str, ...] = SEARCHABLE_FIELDS

    def matches(self, record: Any) -> bool:
        needle = self.term.lower()
        for field in self.fields:
            value = getattr(record, field, None)
            if value is not None and needle in value.lower():
                return True
        return False


@dataclass(frozen=True)
class IsNull:
    """Matches when `field` is null or absent."""

    field: str

    def matches(self, record: Any) -> bool:
        return getattr(record, self.field, None) is None


@dataclass(frozen=True)
class And:
    children: tuple[PredicateNode, ...]

    def matches(self, record: Any) -> bool:
        return all(child.matches(record) for child in self.children)


@dataclass(frozen=True)
class Or:
    children: tuple[PredicateNode, ...]

    def matches(self, record: Any) -> bool:
        return any(child.matches(record) for child in self.children)


@dataclass(frozen=True)
class Not:
    child: PredicateNode

    def matches(self, record: Any) -> bool:
        return not self.child.matches(record)


PredicateNode = Union[MatchAll, Contains, IsNull, And, Or, Not]
