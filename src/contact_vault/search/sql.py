"""Translate predicate trees into SQLAlchemy boolean clauses.

Substring leaves compile to ``lower(coalesce(col, '')) LIKE '%term%'`` with
LIKE wildcards in the term escaped, which keeps SQL results identical to
PredicateNode.matches(): case-insensitive, and a null column never matches
(so NOT over a null column is true rather than NULL).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import ColumnElement, String, and_, false, func, not_, or_, true

from contact_vault.search.predicates import And, Contains, IsNull, MatchAll, Not, Or, PredicateNode


def to_clause(node: PredicateNode, model: Any) -> ColumnElement[bool]:
    """Build a WHERE clause for `model` from a predicate tree.

    Args:
        node: Root of the compiled predicate tree.
        model: ORM class exposing the searchable columns as attributes.

    Returns:
        A SQLAlchemy boolean expression.

    Raises:
        TypeError: If the tree contains an unknown node type.
    """
    if isinstance(node, MatchAll):
        return true()
    if isinstance(node, Contains):
        if not node.fields:
            return false()
        needle = node.term.lower()
        return or_(
            *(
                func.lower(func.coalesce(getattr(model, field), ""), type_=String).contains(
                    needle, autoescape=True
                )
                for field in node.fields
            )
        )
    if isinstance(node, IsNull):
        return getattr(model, node.field).is_(None)
    if isinstance(node, And):
        return and_(*(to_clause(child, model) for child in node.children))
    if isinstance(node, Or):
        return or_(*(to_clause(child, model) for child in node.children))
    if isinstance(node, Not):
        return not_(to_clause(node.child, model))
    raise TypeError(f"Unsupported predicate node: {type(node).__name__}")
