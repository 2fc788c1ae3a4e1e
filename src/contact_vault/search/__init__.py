"""Search query compiler — free text to predicate trees.

compile_query() turns a search string into an immutable PredicateNode tree;
to_clause() translates that tree into a SQLAlchemy WHERE clause.
"""

from contact_vault.search.compiler import compile_query, tokenize
from contact_vault.search.predicates import And, Contains, IsNull, MatchAll, Not, Or, PredicateNode
from contact_vault.search.sql import to_clause

__all__ = [
    "And",
    "Contains",
    "IsNull",
    "MatchAll",
    "Not",
    "Or",
    "PredicateNode",
    "compile_query",
    "to_clause",
    "tokenize",
]
