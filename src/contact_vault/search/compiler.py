"""Compile free-text search strings into predicate trees.

Supported input:
- ``empty <field>``      — contacts whose field is null; an unknown field
                            name matches contacts with ANY null field
- plain text             — one substring match of the whole string across
                            all searchable fields
- ``AND`` / ``OR`` / ``NOT`` operators and ``"quoted phrases"``

The operator parse is a single left-to-right pass without precedence or
parentheses. ``OR`` pushes an independent top-level entry and every entry is
ANDed at the end, so ``John OR Jane Smith`` requires all three terms. That is
the established search behaviour and is kept as-is.

compile_query() never raises: incomplete clauses (a trailing operator, an
unmatched quote) are dropped.
"""

from __future__ import annotations

import re

from contact_vault.core.fields import SEARCHABLE_FIELDS
from contact_vault.observability import get_logger
from contact_vault.search.predicates import And, Contains, IsNull, MatchAll, Not, Or, PredicateNode

logger = get_logger(__name__)

OPERATORS = frozenset({"AND", "OR", "NOT"})

_EMPTY_PREFIX = "empty "
_TOKEN_RE = re.compile(r'(?:[^\s"]+|"[^"]*")+')


def tokenize(query: str) -> list[str]:
    """Split on whitespace, keeping double-quoted substrings in one token.

    Quotes are left on the raw tokens so a quoted operator word can be told
    apart from a real operator. An unmatched quote character is skipped.
    """
    return _TOKEN_RE.findall(query)


def _is_operator(token: str) -> bool:
    return token.upper() in OPERATORS


def _term(token: str) -> str:
    return token.replace('"', "")


def _compile_empty_field(field_name: str) -> PredicateNode:
    if field_name in SEARCHABLE_FIELDS:
        return IsNull(field_name)
    return Or(tuple(IsNull(field) for field in SEARCHABLE_FIELDS))


def compile_query(query: str) -> PredicateNode:
    """Compile a raw search string into a predicate tree.

    Args:
        query: The search text as typed by the user.

    Returns:
        The root PredicateNode. MatchAll for an empty query.
    """
    normalized = query.strip().lower()
    if normalized.startswith(_EMPTY_PREFIX):
        return _compile_empty_field(normalized[len(_EMPTY_PREFIX) :].strip())

    tokens = tokenize(query)
    if not tokens:
        return MatchAll()

    if not any(_is_operator(token) for token in tokens):
        return Contains(query.strip())

    entries: list[PredicateNode] = []
    index = 0
    while index < len(tokens):
        token = tokens[index].strip()
        keyword = token.upper()

        if keyword in OPERATORS:
            index += 1
            if index >= len(tokens):
                logger.debug("Ignoring trailing search operator", operator=keyword)
                break
            leaf = Contains(_term(tokens[index]))
            if keyword == "NOT":
                entries.append(Not(leaf))
            elif keyword == "AND":
                if entries:
                    entries[-1] = And((entries[-1], leaf))
                else:
                    logger.debug("Dropping AND clause with no left operand", term=leaf.term)
            else:
                entries.append(leaf)
        else:
            entries.append(Contains(_term(token)))
        index += 1

    if not entries:
        return MatchAll()
    if len(entries) == 1:
        return entries[0]
    return And(tuple(entries))
