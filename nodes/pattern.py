"""Search patterns for listing and selecting nodes.

A pattern is a list of whitespace separated terms that must all match:

    milk                 content contains "milk" (case-insensitive)
    tag:shopping         node is tagged "shopping"
    #shopping            same as tag:shopping
    !done  !tag:done     negated terms
    "buy milk"           quoted terms may contain spaces
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import shlex

from sqlalchemy import and_, exists, not_, true
from sqlalchemy.sql.elements import ColumnElement

from .models import Node, Tag

TAG_PREFIXES = ("tag:", "#")


@dataclass(frozen=True)
class Term:
    value: str
    tag: bool = False
    negate: bool = False


def parse_pattern(text: Optional[str]) -> list[Term]:
    if not text:
        return []
    try:
        words = shlex.split(text)
    except ValueError as e:
        raise ValueError(f"Invalid pattern '{text}': {e}") from e

    terms = []
    for word in words:
        negate = word.startswith("!")
        if negate:
            word = word[1:]
        tag = False
        for prefix in TAG_PREFIXES:
            if word.startswith(prefix):
                word = word[len(prefix):]
                tag = True
                break
        if word:
            terms.append(Term(word, tag=tag, negate=negate))
    return terms


def _term_clause(term: Term) -> ColumnElement[bool]:
    if term.tag:
        clause = exists().where(Tag.node == Node.id, Tag.tag == term.value)
    else:
        clause = Node.content.icontains(term.value, autoescape=True)
    return not_(clause) if term.negate else clause


def to_clause(terms: list[Term]) -> ColumnElement[bool]:
    if not terms:
        return true()
    return and_(*(_term_clause(t) for t in terms))
