"""Decode derived query method names into (property, operator) conditions.

    findByNameAndStatusGreaterThan
      -> [("name", "="), ("status", ">")]

Grammar::

    <verb><subject>By<Condition>[OrderBy<...>]
    verb      find | read | get | query | search | stream |
              count | exists | delete | remove
    subject   optional: Distinct, All, First<N>, Top<N>, an entity name ...
    Condition segments joined by And / Or, each <Property>[<Keyword>]

Keyword detection works on the segment suffix, longest keyword first, so
``NotNull`` is never read as ``Not`` + ``Null``.  A segment that is itself a
known property name is taken literally (``checkIn`` is a property, not
``check IN``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from idxprobe.schema.naming import decapitalize

# The subject is lazy: the first ``By<Upper>`` after the verb starts the condition.
_RE_DERIVED = re.compile(
    r"^(find|read|get|query|search|stream|count|exists|delete|remove)"
    r"((?:[A-Z][A-Za-z0-9]*?)??)By(?=[A-Z]|$)(.*)$"
)
_RE_ORDER_BY = re.compile(r"OrderBy(?=[A-Z])")
_RE_CONNECTOR = re.compile(r"(?<=[a-z0-9_])(?:And|Or)(?=[A-Z])")
_RE_IGNORE_CASE = re.compile(r"(?:AllIgnoreCase|AllIgnoringCase)$")
_RE_SEGMENT_IGNORE_CASE = re.compile(r"(?:IgnoreCase|IgnoringCase)$")

# Segment suffix -> SQL operator.
KEYWORDS: dict[str, str] = {
    "LessThanEqual": "<=",
    "IsLessThanEqual": "<=",
    "LessThan": "<",
    "IsLessThan": "<",
    "Before": "<",
    "IsBefore": "<",
    "GreaterThanEqual": ">=",
    "IsGreaterThanEqual": ">=",
    "GreaterThan": ">",
    "IsGreaterThan": ">",
    "After": ">",
    "IsAfter": ">",
    "Between": "BETWEEN",
    "IsBetween": "BETWEEN",
    "IsNotNull": "IS NOT NULL",
    "NotNull": "IS NOT NULL",
    "IsNull": "IS NULL",
    "Null": "IS NULL",
    "NotLike": "NOT LIKE",
    "IsNotLike": "NOT LIKE",
    "NotContaining": "NOT LIKE",
    "Like": "LIKE",
    "IsLike": "LIKE",
    "StartingWith": "LIKE",
    "IsStartingWith": "LIKE",
    "StartsWith": "LIKE",
    "EndingWith": "LIKE",
    "IsEndingWith": "LIKE",
    "EndsWith": "LIKE",
    "Containing": "LIKE",
    "IsContaining": "LIKE",
    "Contains": "LIKE",
    "NotIn": "NOT IN",
    "IsNotIn": "NOT IN",
    "In": "IN",
    "IsIn": "IN",
    "IsNot": "<>",
    "Not": "<>",
    "IsTrue": "=",
    "True": "=",
    "IsFalse": "=",
    "False": "=",
    "Equals": "=",
    "Is": "=",
}

_KEYWORDS_LONGEST_FIRST = sorted(KEYWORDS, key=len, reverse=True)


@dataclass(frozen=True)
class DerivedCondition:
    """One decoded condition: a property path and an operator."""

    prop: str
    operator: str
    segment: str


def decode_method_name(
    method_name: str,
    known_properties: Iterable[str] = (),
) -> list[DerivedCondition] | None:
    """Decode a derived query method name.

    Returns None when *method_name* does not follow the naming convention,
    and an empty list for a condition-less name such as
    ``findAllByOrderByCreatedAtDesc``.
    """
    m = _RE_DERIVED.match(method_name)
    if m is None:
        return None
    condition = m.group(3)

    order = _RE_ORDER_BY.search(condition)
    if order is not None:
        condition = condition[: order.start()]
    condition = _RE_IGNORE_CASE.sub("", condition)
    if not condition:
        return []

    known = set(known_properties)
    conditions: list[DerivedCondition] = []
    for segment in _RE_CONNECTOR.split(condition):
        if not segment:
            continue
        segment = _RE_SEGMENT_IGNORE_CASE.sub("", segment)
        prop, operator = split_keyword(segment, known)
        if prop:
            conditions.append(DerivedCondition(prop, operator, segment))
    return conditions


def split_keyword(segment: str, known_properties: set[str] | frozenset[str] = frozenset()) -> tuple[str, str]:
    """Split ``StatusGreaterThan`` into ``("status", ">")``.

    No keyword means equality.
    """
    whole = decapitalize(segment)
    if whole in known_properties:
        return whole, "="
    for keyword in _KEYWORDS_LONGEST_FIRST:
        if segment.endswith(keyword) and len(segment) > len(keyword):
            return decapitalize(segment[: -len(keyword)]), KEYWORDS[keyword]
    return whole, "="
