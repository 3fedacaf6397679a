"""
ShortLex Ordering Validator.

WHAT THIS DOES:
Checks that a category sequence obeys the two structural invariants every
downstream computation relies on:

1. ShortLex order: every code of length k comes before any code of length
   k+1, and codes of equal length are in lexicographic order.
2. Depth/parent consistency: roots have depth 0, every other category has
   depth = parent.depth + 1, and a parent always sorts before its children.

It also rejects duplicate codes, names and stable_ids.

WHY IT NEVER REORDERS:
Matrix rows, columns and historical cells are positional views over this
order. Silently "fixing" a bad sequence would hide a broken generator and
shift every cell. The validator only reports; the caller decides.

EXAMPLE:
    ["A", "B", "A1", "A2", "B1"]  → valid
    ["A", "A1", "B"]             → length_order at position 1 (A1 before B)
    ["B", "A"]                   → lexicographic_order at position 0

USAGE:
    result = validate_categories(categories)
    if not result.valid:
        print(result.error.message)
"""

import logging
from typing import Sequence

from intentguard.services.taxonomy.models import (
    Category,
    OrderingViolation,
    ValidationResult,
    ViolationRule,
)

logger = logging.getLogger(__name__)


def validate_order(categories: Sequence[Category]) -> list[OrderingViolation]:
    """Check ShortLex order over adjacent pairs only."""
    violations = []

    for k in range(len(categories) - 1):
        first, second = categories[k], categories[k + 1]

        if len(first.code) > len(second.code):
            violations.append(OrderingViolation(
                rule=ViolationRule.LENGTH_ORDER,
                position=k,
                first_code=first.code,
                second_code=second.code,
                message=(
                    f"'{first.code}' (length {len(first.code)}) sorts before "
                    f"'{second.code}' (length {len(second.code)})"
                ),
            ))
        elif len(first.code) == len(second.code) and first.code > second.code:
            violations.append(OrderingViolation(
                rule=ViolationRule.LEXICOGRAPHIC_ORDER,
                position=k,
                first_code=first.code,
                second_code=second.code,
                message=f"'{first.code}' sorts before '{second.code}' at equal length",
            ))

    return violations


def validate_uniqueness(categories: Sequence[Category]) -> list[OrderingViolation]:
    """Reject duplicate codes, names and stable_ids within one set."""
    violations = []
    seen_codes: dict[str, int] = {}
    seen_names: dict[str, int] = {}
    seen_ids: dict[str, int] = {}

    for k, category in enumerate(categories):
        checks = (
            (seen_codes, category.code, ViolationRule.DUPLICATE_CODE, "code"),
            (seen_names, category.name, ViolationRule.DUPLICATE_NAME, "name"),
            (seen_ids, category.stable_id, ViolationRule.DUPLICATE_STABLE_ID, "stable_id"),
        )
        for seen, key, rule, label in checks:
            if key in seen:
                first = categories[seen[key]]
                violations.append(OrderingViolation(
                    rule=rule,
                    position=seen[key],
                    first_code=first.code,
                    second_code=category.code,
                    message=f"{label} '{key}' used by both '{first.code}' and '{category.code}'",
                ))
            else:
                seen[key] = k

    return violations


def validate_hierarchy(categories: Sequence[Category]) -> list[OrderingViolation]:
    """Check depth/parent consistency and parent-before-child placement."""
    violations = []
    index_by_code: dict[str, int] = {}
    for k, category in enumerate(categories):
        index_by_code.setdefault(category.code, k)

    for k, category in enumerate(categories):
        if category.parent_code is None:
            if category.depth != 0:
                violations.append(OrderingViolation(
                    rule=ViolationRule.DEPTH_PARENT_MISMATCH,
                    position=k,
                    first_code=category.code,
                    second_code=None,
                    message=f"root '{category.code}' has depth {category.depth}, expected 0",
                ))
            continue

        parent_index = index_by_code.get(category.parent_code)
        if parent_index is None:
            violations.append(OrderingViolation(
                rule=ViolationRule.MISSING_PARENT,
                position=k,
                first_code=category.code,
                second_code=category.parent_code,
                message=f"parent '{category.parent_code}' of '{category.code}' is not in the set",
            ))
            continue

        parent = categories[parent_index]
        if parent_index >= k:
            violations.append(OrderingViolation(
                rule=ViolationRule.PARENT_ORDER,
                position=min(parent_index, k),
                first_code=parent.code,
                second_code=category.code,
                message=f"parent '{parent.code}' does not sort before child '{category.code}'",
            ))

        if category.depth != parent.depth + 1:
            violations.append(OrderingViolation(
                rule=ViolationRule.DEPTH_PARENT_MISMATCH,
                position=k,
                first_code=parent.code,
                second_code=category.code,
                message=(
                    f"'{category.code}' has depth {category.depth}, "
                    f"expected {parent.depth + 1} under '{parent.code}'"
                ),
            ))

    return violations


def validate_categories(categories: Sequence[Category]) -> ValidationResult:
    """
    Validate a full category sequence in the order given.

    Violations are sorted by position so `result.error` is always the
    earliest offending pair in the sequence.
    """
    violations = (
        validate_order(categories)
        + validate_uniqueness(categories)
        + validate_hierarchy(categories)
    )
    violations.sort(key=lambda v: v.position)

    result = ValidationResult(violations=violations, checked=len(categories))
    if not result.valid:
        logger.warning(
            f"Taxonomy rejected: {len(violations)} violation(s), first: "
            f"{result.error.rule.value} ({result.error.message})"
        )
    return result
