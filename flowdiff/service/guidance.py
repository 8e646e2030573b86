"""Recovery guidance for structural validation failures."""

from __future__ import annotations

from typing import Iterable

OPERATOR_ISSUES = 'operator_issues'
CONNECTION_ISSUES = 'connection_issues'
MISSING_METADATA = 'missing_metadata'
BRANCH_MISMATCH = 'branch_mismatch'

_CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    OPERATOR_ISSUES: ('operator', 'singlevalue'),
    CONNECTION_ISSUES: ('connection', 'referenced'),
    MISSING_METADATA: ('missing',),
    BRANCH_MISMATCH: ('branch', 'output'),
}

_CATEGORY_STEPS: dict[str, list[str]] = {
    OPERATOR_ISSUES: [
        'Operator structure issue detected. Validate the affected nodes individually.',
        'Binary operators (equals, contains, greaterThan, etc.) must NOT have singleValue:true',
        'Unary operators (isEmpty, isNotEmpty, true, false) REQUIRE singleValue:true',
    ],
    CONNECTION_ISSUES: [
        'Connection validation failed. Check all node connections reference existing nodes.',
        'Use cleanStaleConnections operation to remove connections to non-existent nodes.',
    ],
    MISSING_METADATA: [
        'Missing metadata detected. Ensure filter-based nodes (IF, Switch) have complete conditions.options.',
        'Required options: {version: 2, leftValue: "", caseSensitive: true, typeValidation: "strict"}',
    ],
    BRANCH_MISMATCH: [
        'Branch count mismatch. Ensure Switch nodes have outputs for all rules '
        '(e.g., 3 rules = 3 output branches).',
    ],
}

GENERIC_STEPS = [
    'Review the validation errors listed above',
    'Fix issues using updateNode or cleanStaleConnections operations',
    'Validate the workflow again to verify fixes',
]


def categorize_errors(errors: Iterable[str]) -> set[str]:
    """Map structural error strings onto guidance categories by keyword, ignoring case."""
    categories: set[str] = set()
    for error in errors:
        lowered = error.lower()
        for category, keywords in _CATEGORY_KEYWORDS.items():
            if any(keyword in lowered for keyword in keywords):
                categories.add(category)
    return categories


def build_recovery_guidance(errors: Iterable[str]) -> list[str]:
    """Ordered recovery steps for the categories present in ``errors``."""
    categories = categorize_errors(errors)
    steps: list[str] = []
    for category in (OPERATOR_ISSUES, CONNECTION_ISSUES, MISSING_METADATA, BRANCH_MISMATCH):
        if category in categories:
            steps.extend(_CATEGORY_STEPS[category])
    return steps or list(GENERIC_STEPS)
