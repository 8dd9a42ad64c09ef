"""
Pattern Matching
----------------
Wildcard matching for permission resources and condition values.

Precedence (first rule that applies decides):
1. "*" on either side matches everything
2. Exact match
3. Prefix wildcard   "foo*"
4. Suffix wildcard   "*foo"
5. Embedded wildcard "foo*bar"
6. Anchored regex    "^..." or "...$" (an invalid one falls through to 7)
7. Substring either way
"""

import re


def normalize_resource(resource: str) -> str:
    """Strip one trailing 's' so plural and singular names compare equal."""
    normalized = resource.lower()
    if normalized.endswith("s"):
        return normalized[:-1]
    return normalized


def match_pattern(value: str, pattern: str) -> bool:
    """Match a value against a wildcard pattern. Never raises."""
    if pattern == "*" or value == "*" or value == pattern:
        return True

    if "*" in pattern:
        if pattern.endswith("*") and pattern.count("*") == 1:
            return value.startswith(pattern[:-1])
        if pattern.startswith("*") and pattern.count("*") == 1:
            return value.endswith(pattern[1:])
        if pattern.count("*") == 1:
            head, tail = pattern.split("*")
            return (
                len(value) >= len(head) + len(tail)
                and value.startswith(head)
                and value.endswith(tail)
            )

    if pattern.startswith("^") or pattern.endswith("$"):
        try:
            return re.search(pattern, value) is not None
        except re.error:
            pass

    if not value or not pattern:
        return False
    return pattern in value or value in pattern
