"""Threat detection on raw SQL.

Both checks run against the query as submitted, before comments are removed,
so that a payload hidden in a comment is still visible to them.
"""

from sqlpeek.patterns import INJECTION_PATTERNS, SUSPICIOUS_PATTERNS


def _rule_matches(rule, sql):
    regex, min_count = rule
    if min_count == 1:
        return regex.search(sql) is not None
    return len(regex.findall(sql)) >= min_count


def suspicious_patterns(sql):
    """Return the names of all suspicious patterns found in `sql`."""
    if not sql:
        return []
    return [name for name, rule in SUSPICIOUS_PATTERNS.items() if _rule_matches(rule, sql)]


def injection_patterns(sql):
    """Return the names of all injection signatures found in `sql`."""
    if not sql:
        return []
    return [name for name, regex in INJECTION_PATTERNS.items() if regex.search(sql)]


def has_suspicious_patterns(sql):
    if not sql:
        return False
    return any(_rule_matches(rule, sql) for rule in SUSPICIOUS_PATTERNS.values())


def has_injection_patterns(sql):
    if not sql:
        return False
    return any(regex.search(sql) for regex in INJECTION_PATTERNS.values())
