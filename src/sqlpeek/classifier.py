"""Statement classification on normalized SQL."""

from sqlpeek.cleaner import clean_sql, split_statements
from sqlpeek.patterns import (
    FEATURE_PATTERNS, FORBIDDEN_KEYWORD_PATTERNS, PRAGMA_PATTERN,
    VALID_QUERY_START_PATTERN, WRITE_PRAGMAS,
)


def forbidden_keyword(sql):
    """
    Find the first forbidden keyword used as a whole word.

    Returns:
        str or None: The keyword (upper case) in list order, or None
    """
    for keyword, pattern in FORBIDDEN_KEYWORD_PATTERNS:
        if pattern.search(sql):
            return keyword
    return None


def valid_query_start(sql):
    """True if the query begins with SELECT or WITH."""
    return VALID_QUERY_START_PATTERN.match(sql) is not None


def pragma_name(sql):
    """
    Return the pragma name if the whole statement is a single SQLite PRAGMA.

    Accepts `PRAGMA name`, `PRAGMA schema.name` and `PRAGMA name(args)`;
    assignments and anything trailing the pragma are not matched.
    """
    match = PRAGMA_PATTERN.match(sql)
    return match.group('name') if match else None


def is_pragma(sql):
    return pragma_name(sql) is not None


def is_write_pragma(name):
    return name.lower() in WRITE_PRAGMAS


def has_multiple_statements(sql):
    """True if more than one non-blank statement remains after splitting on `;`."""
    return len(split_statements(sql)) > 1


def uses_feature(sql, feature):
    """
    Check whether a query uses a given SQL feature.

    Args:
        sql: SQL text (cleaned before matching)
        feature: One of join, subquery, order_by, group_by, having, union,
            window_function

    Returns:
        bool: False for unknown features
    """
    pattern = FEATURE_PATTERNS.get(feature)
    return bool(pattern and pattern.search(clean_sql(sql)))
