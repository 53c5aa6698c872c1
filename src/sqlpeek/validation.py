"""SQL validation: the security boundary between user input and database execution."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlpeek.classifier import (
    forbidden_keyword, has_multiple_statements, is_write_pragma, pragma_name,
    valid_query_start,
)
from sqlpeek.cleaner import clean_sql, strip_trailing_semicolons
from sqlpeek.patterns import DEFAULT_MAX_QUERY_LENGTH
from sqlpeek.threats import injection_patterns, suspicious_patterns

STACKED_QUERIES = "stacked_queries"


class RejectionReason(Enum):
    EMPTY_QUERY = "EmptyQuery"
    TOO_LONG = "TooLong"
    INVALID_START = "InvalidStart"
    SUSPICIOUS_PATTERN = "SuspiciousPattern"
    INJECTION_PATTERN = "InjectionPattern"
    FORBIDDEN_KEYWORD = "ForbiddenKeyword"


_MESSAGES = {
    RejectionReason.EMPTY_QUERY: "Empty query is not allowed",
    RejectionReason.TOO_LONG: "Query exceeds maximum allowed length ({detail} chars)",
    RejectionReason.INVALID_START: "Query must begin with SELECT or WITH",
    RejectionReason.SUSPICIOUS_PATTERN:
        "Query contains suspicious patterns that may indicate SQL injection ({detail})",
    RejectionReason.INJECTION_PATTERN:
        "Query contains patterns commonly associated with SQL injection attempts ({detail})",
    RejectionReason.FORBIDDEN_KEYWORD: "Forbidden keyword '{detail}' detected in query",
}


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one query.

    Exactly one side is populated: `normalized_sql` for an accepted query,
    `reason` (and usually `detail`) for a rejected one.
    """
    normalized_sql: Optional[str] = None
    reason: Optional[RejectionReason] = None
    detail: Optional[str] = None

    @classmethod
    def accepted(cls, normalized_sql):
        return cls(normalized_sql=normalized_sql)

    @classmethod
    def rejected(cls, reason, detail=None):
        return cls(reason=reason, detail=detail)

    @property
    def is_valid(self):
        return self.reason is None

    @property
    def message(self):
        if self.is_valid:
            return None
        return _MESSAGES[self.reason].format(detail=self.detail)

    def to_dict(self):
        return {
            'valid': self.is_valid,
            'normalized_sql': self.normalized_sql,
            'reason': self.reason.value if self.reason else None,
            'detail': self.detail,
            'message': self.message,
        }


class QueryRejected(ValueError):
    """Raised by validate_sql_or_raise() when a query is not safe to run."""

    def __init__(self, reason, detail=None):
        self.reason = reason
        self.detail = detail
        super().__init__(_MESSAGES[reason].format(detail=detail))


def validate_sql(sql, max_length=DEFAULT_MAX_QUERY_LENGTH):
    """
    Decide whether user-submitted SQL is safe to execute read-only.

    Checks run in order and the first failure wins: emptiness, length,
    PRAGMA allowance, SELECT/WITH start, suspicious patterns, forbidden
    keywords, injection signatures (stacked statements included).

    Args:
        sql: Raw SQL as submitted
        max_length: Maximum accepted length of the raw string

    Returns:
        ValidationResult: Accepted with the normalized SQL (no trailing
        semicolon), or rejected with a reason
    """
    if sql is None or not sql.strip():
        return ValidationResult.rejected(RejectionReason.EMPTY_QUERY)

    if len(sql) > max_length:
        return ValidationResult.rejected(RejectionReason.TOO_LONG, str(max_length))

    normalized = strip_trailing_semicolons(clean_sql(sql))

    # Read-only SQLite introspection is allowed as-is
    pragma = pragma_name(normalized)
    if pragma:
        if is_write_pragma(pragma):
            return ValidationResult.rejected(
                RejectionReason.FORBIDDEN_KEYWORD, f"PRAGMA {pragma.upper()}"
            )
        return ValidationResult.accepted(normalized)

    if not valid_query_start(normalized):
        return ValidationResult.rejected(RejectionReason.INVALID_START)

    suspicious = suspicious_patterns(sql)
    if suspicious:
        return ValidationResult.rejected(
            RejectionReason.SUSPICIOUS_PATTERN, ', '.join(suspicious)
        )

    keyword = forbidden_keyword(normalized)
    if keyword:
        return ValidationResult.rejected(RejectionReason.FORBIDDEN_KEYWORD, keyword)

    injections = injection_patterns(sql)
    if injections:
        return ValidationResult.rejected(
            RejectionReason.INJECTION_PATTERN, ', '.join(injections)
        )

    # Stacked statements the signature above misses, e.g. `SELECT 1; PRAGMA x`
    if has_multiple_statements(normalized):
        return ValidationResult.rejected(RejectionReason.INJECTION_PATTERN, STACKED_QUERIES)

    return ValidationResult.accepted(normalized)


def validate_sql_or_raise(sql, max_length=DEFAULT_MAX_QUERY_LENGTH):
    """
    Validate a query and return its normalized form.

    Raises:
        QueryRejected: If the query is not safe
    """
    result = validate_sql(sql, max_length=max_length)
    if not result.is_valid:
        raise QueryRejected(result.reason, result.detail)
    return result.normalized_sql


def is_safe_query(sql):
    """
    Reduced boolean check used by the interactive console.

    Only looks at emptiness, the SELECT/WITH start and forbidden keywords.
    Unlike validate_sql() it does not allow PRAGMA statements.
    """
    if sql is None or not sql.strip():
        return False

    normalized = clean_sql(sql)
    if not valid_query_start(normalized):
        return False

    return forbidden_keyword(normalized) is None
