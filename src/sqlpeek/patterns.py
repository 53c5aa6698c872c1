"""Static rule tables for SQL validation.

Everything here is built once at import time and never mutated: keyword lists
are tuples, pattern tables are read-only mappings of pre-compiled regexes.
"""

import re
from types import MappingProxyType

DEFAULT_MAX_QUERY_LENGTH = 10000

# Keywords that modify data or schema, or control transactions.
# Order matters: the first match is the one reported.
FORBIDDEN_KEYWORDS = (
    "UPDATE", "INSERT", "DELETE", "DROP", "ALTER", "CREATE", "TRUNCATE",
    "REPLACE", "RENAME", "GRANT", "REVOKE", "LOCK", "UNLOCK", "COMMIT",
    "ROLLBACK", "SAVEPOINT", "INTO", "CALL", "EXECUTE", "EXEC",
)

FORBIDDEN_KEYWORD_PATTERNS = tuple(
    (keyword, re.compile(r'\b' + keyword + r'\b', re.IGNORECASE))
    for keyword in FORBIDDEN_KEYWORDS
)

QUOTE_LIMIT = 20
HEX_MIN_LENGTH = 16

# An argument that is itself a subquery, a system variable or a function call
_DERIVED_ARGUMENT = r'\s*(?:\(\s*SELECT\b|@@|\w+\s*\(\s*\))'
_ENCODED_WHITESPACE = r'%(?:20|09|0a|0d|a0)'


def _rule(pattern, min_count=1):
    return re.compile(pattern, re.IGNORECASE), min_count


# Soft heuristics: name -> (regex, minimum number of matches)
SUSPICIOUS_PATTERNS = MappingProxyType({
    'comment_injection': _rule(r'\s--|/\*'),
    'string_concatenation': _rule(r'\|\||\bCONCAT(?:_WS)?\s*\('),
    'excessive_single_quotes': _rule(r"'", QUOTE_LIMIT + 1),
    'excessive_double_quotes': _rule(r'"', QUOTE_LIMIT + 1),
    'hex_encoding': _rule(r'0x[0-9a-f]{%d,}' % HEX_MIN_LENGTH),
    'char_function': _rule(r'\bCHR?\s*\(\s*\d'),
    'ascii_function': _rule(r'\bASCII\s*\('),
    'substring_injection': _rule(r'\b(?:SUBSTRING|SUBSTR|MID)\s*\(' + _DERIVED_ARGUMENT),
    'length_functions': _rule(
        r'\b(?:LENGTH|CHAR_LENGTH|CHARACTER_LENGTH|LEN)\s*\(' + _DERIVED_ARGUMENT
    ),
    'conditional_comments': _rule(r'/\*!'),
    'encoded_spaces': _rule(_ENCODED_WHITESPACE + r'(?=[a-z_])'),
    'multiple_unions': _rule(r'\bUNION\b', 2),
    'nested_selects': _rule(r'\(\s*SELECT\b', 3),
    'script_tags': _rule(r'<\s*script\b'),
    'php_tags': _rule(r'<\?php'),
    'null_byte': _rule(r'\x00'),
    'excessive_parentheses': _rule(r'(?:\(\s*){5,}|(?:\)\s*){5,}'),
})

# Hard signatures: name -> regex. Any match is an injection attempt.
INJECTION_PATTERNS = MappingProxyType({
    name: re.compile(pattern, re.IGNORECASE)
    for name, pattern in (
        ('basic_or_injection', r"'\s*OR\s*'[^']*'\s*=\s*'"),
        ('quoted_or_equals', r"'\s*OR\s*1\s*=\s*1"),
        ('unquoted_or_equals', r'\bOR\s+1\s*=\s*1\b'),
        ('comment_termination', r"'\s*;\s*--"),
        ('version_detection', r'@@version'),
        ('version_function', r'\bversion\s*\(\s*\)'),
        ('file_access', r'\bLOAD_FILE\s*\('),
        ('outfile_access', r'\bINTO\s+OUTFILE\b'),
        ('dumpfile_access', r'\bINTO\s+DUMPFILE\b'),
        ('sleep_function', r'\b(?:pg_)?SLEEP\s*\('),
        ('waitfor_delay', r'\bWAITFOR\b'),
        ('benchmark_function', r'\bBENCHMARK\s*\('),
        ('information_schema', r'\binformation_schema\s*\.'),
        ('mysql_user_table', r'\bmysql\s*\.\s*user\b'),
        ('postgres_user_catalog', r'\bpg_(?:user|shadow|authid)\b'),
        ('command_execution', r'\b(?:system|exec|shell|cmd)\s*\(|\bxp_cmdshell\b'),
        ('stacked_queries', r';\s*(?:SELECT|INSERT|UPDATE|DELETE|DROP|CREATE)\b'),
        ('conditional_blind', r'\bIF\s*\([^,]*,\s*(?:pg_)?SLEEP\s*\('),
        ('xpath_extraction', r'\b(?:EXTRACTVALUE|UPDATEXML)\s*\('),
    )
})

VALID_QUERY_START_PATTERN = re.compile(r'^\s*(?:SELECT|WITH)\b', re.IGNORECASE)

PRAGMA_PATTERN = re.compile(
    r'^\s*PRAGMA\s+(?:\w+\s*\.\s*)?(?P<name>\w+)\s*(?:\(\s*[^;()]*\))?\s*$',
    re.IGNORECASE,
)

# SQLite pragmas that can change database or connection state
WRITE_PRAGMAS = frozenset({
    'application_id', 'auto_vacuum', 'incremental_vacuum', 'journal_mode',
    'locking_mode', 'optimize', 'query_only', 'schema_version',
    'user_version', 'wal_checkpoint', 'writable_schema',
})

FEATURE_PATTERNS = MappingProxyType({
    'join': re.compile(r'\b(?:INNER|LEFT|RIGHT|FULL|CROSS)?\s*JOIN\b', re.IGNORECASE),
    'order_by': re.compile(r'\bORDER\s+BY\b', re.IGNORECASE),
    'group_by': re.compile(r'\bGROUP\s+BY\b', re.IGNORECASE),
    'having': re.compile(r'\bHAVING\b', re.IGNORECASE),
    'union': re.compile(r'\bUNION\b', re.IGNORECASE),
    'window_function': re.compile(r'\bOVER\s*\(', re.IGNORECASE),
    'subquery': re.compile(r'\(\s*SELECT\b', re.IGNORECASE),
})
