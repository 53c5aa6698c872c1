"""Database operations: read-only connections, guarded query execution, schema lookups."""

import re
import sqlite3
import time
import logging
from contextlib import closing
from dataclasses import dataclass

from sqlpeek.access_control import AccessControl
from sqlpeek.classifier import is_pragma
from sqlpeek.cleaner import strip_strings_and_comments, strip_trailing_semicolons
from sqlpeek.config import get_configuration
from sqlpeek.extraction import TABLE_REFERENCE, bare_table_name
from sqlpeek.validation import validate_sql_or_raise

logger = logging.getLogger(__name__)

_EXISTING_LIMIT = re.compile(
    r'\bLIMIT\s+\d+(?:\s*(?:,|\bOFFSET\b)\s*\d+)?\s*$', re.IGNORECASE
)
_PRAGMA_ARGUMENT = re.compile(r'\(\s*(?P<table>%s)' % TABLE_REFERENCE)
# Number of SQLite VM instructions between timeout checks
PROGRESS_INTERVAL = 1000


class AccessDenied(Exception):
    """The query touches a table the current access rules hide."""

    def __init__(self, message, tables=None):
        super().__init__(message)
        self.tables = tables or []


class QueryTimeout(Exception):
    """The query ran longer than the configured timeout and was interrupted."""


@dataclass
class QueryResult:
    columns: list
    rows: list
    sql: str
    elapsed: float = 0.0

    def to_dict(self):
        return {
            'columns': self.columns,
            'rows': self.rows,
            'row_count': len(self.rows),
            'sql': self.sql,
            'elapsed_ms': round(self.elapsed * 1000, 2),
        }


def get_readonly_connection(db_filepath):
    """Open a read-only SQLite connection with query_only pragma.

    Use with contextlib.closing() so the handle is released:
    with closing(get_readonly_connection(path)) as conn:
    """
    conn = sqlite3.connect(f"file:{db_filepath}?mode=ro", uri=True)
    conn.execute("PRAGMA query_only = ON")
    return conn


def quote_identifier(name):
    return '"' + str(name).replace('"', '""') + '"'


def default_query(table_name, limit=100):
    """The fallback query used when a console query cannot be run."""
    return f"SELECT * FROM {quote_identifier(table_name)} LIMIT {int(limit)}"


def apply_row_limit(sql, max_records):
    """
    Append `LIMIT max_records` unless the query already ends with a LIMIT.

    String literals and comments are ignored when looking for the existing
    clause, so `WHERE note = 'LIMIT 5'` still gets a limit. PRAGMA statements
    are returned unchanged.
    """
    sql = strip_trailing_semicolons(sql.strip())
    if is_pragma(sql):
        return sql
    if _EXISTING_LIMIT.search(strip_strings_and_comments(sql)):
        return sql
    return f"{sql} LIMIT {int(max_records)}"


def _pragma_table(sql):
    match = _PRAGMA_ARGUMENT.search(sql)
    return bare_table_name(match.group('table')) if match else None


def check_table_access(sql, access):
    """
    Raise AccessDenied if `sql` references a table hidden by `access`.

    PRAGMA statements are checked through the table named in their argument.
    """
    if is_pragma(sql):
        table = _pragma_table(sql)
        denied = [table] if table and not access.table_accessible(table) else []
    else:
        denied = access.inaccessible_tables(sql)

    if denied:
        logger.warning(f"Query blocked by access control: {', '.join(denied)}")
        raise AccessDenied(access.access_violation_message(denied[0]), denied)


def _install_timeout(conn, seconds):
    """Abort the running statement once `seconds` have passed."""
    deadline = time.monotonic() + seconds
    state = {'expired': False}

    def check():
        if time.monotonic() > deadline:
            state['expired'] = True
            return 1
        return 0

    conn.set_progress_handler(check, PROGRESS_INTERVAL)
    return state


def execute_query(db_filepath, sql, config=None):
    """
    Validate and run a read-only query.

    Args:
        db_filepath: Path to the SQLite database
        sql: Raw SQL as submitted by the user
        config: Configuration to use (defaults to the process-wide one)

    Returns:
        QueryResult: Column names, rows as lists, the SQL actually executed
        and the elapsed time in seconds

    Raises:
        QueryRejected: If validation fails
        AccessDenied: If the query touches an inaccessible table
        QueryTimeout: If execution exceeds the configured timeout
        sqlite3.Error: For any other database error
    """
    config = config or get_configuration()

    normalized = validate_sql_or_raise(sql, max_length=config.max_query_length)
    check_table_access(normalized, AccessControl(config))
    final_sql = apply_row_limit(normalized, config.max_records)

    logger.info(f"Executing query: {final_sql}")
    start = time.monotonic()
    with closing(get_readonly_connection(db_filepath)) as conn:
        timeout = _install_timeout(conn, config.query_timeout)
        try:
            cursor = conn.execute(final_sql)
            columns = [col[0] for col in cursor.description or []]
            rows = [list(row) for row in cursor.fetchall()]
        except sqlite3.OperationalError as e:
            if timeout['expired']:
                logger.warning(f"Query timed out after {config.query_timeout}s: {final_sql}")
                raise QueryTimeout(
                    f"Query exceeded the {config.query_timeout} second timeout"
                ) from e
            logger.error(f"Query failed: {e} | Query: {final_sql}")
            raise
        except sqlite3.Error as e:
            logger.error(f"Query failed: {e} | Query: {final_sql}")
            raise
        finally:
            conn.set_progress_handler(None, PROGRESS_INTERVAL)

    elapsed = time.monotonic() - start
    logger.info(f"Query returned {len(rows)} rows in {elapsed * 1000:.1f}ms")
    return QueryResult(columns=columns, rows=rows, sql=final_sql, elapsed=elapsed)


def list_tables(db_filepath):
    with closing(get_readonly_connection(db_filepath)) as conn:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row[0] for row in cursor.fetchall()]


def table_columns(db_filepath, table_name):
    """
    Column metadata for one table.

    Returns:
        list: Dicts with name, type, nullable, default and primary_key
    """
    with closing(get_readonly_connection(db_filepath)) as conn:
        cursor = conn.execute(f"PRAGMA table_info({quote_identifier(table_name)})")
        return [
            {
                'name': row[1],
                'type': row[2],
                'nullable': not row[3],
                'default': row[4],
                'primary_key': bool(row[5]),
            }
            for row in cursor.fetchall()
        ]


def foreign_keys(db_filepath, table_name):
    with closing(get_readonly_connection(db_filepath)) as conn:
        cursor = conn.execute(f"PRAGMA foreign_key_list({quote_identifier(table_name)})")
        return [
            {'column': row[3], 'to_table': row[2], 'to_column': row[4]}
            for row in cursor.fetchall()
        ]
