"""Table and column access rules (none / whitelist / blacklist)."""

from sqlpeek.config import get_configuration
from sqlpeek.extraction import extract_table_names


def _folded(names):
    return {str(name).casefold() for name in names}


class AccessControl:
    """
    Decide which tables and columns a caller may see.

    In `whitelist` mode only tables listed in `allowed_tables` are reachable,
    in `blacklist` mode everything except `blocked_tables` is. Column hiding
    via `blocked_columns` applies in every mode. Names are compared without
    regard to case, as SQLite resolves them.
    """

    def __init__(self, config=None):
        self.config = config or get_configuration()

    @property
    def mode(self):
        return self.config.access_control_mode

    def table_accessible(self, table_name):
        name = str(table_name).casefold()
        if self.mode == 'whitelist':
            return name in _folded(self.config.allowed_tables)
        if self.mode == 'blacklist':
            return name not in _folded(self.config.blocked_tables)
        return True

    def filter_accessible_tables(self, table_names):
        if self.mode == 'none':
            return list(table_names)
        return [name for name in table_names if self.table_accessible(name)]

    def filter_accessible_columns(self, table_name, columns):
        table = str(table_name).casefold()
        blocked = set()
        for blocked_table, blocked_columns in self.config.blocked_columns.items():
            if str(blocked_table).casefold() == table:
                blocked |= _folded(blocked_columns)
        return [column for column in columns if str(column).casefold() not in blocked]

    def inaccessible_tables(self, sql):
        """Sorted names of tables referenced by `sql` that the caller may not read."""
        if self.mode == 'none':
            return []
        return sorted(name for name in extract_table_names(sql) if not self.table_accessible(name))

    def validate_query_table_access(self, sql):
        return not self.inaccessible_tables(sql)

    def access_violation_message(self, table_name=None):
        if self.mode == 'whitelist':
            if table_name:
                return f"Access denied: Table '{table_name}' is not in the allowed tables list"
            return ("Access denied: Only the following tables are accessible: "
                    f"{', '.join(self.config.allowed_tables)}")
        if self.mode == 'blacklist':
            if table_name:
                return f"Access denied: Table '{table_name}' is blocked from access"
            return ("Access denied: The following tables are blocked: "
                    f"{', '.join(self.config.blocked_tables)}")
        return "Access denied: Table access is restricted"
