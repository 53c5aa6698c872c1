"""Static extraction of the base tables a SQL string touches.

This is a scanner, not a parser: comments are removed and string contents
blanked (except literals SQLite reads as a table name), then each statement
is walked level by level. Parenthesised subqueries are cut out of their
level and processed on their own, CTE names declared at a level are kept out
of that level's results, and FROM / JOIN / INSERT / UPDATE / DELETE targets
are read with regexes.
"""

import re

from sqlpeek.cleaner import QUOTE_CHARS, clean_sql, mask_string_literals, split_statements

_IDENTIFIER = r'''(?:"(?:[^"]|"")+"|\\"[^"\\]+\\"|`[^`]+`|\[[^\]]+\]|'(?:[^']|'')+'|\w+)'''
TABLE_REFERENCE = r'(?:%s\.){0,2}%s' % (_IDENTIFIER, _IDENTIFIER)

_IDENTIFIER_RE = re.compile(_IDENTIFIER)
_TABLE_REFERENCE_RE = re.compile(TABLE_REFERENCE)
_VALID_TABLE_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

_SUBQUERY_START_RE = re.compile(r'\(\s*(?:SELECT|WITH)\b', re.IGNORECASE)
_WITH_RE = re.compile(r'\bWITH\s+(RECURSIVE\s+)?', re.IGNORECASE)
_CTE_HEAD_RE = re.compile(
    r'(?P<name>%s)\s*(?:\([^()]*\)\s*)?\bAS\s*(?:(?:NOT\s+)?MATERIALIZED\s*)?\(' % TABLE_REFERENCE,
    re.IGNORECASE,
)
_SET_OPERATION_RE = re.compile(
    r'\b(?:UNION(?:\s+(?:ALL|DISTINCT))?|INTERSECT|EXCEPT|MINUS)\b', re.IGNORECASE
)

_FROM_RE = re.compile(r'\bFROM\b', re.IGNORECASE)
_JOIN_RE = re.compile(r'\b(?:STRAIGHT_)?JOIN\b', re.IGNORECASE)
_UPDATE_RE = re.compile(
    r'\bUPDATE\s+(?:(?:LOW_PRIORITY|IGNORE|ONLY|OR\s+\w+)\s+)*', re.IGNORECASE
)
_INSERT_RE = re.compile(
    r'\b(?:INSERT|REPLACE)\s+(?:(?:LOW_PRIORITY|DELAYED|HIGH_PRIORITY|IGNORE|OR\s+\w+)\s+)*'
    r'INTO\s+(?P<ref>%s)' % TABLE_REFERENCE,
    re.IGNORECASE,
)
_DELETE_RE = re.compile(
    r'\bDELETE\s+(?:(?:LOW_PRIORITY|QUICK|IGNORE)\s+)*FROM\s+(?:ONLY\s+)?(?P<ref>%s)'
    % TABLE_REFERENCE,
    re.IGNORECASE,
)

_LIST_PREFIX_RE = re.compile(r'(?:ONLY|LATERAL)\s+', re.IGNORECASE)
_ALIAS_RE = re.compile(r'\s+(?P<as>AS\s+)?(?P<alias>%s)' % _IDENTIFIER, re.IGNORECASE)
_COLUMN_ALIASES_RE = re.compile(r'\s*\([^()]*\)')
_CALL_RE = re.compile(r'\s*\(')
_COMMA_RE = re.compile(r'\s*,\s*')
_CLOSING_PARENS_RE = re.compile(r'(?:\s*\))*')
_WORD_BEFORE_RE = re.compile(r'(\w+)\s*$')
_INDEX_HINT_RE = re.compile(
    r'\s+(?:INDEXED\s+BY\s+%s|NOT\s+INDEXED\b)' % _IDENTIFIER, re.IGNORECASE
)
# SQLite reads a string literal in these positions as a table name
_TABLE_POSITION_RE = re.compile(r'(?:\b(?:FROM|JOIN|INTO|UPDATE)|[,.])\s*$', re.IGNORECASE)

_DISTINCT_FROM_RE = re.compile(r'\bIS\s+(?:NOT\s+)?DISTINCT\s+$', re.IGNORECASE)
_NOT_AN_UPDATE_TARGET_RE = re.compile(r'\b(?:FOR|KEY|DO|ON)\s+$', re.IGNORECASE)

# Functions whose argument syntax uses FROM without naming a table
_FROM_ARGUMENT_FUNCTIONS = frozenset({
    'EXTRACT', 'TRIM', 'SUBSTRING', 'SUBSTR', 'OVERLAY', 'POSITION',
})

# Words that end a table reference instead of aliasing it
_CLAUSE_WORDS = frozenset({
    'CROSS', 'EXCEPT', 'FETCH', 'FOR', 'FORCE', 'FROM', 'FULL', 'GROUP',
    'HAVING', 'IGNORE', 'INDEXED', 'INNER', 'INTERSECT', 'INTO', 'JOIN', 'LEFT',
    'LIMIT', 'LOCK', 'MINUS', 'NATURAL', 'NOT', 'OFFSET', 'ON', 'ORDER', 'OUTER',
    'PARTITION', 'QUALIFY', 'RETURNING', 'RIGHT', 'SELECT', 'SET', 'STRAIGHT_JOIN',
    'TABLESAMPLE', 'UNION', 'USE', 'USING', 'VALUES', 'WHERE', 'WINDOW', 'WITH',
})

# Literals that stay masked even in table position, since the clause
# scanners would read them as keywords
_KEYWORD_LITERALS = _CLAUSE_WORDS | {'DELETE', 'INSERT', 'REPLACE', 'UPDATE'}


def extract_table_names(sql):
    """
    Return the set of base table names referenced by `sql`.

    Handles several semicolon-separated statements, CTEs (whose names are
    never reported), nested subqueries, every JOIN variant, set operations
    and INSERT / UPDATE / DELETE targets. Schema prefixes and identifier
    quoting are stripped; names that are not plain identifiers are dropped.

    The scan is run twice, once treating a backslash inside a string literal
    as an escape and once not, and the results are combined, so that a
    quoting trick that only one SQL dialect honours cannot hide a table.
    """
    if sql is None or not sql.strip():
        return set()

    tables = set()
    for backslash_escapes in (False, True):
        cleaned = clean_sql(sql, backslash_escapes=backslash_escapes)
        masked = mask_string_literals(
            cleaned, backslash_escapes=backslash_escapes, keep=_literal_names_table
        )
        for statement in split_statements(masked):
            tables.update(_extract_statement(statement))
    return tables


def _literal_names_table(sql, start, end):
    """True for a literal like `FROM 'users'`, which SQLite treats as an identifier."""
    content = sql[start + 1:end - 1]
    if not _VALID_TABLE_NAME_RE.match(content) or content.upper() in _KEYWORD_LITERALS:
        return False
    return _TABLE_POSITION_RE.search(sql[max(0, start - 16):start]) is not None


def _extract_statement(statement):
    found = set()
    pairs = _parenthesis_pairs(statement)
    # Explicit stack of (start, end, CTE names visible) instead of recursion
    pending = [(0, len(statement), frozenset())]

    while pending:
        start, end, enclosing = pending.pop()
        level, subqueries = _isolate_subqueries(statement, start, end, pairs)
        ctes = _declared_ctes(level)
        scope = enclosing | {name.casefold() for name, _ in ctes}
        body_scopes = _cte_body_scopes(ctes, enclosing, _is_recursive(level))

        for name in _level_tables(level):
            if name.casefold() not in scope:
                found.add(name)

        for local_open, body_start, body_end in subqueries:
            pending.append((body_start, body_end, body_scopes.get(local_open, scope)))

    return found


def _parenthesis_pairs(text):
    """Map the offset of every balanced '(' to its ')', ignoring quoted text."""
    pairs = {}
    opened = []
    i = 0
    length = len(text)
    while i < length:
        char = text[i]
        if char in QUOTE_CHARS:
            i = _skip_quoted(text, i)
            continue
        if char == '(':
            opened.append(i)
        elif char == ')' and opened:
            pairs[opened.pop()] = i
        i += 1
    return pairs


def _find_closing_paren(text, open_pos):
    """Index of the paren closing the one at `open_pos`, or -1 if unbalanced."""
    depth = 0
    i = open_pos
    length = len(text)
    while i < length:
        char = text[i]
        if char in QUOTE_CHARS:
            i = _skip_quoted(text, i)
            continue
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _skip_quoted(text, start):
    quote = text[start]
    i = start + 1
    while i < len(text):
        if text[i] == quote:
            if i + 1 < len(text) and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return len(text)


def _isolate_subqueries(statement, start, end, pairs):
    """
    Build the text of one nesting level of `statement[start:end]`.

    Every parenthesised SELECT/WITH is collapsed to `( )`. An unbalanced
    paren is not a subquery and its contents stay on this level.

    Returns:
        tuple: (level text, [(open paren offset in level text,
        body start, body end), ...]) with body offsets into `statement`
    """
    pieces = []
    subqueries = []
    offset = 0
    piece_start = start
    search_pos = start

    while True:
        match = _SUBQUERY_START_RE.search(statement, search_pos, end)
        if not match:
            break
        open_pos = match.start()
        close_pos = pairs.get(open_pos)
        if close_pos is None or close_pos >= end:
            search_pos = match.end()
            continue

        piece = statement[piece_start:open_pos + 1]
        pieces.append(piece)
        offset += len(piece)
        subqueries.append((offset - 1, open_pos + 1, close_pos))
        pieces.append(' ')
        offset += 1
        piece_start = search_pos = close_pos

    pieces.append(statement[piece_start:end])
    return ''.join(pieces), subqueries


def _is_recursive(level):
    match = _WITH_RE.search(level)
    return bool(match and match.group(1))


def _declared_ctes(level):
    """Return [(name, body_open_pos), ...] for the CTE lists at this level."""
    ctes = []
    for with_match in _WITH_RE.finditer(level):
        pos = with_match.end()
        while True:
            head = _CTE_HEAD_RE.match(level, pos)
            if not head:
                break
            open_pos = head.end() - 1
            name = bare_table_name(head.group('name'))
            if name:
                ctes.append((name, open_pos))
            close_pos = _find_closing_paren(level, open_pos)
            if close_pos < 0:
                break
            separator = _COMMA_RE.match(level, close_pos + 1)
            if not separator:
                break
            pos = separator.end()
    return ctes


def _cte_body_scopes(ctes, enclosing, recursive):
    """
    Map each CTE body to the CTE names visible inside it.

    A plain CTE sees the ones declared before it; under RECURSIVE every name
    in the list is visible, its own included.
    """
    all_names = {name.casefold() for name, _ in ctes}
    scopes = {}
    seen = set()
    for name, open_pos in ctes:
        visible = all_names if recursive else seen
        scopes[open_pos] = enclosing | visible
        seen = seen | {name.casefold()}
    return scopes


def _level_tables(level):
    names = []

    for segment in _SET_OPERATION_RE.split(level):
        names.extend(_from_tables(segment))
        names.extend(_join_tables(segment))

    for pattern in (_INSERT_RE, _DELETE_RE):
        for match in pattern.finditer(level):
            names.append(bare_table_name(match.group('ref')))

    names.extend(_update_tables(level))
    return [name for name in names if name]


def _from_tables(text):
    names = []
    for match in _FROM_RE.finditer(text):
        prefix = text[max(0, match.start() - 40):match.start()]
        if _DISTINCT_FROM_RE.search(prefix):
            continue
        if _enclosing_function(text, match.start()) in _FROM_ARGUMENT_FUNCTIONS:
            continue
        names.extend(_scan_table_list(text, match.end()))
    return names


def _join_tables(text):
    names = []
    for match in _JOIN_RE.finditer(text):
        names.extend(_scan_table_list(text, match.end()))
    return names


def _update_tables(text):
    names = []
    for match in _UPDATE_RE.finditer(text):
        prefix = text[max(0, match.start() - 20):match.start()]
        if _NOT_AN_UPDATE_TARGET_RE.search(prefix):
            continue
        names.extend(_scan_table_list(text, match.end()))
    return names


def _enclosing_function(text, pos):
    """Name of the function whose unclosed paren surrounds `pos`, upper-cased."""
    depth = 0
    for i in range(pos - 1, -1, -1):
        char = text[i]
        if char == ')':
            depth += 1
        elif char == '(':
            if depth == 0:
                word = _WORD_BEFORE_RE.search(text[max(0, i - 64):i])
                return word.group(1).upper() if word else None
            depth -= 1
    return None


def _scan_table_list(text, pos):
    """
    Read a comma-separated list of table references starting at `pos`.

    Items are tables (optionally aliased), function calls (skipped) or
    parenthesised groups, which are entered and read as part of the list.
    """
    names = []
    length = len(text)
    while True:
        while pos < length and text[pos].isspace():
            pos += 1

        prefix = _LIST_PREFIX_RE.match(text, pos)
        if prefix:
            pos = prefix.end()

        if pos < length and text[pos] == '(':
            pos += 1
            continue

        if pos < length and text[pos] == ')':
            # An empty group, such as a collapsed subquery
            pos += 1
        else:
            reference = _TABLE_REFERENCE_RE.match(text, pos)
            if not reference:
                break
            pos = reference.end()
            call = _CALL_RE.match(text, pos)
            if call:
                close_pos = _find_closing_paren(text, call.end() - 1)
                if close_pos < 0:
                    break
                pos = close_pos + 1
            else:
                token = reference.group()
                if token.upper() in _CLAUSE_WORDS:
                    break
                names.append(bare_table_name(token))

        pos = _CLOSING_PARENS_RE.match(text, pos).end()

        alias = _ALIAS_RE.match(text, pos)
        if alias and (alias.group('as') or alias.group('alias').upper() not in _CLAUSE_WORDS):
            pos = alias.end()
            column_aliases = _COLUMN_ALIASES_RE.match(text, pos)
            if column_aliases:
                pos = column_aliases.end()
            pos = _CLOSING_PARENS_RE.match(text, pos).end()

        # SQLite: `t INDEXED BY ix` / `t NOT INDEXED`
        index_hint = _INDEX_HINT_RE.match(text, pos)
        if index_hint:
            pos = _CLOSING_PARENS_RE.match(text, index_hint.end()).end()

        separator = _COMMA_RE.match(text, pos)
        if not separator:
            break
        pos = separator.end()

    return names


def bare_table_name(reference):
    """
    Reduce a table reference to its bare name.

    `schema.table`, `"table"`, `` `table` ``, `[table]`, `'table'` and
    `\\"table\\"` all become `table`. Returns None when the result is not a
    plain identifier.
    """
    if not reference:
        return None

    parts = _IDENTIFIER_RE.findall(reference)
    if not parts:
        return None
    name = parts[-1]

    if name.startswith('\\"') and name.endswith('\\"') and len(name) >= 4:
        name = name[2:-2]
    elif name.startswith('"') and name.endswith('"') and len(name) >= 2:
        name = name[1:-1].replace('""', '"')
    elif name.startswith("'") and name.endswith("'") and len(name) >= 2:
        name = name[1:-1].replace("''", "'")
    elif name.startswith('`') and name.endswith('`') and len(name) >= 2:
        name = name[1:-1]
    elif name.startswith('[') and name.endswith(']'):
        name = name[1:-1]

    name = name.strip()
    if _VALID_TABLE_NAME_RE.match(name):
        return name
    return None


class TableNameExtractor:
    """Object form of extract_table_names(), for callers that hold an extractor."""

    def extract(self, sql):
        return extract_table_names(sql)
