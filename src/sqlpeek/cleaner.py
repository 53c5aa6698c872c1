"""Quote-aware SQL cleaning: comment removal, whitespace and literal handling."""

import re

_TRAILING_SEMICOLONS = re.compile(r'(?:\s*;)+\s*$')
QUOTE_CHARS = "'\"`"


def clean_sql(sql, backslash_escapes=False):
    """
    Remove comments and collapse whitespace outside of quoted text.

    Anything inside single or double quotes is copied verbatim, so comment
    markers and whitespace inside a literal survive. A doubled quote inside
    its own quote type is an escaped quote. Block comments are replaced by a
    single space so that removing one never joins two tokens together.

    Malformed input never raises: an unterminated quote extends to the end of
    the input and an unterminated block comment swallows the rest of it.

    Args:
        sql: Raw SQL text (None is treated as empty)
        backslash_escapes: Also treat a backslash inside a literal as escaping
            the next character (MySQL string semantics)

    Returns:
        str: Cleaned SQL
    """
    if sql is None:
        return ''

    result = []
    i = 0
    length = len(sql)
    in_single_quote = False
    in_double_quote = False
    in_line_comment = False
    in_block_comment = False
    pending_space = False

    while i < length:
        char = sql[i]
        next_char = sql[i + 1] if i + 1 < length else ''

        if in_line_comment:
            # The newline ends the comment and is kept as whitespace
            if char in '\r\n':
                in_line_comment = False
                pending_space = True
            i += 1
            continue

        if in_block_comment:
            if char == '*' and next_char == '/':
                in_block_comment = False
                pending_space = True
                i += 2
            else:
                i += 1
            continue

        if in_single_quote or in_double_quote:
            quote = "'" if in_single_quote else '"'
            if backslash_escapes and char == '\\' and next_char:
                result.append(char + next_char)
                i += 2
                continue
            if char == quote:
                if next_char == quote:
                    result.append(char + next_char)
                    i += 2
                    continue
                in_single_quote = False
                in_double_quote = False
            result.append(char)
            i += 1
            continue

        if char == '-' and next_char == '-':
            in_line_comment = True
            i += 2
            continue

        if char == '/' and next_char == '*':
            in_block_comment = True
            i += 2
            continue

        if char.isspace():
            pending_space = True
            i += 1
            continue

        if pending_space and result:
            result.append(' ')
        pending_space = False

        if char == "'":
            in_single_quote = True
        elif char == '"':
            in_double_quote = True
        result.append(char)
        i += 1

    return ''.join(result).strip()


def _quoted_spans(sql, backslash_escapes=False):
    """
    Yield (start, end, quote, terminated) for every quoted region.

    `end` is exclusive and includes the closing quote when there is one.
    Single quotes, double quotes and backticks are all recognised so that a
    quote character of one kind inside a region of another kind is ignored.
    """
    i = 0
    length = len(sql)
    while i < length:
        quote = sql[i]
        if quote not in QUOTE_CHARS:
            i += 1
            continue

        start = i
        i += 1
        terminated = False
        while i < length:
            if backslash_escapes and quote != '`' and sql[i] == '\\':
                i += 2
                continue
            if sql[i] == quote:
                if i + 1 < length and sql[i + 1] == quote:
                    i += 2
                    continue
                terminated = True
                break
            i += 1

        end = i + 1 if terminated else length
        yield start, end, quote, terminated
        i = end


def mask_string_literals(sql, backslash_escapes=False, keep=None):
    """
    Blank out the contents of single-quoted literals, keeping every offset.

    Keywords, semicolons and parentheses that only live inside string values
    become invisible to clause scanners. Identifiers in double quotes or
    backticks are left alone, as is any terminated literal for which
    `keep(sql, start, end)` returns True.
    """
    chars = list(sql)
    for start, end, quote, terminated in _quoted_spans(sql, backslash_escapes):
        if quote != "'":
            continue
        if keep and terminated and keep(sql, start, end):
            continue
        stop = end - 1 if terminated else end
        for i in range(start + 1, stop):
            chars[i] = ' '
    return ''.join(chars)


def split_statements(sql):
    """Split on semicolons that are not inside quotes, dropping blank parts."""
    statements = []
    start = 0
    cursor = 0
    boundaries = []

    for span_start, span_end, _, _ in _quoted_spans(sql):
        boundaries.extend(i for i in range(cursor, span_start) if sql[i] == ';')
        cursor = span_end
    boundaries.extend(i for i in range(cursor, len(sql)) if sql[i] == ';')

    for boundary in boundaries:
        statements.append(sql[start:boundary])
        start = boundary + 1
    statements.append(sql[start:])

    return [s.strip() for s in statements if s.strip()]


def strip_strings_and_comments(sql):
    """
    Remove string literals and comments from SQL for keyword analysis.
    This prevents false positives from content inside strings/comments.
    """
    cleaned = clean_sql(sql)
    parts = []
    cursor = 0
    for start, end, _, _ in _quoted_spans(cleaned):
        parts.append(cleaned[cursor:start])
        cursor = end
    parts.append(cleaned[cursor:])
    return ''.join(parts)


def strip_trailing_semicolons(sql):
    """Drop any run of trailing semicolons (and the whitespace around them)."""
    return _TRAILING_SEMICOLONS.sub('', sql)
