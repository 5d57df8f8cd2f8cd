# =============================================================================
# SQL Safety — Keyword Filter & Identifier Quoting
# =============================================================================
#
# Model-written SQL goes through two pure text transforms before it reaches
# the read replica:
#
#   1. is_dangerous()      — reject anything mentioning a mutating verb
#   2. quote_identifiers() — force-quote bare identifiers so they match the
#                            case-sensitive, mixed-case view columns
#
# DESIGN DECISION: Text transforms, not a SQL parser.
# Both functions are string-level. is_dangerous() is a plain
# substring check, so a harmless literal such as 'Created date' is rejected
# too; the read-only connection and statement timeout on the evidence engine
# are the actual guarantees. quote_identifiers() is a fixed sequence of
# regex stages; callers depend only on its signature, so it can be swapped
# for a real parser without touching the executor.
# =============================================================================

import re

# Substring denylist, matched against the upper-cased query text
DANGEROUS_KEYWORDS = (
    "INSERT",
    "UPSERT",
    "DROP",
    "DELETE",
    "ALTER",
    "CREATE",
    "GRANT",
    "REVOKE",
    "REINDEX",
)

SQL_KEYWORDS = frozenset({
    "SELECT", "FROM", "WHERE", "AND", "OR", "IN", "ORDER", "BY", "ASC",
    "DESC", "LIMIT", "TRUE", "FALSE", "NULL", "NOT", "LIKE", "ILIKE",
    "GROUP", "HAVING", "JOIN", "LEFT", "RIGHT", "INNER", "OUTER", "ON",
    "AS", "CASE", "WHEN", "THEN", "ELSE", "END", "INTERVAL", "DISTINCT",
    "BETWEEN", "EXISTS", "IS", "SET", "UPDATE", "DELETE", "INSERT",
    "VALUES", "CREATE", "ALTER", "DROP", "TABLE", "VIEW", "INDEX", "UNION",
    "EXCEPT", "INTERSECT", "ALL", "ANY", "SOME", "COALESCE", "GREATEST",
    "LEAST", "OFFSET", "FETCH", "WITH", "RECURSIVE", "WINDOW", "NULLS",
    "LAST", "CROSS",
})

SQL_FUNCTIONS = frozenset({
    "NOW", "CURRENT_TIMESTAMP", "CURRENT_DATE", "CURRENT_TIME", "DATE_PART",
    "DATE_TRUNC", "DATE", "COUNT", "SUM", "AVG", "MAX", "MIN", "ROUND",
    "CEIL", "FLOOR", "ABS", "LENGTH", "LOWER", "UPPER", "TRIM", "SUBSTRING",
    "POSITION", "REPLACE", "CHAR_LENGTH", "EXTRACT",
})

_IDENTIFIER_RE = re.compile(r"\b([a-zA-Z_][a-zA-Z0-9_]*)\b")
_WILDCARD_RE = re.compile(r"%(.+?)%")
_STRING_LITERAL_RE = re.compile(r"'([^']+)'")


def is_dangerous(sql: str) -> bool:
    """
    True if the query text contains any mutating SQL verb, in any case.

    >>> is_dangerous("SELECT * FROM fundamentals_view")
    False
    >>> is_dangerous("dRoP view fundamentals_view")
    True
    """
    upper = sql.upper()
    return any(keyword in upper for keyword in DANGEROUS_KEYWORDS)


def _quote_token(match: re.Match) -> str:
    token = match.group(0)
    upper = token.upper()
    if upper in SQL_KEYWORDS or upper in SQL_FUNCTIONS:
        return token
    return f'"{token}"'


def _strip_double_quotes(match: re.Match) -> str:
    return match.group(0).replace('"', "")


def quote_identifiers(sql: str) -> str:
    """
    Double-quote every bare identifier that is not a keyword or function.

    Stages, applied in order:
      1. wrap every word token that is not a known keyword/function
      2. collapse the quote artifacts stage 1 leaves next to existing
         quotes ('" → ', "' → ', "" → ")
      3. strip double quotes inside %...% LIKE wildcards
      4. strip double quotes inside remaining single-quoted literals

    Already-quoted identifiers survive unchanged, so the transform is
    idempotent on well-formed input without embedded literals.

    >>> quote_identifiers("SELECT ticker FROM fundamentals_view LIMIT 5")
    'SELECT "ticker" FROM "fundamentals_view" LIMIT 5'
    """
    quoted = _IDENTIFIER_RE.sub(_quote_token, sql)
    quoted = quoted.replace("'\"", "'").replace("\"'", "'").replace('""', '"')
    quoted = _WILDCARD_RE.sub(_strip_double_quotes, quoted)
    return _STRING_LITERAL_RE.sub(_strip_double_quotes, quoted)
