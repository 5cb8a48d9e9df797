"""
Canonical forms for column types and defaults.

Both sides of a comparison may report the same type in different
spellings (``int4`` vs ``integer``, ``datetime2(7)`` vs ``timestamp``).
Types and defaults are normalized before schemas are compared.
"""

import re

_WHITESPACE = re.compile(r"\s+")
_PARENS = re.compile(r"\s*\(([^)]*)\)")
_INT_DISPLAY_WIDTH = re.compile(r"^(tinyint|smallint|mediumint|int|integer|bigint)\(\d+\)")
_TIME_ZONE_SUFFIX = re.compile(r"^(timestamp|time)(\(\d+\))? (with|without) time zone$")
_PG_CAST = re.compile(r"^(.*?)::[a-z_ ]+(\[\])?(\(\d+(,\d+)?\))?$", re.IGNORECASE | re.DOTALL)

# Longest names first so multi-word aliases win over their prefixes
TYPE_ALIASES = [
    ("national character varying", "varchar"),
    ("national character", "char"),
    ("character varying", "varchar"),
    ("double precision", "double"),
    ("uniqueidentifier", "uuid"),
    ("datetimeoffset", "timestamptz"),
    ("datetime2", "timestamp"),
    ("datetime", "timestamp"),
    ("character", "char"),
    ("nvarchar", "varchar"),
    ("nchar", "char"),
    ("ntext", "text"),
    ("integer", "int"),
    ("decimal", "numeric"),
    ("boolean", "boolean"),
    ("float8", "double"),
    ("float4", "real"),
    ("int4", "int"),
    ("int8", "bigint"),
    ("int2", "smallint"),
    ("bool", "boolean"),
]


def _fold_time_zone(match: re.Match) -> str:
    base, precision, qualifier = match.groups()
    return base + ("tz" if qualifier == "with" else "") + (precision or "")


def normalize_type(raw: str) -> str:
    """
    Canonical spelling of a declared column type

    >>> normalize_type("character varying(255)")
    'varchar(255)'
    >>> normalize_type("INT(11) UNSIGNED ZEROFILL")
    'int unsigned'
    """
    text = _WHITESPACE.sub(" ", (raw or "").strip().lower())
    text = _PARENS.sub(lambda m: "(" + m.group(1).replace(" ", "") + ")", text)
    text = _TIME_ZONE_SUFFIX.sub(_fold_time_zone, text.replace(" zerofill", ""))

    if text == "bit":
        return "boolean"

    for alias, canonical in TYPE_ALIASES:
        if text == alias or text.startswith(alias + "(") or text.startswith(alias + " "):
            text = canonical + text[len(alias):]
            break

    text = _INT_DISPLAY_WIDTH.sub(r"\1", text)

    # SQL Server's varchar(max) and PostgreSQL's text hold the same values
    if text in ("varchar(max)", "nvarchar(max)"):
        return "text"
    return text.strip()


def normalize_default(raw: str | None) -> str | None:
    """
    Canonical form of a column default expression

    >>> normalize_default("((0))")
    '0'
    >>> normalize_default("'a'::character varying")
    "'a'"
    """
    if raw is None:
        return None

    text = raw.strip()
    while _wrapped_in_parens(text):
        text = text[1:-1].strip()

    match = _PG_CAST.match(text)
    if match and not text.lower().startswith("nextval("):
        text = match.group(1).strip()
        while _wrapped_in_parens(text):
            text = text[1:-1].strip()

    return text


def _wrapped_in_parens(text: str) -> bool:
    """True when the outer parentheses enclose the whole expression."""
    if len(text) < 2 or text[0] != "(" or text[-1] != ")":
        return False

    depth = 0
    for position, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0 and position != len(text) - 1:
                return False
    return True
