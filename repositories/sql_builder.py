"""
repositories/sql_builder.py
---------------------------
Pure helpers that turn structured input into MySQL statement fragments.
Nothing here touches the database.
"""

import re
from typing import Any, Callable, Iterable, Mapping, Sequence

from models.query import And, Comparison, Connective, Or, Raw, SelectOptions
from utils.logger import get_logger

logger = get_logger(__name__)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Any) -> int | None:
    """
    Coerce a limit/offset to int, keeping only the leading integer.

    Examples:
        3 -> 3, 3.9 -> 3, "3abc" -> 3, " 12 " -> 12, "abc" -> None, True -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    return None


def _to_clause(item: Any):
    """Normalize one WHERE item, or return None if it must be dropped."""
    if isinstance(item, (Comparison, Raw, Connective, And, Or)):
        return item
    if isinstance(item, str):
        if item.strip().upper() in ("AND", "OR"):
            return Connective(item.strip())
        logger.warning(f"Warning: dropping raw WHERE fragment {item!r}; wrap trusted SQL in Raw().")
        return None
    if isinstance(item, (tuple, list)):
        if len(item) != 3:
            logger.warning(f"Warning: WHERE item {item!r} is not (column, operator, value); dropped.")
            return None
        try:
            return Comparison(*item)
        except ValueError as e:
            logger.warning(f"Warning: {e}; WHERE item {item!r} dropped.")
            return None
    logger.warning(f"Warning: unsupported WHERE item {item!r}; dropped.")
    return None


def _render(clause) -> str | None:
    """Render a clause; None if it, or anything nested in it, was dropped."""
    if isinstance(clause, (And, Or)):
        parts = []
        for nested in clause.clauses:
            nested = _to_clause(nested)
            if nested is None:
                return None
            # connectives are implied by the group itself
            if isinstance(nested, Connective):
                continue
            fragment = _render(nested)
            if fragment is None:
                return None
            parts.append(fragment)
        if not parts:
            logger.warning(f"Warning: empty {clause.keyword} group in WHERE clause; dropped.")
            return None
        return "(" + f" {clause.keyword} ".join(parts) + ")"
    return clause.to_sql()


def build_where(where: Sequence[Any] | None) -> str:
    """
    Build the WHERE clause, including its leading space.

    Items:
        (column, operator, value) / Comparison -> `column` OP 'value'
            (the value is quoted as is, it is NOT escaped)
        "AND" / "OR"                           -> connective keyword
        And(...) / Or(...)                     -> parenthesised group
        Raw(sql)                               -> sql verbatim

    Returns "" only for an empty or absent list. If any item had to be
    dropped the result is a bare " WHERE", which the server rejects, so a
    mistyped filter never widens an UPDATE or DELETE to the whole table.
    """
    if not where or isinstance(where, (str, bytes)):
        return ""

    sql = ""
    for item in where:
        clause = _to_clause(item)
        fragment = _render(clause) if clause is not None else None
        if fragment is None:
            logger.warning("Warning: WHERE clause is incomplete; the statement will be rejected.")
            return " WHERE"
        sql += f" {fragment} "

    return f" WHERE{sql}"


def build_field_values(
    data: Mapping[str, Any],
    known_fields: Iterable[str],
    escape: Callable[[Any], str],
) -> str:
    """
    Build the `key` = value assignments for INSERT ... SET / UPDATE ... SET.

    Keys that are not in `known_fields` are skipped with a warning; values
    are escaped with `escape`.
    """
    known = set(known_fields)
    if not known:
        logger.warning("Warning: Schema fields not found.")

    assignments = []
    for key, value in data.items():
        if key not in known:
            logger.warning(
                f"Warning: {key} is not in database schema, and is not inserted into queryset."
            )
            continue
        assignments.append(f"`{key}` = {escape(value)}")

    return ",".join(assignments)


def build_projection(fields: Sequence[str] | None) -> str:
    if not fields or isinstance(fields, (str, bytes)):
        return "*"
    return "`" + "`,`".join(fields) + "`"


def build_select(table: str, options: SelectOptions) -> str:
    limit = parse_int(options.limit)
    offset = parse_int(options.offset)
    sql_limit = f" LIMIT {limit}" if limit is not None and limit > 0 else ""
    sql_offset = f" OFFSET {offset}" if offset is not None and offset > 0 else ""
    return (
        f"SELECT {build_projection(options.fields)} FROM {table}"
        f"{build_where(options.where)}{sql_limit}{sql_offset};"
    )


def build_insert(table: str, field_values: str) -> str:
    return f"INSERT INTO {table} SET {field_values};"


def build_update(table: str, field_values: str, where: Sequence[Any] | None) -> str:
    return f"UPDATE {table} SET {field_values}{build_where(where)};"


def build_delete(table: str, where: Sequence[Any] | None) -> str:
    return f"DELETE FROM {table}{build_where(where)};"
