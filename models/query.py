"""
models/query.py
---------------
Query inputs and outputs: select options, the WHERE clause algebra
and the result objects returned by the driver.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

COMPARISON_OPERATORS = frozenset({
    "=", "!=", "<>", "<", "<=", ">", ">=",
    "LIKE", "NOT LIKE", "REGEXP", "NOT REGEXP",
    "IS", "IS NOT", "IN", "NOT IN",
})
_IS_KEYWORDS = frozenset({"NULL", "TRUE", "FALSE", "UNKNOWN"})
CONNECTIVES = frozenset({"AND", "OR"})


@dataclass
class QueryInfo:
    """Outcome of a statement that does not return rows."""
    affected_rows: int = 0
    insert_id: int | None = None


@dataclass
class QueryResult:
    """
    Everything the driver reports for one statement.

    Attributes:
        rows: Result rows as dicts (empty for INSERT/UPDATE/DELETE).
        fields: Column names of the result set, in driver order.
        info: Affected-rows info for statements without a result set.
    """
    rows: list[dict] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)
    info: QueryInfo | None = None


# ── WHERE clause algebra ──────────────────────────────────

@dataclass(frozen=True)
class Comparison:
    """
    `column` OP 'value'. The value is quoted but never escaped.

    None renders as NULL and booleans as TRUE/FALSE. IS / IS NOT only take
    NULL, TRUE, FALSE or UNKNOWN; IN / NOT IN take a non-empty sequence,
    rendered as ('a','b').
    """
    column: str
    operator: str
    value: Any

    def __post_init__(self):
        op = " ".join(str(self.operator).split()).upper()
        if op not in COMPARISON_OPERATORS:
            raise ValueError(f"Unsupported comparison operator: {self.operator!r}")
        object.__setattr__(self, "operator", op)

        if op in ("IS", "IS NOT"):
            if _keyword(self.value) is None:
                raise ValueError(f"{op} needs NULL, TRUE, FALSE or UNKNOWN, not {self.value!r}")
        elif op in ("IN", "NOT IN"):
            if isinstance(self.value, (str, bytes)) or not isinstance(self.value, (list, tuple, set, frozenset)):
                raise ValueError(f"{op} needs a list of values, not {self.value!r}")
            if not self.value:
                raise ValueError(f"{op} needs at least one value")

    def to_sql(self) -> str:
        if self.operator in ("IS", "IS NOT"):
            return f"`{self.column}` {self.operator} {_keyword(self.value)}"
        if self.operator in ("IN", "NOT IN"):
            values = ",".join(_literal(v) for v in self.value)
            return f"`{self.column}` {self.operator} ({values})"
        return f"`{self.column}` {self.operator} {_literal(self.value)}"


def _keyword(value) -> str | None:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, str) and value.strip().upper() in _IS_KEYWORDS:
        return value.strip().upper()
    return None


def _literal(value) -> str:
    if value is None or isinstance(value, bool):
        return _keyword(value)
    return f"'{value}'"


@dataclass(frozen=True)
class Raw:
    """A SQL fragment inserted verbatim. Only use with trusted text."""
    sql: str

    def to_sql(self) -> str:
        return self.sql


@dataclass(frozen=True)
class Connective:
    """A bare AND/OR keyword placed between top-level clauses."""
    keyword: str

    def __post_init__(self):
        keyword = str(self.keyword).upper()
        if keyword not in CONNECTIVES:
            raise ValueError(f"Unsupported connective: {self.keyword!r}")
        object.__setattr__(self, "keyword", keyword)

    def to_sql(self) -> str:
        return self.keyword


class _Group:
    keyword = ""

    def __init__(self, *clauses):
        self.clauses = tuple(clauses)

    def __eq__(self, other):
        return type(self) is type(other) and self.clauses == other.clauses

    def __repr__(self) -> str:
        return f"{type(self).__name__}{self.clauses!r}"


class And(_Group):
    """All nested clauses must hold; rendered as a parenthesised group."""
    keyword = "AND"


class Or(_Group):
    """Any nested clause may hold; rendered as a parenthesised group."""
    keyword = "OR"


@dataclass
class SelectOptions:
    """
    Options accepted by select/update/remove.

    Attributes:
        fields: Columns to project; None or empty means all columns.
        where: Sequence of clause items (tuples, clause objects, AND/OR).
        limit: Row limit, coerced to int; ignored unless positive.
        offset: Row offset, coerced to int; ignored unless positive.
    """
    fields: Sequence[str] | None = None
    where: Sequence[Any] | None = None
    limit: Any = None
    offset: Any = None

    @classmethod
    def coerce(cls, options) -> "SelectOptions":
        """Accept None, a mapping or an existing SelectOptions."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if isinstance(options, Mapping):
            return cls(
                fields=options.get("fields"),
                where=options.get("where"),
                limit=options.get("limit"),
                offset=options.get("offset"),
            )
        raise TypeError(f"options must be a mapping or SelectOptions, not {type(options).__name__}")
