import re

from schema_model import ColumnDefinition, TableDefinition
from sql_scanners import find_top_level_keyword, split_top_level


# ---------------------------------------------------------------------------
# 1. FROM / JOIN table references
# ---------------------------------------------------------------------------

_ALIAS_STOP_WORDS = {
    "where", "join", "on", "using", "group", "order", "limit", "having",
    "union", "intersect", "except", "inner", "left", "right", "full",
    "outer", "cross", "natural", "lateral", "window", "offset", "fetch",
}

_RE_TABLE_REF = re.compile(
    r'\b(?:FROM|JOIN)\s+(?:(?:"(?P<sdq>[^"]+)"|(?P<s>\w+))\s*\.\s*)?'
    r'(?:"(?P<tdq>[^"]+)"|(?P<t>\w+))'
    r'(?:\s+(?:AS\s+)?(?:"(?P<adq>[^"]+)"|(?!(?:' + "|".join(sorted(_ALIAS_STOP_WORDS))
    + r')\b)(?P<a>\w+)))?',
    re.I,
)

_CLAUSE_END_KEYWORDS = ("WHERE", r"GROUP\s+BY", "HAVING", r"ORDER\s+BY", "LIMIT",
                        "OFFSET", "WINDOW", "UNION", "INTERSECT", "EXCEPT", "FETCH")


def _clause_end(sql: str, start: int, keywords=_CLAUSE_END_KEYWORDS) -> int:
    end = len(sql)
    for kw in keywords:
        pos = find_top_level_keyword(sql, kw, start)
        if 0 <= pos < end:
            end = pos
    return end


def _qualified_ref(m: re.Match) -> tuple[str | None, str, str | None]:
    schema = m.group("sdq") or m.group("s")
    table = m.group("tdq") or m.group("t")
    return schema, table, m.group("adq") or m.group("a")


def extract_table_references(
    select_sql: str,
    all_tables: list[TableDefinition],
    default_schema: str,
) -> dict[str, TableDefinition]:
    """Map every alias and bare table name in FROM/JOIN to a known table.

    Tables that are not in ``all_tables`` are skipped; columns that refer to
    them later resolve to ``unknown``.
    """
    from_pos = find_top_level_keyword(select_sql, "FROM")
    if from_pos < 0:
        return {}
    from_clause = select_sql[from_pos:_clause_end(select_sql, from_pos)]

    tables: dict[str, TableDefinition] = {}
    for m in _RE_TABLE_REF.finditer(from_clause):
        schema, table_name, alias = _qualified_ref(m)
        wanted_schema = schema or default_schema
        table = next(
            (t for t in all_tables if t.name == table_name and t.schema == wanted_schema),
            None,
        )
        if table is None:
            continue
        tables.setdefault(alias or table_name, table)
        tables.setdefault(table_name, table)
    return tables


def _distinct_tables(tables: dict[str, TableDefinition]) -> list[TableDefinition]:
    seen, out = set(), []
    for t in tables.values():
        if id(t) not in seen:
            seen.add(id(t))
            out.append(t)
    return out


# ---------------------------------------------------------------------------
# 2. SELECT list
# ---------------------------------------------------------------------------

_RE_SELECT_PREFIX = re.compile(r"SELECT\s+(?:DISTINCT\s+(?:ON\s*\([^)]*\)\s*)?|ALL\s+)?", re.I)


def select_list(select_sql: str) -> list[str]:
    """Split the top-level SELECT list into its expressions."""
    sel = find_top_level_keyword(select_sql, "SELECT")
    if sel < 0:
        return []
    m = _RE_SELECT_PREFIX.match(select_sql, sel)
    start = m.end()
    from_pos = find_top_level_keyword(select_sql, "FROM", start)
    end = from_pos if from_pos >= 0 else _clause_end(select_sql, start)
    return split_top_level(select_sql[start:end])


# ---------------------------------------------------------------------------
# 3. Expression type inference
# ---------------------------------------------------------------------------

_EXPRESSION_TYPES = (
    (r"count\s*\(", "bigint", False),
    (r"(?:sum|avg)\s*\(", "numeric", False),
    (r"(?:min|max)\s*\(", "unknown", False),
    (r"array_agg\s*\(", "unknown", True),
    (r"string_agg\s*\(", "text", False),
    (r"bool_(?:and|or)\s*\(", "boolean", False),
    (r"jsonb_(?:object_)?agg\s*\(", "jsonb", False),
    (r"json_(?:object_)?agg\s*\(", "json", False),
    (r"(?:now\s*\(\s*\)|current_timestamp\b)", "timestamp with time zone", False),
    (r"current_date\b", "date", False),
    (r"current_time\b", "time with time zone", False),
    (r"case\s", "unknown", False),
    (r"\d+$", "integer", False),
    (r"\d+\.\d+$", "numeric", False),
    (r"'.*'$", "text", False),
    (r"(?:true|false)$", "boolean", False),
)


def infer_type_from_expression(expr: str) -> tuple[str, bool]:
    """Best-effort ``(type, is_array)`` for an expression with no column match."""
    expr = expr.strip()
    for pattern, pg_type, is_array in _EXPRESSION_TYPES:
        if re.match(pattern, expr, re.I | re.S):
            return pg_type, is_array
    return "unknown", False


# ---------------------------------------------------------------------------
# 4. Per-expression resolution
# ---------------------------------------------------------------------------

_CAST_TYPE = (
    r"(?P<type>(?:double\s+precision|character\s+varying|bit\s+varying|[A-Za-z_]\w*)"
    r"(?:\s*\(\s*\d+(?:\s*,\s*\d+)?\s*\))?"
    r"(?:\s+with(?:out)?\s+time\s+zone)?"
    r"(?:\s*\[\d*\])*)"
)
_RE_TRAILING_CAST = re.compile(r"^(?P<operand>.+?)::" + _CAST_TYPE + r"\s*$", re.I | re.S)
_RE_CAST_CALL = re.compile(r"^CAST\s*\((?P<operand>.+)\s+AS\s+" + _CAST_TYPE + r"\s*\)$", re.I | re.S)
_RE_EXPLICIT_ALIAS = re.compile(r'^(?P<expr>.+?)\s+AS\s+(?:"(?P<dq>[^"]+)"|(?P<bare>\w+))$', re.I | re.S)
_RE_IMPLICIT_ALIAS = re.compile(
    r'^(?P<expr>(?:"[^"]+"|\w+)(?:\s*\.\s*(?:"[^"]+"|\w+))*|.+\))\s+(?:"(?P<dq>[^"]+)"|(?P<bare>\w+))$',
    re.S,
)
_RE_CAST_THEN_ALIAS = re.compile(r'^(?P<expr>.+::.+)\s+(?:"(?P<dq>[^"]+)"|(?P<bare>\w+))$', re.S)
_IDENT = r'(?:"[^"]+"|\w+)'
_RE_COLUMN_REF = re.compile(r"^" + _IDENT + r"(?:\s*\.\s*" + _IDENT + r"){0,2}$")
_RE_STAR = re.compile(r'^(?:(?:"(?P<qdq>[^"]+)"|(?P<q>\w+))\s*\.\s*)?\*$')

_NON_ALIAS_WORDS = {"end", "desc", "asc", "null", "true", "false", "distinct"}


def _view_column(name: str, pg_type: str, is_array: bool, nullable: bool = True) -> ColumnDefinition:
    return ColumnDefinition(
        name=name,
        type=pg_type,
        nullable=nullable,
        default_value=None,
        is_array=is_array,
        is_primary_key=False,
        is_unique=False,
    )


def _match_cast(expr: str) -> tuple[str, str, bool] | None:
    """``(operand, type, is_array)`` for ``x::type`` or ``CAST(x AS type)``."""
    m = _RE_CAST_CALL.match(expr) or _RE_TRAILING_CAST.match(expr)
    if not m:
        return None
    type_part = m.group("type").strip()
    is_array = "[" in type_part
    pg_type = re.sub(r"\s*\[\d*\]", "", type_part).strip().lower()
    return m.group("operand").strip(), re.sub(r"\s+", " ", pg_type), is_array


def _split_alias(expr: str) -> tuple[str, str] | None:
    m = _RE_EXPLICIT_ALIAS.match(expr)
    if m and m.group("expr").count("(") == m.group("expr").count(")"):
        return m.group("expr").strip(), m.group("dq") or m.group("bare")
    m = _RE_IMPLICIT_ALIAS.match(expr)
    if m:
        alias = m.group("dq") or m.group("bare")
        if alias.lower() not in _NON_ALIAS_WORDS and not _match_cast(expr):
            return m.group("expr").strip(), alias
    # x::text label
    m = _RE_CAST_THEN_ALIAS.match(expr)
    if m and not _match_cast(expr) and _match_cast(m.group("expr")):
        alias = m.group("dq") or m.group("bare")
        if alias.lower() not in _NON_ALIAS_WORDS:
            return m.group("expr").strip(), alias
    return None


def _resolve_column_ref(
    expr: str, tables: dict[str, TableDefinition]
) -> tuple[str, ColumnDefinition | None] | None:
    """``(column_name, source_column)`` for a (qualified) column reference."""
    expr = expr.strip()
    if not _RE_COLUMN_REF.match(expr):
        return None
    parts = [p.strip('"') for p in re.findall(_IDENT, expr)]
    col_name = parts[-1]
    qualifier = parts[-2] if len(parts) > 1 else None
    if qualifier:
        candidates = [tables[qualifier]] if qualifier in tables else []
    else:
        candidates = _distinct_tables(tables)
    for table in candidates:
        for col in table.columns:
            if col.name == col_name:
                return col_name, col
    return col_name, None


def _synthesize_name(expr: str) -> str:
    name = re.sub(r"\(.*\)\s*$", "", expr.strip(), flags=re.S).strip()
    name = name.rsplit(".", 1)[-1].strip().strip('"')
    return name or "column"


def _typed_from(name: str, expr: str, tables: dict[str, TableDefinition]) -> ColumnDefinition:
    cast = _match_cast(expr)
    if cast:
        _, pg_type, is_array = cast
        return _view_column(name, pg_type, is_array)
    ref = _resolve_column_ref(expr, tables)
    if ref and ref[1] is not None:
        src = ref[1]
        return _view_column(name, src.type, src.is_array, src.nullable)
    pg_type, is_array = infer_type_from_expression(expr)
    return _view_column(name, pg_type, is_array)


def _expand_star(tables: list[TableDefinition]) -> list[ColumnDefinition]:
    seen, out = set(), []
    for table in tables:
        for col in table.columns:
            if col.name in seen:
                continue
            seen.add(col.name)
            out.append(_view_column(col.name, col.type, col.is_array, col.nullable))
    return out


def parse_column_expression(expr: str, tables: dict[str, TableDefinition]) -> list[ColumnDefinition]:
    """Resolve one SELECT-list entry into zero or more output columns."""
    expr = expr.strip()

    star = _RE_STAR.match(expr)
    if star:
        qualifier = star.group("qdq") or star.group("q")
        if qualifier is None:
            return _expand_star(_distinct_tables(tables))
        return _expand_star([tables[qualifier]]) if qualifier in tables else []

    aliased = _split_alias(expr)
    if aliased:
        source_expr, alias = aliased
        return [_typed_from(alias, source_expr, tables)]

    cast = _match_cast(expr)
    if cast:
        operand, pg_type, is_array = cast
        return [_view_column(_synthesize_name(operand), pg_type, is_array)]

    ref = _resolve_column_ref(expr, tables)
    if ref:
        col_name, src = ref
        if src is not None:
            return [_view_column(col_name, src.type, src.is_array, src.nullable)]

    pg_type, is_array = infer_type_from_expression(expr)
    return [_view_column(_synthesize_name(expr), pg_type, is_array)]


def infer_view_columns(
    select_sql: str,
    all_tables: list[TableDefinition],
    default_schema: str = "public",
) -> list[ColumnDefinition]:
    """Infer the output columns of a view's SELECT.

    Never raises on odd SQL: anything that cannot be resolved comes back as
    an ``unknown`` column, and a statement without a SELECT list gives ``[]``.
    """
    tables = extract_table_references(select_sql, all_tables, default_schema)
    columns: list[ColumnDefinition] = []
    for expr in select_list(select_sql):
        columns.extend(parse_column_expression(expr, tables))
    return columns
