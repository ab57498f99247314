import re

from schema_model import (
    ColumnDefinition,
    CompositeAttribute,
    CompositeTypeDefinition,
    EnumDefinition,
    ForeignKeyReference,
    FunctionArgument,
    FunctionDefinition,
    IndexDefinition,
    RelationshipDefinition,
    TableDefinition,
    ViewDefinition,
)
from sql_scanners import (
    collapse_whitespace,
    find_closing_paren,
    find_top_level_keyword,
    ident_pattern,
    ident_value,
    normalize_statement,
    qualified_pattern,
    split_top_level,
    strip_quotes,
)
from view_columns import infer_view_columns


def _split_column_list(cols: str) -> list[str]:
    return [strip_quotes(c) for c in cols.split(",") if strip_quotes(c)]


def _relation_name(schema: str | None, table: str, default_schema: str) -> str:
    """``schema.table`` when the reference leaves the default schema."""
    if schema and schema != default_schema:
        return f"{schema}.{table}"
    return table


def _unescape(text: str) -> str:
    return text.replace("''", "'")


# ---------------------------------------------------------------------------
# 1. Column definitions
# ---------------------------------------------------------------------------

_RE_COLUMN_NAME = re.compile(r"^" + ident_pattern("col") + r"\s+(?P<rest>.+)$", re.S)

_MULTI_WORD_TYPES = (
    "timestamp with time zone",
    "timestamp without time zone",
    "time with time zone",
    "time without time zone",
    "double precision",
    "character varying",
    "bit varying",
)

_RE_SIZE = re.compile(r"^\s*\((?P<size>[^)]+)\)")
_RE_TIME_ZONE_SUFFIX = re.compile(r"^\s*(?P<tz>with(?:out)?\s+time\s+zone)\b", re.I)
_RE_GENERIC_TYPE = re.compile(
    r'^(?:(?:"[^"]+"|\'[^\']+\'|\w+)\s*\.\s*)?'
    r'(?:"(?P<dq>[^"]+)"|\'(?P<sq>[^\']+)\'|(?P<bare>\w+))'
)
_RE_ARRAY_BRACKETS = re.compile(r"^(?:\s*\[\d*\])+")
_RE_ARRAY_KEYWORD = re.compile(r"^ARRAY\b(?:\s*\[\d*\])?", re.I)

_DEFAULT_STOP_KEYWORDS = (
    r"NOT\s+NULL",
    r"(?<![Ii][Ss] )NULL",
    r"PRIMARY\s+KEY",
    r"UNIQUE",
    r"REFERENCES",
    r"CHECK",
    r"CONSTRAINT",
    r"GENERATED",
    r"COLLATE",
)

_RE_REFERENCES = re.compile(
    r"\bREFERENCES\s+" + qualified_pattern("ref_schema", "ref_table")
    + r"\s*\(\s*" + ident_pattern("ref_col") + r"\s*\)",
    re.I,
)


def _take_type(rest: str) -> tuple[str, str] | None:
    """Split ``rest`` into ``(type, remaining_constraints)``."""
    lowered = rest.lower()
    for multi in _MULTI_WORD_TYPES:
        if lowered.startswith(multi) and not re.match(r"\w", rest[len(multi):len(multi) + 1]):
            col_type, remaining = multi, rest[len(multi):]
            break
    else:
        m = _RE_GENERIC_TYPE.match(rest)
        if not m:
            return None
        quoted = m.group("dq") or m.group("sq")
        col_type = quoted if quoted else m.group("bare").lower()
        remaining = rest[m.end():]

    m = _RE_SIZE.match(remaining)
    if m:
        col_type += f"({m.group('size').strip()})"
        remaining = remaining[m.end():]
        # timestamp(3) with time zone
        tz = _RE_TIME_ZONE_SUFFIX.match(remaining)
        if tz and col_type.startswith(("timestamp(", "time(")):
            col_type += " " + " ".join(tz.group("tz").lower().split())
            remaining = remaining[tz.end():]
    return col_type, remaining.strip()


def _take_array(col_type: str, remaining: str) -> tuple[str, str, bool]:
    m = _RE_ARRAY_BRACKETS.match(remaining) or _RE_ARRAY_KEYWORD.match(remaining)
    if m:
        return col_type, remaining[m.end():].strip(), True
    if "[]" in col_type:
        return col_type.replace("[]", "").strip(), remaining, True
    return col_type, remaining, False


def _take_default(remaining: str) -> tuple[str, str | None]:
    m = re.search(r"\bDEFAULT\s+", remaining, re.I)
    if not m:
        return remaining, None
    expr = remaining[m.end():]
    expr_end = len(expr)
    for kw in _DEFAULT_STOP_KEYWORDS:
        pos = find_top_level_keyword(expr, kw)
        if pos == 0:
            # DEFAULT NULL
            pos = find_top_level_keyword(expr, kw, 1)
        if 0 <= pos < expr_end:
            expr_end = pos
    default = expr[:expr_end].strip()
    return remaining[:m.start()] + " " + expr[expr_end:], default or None


def _take_references(remaining: str) -> tuple[str, ForeignKeyReference | None]:
    m = _RE_REFERENCES.search(remaining)
    if not m:
        return remaining, None
    ref = ForeignKeyReference(
        table=ident_value(m, "ref_table"),
        column=ident_value(m, "ref_col"),
        schema=ident_value(m, "ref_schema"),
    )
    return remaining[:m.start()] + " " + remaining[m.end():], ref


def _has_keyword(remaining: str, keyword: str) -> bool:
    return find_top_level_keyword(remaining, keyword) >= 0


def parse_column_definition(col_def: str) -> ColumnDefinition | None:
    """Parse one column clause from a ``CREATE TABLE`` body.

    The clause is narrowed step by step: name, type, array marker, then the
    constraint text (``DEFAULT`` and ``REFERENCES`` are consumed before the
    ``NOT NULL``/``PRIMARY KEY``/``UNIQUE`` flags are looked up, so keywords
    inside a default expression are never mistaken for constraints).
    """
    m = _RE_COLUMN_NAME.match(col_def.strip())
    if not m:
        return None
    name = ident_value(m, "col")

    typed = _take_type(m.group("rest").strip())
    if typed is None:
        return None
    col_type, remaining = typed
    col_type, remaining, is_array = _take_array(col_type, remaining)

    remaining, default_value = _take_default(remaining)
    remaining, foreign_key = _take_references(remaining)

    not_null = _has_keyword(remaining, r"NOT\s+NULL")
    is_pk = _has_keyword(remaining, r"PRIMARY\s+KEY")
    is_unique = not is_pk and _has_keyword(remaining, r"UNIQUE")

    return ColumnDefinition(
        name=name,
        type=col_type,
        nullable=not (not_null or is_pk),
        default_value=default_value,
        is_array=is_array,
        is_primary_key=is_pk,
        is_unique=is_unique,
        foreign_key=foreign_key,
    )


# ---------------------------------------------------------------------------
# 2. CREATE TABLE
# ---------------------------------------------------------------------------

_RE_CREATE_TABLE = re.compile(
    r"^CREATE\s+(?:(?:GLOBAL|LOCAL)\s+)?(?:(?:TEMP|TEMPORARY|UNLOGGED)\s+)?TABLE\s+"
    r"(?:IF\s+NOT\s+EXISTS\s+)?" + qualified_pattern("schema", "name") + r"\s*\(",
    re.I,
)

_RE_TABLE_FK = re.compile(
    r"^CONSTRAINT\s+" + ident_pattern("fk")
    + r"\s+FOREIGN\s+KEY\s*\((?P<cols>[^)]+)\)\s*REFERENCES\s+"
    + qualified_pattern("ref_schema", "ref_table")
    + r"\s*\((?P<ref_cols>[^)]+)\)",
    re.I,
)

# Table-level constraints and stray fragments of mis-split expressions.
_RE_SKIP_CLAUSE = re.compile(
    r"^(?:PRIMARY\s+KEY|FOREIGN\s+KEY|UNIQUE\b|CHECK\s*\(|EXCLUDE\b|CONSTRAINT\s|LIKE\s"
    r"|CASE\s+WHEN|WHEN\s|THEN\s|ELSE\s|END\s*$)",
    re.I,
)


def parse_table_definition(sql: str, schema: str = "public") -> TableDefinition | None:
    sql = normalize_statement(sql)
    m = _RE_CREATE_TABLE.match(sql)
    if not m:
        return None
    table_schema = ident_value(m, "schema") or schema
    table_name = ident_value(m, "name")

    closing = find_closing_paren(sql, m.end())
    if closing is None:
        return None
    body = collapse_whitespace(closing[1])
    if not body:
        return None

    columns: list[ColumnDefinition] = []
    relationships: list[RelationshipDefinition] = []

    for clause in split_top_level(body):
        fk = _RE_TABLE_FK.match(clause)
        if fk:
            relationships.append(RelationshipDefinition(
                foreign_key_name=ident_value(fk, "fk"),
                columns=_split_column_list(fk.group("cols")),
                is_one_to_one=False,
                referenced_relation=_relation_name(
                    ident_value(fk, "ref_schema"), ident_value(fk, "ref_table"), table_schema),
                referenced_columns=_split_column_list(fk.group("ref_cols")),
            ))
            continue
        if _RE_SKIP_CLAUSE.match(clause):
            continue

        col = parse_column_definition(clause)
        if col is None:
            continue
        columns.append(col)
        if col.foreign_key:
            relationships.append(RelationshipDefinition(
                foreign_key_name=f"{table_name}_{col.name}_fkey",
                columns=[col.name],
                is_one_to_one=col.is_unique or col.is_primary_key,
                referenced_relation=_relation_name(
                    col.foreign_key.schema, col.foreign_key.table, table_schema),
                referenced_columns=[col.foreign_key.column],
            ))

    if not columns:
        return None
    return TableDefinition(
        schema=table_schema,
        name=table_name,
        columns=columns,
        relationships=relationships,
    )


# ---------------------------------------------------------------------------
# 3. CREATE TYPE (enum / composite)
# ---------------------------------------------------------------------------

_RE_CREATE_ENUM = re.compile(
    r"^CREATE\s+TYPE\s+" + qualified_pattern("schema", "name") + r"\s+AS\s+ENUM\s*\(",
    re.I,
)
_RE_ENUM_VALUE = re.compile(r"""^(?:'(?P<sq>(?:[^']|'')*)'|"(?P<dq>[^"]*)")$""")


def parse_enum_definition(sql: str, schema: str = "public") -> EnumDefinition | None:
    sql = normalize_statement(sql)
    m = _RE_CREATE_ENUM.match(sql)
    if not m:
        return None
    closing = find_closing_paren(sql, m.end())
    if closing is None:
        return None

    values = []
    for part in split_top_level(closing[1]):
        vm = _RE_ENUM_VALUE.match(part)
        if vm:
            values.append(_unescape(vm.group("sq")) if vm.group("sq") is not None else vm.group("dq"))
    if not values:
        return None
    return EnumDefinition(
        schema=ident_value(m, "schema") or schema,
        name=ident_value(m, "name"),
        values=values,
    )


_RE_CREATE_COMPOSITE = re.compile(
    r"^CREATE\s+TYPE\s+" + qualified_pattern("schema", "name") + r"\s+AS\s*\(",
    re.I,
)
_RE_ATTRIBUTE = re.compile(
    r"""^(?:"(?P<dq>[^"]+)"|'(?P<sq>[^']+)'|(?P<bare>[\w-]+))\s+(?P<type>.+)$""", re.S)
_RE_COLLATE_TAIL = re.compile(r"\s+COLLATE\s+.*$", re.I)


def parse_composite_type(sql: str, schema: str = "public") -> CompositeTypeDefinition | None:
    sql = normalize_statement(sql)
    m = _RE_CREATE_COMPOSITE.match(sql)
    if not m:
        return None
    closing = find_closing_paren(sql, m.end())
    if closing is None:
        return None

    attributes = []
    for part in split_top_level(closing[1]):
        am = _RE_ATTRIBUTE.match(part)
        if am:
            attributes.append(CompositeAttribute(
                name=am.group("dq") or am.group("sq") or am.group("bare"),
                type=_RE_COLLATE_TAIL.sub("", am.group("type")).strip(),
            ))
    if not attributes:
        return None
    return CompositeTypeDefinition(
        schema=ident_value(m, "schema") or schema,
        name=ident_value(m, "name"),
        attributes=attributes,
    )


# ---------------------------------------------------------------------------
# 4. CREATE FUNCTION
# ---------------------------------------------------------------------------

_RE_CREATE_FUNCTION = re.compile(
    r"^CREATE\s+(?:OR\s+REPLACE\s+)?FUNCTION\s+" + qualified_pattern("schema", "name") + r"\s*\(",
    re.I,
)
_RE_RETURNS = re.compile(
    r"\s*RETURNS\s+(?P<returns>.+?)"
    r"(?=\s+(?:LANGUAGE|AS|SECURITY|STABLE|IMMUTABLE|VOLATILE|STRICT|LEAKPROOF|NOT|CALLED"
    r"|PARALLEL|COST|ROWS|SUPPORT|WINDOW|SET|BEGIN|RETURN|EXTERNAL)\b|\s*$)",
    re.I | re.S,
)
_RE_ARG_MODE = re.compile(r"^(?:IN|OUT|INOUT|VARIADIC)\s+", re.I)
_RE_ARG_DEFAULT = re.compile(r"\s+DEFAULT\s+|\s*=\s*", re.I)
_RE_ARG = re.compile(r'^(?:"(?P<dq>[^"]+)"|(?P<bare>\w+))\s+(?P<type>.+)$', re.S)


def _parse_function_args(args_str: str) -> list[FunctionArgument]:
    args = []
    for part in split_top_level(args_str):
        part = _RE_ARG_MODE.sub("", part)
        has_default = False
        dm = _RE_ARG_DEFAULT.search(part)
        if dm:
            part, has_default = part[:dm.start()], True
        am = _RE_ARG.match(part.strip())
        if not am:
            continue
        args.append(FunctionArgument(
            name=am.group("dq") or am.group("bare"),
            type=am.group("type").strip().strip('"'),
            has_default=has_default,
        ))
    return args


def parse_function_definition(sql: str, schema: str = "public") -> FunctionDefinition | None:
    sql = normalize_statement(sql)
    m = _RE_CREATE_FUNCTION.match(sql)
    if not m:
        return None
    closing = find_closing_paren(sql, m.end())
    if closing is None:
        return None
    close_pos, args_str = closing

    rm = _RE_RETURNS.match(sql, close_pos + 1)
    if not rm:
        return None
    return FunctionDefinition(
        schema=ident_value(m, "schema") or schema,
        name=ident_value(m, "name"),
        args=_parse_function_args(args_str),
        returns=rm.group("returns").strip().strip("\"'"),
    )


# ---------------------------------------------------------------------------
# 5. CREATE INDEX
# ---------------------------------------------------------------------------

_RE_CREATE_INDEX = re.compile(
    r"^CREATE\s+(?P<uniq>UNIQUE\s+)?INDEX\s+(?:CONCURRENTLY\s+)?(?:IF\s+NOT\s+EXISTS\s+)?"
    + ident_pattern("idx") + r"\s+ON\s+(?:ONLY\s+)?" + qualified_pattern("schema", "table")
    + r"\s*(?:USING\s+[\"']?(?P<method>\w+)[\"']?\s*)?\(",
    re.I,
)
_RE_PLAIN_IDENT = re.compile(r'^(?:"(?P<dq>[^"]+)"|(?P<bare>\w+))$')


def _index_column(entry: str) -> str:
    m = _RE_PLAIN_IDENT.match(entry)
    if m:
        return m.group("dq") or m.group("bare")
    return entry


def parse_index_definition(sql: str, schema: str = "public") -> IndexDefinition | None:
    sql = normalize_statement(sql)
    m = _RE_CREATE_INDEX.match(sql)
    if not m:
        return None
    closing = find_closing_paren(sql, m.end())
    if closing is None:
        return None
    close_pos, cols_str = closing

    tail = sql[close_pos + 1:]
    where_pos = find_top_level_keyword(tail, "WHERE")
    where_clause = tail[where_pos + len("WHERE"):].strip() if where_pos >= 0 else None

    method = m.group("method")
    return IndexDefinition(
        name=ident_value(m, "idx"),
        table_name=ident_value(m, "table"),
        columns=[_index_column(c) for c in split_top_level(cols_str)],
        is_unique=bool(m.group("uniq")),
        method=method.lower() if method else None,
        where_clause=where_clause or None,
    )


# ---------------------------------------------------------------------------
# 6. CREATE VIEW
# ---------------------------------------------------------------------------

_RE_CREATE_VIEW = re.compile(
    r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:(?:TEMP|TEMPORARY)\s+)?(?P<mat>MATERIALIZED\s+)?VIEW\s+"
    r"(?:IF\s+NOT\s+EXISTS\s+)?" + qualified_pattern("schema", "name")
    + r"(?:\s*\([^)]*\))?(?:\s+WITH\s*\([^)]*\))?\s+AS\s+(?P<query>.+)$",
    re.I | re.S,
)
_RE_WITH_DATA = re.compile(r"\s+WITH\s+(?:NO\s+)?DATA\s*$", re.I)


def parse_view_definition(
    sql: str,
    schema: str = "public",
    all_tables: list[TableDefinition] | None = None,
) -> ViewDefinition | None:
    sql = normalize_statement(sql)
    m = _RE_CREATE_VIEW.match(sql)
    if not m:
        return None
    view_schema = ident_value(m, "schema") or schema
    definition = _RE_WITH_DATA.sub("", m.group("query")).strip()

    return ViewDefinition(
        schema=view_schema,
        name=ident_value(m, "name"),
        columns=infer_view_columns(definition, all_tables or [], view_schema),
        is_materialized=bool(m.group("mat")),
        definition=definition,
    )


# ---------------------------------------------------------------------------
# 7. ALTER TABLE
# ---------------------------------------------------------------------------

_ALTER_PREFIX = (
    r"^ALTER\s+TABLE\s+(?:IF\s+EXISTS\s+)?(?:ONLY\s+)?"
    + qualified_pattern("schema", "table") + r"\s+ADD\s+"
)

_RE_ALTER_FK = re.compile(
    _ALTER_PREFIX + r"CONSTRAINT\s+" + ident_pattern("fk")
    + r"\s+FOREIGN\s+KEY\s*\((?P<cols>[^)]+)\)\s*REFERENCES\s+"
    + qualified_pattern("ref_schema", "ref_table") + r"\s*\((?P<ref_cols>[^)]+)\)",
    re.I,
)

_RE_ALTER_UNIQUE = re.compile(
    _ALTER_PREFIX + r"(?:CONSTRAINT\s+" + ident_pattern("uq") + r"\s+)?"
    r"UNIQUE\s*(?:NULLS\s+(?:NOT\s+)?DISTINCT\s*)?\((?P<cols>[^)]+)\)",
    re.I,
)


def parse_alter_table_foreign_key(sql: str, schema: str = "public") -> dict | None:
    """``ALTER TABLE ... ADD CONSTRAINT ... FOREIGN KEY`` as a pending relationship.

    The owning table may not have been seen yet, so the relationship is
    returned alongside the table name and merged later.
    """
    m = _RE_ALTER_FK.match(normalize_statement(sql))
    if not m:
        return None
    table_schema = ident_value(m, "schema") or schema
    return {
        "table_name": ident_value(m, "table"),
        "schema": table_schema,
        "relationship": RelationshipDefinition(
            foreign_key_name=ident_value(m, "fk"),
            columns=_split_column_list(m.group("cols")),
            is_one_to_one=False,
            referenced_relation=_relation_name(
                ident_value(m, "ref_schema"), ident_value(m, "ref_table"), table_schema),
            referenced_columns=_split_column_list(m.group("ref_cols")),
        ),
    }


def parse_alter_table_unique(sql: str, schema: str = "public") -> dict | None:
    m = _RE_ALTER_UNIQUE.match(normalize_statement(sql))
    if not m:
        return None
    return {
        "table_name": ident_value(m, "table"),
        "schema": ident_value(m, "schema") or schema,
        "columns": _split_column_list(m.group("cols")),
    }


# ---------------------------------------------------------------------------
# 8. COMMENT ON
# ---------------------------------------------------------------------------

_COMMENT_TEXT = r"\s+IS\s+'(?P<text>(?:[^']|'')*)'"

_RE_TABLE_COMMENT = re.compile(
    r"^COMMENT\s+ON\s+TABLE\s+" + qualified_pattern("schema", "table") + _COMMENT_TEXT, re.I)
_RE_COLUMN_COMMENT = re.compile(
    r"^COMMENT\s+ON\s+COLUMN\s+" + qualified_pattern("schema", "table")
    + r"\s*\.\s*" + ident_pattern("column") + _COMMENT_TEXT,
    re.I,
)
_RE_VIEW_COMMENT = re.compile(
    r"^COMMENT\s+ON\s+(?:MATERIALIZED\s+)?VIEW\s+" + qualified_pattern("schema", "view")
    + _COMMENT_TEXT,
    re.I,
)


def parse_table_comment(sql: str, schema: str = "public") -> dict | None:
    m = _RE_TABLE_COMMENT.match(normalize_statement(sql))
    if not m:
        return None
    return {
        "table_name": ident_value(m, "table"),
        "comment": _unescape(m.group("text")),
        "schema": ident_value(m, "schema") or schema,
    }


def parse_column_comment(sql: str, schema: str = "public") -> dict | None:
    m = _RE_COLUMN_COMMENT.match(normalize_statement(sql))
    if not m:
        return None
    return {
        "table_name": ident_value(m, "table"),
        "column_name": ident_value(m, "column"),
        "comment": _unescape(m.group("text")),
        "schema": ident_value(m, "schema") or schema,
    }


def parse_view_comment(sql: str, schema: str = "public") -> dict | None:
    m = _RE_VIEW_COMMENT.match(normalize_statement(sql))
    if not m:
        return None
    return {
        "view_name": ident_value(m, "view"),
        "comment": _unescape(m.group("text")),
        "schema": ident_value(m, "schema") or schema,
    }
