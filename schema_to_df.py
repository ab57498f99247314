import logging
import os

import pandas as pd

from schema_model import ParsedSchema, RelationshipDefinition, TableDefinition
from sql_scanners import split_statements
from sql_statements import (
    parse_alter_table_foreign_key,
    parse_alter_table_unique,
    parse_column_comment,
    parse_composite_type,
    parse_enum_definition,
    parse_function_definition,
    parse_index_definition,
    parse_table_comment,
    parse_table_definition,
    parse_view_comment,
    parse_view_definition,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 1. Per-file statement cascade
# ---------------------------------------------------------------------------

def _read_sql(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _parse_file(path: str, schema: str, include_comments: bool,
                parsed: ParsedSchema, pending: dict) -> None:
    sql = _read_sql(path)
    logger.info("Processing: %s", os.path.basename(path))

    table_comments: dict[tuple[str, str], str] = {}
    column_comments: dict[tuple[str, str], dict[str, str]] = {}
    view_comments: dict[tuple[str, str], str] = {}
    tables_in_file, views_in_file = [], []

    for stmt in split_statements(sql):
        table = parse_table_definition(stmt, schema)
        if table:
            parsed.tables.append(table)
            tables_in_file.append(table)
            continue

        enum_def = parse_enum_definition(stmt, schema)
        if enum_def:
            parsed.enums.append(enum_def)
            continue

        func_def = parse_function_definition(stmt, schema)
        if func_def:
            parsed.functions.append(func_def)
            continue

        composite = parse_composite_type(stmt, schema)
        if composite:
            parsed.composite_types.append(composite)
            continue

        view = parse_view_definition(stmt, schema, parsed.tables)
        if view:
            parsed.views.append(view)
            views_in_file.append(view)
            continue

        index = parse_index_definition(stmt, schema)
        if index:
            pending["indexes"].append(index)
            continue

        alter_fk = parse_alter_table_foreign_key(stmt, schema)
        if alter_fk:
            pending["foreign_keys"].append(alter_fk)
            continue

        alter_uq = parse_alter_table_unique(stmt, schema)
        if alter_uq:
            pending["uniques"].append(alter_uq)
            continue

        if not include_comments:
            continue

        tc = parse_table_comment(stmt, schema)
        if tc:
            table_comments[(tc["schema"], tc["table_name"])] = tc["comment"]
            continue

        cc = parse_column_comment(stmt, schema)
        if cc:
            column_comments.setdefault(
                (cc["schema"], cc["table_name"]), {})[cc["column_name"]] = cc["comment"]
            continue

        vc = parse_view_comment(stmt, schema)
        if vc:
            view_comments[(vc["schema"], vc["view_name"])] = vc["comment"]

    # Comments only bind to relations defined in the same file.
    for table in tables_in_file:
        key = (table.schema, table.name)
        if key in table_comments:
            table.comment = table_comments[key]
        for col in table.columns:
            comment = column_comments.get(key, {}).get(col.name)
            if comment:
                col.comment = comment
    for view in views_in_file:
        key = (view.schema, view.name)
        if key in view_comments:
            view.comment = view_comments[key]


# ---------------------------------------------------------------------------
# 2. Cross-statement reconciliation
# ---------------------------------------------------------------------------

def _find_table(tables: list[TableDefinition], name: str,
                schema: str | None = None) -> TableDefinition | None:
    """Exact ``(schema, name)`` match first, then any table with that name."""
    exact = next((t for t in tables if t.name == name and t.schema == schema), None)
    return exact or next((t for t in tables if t.name == name), None)


def _is_one_to_one(table: TableDefinition, columns: list[str]) -> bool:
    """A single referencing column that is PK, unique, or uniquely indexed."""
    if len(columns) != 1:
        return False
    col_name = columns[0]
    column = next((c for c in table.columns if c.name == col_name), None)
    if column is not None and (column.is_unique or column.is_primary_key):
        return True
    return any(idx.is_unique and idx.columns == [col_name] for idx in table.indexes)


def _reconcile(tables: list[TableDefinition], pending: dict) -> None:
    for table in tables:
        table.indexes = [idx for idx in pending["indexes"] if idx.table_name == table.name]

    for uq in pending["uniques"]:
        table = _find_table(tables, uq["table_name"], uq["schema"])
        if table is None:
            continue
        for col in table.columns:
            if col.name in uq["columns"] and not col.is_primary_key:
                col.is_unique = True

    for table in tables:
        for rel in table.relationships:
            rel.is_one_to_one = _is_one_to_one(table, rel.columns)

    for fk in pending["foreign_keys"]:
        table = _find_table(tables, fk["table_name"], fk["schema"])
        if table is None:
            logger.debug("Foreign key %s targets unknown table %s",
                         fk["relationship"].foreign_key_name, fk["table_name"])
            continue
        rel: RelationshipDefinition = fk["relationship"]
        rel.is_one_to_one = _is_one_to_one(table, rel.columns)
        table.relationships.append(rel)


# ---------------------------------------------------------------------------
# 3. Main orchestrator
# ---------------------------------------------------------------------------

def parse_sql_files(file_paths: list[str], schema: str = "public",
                    include_comments: bool = True) -> ParsedSchema:
    """Parse schema files in order into one ``ParsedSchema``.

    A file that cannot be read or parsed is logged and skipped. Indexes,
    ``ALTER TABLE`` uniques and foreign keys are merged only after every
    file has been read, so statement order across files does not matter.
    """
    parsed = ParsedSchema()
    pending = {"indexes": [], "foreign_keys": [], "uniques": []}

    for path in file_paths:
        try:
            _parse_file(path, schema, include_comments, parsed, pending)
        except Exception as e:
            logger.error("Error parsing %s: %s", path, e)

    _reconcile(parsed.tables, pending)

    logger.info("Parsed %d table(s)", len(parsed.tables))
    for label, items in (("enum", parsed.enums), ("function", parsed.functions),
                         ("composite type", parsed.composite_types), ("view", parsed.views)):
        if items:
            logger.info("Parsed %d %s(s)", len(items), label)
    return parsed


# ---------------------------------------------------------------------------
# 4. Column catalog
# ---------------------------------------------------------------------------

CATALOG_COLUMNS = [
    "relation_type", "schema", "relation_name", "column_name", "data_type",
    "is_array", "nullable", "has_default", "is_pk", "is_uq", "is_fk",
    "fk_table", "fk_col", "comment",
]


def _fk_lookup(table: TableDefinition) -> dict[str, tuple[str, str]]:
    out = {}
    for rel in table.relationships:
        for col, ref_col in zip(rel.columns, rel.referenced_columns):
            out.setdefault(col, (rel.referenced_relation, ref_col))
    return out


def schema_to_df(parsed: ParsedSchema) -> pd.DataFrame:
    """Flatten table and view columns into one row per column, in source order."""
    rows = []

    for table in parsed.tables:
        fk_map = _fk_lookup(table)
        for c in table.columns:
            is_fk = c.name in fk_map
            rows.append({
                "relation_type": "table",
                "schema": table.schema,
                "relation_name": table.name,
                "column_name": c.name,
                "data_type": c.type,
                "is_array": c.is_array,
                "nullable": c.nullable,
                "has_default": c.default_value is not None,
                "is_pk": c.is_primary_key,
                "is_uq": c.is_unique,
                "is_fk": is_fk,
                "fk_table": fk_map[c.name][0] if is_fk else pd.NA,
                "fk_col": fk_map[c.name][1] if is_fk else pd.NA,
                "comment": c.comment if c.comment else pd.NA,
            })

    for view in parsed.views:
        for c in view.columns:
            rows.append({
                "relation_type": "materialized_view" if view.is_materialized else "view",
                "schema": view.schema,
                "relation_name": view.name,
                "column_name": c.name,
                "data_type": c.type,
                "is_array": c.is_array,
                "nullable": c.nullable,
                "has_default": False,
                "is_pk": False,
                "is_uq": False,
                "is_fk": False,
                "fk_table": pd.NA,
                "fk_col": pd.NA,
                "comment": c.comment if c.comment else pd.NA,
            })

    return pd.DataFrame(rows, columns=CATALOG_COLUMNS)
