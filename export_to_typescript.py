import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import pandas as pd

from jsonb_defaults import TypeDefinition
from naming import convert_case
from schema_model import (
    CompositeTypeDefinition,
    EnumDefinition,
    FunctionDefinition,
    ParsedSchema,
    TableDefinition,
    ViewDefinition,
)
from schema_to_df import CATALOG_COLUMNS
from type_mapping import detect_geometric_types, map_postgres_type

logger = logging.getLogger(__name__)

NEVER = "[_ in never]: never"
EXCLUDED_COLUMNS = ("this", "constraint")


@dataclass
class RenderOptions:
    schema: str = "public"
    naming: str = "preserve"
    indent_size: int = 2
    alphabetical: bool = False
    include_indexes: bool = False
    include_comments: bool = True
    geometric_types: bool = False


def _ts_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class _Writer:
    """Indentation and naming helpers shared by the section renderers."""

    def __init__(self, opts: RenderOptions):
        self.opts = opts
        self.unit = " " * opts.indent_size

    def ind(self, level: int) -> str:
        return self.unit * level

    def name(self, raw: str) -> str:
        return convert_case(raw, self.opts.naming)

    def jsdoc(self, level: int, lines: list[str]) -> list[str]:
        pad = self.ind(level)
        return [f"{pad}/**"] + [f"{pad} * {line}" for line in lines] + [f"{pad} */"]


# ---------------------------------------------------------------------------
# 1. Tables and views (columns come from the catalog frame)
# ---------------------------------------------------------------------------

def _column_frames(catalog: pd.DataFrame) -> dict[tuple[str, str, str], pd.DataFrame]:
    frames = {}
    if catalog.empty:
        return frames
    mask = ~catalog["column_name"].str.lower().isin(EXCLUDED_COLUMNS)
    for key, frame in catalog[mask].groupby(
            ["relation_type", "schema", "relation_name"], sort=False):
        frames[key] = frame
    return frames


def _ordered(frame: pd.DataFrame, alphabetical: bool) -> pd.DataFrame:
    if alphabetical:
        return frame.sort_values("column_name", kind="stable")
    return frame


def _column_type(row, schema: str, enums: set[str], geometric: bool = False) -> str:
    ts_type = map_postgres_type(row["data_type"], bool(row["is_array"]), schema, enums, geometric)
    return f"{ts_type} | null" if row["nullable"] else ts_type


def _column_lines(w: _Writer, frame: pd.DataFrame, schema: str, enums: set[str],
                  mode: str) -> list[str]:
    lines = []
    for _, row in frame.iterrows():
        if w.opts.include_comments and pd.notna(row["comment"]):
            lines.append(f"{w.ind(5)}/** {row['comment']} */")
        optional = mode == "update" or (
            mode == "insert" and (row["has_default"] or row["nullable"]))
        mark = "?" if optional else ""
        ts_type = _column_type(row, schema, enums, w.opts.geometric_types)
        lines.append(f"{w.ind(5)}{w.name(row['column_name'])}{mark}: {ts_type}")
    return lines


def _relationship_lines(w: _Writer, table: TableDefinition) -> str:
    rels = table.relationships
    if w.opts.alphabetical:
        rels = sorted(rels, key=lambda r: r.foreign_key_name)
    if not rels:
        return "[]"
    blocks = []
    for rel in rels:
        cols = ", ".join(_ts_string(w.name(c)) for c in rel.columns)
        ref_cols = ", ".join(_ts_string(c) for c in rel.referenced_columns)
        blocks.append("\n".join([
            f"{w.ind(5)}{{",
            f"{w.ind(6)}foreignKeyName: {_ts_string(rel.foreign_key_name)}",
            f"{w.ind(6)}columns: [{cols}]",
            f"{w.ind(6)}isOneToOne: {'true' if rel.is_one_to_one else 'false'}",
            f"{w.ind(6)}referencedRelation: {_ts_string(rel.referenced_relation)}",
            f"{w.ind(6)}referencedColumns: [{ref_cols}]",
            f"{w.ind(5)}}}",
        ]))
    return "[\n" + ",\n".join(blocks) + f"\n{w.ind(4)}]"


def _index_lines(w: _Writer, table: TableDefinition) -> str:
    indexes = table.indexes
    if w.opts.alphabetical:
        indexes = sorted(indexes, key=lambda i: i.name)
    if not indexes:
        return "[]"
    blocks = []
    for idx in indexes:
        cols = ", ".join(_ts_string(w.name(c)) for c in idx.columns)
        lines = [
            f"{w.ind(5)}{{",
            f"{w.ind(6)}name: {_ts_string(idx.name)}",
            f"{w.ind(6)}columns: [{cols}]",
            f"{w.ind(6)}isUnique: {'true' if idx.is_unique else 'false'}",
        ]
        if idx.method:
            lines.append(f"{w.ind(6)}method: {_ts_string(idx.method)}")
        if idx.where_clause:
            lines.append(f"{w.ind(6)}where: {_ts_string(idx.where_clause)}")
        lines.append(f"{w.ind(5)}}}")
        blocks.append("\n".join(lines))
    return "[\n" + ",\n".join(blocks) + f"\n{w.ind(4)}]"


def render_table(w: _Writer, table: TableDefinition, frame: pd.DataFrame,
                 enums: set[str]) -> str:
    frame = _ordered(frame, w.opts.alphabetical)
    lines = []
    if w.opts.include_comments and table.comment:
        lines += w.jsdoc(3, [table.comment])
    lines.append(f"{w.ind(3)}{w.name(table.name)}: {{")
    for section, mode in (("Row", "row"), ("Insert", "insert"), ("Update", "update")):
        lines.append(f"{w.ind(4)}{section}: {{")
        lines += _column_lines(w, frame, table.schema, enums, mode)
        lines.append(f"{w.ind(4)}}}")
    lines.append(f"{w.ind(4)}Relationships: {_relationship_lines(w, table)}")
    if w.opts.include_indexes:
        lines.append(f"{w.ind(4)}Indexes: {_index_lines(w, table)}")
    lines.append(f"{w.ind(3)}}}")
    return "\n".join(lines)


def render_view(w: _Writer, view: ViewDefinition, frame: pd.DataFrame | None,
                enums: set[str]) -> str:
    lines = []
    if w.opts.include_comments:
        notes = (["Materialized View"] if view.is_materialized else []) + (
            [view.comment] if view.comment else [])
        if notes:
            lines += w.jsdoc(3, notes)
    lines.append(f"{w.ind(3)}{w.name(view.name)}: {{")
    lines.append(f"{w.ind(4)}Row: {{")
    if frame is None or frame.empty:
        lines += [
            f"{w.ind(5)}// Column types could not be inferred from SQL",
            f"{w.ind(5)}[key: string]: unknown",
        ]
    else:
        lines += _column_lines(w, _ordered(frame, w.opts.alphabetical), view.schema, enums, "row")
    lines.append(f"{w.ind(4)}}}")
    lines.append(f"{w.ind(4)}Relationships: []")
    lines.append(f"{w.ind(3)}}}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# 2. Functions, enums, composite types
# ---------------------------------------------------------------------------

def render_function(w: _Writer, func: FunctionDefinition, schema: str, enums: set[str]) -> str:
    geometric = w.opts.geometric_types
    returns = map_postgres_type(func.returns, "[]" in func.returns, schema, enums, geometric)
    args = func.args
    if w.opts.alphabetical:
        args = sorted(args, key=lambda a: a.name)
    if not args:
        return f"{w.ind(3)}{w.name(func.name)}: {{ Args: never; Returns: {returns} }}"

    props = [
        f"{w.name(a.name)}{'?' if a.has_default else ''}: "
        f"{map_postgres_type(a.type, '[]' in a.type, schema, enums, geometric)}"
        for a in args
    ]
    if len(props) == 1:
        return f"{w.ind(3)}{w.name(func.name)}: {{ Args: {{ {props[0]} }}; Returns: {returns} }}"
    return "\n".join(
        [f"{w.ind(3)}{w.name(func.name)}: {{", f"{w.ind(4)}Args: {{"]
        + [f"{w.ind(5)}{p}" for p in props]
        + [f"{w.ind(4)}}}", f"{w.ind(4)}Returns: {returns}", f"{w.ind(3)}}}"]
    )


def render_enum(w: _Writer, enum_def: EnumDefinition) -> str:
    values = " | ".join(_ts_string(v) for v in enum_def.values)
    return f"{w.ind(3)}{w.name(enum_def.name)}: {values}"


def render_composite(w: _Writer, comp: CompositeTypeDefinition, schema: str,
                     enums: set[str]) -> str:
    attrs = comp.attributes
    if w.opts.alphabetical:
        attrs = sorted(attrs, key=lambda a: a.name)
    lines = [f"{w.ind(3)}{w.name(comp.name)}: {{"]
    for a in attrs:
        ts_type = map_postgres_type(a.type, "[]" in a.type, schema, enums, w.opts.geometric_types)
        lines.append(f"{w.ind(4)}{w.name(a.name)}: {ts_type} | null")
    lines.append(f"{w.ind(3)}}}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# 3. Schema blocks
# ---------------------------------------------------------------------------

def _by_schema(items) -> dict[str, list]:
    grouped: dict[str, list] = {}
    for item in items:
        grouped.setdefault(item.schema, []).append(item)
    return grouped


def _sorted_by_name(items, alphabetical: bool) -> list:
    return sorted(items, key=lambda x: x.name) if alphabetical else list(items)


def _section(w: _Writer, title: str, bodies: list[str]) -> list[str]:
    body = "\n".join(bodies) if bodies else f"{w.ind(3)}{NEVER}"
    return [f"{w.ind(2)}{title}: {{", body, f"{w.ind(2)}}}"]


def render_schema(w: _Writer, schema: str, parsed: ParsedSchema,
                  frames: dict[tuple[str, str, str], pd.DataFrame]) -> str:
    alpha = w.opts.alphabetical
    tables = _sorted_by_name([t for t in parsed.tables if t.schema == schema], alpha)
    views = _sorted_by_name([v for v in parsed.views if v.schema == schema], alpha)
    functions = _sorted_by_name([f for f in parsed.functions if f.schema == schema], alpha)
    enums = _sorted_by_name([e for e in parsed.enums if e.schema == schema], alpha)
    composites = _sorted_by_name([c for c in parsed.composite_types if c.schema == schema], alpha)
    enum_names = {e.name for e in enums}

    empty = pd.DataFrame(columns=CATALOG_COLUMNS)
    table_bodies = [
        render_table(w, t, frames.get(("table", t.schema, t.name), empty), enum_names)
        for t in tables
    ]
    view_bodies = [
        render_view(
            w, v,
            frames.get(("materialized_view" if v.is_materialized else "view", v.schema, v.name)),
            enum_names,
        )
        for v in views
    ]

    lines = [f"{w.ind(1)}{schema}: {{"]
    lines += _section(w, "Tables", table_bodies)
    lines += _section(w, "Views", view_bodies)
    lines += _section(w, "Functions", [render_function(w, f, schema, enum_names) for f in functions])
    lines += _section(w, "Enums", [render_enum(w, e) for e in enums])
    lines += _section(w, "CompositeTypes", [render_composite(w, c, schema, enum_names) for c in composites])
    lines.append(f"{w.ind(1)}}}")
    return "\n".join(lines)


def render_graphql_public(w: _Writer) -> str:
    return "\n".join([
        f"{w.ind(1)}graphql_public: {{",
        *_section(w, "Tables", []),
        *_section(w, "Views", []),
        f"{w.ind(2)}Functions: {{",
        f"{w.ind(3)}graphql: {{",
        f"{w.ind(4)}Args: {{",
        f"{w.ind(5)}extensions?: Json",
        f"{w.ind(5)}operationName?: string",
        f"{w.ind(5)}query?: string",
        f"{w.ind(5)}variables?: Json",
        f"{w.ind(4)}}}",
        f"{w.ind(4)}Returns: Json",
        f"{w.ind(3)}}}",
        f"{w.ind(2)}}}",
        *_section(w, "Enums", []),
        *_section(w, "CompositeTypes", []),
        f"{w.ind(1)}}}",
    ])


def all_schemas(parsed: ParsedSchema) -> list[str]:
    names = {"graphql_public"}
    for items in (parsed.tables, parsed.enums, parsed.functions,
                  parsed.composite_types, parsed.views):
        names.update(item.schema for item in items)
    return sorted(names)


# ---------------------------------------------------------------------------
# 4. JSONB types, MergeDeep overrides, runtime constants
# ---------------------------------------------------------------------------

def render_jsonb_types(jsonb_types: list[TypeDefinition], include_comments: bool) -> str:
    blocks = []
    for t in jsonb_types:
        lines = []
        if include_comments and t.table and t.comment:
            lines += ["/**", f" * {t.comment}"]
            if t.example is not None:
                lines += [" *", " * Example:", " * ```json"]
                lines += [f" * {line}" for line in json.dumps(t.example, indent=2).splitlines()]
                lines.append(" * ```")
            lines.append(" */")
        lines.append(f"export type {t.name} = {t.type_definition};")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def render_merge_deep(w: _Writer, overrides: list[tuple[str, str, str]]) -> str:
    """Row overrides from ``(table, column, type_name)`` triples."""
    by_table: dict[str, list[tuple[str, str]]] = {}
    for table, column, type_name in overrides:
        by_table.setdefault(table, []).append((column, type_name))
    if not by_table:
        return ""

    entries = sorted(by_table.items()) if w.opts.alphabetical else list(by_table.items())
    lines = []
    for table_name, columns in entries:
        if w.opts.alphabetical:
            columns = sorted(columns)
        lines.append(f"{w.ind(4)}{w.name(table_name)}: {{")
        lines.append(f"{w.ind(5)}Row: {{")
        lines += [f"{w.ind(6)}{w.name(column)}: {type_name} | null" for column, type_name in columns]
        lines.append(f"{w.ind(5)}}}")
        lines.append(f"{w.ind(4)}}}")
    return "\n".join(lines)


_GEOMETRIC_DEFINITIONS = {
    "point": "export type Point = { x: number; y: number } | string",
    "line": "export type Line = { a: number; b: number; c: number } | string",
    "lseg": "export type LineSegment = { p1: Point; p2: Point } | string",
    "box": "export type Box = { upperRight: Point; lowerLeft: Point } | string",
    "path": "export type Path = { points: Point[]; open: boolean } | string",
    "polygon": "export type Polygon = { points: Point[] } | string",
    "circle": "export type Circle = { center: Point; radius: number } | string",
}


def _schema_pg_types(parsed: ParsedSchema):
    for relation in parsed.tables + parsed.views:
        yield from (c.type for c in relation.columns)
    for func in parsed.functions:
        yield func.returns
        yield from (a.type for a in func.args)
    for comp in parsed.composite_types:
        yield from (a.type for a in comp.attributes)


def render_geometric_types(parsed: ParsedSchema) -> str:
    """Structured declarations for the geometric types the schema uses."""
    used = detect_geometric_types(_schema_pg_types(parsed))
    if used:
        logger.info("Geometric type(s): %s", ", ".join(used))
    return "\n".join(_GEOMETRIC_DEFINITIONS[name] for name in used)


def render_constants(w: _Writer, parsed: ParsedSchema, schemas: list[str]) -> str:
    blocks = []
    for schema in schemas:
        enums = _sorted_by_name([e for e in parsed.enums if e.schema == schema], w.opts.alphabetical)
        if not enums:
            blocks.append(f"{w.ind(1)}{schema}: {{\n{w.ind(2)}Enums: {{}},\n{w.ind(1)}}}")
            continue
        enum_lines = ",\n".join(
            f"{w.ind(3)}{w.name(e.name)}: [{', '.join(_ts_string(v) for v in e.values)}]"
            for e in enums
        )
        blocks.append(f"{w.ind(1)}{schema}: {{\n{w.ind(2)}Enums: {{\n{enum_lines}\n"
                      f"{w.ind(2)}}},\n{w.ind(1)}}}")
    return ",\n".join(blocks)


# ---------------------------------------------------------------------------
# 5. Whole file
# ---------------------------------------------------------------------------

def generate_typescript(parsed: ParsedSchema, catalog: pd.DataFrame,
                        jsonb_types: list[TypeDefinition], opts: RenderOptions,
                        template, overrides: list[tuple[str, str, str]] | None = None) -> str:
    """Render the ``database.ts`` text.

    ``jsonb_types`` is the flattened, possibly de-duplicated list that gets
    ``export type`` declarations. ``overrides`` names the type each JSONB
    column gets in the ``MergeDeep`` override; by default every type that
    carries a table is used. ``template`` is a compiled jinja2 template.
    """
    w = _Writer(opts)
    frames = _column_frames(catalog)
    schemas = all_schemas(parsed)

    schema_blocks = [
        render_graphql_public(w) if s == "graphql_public" else render_schema(w, s, parsed, frames)
        for s in schemas
    ]
    if overrides is None:
        overrides = [(t.table, t.column, t.name) for t in jsonb_types if t.table]
    merge_deep = render_merge_deep(w, overrides)

    return template.render({
        "ind": w.ind,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "naming": opts.naming,
        "schema": opts.schema,
        "indent_size": opts.indent_size,
        "alphabetical": opts.alphabetical,
        "schemas": "\n".join(schema_blocks),
        "merge_deep": merge_deep,
        "jsonb_types": render_jsonb_types(jsonb_types, opts.include_comments),
        "geometric_types": render_geometric_types(parsed) if opts.geometric_types else "",
        "constants": render_constants(w, parsed, schemas),
    })
