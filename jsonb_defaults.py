import json
import logging
import os
import re
from dataclasses import dataclass, field

from naming import convert_case
from schema_model import TableDefinition
from sql_scanners import split_statements, split_top_level
from sql_statements import parse_table_definition

logger = logging.getLogger(__name__)


@dataclass
class JsonbColumn:
    table: str
    column: str
    default_value: str
    file_name: str
    comment: str | None = None


@dataclass
class TypeDefinition:
    """A named TypeScript type derived from a JSONB default value.

    Nested types pulled out of a parent have empty ``table``/``column``.
    """
    table: str
    column: str
    name: str
    type_definition: str
    comment: str | None = None
    example: object = None
    nested_types: list["TypeDefinition"] = field(default_factory=list)


FALLBACK_TYPE = "Record<string, unknown>"

_RE_JSON_LITERAL = re.compile(r"^'(?P<body>(?:[^']|'')*)'(?:\s*::\s*jsonb)?$", re.I | re.S)
_RE_BUILD_OBJECT = re.compile(r"^jsonb_build_object\s*\(", re.I)
_RE_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?$")


# ---------------------------------------------------------------------------
# 1. Finding JSONB columns with defaults
# ---------------------------------------------------------------------------

def parse_jsonb_columns(sql_content: str, file_name: str) -> list[JsonbColumn]:
    """Every scalar ``jsonb`` column whose default is a literal or ``jsonb_build_object``."""
    columns = []
    for stmt in split_statements(sql_content):
        table = parse_table_definition(stmt)
        if table is None:
            continue
        for col in table.columns:
            if col.type != "jsonb" or col.is_array or not col.default_value:
                continue
            default = col.default_value.strip()
            if _RE_JSON_LITERAL.match(default) or _RE_BUILD_OBJECT.match(default):
                columns.append(JsonbColumn(
                    table=table.name,
                    column=col.name,
                    default_value=default,
                    file_name=file_name,
                ))
    return columns


# ---------------------------------------------------------------------------
# 2. Default value -> Python structure
# ---------------------------------------------------------------------------

def _scalar(value: str):
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1].replace("''", "'")
    if value in ("true", "false"):
        return value == "true"
    if _RE_NUMBER.match(value):
        return float(value) if any(c in value for c in ".eE") else int(value)
    return value


def parse_jsonb_build_object(sql: str) -> dict | None:
    """Evaluate a ``jsonb_build_object(k, v, ...)`` call into a dict.

    Values that are themselves ``jsonb_build_object`` calls nest; an odd
    trailing key is dropped. Returns ``None`` when ``sql`` is not such a call.
    """
    sql = sql.strip()
    m = _RE_BUILD_OBJECT.match(sql)
    if not m or not sql.endswith(")"):
        return None
    parts = split_top_level(sql[m.end():-1])

    result = {}
    for key, value in zip(parts[0::2], parts[1::2]):
        key = key.strip().strip("'\"")
        if _RE_BUILD_OBJECT.match(value):
            result[key] = parse_jsonb_build_object(value)
        else:
            result[key] = _scalar(value)
    return result


def _default_structure(default_value: str):
    if _RE_BUILD_OBJECT.match(default_value):
        return parse_jsonb_build_object(default_value)
    m = _RE_JSON_LITERAL.match(default_value)
    if not m:
        return None
    try:
        return json.loads(m.group("body").replace("''", "'"))
    except json.JSONDecodeError:
        logger.debug("Default is not valid JSON: %s", default_value)
        return None


# ---------------------------------------------------------------------------
# 3. Structure -> TypeScript type text
# ---------------------------------------------------------------------------

def infer_type_from_value(value, indent: int = 0) -> str:
    indent_str = "  " * indent
    if value is None:
        return "unknown"
    if isinstance(value, list):
        if not value:
            return "unknown[]"
        return f"{infer_type_from_value(value[0], indent)}[]"
    if isinstance(value, dict):
        entries = [f"{indent_str}  {k}: {infer_type_from_value(v, indent + 1)}" for k, v in value.items()]
        return "{\n" + "\n".join(entries) + f"\n{indent_str}}}"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "unknown"


def extract_nested_types(value, base_name: str, indent: int = 0,
                         convention: str = "preserve") -> tuple[str, list[TypeDefinition]]:
    """Like ``infer_type_from_value`` but every nested object becomes a named type.

    Returns the type text and the extracted types, innermost first within
    each branch.
    """
    if value is None:
        return "unknown", []
    if isinstance(value, list):
        if not value:
            return "unknown[]", []
        item_type, nested = extract_nested_types(value[0], f"{base_name}_item", indent, convention)
        return f"{item_type}[]", nested

    if isinstance(value, dict):
        indent_str = "  " * indent
        entries, nested = [], []
        for key, val in value.items():
            child_base = f"{base_name}_{key}"
            child_type, child_nested = extract_nested_types(val, child_base, indent + 1, convention)
            if isinstance(val, dict):
                nested_name = convert_case(child_base, convention)
                nested.append(TypeDefinition(
                    table="",
                    column="",
                    name=nested_name,
                    type_definition=child_type,
                    nested_types=child_nested,
                ))
                entries.append(f"{indent_str}  {key}: {nested_name}")
            else:
                entries.append(f"{indent_str}  {key}: {child_type}")
                nested.extend(child_nested)
        return "{\n" + "\n".join(entries) + f"\n{indent_str}}}", nested

    return infer_type_from_value(value), []


def generate_type_definition(column: JsonbColumn, extract_nested: bool,
                             convention: str) -> TypeDefinition:
    type_name = convert_case(f"{column.table}_{column.column}", convention)
    structure = _default_structure(column.default_value) if column.default_value else None

    if not structure:
        return TypeDefinition(
            table=column.table,
            column=column.column,
            name=type_name,
            type_definition=FALLBACK_TYPE,
            comment=column.comment,
        )

    if extract_nested:
        type_def, nested = extract_nested_types(
            structure, f"{column.table}_{column.column}", 0, convention)
    else:
        type_def, nested = infer_type_from_value(structure), []
    return TypeDefinition(
        table=column.table,
        column=column.column,
        name=type_name,
        type_definition=type_def,
        comment=column.comment,
        example=structure,
        nested_types=nested,
    )


# ---------------------------------------------------------------------------
# 4. Post-processing
# ---------------------------------------------------------------------------

def normalize_type_definition(type_definition: str) -> str:
    out = re.sub(r"\s+", " ", type_definition)
    return re.sub(r"\s*([{}:,])\s*", r"\1", out).strip()


def flatten_types(types: list[TypeDefinition]) -> list[TypeDefinition]:
    """Depth first, nested types ahead of the type that uses them."""
    result = []
    for t in types:
        if t.nested_types:
            result.extend(flatten_types(t.nested_types))
        result.append(t)
    return result


def deduplicate_types(types: list[TypeDefinition]) -> tuple[list[TypeDefinition], dict[str, str]]:
    """Keep the first type of each distinct shape and point references at it.

    Also returns the mapping from each dropped name to the name kept in its
    place.
    """
    normalized_to_name: dict[str, str] = {}
    canonical: dict[str, TypeDefinition] = {}
    renamed: dict[str, str] = {}

    for t in types:
        key = normalize_type_definition(t.type_definition)
        if key in normalized_to_name:
            renamed[t.name] = normalized_to_name[key]
        else:
            normalized_to_name[key] = t.name
            canonical[t.name] = t

    result, seen = [], set()
    for t in types:
        name = normalized_to_name[normalize_type_definition(t.type_definition)]
        if name in seen:
            continue
        seen.add(name)
        kept = canonical[name]
        type_def = kept.type_definition
        for old, new in renamed.items():
            if old != new:
                type_def = re.sub(rf"\b{re.escape(old)}\b", new, type_def)
        result.append(TypeDefinition(
            table=kept.table,
            column=kept.column,
            name=kept.name,
            type_definition=type_def,
            comment=kept.comment,
            example=kept.example,
            nested_types=kept.nested_types,
        ))

    removed = len(types) - len(result)
    if removed:
        logger.info("Removed %d duplicate type(s)", removed)
    return result, renamed


def attach_column_comments(types: list[TypeDefinition], tables: list[TableDefinition]) -> None:
    """Copy ``COMMENT ON COLUMN`` text onto the JSONB types of those columns."""
    comments = {
        (table.name, col.name): col.comment
        for table in tables
        for col in table.columns
        if col.comment
    }
    for t in types:
        if t.table and not t.comment:
            t.comment = comments.get((t.table, t.column))


# ---------------------------------------------------------------------------
# 5. Entry point
# ---------------------------------------------------------------------------

def scan_schemas(schema_paths: list[str], extract_nested: bool,
                 convention: str) -> list[TypeDefinition]:
    all_columns: list[JsonbColumn] = []
    for path in schema_paths:
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping %s: %s", path, e)
            continue
        all_columns.extend(parse_jsonb_columns(content, os.path.basename(path)))

    if all_columns:
        logger.info("Found %d JSONB column(s) with defaults", len(all_columns))
    return [generate_type_definition(col, extract_nested, convention) for col in all_columns]
