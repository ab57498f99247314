import re

_PG_TO_TS = {
    # numeric
    "smallint": "number", "integer": "number", "bigint": "number",
    "int": "number", "int2": "number", "int4": "number", "int8": "number",
    "decimal": "number", "numeric": "number", "real": "number",
    "double precision": "number", "float4": "number", "float8": "number",
    "money": "number", "smallserial": "number", "serial": "number", "bigserial": "number",
    # character
    "character varying": "string", "varchar": "string", "character": "string",
    "char": "string", "text": "string", "citext": "string",
    # boolean
    "boolean": "boolean", "bool": "boolean",
    # date / time
    "timestamp": "string", "timestamp without time zone": "string",
    "timestamp with time zone": "string", "timestamptz": "string", "date": "string",
    "time": "string", "time without time zone": "string", "time with time zone": "string",
    "timetz": "string", "interval": "string",
    # json
    "json": "Json", "jsonb": "Json",
    # misc
    "uuid": "string", "bytea": "string", "inet": "string", "cidr": "string",
    "macaddr": "string", "macaddr8": "string",
    "void": "void",
    "trigger": "unknown", "event_trigger": "unknown", "record": "unknown",
}

# Structured names used by --geometric-types, in declaration order.
GEOMETRIC_TYPE_NAMES = {
    "point": "Point",
    "line": "Line",
    "lseg": "LineSegment",
    "box": "Box",
    "path": "Path",
    "polygon": "Polygon",
    "circle": "Circle",
}


def base_type_name(pg_type: str) -> str:
    """Lower-cased type without its size modifier or array brackets."""
    name = re.sub(r"\([^)]*\)", "", pg_type.lower())
    return name.replace("[]", "").strip()


def map_postgres_type(
    pg_type: str,
    is_array: bool,
    schema: str = "public",
    available_enums: set[str] | frozenset[str] = frozenset(),
    geometric: bool = False,
) -> str:
    """TypeScript type text for a PostgreSQL column type.

    Geometric types are plain strings unless ``geometric`` is set, in which
    case they name the structured types from ``GEOMETRIC_TYPE_NAMES``.
    """
    base = base_type_name(pg_type)
    enum_name = pg_type.replace("[]", "").strip()
    if base in _PG_TO_TS:
        ts_type = _PG_TO_TS[base]
    elif base in GEOMETRIC_TYPE_NAMES:
        ts_type = GEOMETRIC_TYPE_NAMES[base] if geometric else "string"
    elif enum_name in available_enums:
        ts_type = f'Database["{schema}"]["Enums"]["{enum_name}"]'
    else:
        ts_type = "unknown"
    return f"{ts_type}[]" if is_array else ts_type


def detect_geometric_types(pg_types) -> list[str]:
    """Geometric types among ``pg_types``, in declaration order.

    ``point`` is added whenever a type built from points is present.
    """
    used = {base_type_name(t) for t in pg_types} & set(GEOMETRIC_TYPE_NAMES)
    if used - {"point", "line"}:
        used.add("point")
    return [name for name in GEOMETRIC_TYPE_NAMES if name in used]
