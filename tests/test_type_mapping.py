import pytest

from type_mapping import detect_geometric_types, map_postgres_type


@pytest.mark.parametrize("pg_type, expected", [
    ("integer", "number"),
    ("numeric(10, 2)", "number"),
    ("double precision", "number"),
    ("character varying(255)", "string"),
    ("timestamp with time zone", "string"),
    ("timestamp(3) with time zone", "string"),
    ("uuid", "string"),
    ("boolean", "boolean"),
    ("jsonb", "Json"),
    ("void", "void"),
    ("point", "string"),
    ("geometry", "unknown"),
    ("unknown", "unknown"),
    ("TEXT", "string"),
])
def test_scalar_types(pg_type, expected):
    assert map_postgres_type(pg_type, False) == expected


def test_array_suffix():
    assert map_postgres_type("text", True) == "string[]"


def test_enum_reference():
    assert map_postgres_type("mood", False, "public", {"mood"}) == 'Database["public"]["Enums"]["mood"]'
    assert map_postgres_type("mood[]", True, "app", {"mood"}) == 'Database["app"]["Enums"]["mood"][]'


def test_unknown_enum_in_other_schema():
    assert map_postgres_type("mood", False, "public", set()) == "unknown"


def test_structured_geometric_types():
    assert map_postgres_type("point", False, geometric=True) == "Point"
    assert map_postgres_type("lseg", False, geometric=True) == "LineSegment"
    assert map_postgres_type("polygon", True, geometric=True) == "Polygon[]"
    assert map_postgres_type("text", False, geometric=True) == "string"


def test_detect_geometric_types_adds_point_for_composed_shapes():
    assert detect_geometric_types(["text", "circle", "line", "box[]"]) == ["point", "line", "box", "circle"]
    assert detect_geometric_types(["line"]) == ["line"]
    assert detect_geometric_types(["integer"]) == []
