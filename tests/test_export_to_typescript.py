import pytest

from export_to_typescript import RenderOptions, _Writer, generate_typescript, render_function
from jsonb_defaults import TypeDefinition
from schema_model import FunctionArgument, FunctionDefinition, ParsedSchema
from schema_to_df import parse_sql_files, schema_to_df


@pytest.fixture
def parsed(blog_schema_file):
    return parse_sql_files([blog_schema_file])


def _render(parsed, template, jsonb_types=(), **opts):
    return generate_typescript(parsed, schema_to_df(parsed), list(jsonb_types),
                               RenderOptions(**opts), template)


def test_table_row_insert_update(parsed, template):
    out = _render(parsed, template)
    assert "export type Database = {" in out
    assert "      profiles: {" in out
    # Row: exact nullability
    assert "          username: string\n" in out
    assert "          bio: string | null\n" in out
    # Insert: defaulted or nullable columns are optional
    assert "          id?: string\n" in out
    assert "          username: string\n" in out
    # Update: everything optional
    assert "          username?: string\n" in out


def test_enums_arrays_and_comments(parsed, template):
    out = _render(parsed, template)
    assert 'post_status: "draft" | "published"' in out
    assert 'status: Database["public"]["Enums"]["post_status"]' in out
    assert "tags: string[] | null" in out
    assert "/** Free-form labels */" in out
    assert " * Blog posts" in out


def test_comments_can_be_suppressed(parsed, template):
    out = _render(parsed, template, include_comments=False)
    assert "Free-form labels" not in out


def test_relationships_and_indexes(parsed, template):
    out = _render(parsed, template, include_indexes=True)
    assert 'foreignKeyName: "posts_author_id_fkey"' in out
    assert "isOneToOne: false" in out
    assert 'referencedRelation: "profiles"' in out
    assert 'name: "posts_author_idx"' in out
    assert 'method: "btree"' in out

    assert "Indexes:" not in _render(parsed, template)


def test_views_functions_and_empty_sections(parsed, template):
    out = _render(parsed, template)
    assert "post_summaries: {" in out
    assert "author: string" in out
    assert "post_count: { Args: { author: string }; Returns: number }" in out
    assert "[_ in never]: never" in out
    assert "graphql_public: {" in out


def test_naming_convention_and_indent(parsed, template):
    out = _render(parsed, template, naming="camelCase", indent_size=4)
    assert "createdAt: string" in out
    assert "postSummaries: {" in out
    assert "\n    public: {" in out


def test_constants_block(parsed, template):
    out = _render(parsed, template)
    assert "export const Constants = {" in out
    assert 'postStatus' not in out
    assert 'post_status: ["draft", "published"]' in out


def test_jsonb_types_and_merge_deep(parsed, template):
    jsonb = [TypeDefinition("posts", "meta", "PostsMeta", "{\n  views: number\n}",
                            comment="Counters", example={"views": 0})]
    out = _render(parsed, template, jsonb_types=jsonb)
    assert "import type { MergeDeep } from 'type-fest';" in out
    assert "type DatabaseGenerated = {" in out
    assert "export type Database = MergeDeep<" in out
    assert "meta: PostsMeta | null" in out
    assert "export type PostsMeta = {\n  views: number\n};" in out
    assert ' *   "views": 0' in out


def test_view_without_columns_gets_placeholder(template, write_sql):
    path = write_sql("s.sql", "create table t (a int);\ncreate view v as values (1);")
    parsed = parse_sql_files([path])
    out = _render(parsed, template)
    assert "[key: string]: unknown" in out


def test_alphabetical_sorting(template, write_sql):
    path = write_sql("s.sql", "create table zebra (b int, a int);\ncreate table apple (z int);")
    parsed = parse_sql_files([path])
    out = _render(parsed, template, alphabetical=True)
    assert out.index("apple: {") < out.index("zebra: {")
    zebra_row = out[out.index("zebra: {"):]
    assert zebra_row.index("a: number") < zebra_row.index("b: number")


def test_render_function_multi_line():
    func = FunctionDefinition(
        schema="public",
        name="search",
        args=[FunctionArgument("query", "text"), FunctionArgument("lim", "integer", has_default=True)],
        returns="setof record",
    )
    out = render_function(_Writer(RenderOptions()), func, "public", set())
    assert out == "\n".join([
        "      search: {",
        "        Args: {",
        "          query: string",
        "          lim?: number",
        "        }",
        "        Returns: unknown",
        "      }",
    ])


def test_empty_schema_renders(template):
    out = generate_typescript(ParsedSchema(), schema_to_df(ParsedSchema()), [], RenderOptions(), template)
    assert "graphql_public: {" in out


GEOMETRIC_SQL = """
create table places (id int primary key, location point not null, area polygon);
create function nearest(p point) returns circle language sql as $$ select null::circle $$;
"""


def test_geometric_types_are_strings_by_default(template, write_sql):
    parsed = parse_sql_files([write_sql("geo.sql", GEOMETRIC_SQL)])
    out = _render(parsed, template)
    assert "          location: string\n" in out
    assert "Geometric Type Definitions" not in out
    assert "export type Point" not in out


def test_structured_geometric_types(template, write_sql):
    parsed = parse_sql_files([write_sql("geo.sql", GEOMETRIC_SQL)])
    out = _render(parsed, template, geometric_types=True)
    assert "          location: Point\n" in out
    assert "          area: Polygon | null\n" in out
    assert "nearest: { Args: { p: Point }; Returns: Circle }" in out
    assert "export type Point = { x: number; y: number } | string\n" in out
    assert "export type Polygon = { points: Point[] } | string" in out
    assert "export type Circle = { center: Point; radius: number } | string" in out
    assert "export type Line " not in out
    assert out.index("Geometric Type Definitions") < out.index("export type Database")
