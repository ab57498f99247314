import logging
import os.path
import sys
from argparse import ArgumentParser

import jinja2

from export_to_typescript import RenderOptions, generate_typescript
from jsonb_defaults import attach_column_comments, deduplicate_types, flatten_types, scan_schemas
from naming import NAMING_CONVENTIONS
from schema_to_df import parse_sql_files, schema_to_df
from supabase_config import (
    DEFAULT_WORKDIR,
    collect_input_files,
    read_supabase_config,
    resolve_schema_files,
)

logger = logging.getLogger(__name__)

TEMPLATE_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "database.ts.j2")
DEFAULT_INDENT = 2


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description="Generate Supabase TypeScript types from SQL schema files.")
    parser.add_argument(
        "input_paths", nargs="*",
        help="SQL files or directories. When omitted, schema paths come from the "
             "Supabase config.toml in --workdir.",
    )
    parser.add_argument("--workdir", default=DEFAULT_WORKDIR,
                        help="Supabase directory holding config.toml.")
    parser.add_argument("--schema", default="public", help="Default schema for unqualified names.")
    parser.add_argument("-o", "--output", default=".", help="Directory for database.ts.")
    parser.add_argument("--naming", choices=NAMING_CONVENTIONS, default="preserve",
                        help="Naming convention for generated keys.")
    parser.add_argument("--indent", type=int, default=DEFAULT_INDENT, help="Spaces per indent (1-8).")
    parser.add_argument("--alphabetical", action="store_true", help="Sort everything by name.")
    parser.add_argument("--include-indexes", action="store_true", help="Emit index metadata.")
    parser.add_argument("--no-comments", action="store_true", help="Ignore COMMENT ON statements.")
    parser.add_argument("--extract-nested", action="store_true",
                        help="Give nested JSONB objects their own named types.")
    parser.add_argument("--geometric-types", action="store_true",
                        help="Map geometric columns to structured Point, Box, ... types.")
    parser.add_argument("--no-deduplicate", action="store_true",
                        help="Keep structurally identical JSONB types.")
    parser.add_argument("--catalog", help="Also write the column catalog to this CSV file.")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors.")
    return parser


def _output_suffix(workdir: str) -> str:
    """``Staging`` for ``--workdir ./staging/supabase`` so outputs don't collide."""
    if not workdir or workdir == DEFAULT_WORKDIR:
        return ""
    parts = [p for p in workdir.replace("\\", "/").split("/") if p and p not in (".", "supabase")]
    return parts[-1][:1].upper() + parts[-1][1:] if parts else ""


def main(argv=None) -> int:
    cmd = build_parser().parse_args(argv)

    logging.basicConfig(
        stream=sys.stdout,
        level=logging.WARNING if cmd.quiet else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    indent = cmd.indent
    if not 1 <= indent <= 8:
        logger.warning("Indent size must be between 1 and 8, using %d", DEFAULT_INDENT)
        indent = DEFAULT_INDENT

    if cmd.input_paths:
        files = collect_input_files(cmd.input_paths)
        suffix = ""
    else:
        schema_paths, workdir = read_supabase_config(cmd.workdir)
        files = resolve_schema_files(schema_paths, workdir)
        suffix = _output_suffix(cmd.workdir)

    include_comments = not cmd.no_comments
    parsed = parse_sql_files(files, cmd.schema, include_comments)
    if not parsed.tables:
        logger.error("No tables found in %d SQL file(s)", len(files))
        return 1

    catalog = schema_to_df(parsed)
    if cmd.catalog:
        catalog.to_csv(cmd.catalog, index=False)
        logger.info("Column catalog written: %s", cmd.catalog)

    jsonb_types = scan_schemas(files, cmd.extract_nested, cmd.naming)
    attach_column_comments(jsonb_types, parsed.tables)
    all_jsonb_types = flatten_types(jsonb_types) if cmd.extract_nested else jsonb_types
    renamed = {}
    if not cmd.no_deduplicate and all_jsonb_types:
        all_jsonb_types, renamed = deduplicate_types(all_jsonb_types)
    if cmd.alphabetical:
        all_jsonb_types = sorted(all_jsonb_types, key=lambda t: t.name)
    overrides = [(t.table, t.column, renamed.get(t.name, t.name)) for t in jsonb_types]

    opts = RenderOptions(
        schema=cmd.schema,
        naming=cmd.naming,
        indent_size=indent,
        alphabetical=cmd.alphabetical,
        include_indexes=cmd.include_indexes,
        include_comments=include_comments,
        geometric_types=cmd.geometric_types,
    )
    with open(TEMPLATE_PATH) as f:
        template_str = f.read()
    template = jinja2.Environment(keep_trailing_newline=True).from_string(template_str)
    content = generate_typescript(parsed, catalog, all_jsonb_types, opts, template, overrides)

    os.makedirs(cmd.output, exist_ok=True)
    out_path = os.path.join(cmd.output, f"database{suffix}.ts")
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(content)

    logger.info("Types generated: %s", out_path)
    relationships = sum(len(t.relationships) for t in parsed.tables)
    if relationships:
        logger.info("%d relationship(s)", relationships)
    indexes = sum(len(t.indexes) for t in parsed.tables)
    if indexes and not cmd.include_indexes:
        logger.info("%d index(es) found but not emitted, use --include-indexes", indexes)
    return 0


if __name__ == "__main__":
    sys.exit(main())
