import os

from supabase_config import (
    DEFAULT_SCHEMA_PATHS,
    collect_input_files,
    read_supabase_config,
    resolve_schema_files,
)


CONFIG = """
[db]
port = 54322

[db.migrations]
schema_paths = [
  "./schemas/*.sql",
  "./seed.sql",
]
"""


def test_read_supabase_config(tmp_path):
    (tmp_path / "config.toml").write_text(CONFIG)
    paths, workdir = read_supabase_config(str(tmp_path))
    assert paths == ["./schemas/*.sql", "./seed.sql"]
    assert workdir == str(tmp_path)


def test_read_supabase_config_nested_fallback(tmp_path):
    (tmp_path / "supabase").mkdir()
    (tmp_path / "supabase" / "config.toml").write_text(CONFIG)
    paths, workdir = read_supabase_config(str(tmp_path))
    assert paths == ["./schemas/*.sql", "./seed.sql"]
    assert workdir == os.path.join(str(tmp_path), "supabase")


def test_read_supabase_config_defaults(tmp_path):
    paths, workdir = read_supabase_config(str(tmp_path))
    assert paths == DEFAULT_SCHEMA_PATHS
    assert workdir == str(tmp_path)


def test_read_supabase_config_without_schema_paths(tmp_path):
    (tmp_path / "config.toml").write_text("[db]\nport = 1\n")
    paths, _ = read_supabase_config(str(tmp_path))
    assert paths == DEFAULT_SCHEMA_PATHS


def test_resolve_schema_files(tmp_path):
    schemas = tmp_path / "schemas"
    schemas.mkdir()
    for name in ("b.sql", "a.sql", "notes.txt"):
        (schemas / name).write_text("select 1;")
    (tmp_path / "seed.sql").write_text("select 1;")

    files = resolve_schema_files(
        ["schemas/*.sql", "schemas/a.sql", "seed.sql", "missing.sql"], str(tmp_path))
    assert [os.path.relpath(f, tmp_path) for f in files] == [
        os.path.join("schemas", "a.sql"),
        os.path.join("schemas", "b.sql"),
        "seed.sql",
    ]


def test_collect_input_files_walks_directories(tmp_path):
    nested = tmp_path / "sql" / "nested"
    nested.mkdir(parents=True)
    (nested / "z.sql").write_text("")
    (tmp_path / "sql" / "a.sql").write_text("")
    single = tmp_path / "one.sql"
    single.write_text("")

    files = collect_input_files([str(tmp_path / "sql"), str(single), str(single)])
    assert [os.path.relpath(f, tmp_path) for f in files] == [
        os.path.join("sql", "a.sql"),
        os.path.join("sql", "nested", "z.sql"),
        "one.sql",
    ]
