import os

import pandas as pd

from main import _output_suffix, main


def test_main_writes_types_and_catalog(blog_schema_file, tmp_path):
    out_dir = tmp_path / "out"
    catalog = tmp_path / "catalog.csv"

    code = main([blog_schema_file, "-o", str(out_dir), "--catalog", str(catalog), "--quiet"])

    assert code == 0
    content = (out_dir / "database.ts").read_text()
    assert "export type Database = MergeDeep<" in content
    assert "export type posts_meta = {" in content
    assert "meta: posts_meta | null" in content

    df = pd.read_csv(catalog)
    assert "posts" in set(df["relation_name"])


def test_main_reads_supabase_config(tmp_path, blog_schema_sql):
    workdir = tmp_path / "supabase"
    (workdir / "migrations").mkdir(parents=True)
    (workdir / "migrations" / "0001.sql").write_text(blog_schema_sql)
    out_dir = tmp_path / "out"

    code = main(["--workdir", str(workdir), "-o", str(out_dir), "--naming", "PascalCase", "--quiet"])

    assert code == 0
    files = os.listdir(out_dir)
    assert len(files) == 1 and files[0].startswith("database")
    content = (out_dir / files[0]).read_text()
    assert "Naming convention: PascalCase" in content
    assert "PostSummaries: {" in content


def test_main_fails_without_tables(write_sql, tmp_path):
    path = write_sql("empty.sql", "select 1;")
    assert main([path, "-o", str(tmp_path / "out"), "--quiet"]) == 1
    assert not (tmp_path / "out").exists()


def test_out_of_range_indent_falls_back(blog_schema_file, tmp_path, caplog):
    out_dir = tmp_path / "out"
    assert main([blog_schema_file, "-o", str(out_dir), "--indent", "12"]) == 0
    assert "between 1 and 8" in caplog.text
    assert "\n  public: {" in (out_dir / "database.ts").read_text()


def test_output_suffix():
    assert _output_suffix("./supabase") == ""
    assert _output_suffix("./staging/supabase") == "Staging"


def test_geometric_types_flag(write_sql, tmp_path):
    path = write_sql("geo.sql", "create table spots (id int primary key, at point not null);")
    out_dir = tmp_path / "out"
    assert main([path, "-o", str(out_dir), "--geometric-types", "--quiet"]) == 0
    content = (out_dir / "database.ts").read_text()
    assert "at: Point\n" in content
    assert "export type Point = { x: number; y: number } | string" in content
