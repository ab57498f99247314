import logging

import pandas as pd

from schema_to_df import CATALOG_COLUMNS, parse_sql_files, schema_to_df


def _table(parsed, name):
    return next(t for t in parsed.tables if t.name == name)


def test_parse_sql_files_collects_everything(blog_schema_file):
    parsed = parse_sql_files([blog_schema_file])

    assert [t.name for t in parsed.tables] == ["profiles", "posts"]
    assert [e.name for e in parsed.enums] == ["post_status"]
    assert [f.name for f in parsed.functions] == ["post_count"]
    assert [v.name for v in parsed.views] == ["post_summaries"]
    assert parsed.composite_types == []

    posts = _table(parsed, "posts")
    assert [i.name for i in posts.indexes] == ["posts_author_idx"]
    assert posts.comment == "Blog posts"
    tags = next(c for c in posts.columns if c.name == "tags")
    assert tags.comment == "Free-form labels"

    rel = posts.relationships[0]
    assert rel.foreign_key_name == "posts_author_id_fkey"
    assert rel.referenced_relation == "profiles"
    assert not rel.is_one_to_one


def test_view_inference_sees_tables_from_the_same_run(blog_schema_file):
    view = parse_sql_files([blog_schema_file]).views[0]
    assert [(c.name, c.type, c.nullable) for c in view.columns] == [
        ("id", "bigserial", False),
        ("status", "post_status", False),
        ("author", "text", False),
    ]


def test_parsing_is_deterministic(blog_schema_file):
    assert parse_sql_files([blog_schema_file]) == parse_sql_files([blog_schema_file])


def test_comments_attach_only_to_relations_from_the_same_file(write_sql):
    tables = write_sql("a.sql", "create table notes (body text);")
    comments = write_sql("b.sql", "comment on table notes is 'late';")
    parsed = parse_sql_files([tables, comments])
    assert parsed.tables[0].comment is None


def test_comments_can_be_disabled(write_sql):
    path = write_sql("a.sql", "create table notes (body text);\ncomment on table notes is 'x';")
    parsed = parse_sql_files([path], include_comments=False)
    assert parsed.tables[0].comment is None


def test_alter_foreign_key_on_unique_column_is_one_to_one(write_sql):
    path = write_sql("schema.sql", """
        create table profiles (id uuid primary key);
        create table settings (profile_id uuid unique not null);
        alter table only public.settings add constraint settings_profile_fkey
          foreign key (profile_id) references public.profiles(id);
    """)
    settings = _table(parse_sql_files([path]), "settings")
    assert len(settings.relationships) == 1
    assert settings.relationships[0].is_one_to_one


def test_alter_foreign_key_merges_across_files(write_sql):
    alter = write_sql("01_fk.sql", """
        alter table orders add constraint orders_user_fkey
          foreign key (user_id) references users(id);
    """)
    tables = write_sql("02_tables.sql", """
        create table users (id int primary key);
        create table orders (id int primary key, user_id int not null);
    """)
    orders = _table(parse_sql_files([alter, tables]), "orders")
    assert [r.foreign_key_name for r in orders.relationships] == ["orders_user_fkey"]
    assert not orders.relationships[0].is_one_to_one


def test_inline_and_alter_foreign_keys_name_the_same_relation(write_sql):
    path = write_sql("auth.sql", """
        create table auth.b (id int primary key);
        create table auth.a (id int primary key, b_id int references auth.b(id));
        create table auth.c (id int primary key, b_id int);
        alter table auth.c add constraint c_b_id_fkey
          foreign key (b_id) references auth.b(id);
    """)
    parsed = parse_sql_files([path])
    inline = _table(parsed, "a").relationships[0]
    altered = _table(parsed, "c").relationships[0]
    assert inline.referenced_relation == altered.referenced_relation == "b"


def test_alter_statements_prefer_the_table_in_their_schema(write_sql):
    path = write_sql("schema.sql", """
        create table members (email text);
        create table crm.members (email text);
        alter table crm.members add constraint members_email_key unique (email);
    """)
    parsed = parse_sql_files([path])
    by_schema = {t.schema: t for t in parsed.tables}
    assert by_schema["crm"].columns[0].is_unique
    assert not by_schema["public"].columns[0].is_unique


def test_unique_index_makes_relationship_one_to_one(write_sql):
    path = write_sql("schema.sql", """
        create table a (id int primary key);
        create table b (a_id int references a(id));
        create unique index b_a_id_key on b (a_id);
    """)
    b = _table(parse_sql_files([path]), "b")
    assert b.relationships[0].is_one_to_one


def test_alter_unique_flips_column_flag(write_sql):
    path = write_sql("schema.sql", """
        create table accounts (id int primary key, email text not null);
        alter table accounts add constraint accounts_email_key unique (email);
    """)
    accounts = _table(parse_sql_files([path]), "accounts")
    email = next(c for c in accounts.columns if c.name == "email")
    assert email.is_unique


def test_multi_column_foreign_key_is_never_one_to_one(write_sql):
    path = write_sql("schema.sql", """
        create table parent (a int, b int, primary key (a, b));
        create table child (a int unique, b int unique);
        alter table child add constraint child_parent_fkey
          foreign key (a, b) references parent(a, b);
    """)
    child = _table(parse_sql_files([path]), "child")
    assert child.relationships[0].columns == ["a", "b"]
    assert not child.relationships[0].is_one_to_one


def test_unreadable_file_is_logged_and_skipped(write_sql, tmp_path, caplog):
    good = write_sql("good.sql", "create table t (a int);")
    missing = str(tmp_path / "missing.sql")
    with caplog.at_level(logging.ERROR):
        parsed = parse_sql_files([missing, good])
    assert [t.name for t in parsed.tables] == ["t"]
    assert "missing.sql" in caplog.text


def test_schema_to_df(blog_schema_file):
    df = schema_to_df(parse_sql_files([blog_schema_file]))

    assert list(df.columns) == CATALOG_COLUMNS
    assert len(df) == 4 + 5 + 3
    assert set(df["relation_type"]) == {"table", "view"}

    author = df[(df["relation_name"] == "posts") & (df["column_name"] == "author_id")].iloc[0]
    assert author["is_fk"]
    assert author["fk_table"] == "profiles"
    assert author["fk_col"] == "id"
    assert not author["nullable"]

    post_id = df[(df["relation_name"] == "posts") & (df["column_name"] == "id")].iloc[0]
    assert post_id["is_pk"]
    assert post_id["has_default"] == False  # noqa: E712
    assert pd.isna(post_id["fk_table"])

    tags = df[df["column_name"] == "tags"].iloc[0]
    assert tags["is_array"]
    assert tags["comment"] == "Free-form labels"
