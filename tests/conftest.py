"""Shared fixtures for the schema parsing and rendering tests."""

import os

import jinja2
import pytest

from main import TEMPLATE_PATH


@pytest.fixture
def write_sql(tmp_path):
    """Write SQL text to a file under ``tmp_path`` and return its path."""

    def _write(name: str, sql: str) -> str:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(sql, encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def template():
    with open(TEMPLATE_PATH) as f:
        return jinja2.Environment(keep_trailing_newline=True).from_string(f.read())


@pytest.fixture
def blog_schema_sql():
    return """
create type public.post_status as enum ('draft', 'published');

create table public.profiles (
  id uuid primary key default gen_random_uuid(),
  username text unique not null,
  bio text,
  created_at timestamp with time zone not null default now()
);

create table public.posts (
  id bigserial primary key,
  author_id uuid not null references public.profiles(id),
  status post_status not null default 'draft',
  tags text[],
  meta jsonb default '{"views": 0, "pinned": false}'::jsonb
);

comment on table public.posts is 'Blog posts';
comment on column public.posts.tags is 'Free-form labels';

create index posts_author_idx on public.posts using btree (author_id);

create view public.post_summaries as
  select p.id, p.status, pr.username as author
  from posts p
  join profiles pr on pr.id = p.author_id;

create function public.post_count(author uuid) returns bigint
  language sql stable
  as $$ select count(*) from posts where author_id = author; $$;
"""


@pytest.fixture
def blog_schema_file(write_sql, blog_schema_sql):
    return write_sql(os.path.join("migrations", "0001_blog.sql"), blog_schema_sql)
