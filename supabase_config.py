import glob
import logging
import os
import tomllib

logger = logging.getLogger(__name__)

DEFAULT_WORKDIR = "./supabase"
DEFAULT_SCHEMA_PATHS = ["migrations/*.sql", "migrations/**/*.sql"]


def read_supabase_config(workdir: str | None) -> tuple[list[str], str]:
    """Schema path patterns from ``[db.migrations] schema_paths`` and the
    directory they are relative to.

    ``<workdir>/config.toml`` is tried first, then
    ``<workdir>/supabase/config.toml``. A missing file or an empty list
    falls back to the default migration globs.
    """
    workdir = workdir or DEFAULT_WORKDIR
    config_path = os.path.join(workdir, "config.toml")

    if not os.path.isfile(config_path):
        fallback = os.path.join(workdir, "supabase", "config.toml")
        if os.path.isfile(fallback):
            logger.info("Config not found at %s, using %s", config_path, fallback)
            config_path = fallback
            workdir = os.path.join(workdir, "supabase")

    if not os.path.isfile(config_path):
        logger.warning("config.toml not found at %s, falling back to default schema paths",
                       config_path)
        return list(DEFAULT_SCHEMA_PATHS), workdir

    logger.info("Reading config from: %s", config_path)
    with open(config_path, "rb") as f:
        config = tomllib.load(f)

    schema_paths = config.get("db", {}).get("migrations", {}).get("schema_paths") or []
    if not schema_paths:
        logger.warning("No schema_paths found in %s", config_path)
        return list(DEFAULT_SCHEMA_PATHS), workdir

    logger.info("Found %d schema path(s) in config", len(schema_paths))
    return list(schema_paths), workdir


def resolve_schema_files(schema_paths: list[str], workdir: str) -> list[str]:
    """Expand patterns relative to ``workdir`` into unique ``.sql`` files, in order."""
    base_dir = os.path.abspath(workdir)
    files, seen = [], set()

    def add(path: str) -> None:
        path = os.path.abspath(path)
        if path.endswith(".sql") and path not in seen:
            seen.add(path)
            files.append(path)

    for pattern in schema_paths:
        full = os.path.join(base_dir, pattern)
        if "*" in pattern:
            matches = sorted(p for p in glob.glob(full, recursive=True) if os.path.isfile(p))
            logger.debug("%s matched %d file(s)", pattern, len(matches))
            for path in matches:
                add(path)
        elif os.path.isfile(full):
            add(full)
        else:
            logger.warning("File not found: %s", pattern)

    logger.info("Total unique SQL files resolved: %d", len(files))
    return files


def collect_input_files(input_paths: list[str]) -> list[str]:
    """Explicit CLI inputs: ``.sql`` files as given, directories searched recursively."""
    files, seen = [], set()
    for path in input_paths:
        if os.path.isdir(path):
            candidates = sorted(glob.glob(os.path.join(path, "**", "*.sql"), recursive=True))
        else:
            candidates = [path]
        for candidate in candidates:
            candidate = os.path.abspath(candidate)
            if candidate not in seen:
                seen.add(candidate)
                files.append(candidate)
    return files
