import re


# ---------------------------------------------------------------------------
# 1. String-literal walking
# ---------------------------------------------------------------------------

def _skip_literal(text: str, start: int) -> int:
    """Return the offset just past the quoted literal opening at ``start``.

    Both ``\\'`` and ``''`` count as escaped quotes. An unterminated literal
    runs to the end of the text.
    """
    quote = text[start]
    i, n = start + 1, len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n


def _iter_outside_strings(text: str, start: int = 0):
    i, n = start, len(text)
    while i < n:
        ch = text[i]
        if ch in ("'", '"'):
            i = _skip_literal(text, i)
            continue
        yield i, ch
        i += 1


# ---------------------------------------------------------------------------
# 2. Balanced parentheses and top-level splitting
# ---------------------------------------------------------------------------

def find_closing_paren(text: str, start: int) -> tuple[int, str] | None:
    """Find the ``)`` matching an opening ``(`` located at ``start - 1``.

    Returns ``(offset_of_close, inner_text)``, or ``None`` when the text ends
    before the depth returns to zero.
    """
    depth = 1
    for i, ch in _iter_outside_strings(text, start):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i, text[start:i]
    return None


def split_top_level(s: str, delim: str = ",") -> list[str]:
    """Split on ``delim`` outside parentheses and string literals.

    Segments are stripped and empty ones dropped, so ``a,, b,`` gives
    ``["a", "b"]``.
    """
    parts, depth, last = [], 0, 0
    for i, ch in _iter_outside_strings(s):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == delim and depth == 0:
            parts.append(s[last:i])
            last = i + 1
    parts.append(s[last:])
    return [p.strip() for p in parts if p.strip()]


def find_top_level_keyword(sql: str, keyword: str, start: int = 0) -> int:
    """Offset of the first whole-word ``keyword`` at paren depth 0, or -1."""
    pat = re.compile(r"\b" + keyword + r"\b", re.I)
    depth = 0
    for i, ch in _iter_outside_strings(sql, start):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif depth == 0 and pat.match(sql, i) and (i == 0 or not _is_word(sql[i - 1])):
            return i
    return -1


def _is_word(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


# ---------------------------------------------------------------------------
# 3. Identifiers
# ---------------------------------------------------------------------------

def ident_pattern(name: str) -> str:
    """Regex fragment for an identifier written as ``"x"``, ``'x'`` or ``x``."""
    return (
        rf'(?:"(?P<{name}_dq>[^"]+)"'
        rf"|'(?P<{name}_sq>[^']+)'"
        rf"|(?P<{name}_bare>\w+))"
    )


def qualified_pattern(schema: str, name: str) -> str:
    return rf"(?:{ident_pattern(schema)}\s*\.\s*)?{ident_pattern(name)}"


def ident_value(m: re.Match, name: str) -> str | None:
    """First matched quoting alternative: double, then single, then bare."""
    for suffix in ("dq", "sq", "bare"):
        value = m.group(f"{name}_{suffix}")
        if value:
            return value
    return None


def strip_quotes(s: str) -> str:
    return s.strip().replace('"', "").replace("'", "")


# ---------------------------------------------------------------------------
# 4. Comments and whitespace
# ---------------------------------------------------------------------------

def strip_comments(sql: str) -> str:
    """Drop ``-- ...`` and ``/* ... */`` comments that sit outside literals."""
    out, i, n = [], 0, len(sql)
    while i < n:
        ch = sql[i]
        if ch in ("'", '"'):
            end = _skip_literal(sql, i)
            out.append(sql[i:end])
            i = end
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = n if end == -1 else end + 2
            out.append(" ")
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def collapse_whitespace(sql: str) -> str:
    """Collapse whitespace runs to one space, leaving literals untouched."""
    out, i, n = [], 0, len(sql)
    while i < n:
        ch = sql[i]
        if ch in ("'", '"'):
            end = _skip_literal(sql, i)
            out.append(sql[i:end])
            i = end
        elif ch.isspace():
            while i < n and sql[i].isspace():
                i += 1
            out.append(" ")
        else:
            out.append(ch)
            i += 1
    return "".join(out).strip()


def normalize_statement(sql: str) -> str:
    return collapse_whitespace(strip_comments(sql))


# ---------------------------------------------------------------------------
# 5. Statement splitting
# ---------------------------------------------------------------------------

_DOLLAR_TAG_RE = re.compile(r"\$(?:[A-Za-z_]\w*)?\$")


def split_statements(sql: str) -> list[str]:
    """Split a script on ``;`` outside literals, comments and dollar quotes."""
    stmts, buf_start, i, n = [], 0, 0, len(sql)
    while i < n:
        ch = sql[i]
        if ch in ("'", '"'):
            i = _skip_literal(sql, i)
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = n if end == -1 else end + 2
        elif ch == "$" and (i == 0 or not _is_word(sql[i - 1])):
            m = _DOLLAR_TAG_RE.match(sql, i)
            if m:
                end = sql.find(m.group(0), m.end())
                i = n if end == -1 else end + len(m.group(0))
            else:
                i += 1
        elif ch == ";":
            stmts.append(sql[buf_start:i].strip())
            buf_start = i + 1
            i += 1
        else:
            i += 1
    stmts.append(sql[buf_start:].strip())
    return [s for s in stmts if s]
