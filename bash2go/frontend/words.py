"""Word-value extraction from bashlex word and assignment nodes.

bashlex removes quotes into `node.word` and reports expansions as child
nodes in `node.parts`:

| part kind            | Result                                          |
|----------------------|-------------------------------------------------|
| parameter            | interpolated; `$NAME` stays in the text         |
| commandsubstitution  | interpolated; `$(...)` stays as an opaque marker |
| tilde                | leading `~` rewritten to `${HOME}`              |
| anything else        | UnsupportedConstruct                            |

Quote removal is redone from the raw source slice the parser records on each
node (`node.raw`), because bashlex also reports `$` inside single quotes of a
double-quoted word as a parameter, and drops backslashes before `$`. Only a
`$` outside single quotes and not escaped starts an expansion. When some `$`
in the resulting text is literal, the Word records the expansion spans.

A word with no expansions is literal, whatever quoting it used.
"""

from __future__ import annotations

import re

from bash2go.backend.splice import SPECIAL_PARAMS, expansion_spans
from bash2go.errors import UnsupportedConstruct
from bash2go.ir import Word

IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_BRACE_RANGE = re.compile(r"^\{(-?\d+)\.\.(-?\d+)\}$")
_SEQ_RANGE = re.compile(r"^\$\(\s*seq\s+(\S+)\s+(\S+)\s*\)$")
_POSITIONAL = re.compile(r"\$(?:\{([1-9])\}|([1-9]))")
_NAME_CHARS = re.compile(r"[A-Za-z0-9_]*")

_EXPANSION_PARTS = frozenset({"parameter", "commandsubstitution"})

# Characters a backslash escapes inside double quotes
_DQUOTE_ESCAPES = frozenset('$`"\\')


def _parts(node) -> list:
    parts = getattr(node, "parts", None) or []
    for part in parts:
        if part.kind not in _EXPANSION_PARTS and part.kind != "tilde":
            raise UnsupportedConstruct(part.kind, node.word)
    return parts


def has_expansion(node) -> bool:
    """True if the word carries any expansion outside single quotes."""
    return len(_unquoted(node)[1]) > 0 or any(
        p.kind == "tilde" for p in getattr(node, "parts", None) or []
    )


def _expansion_end(raw: str, i: int, part_ends: dict[int, int]) -> int | None:
    """End of the expansion starting at raw[i], or None for a literal `$`."""
    end = part_ends.get(i)
    if end is not None and end > i + 1:
        return end
    n = len(raw)
    if raw[i] == "`":
        j = i + 1
        while j < n and raw[j] != "`":
            j += 2 if raw[j] == "\\" else 1
        return j + 1 if j < n else None
    if i + 1 >= n:
        return None
    nxt = raw[i + 1]
    if nxt == "(":
        depth = 0
        for j in range(i + 1, n):
            if raw[j] == "(":
                depth += 1
            elif raw[j] == ")":
                depth -= 1
                if depth == 0:
                    return j + 1
        return n
    if nxt == "{":
        close = raw.find("}", i + 2)
        return n if close < 0 else close + 1
    if nxt == "_" or nxt.isalpha():
        m = _NAME_CHARS.match(raw, i + 1)
        return m.end() if m is not None else i + 2
    if nxt.isdigit() or nxt in SPECIAL_PARAMS:
        return i + 2
    return None


def unquote(raw: str, parts: list, base: int) -> tuple[str, list[tuple[int, int]]]:
    """Shell quote removal over raw word text.

    Returns the unquoted text and the (start, end) of each expansion in it.
    base is the raw text's offset in the parsed source, which bashlex part
    positions are relative to.
    """
    part_ends = {p.pos[0] - base: p.pos[1] - base for p in parts if p.kind in _EXPANSION_PARTS}
    out: list[str] = []
    spans: list[tuple[int, int]] = []
    size = 0
    quoted = False
    i = 0
    n = len(raw)
    while i < n:
        c = raw[i]
        if c == "\\" and i + 1 < n:
            nxt = raw[i + 1]
            if nxt == "\n":
                chunk = ""
            elif not quoted or nxt in _DQUOTE_ESCAPES:
                chunk = nxt
            else:
                chunk = c + nxt
            i += 2
        elif c == "'" and not quoted:
            close = raw.find("'", i + 1)
            if close < 0:
                raise UnsupportedConstruct("word", raw)
            chunk = raw[i + 1 : close]
            i = close + 1
        elif c == '"':
            quoted = not quoted
            i += 1
            continue
        elif c == "$" and not quoted and raw.startswith(("$'", '$"'), i):
            raise UnsupportedConstruct("ansi-c quoting", raw)
        elif c in "$`":
            end = _expansion_end(raw, i, part_ends)
            if end is None:
                chunk = c
                i += 1
            else:
                chunk = raw[i:end]
                spans.append((size, size + len(chunk)))
                i = end
        else:
            chunk = c
            i += 1
        out.append(chunk)
        size += len(chunk)
    return "".join(out), spans


def _make_word(text: str, spans: list[tuple[int, int]]) -> Word:
    if not spans:
        return Word(text, False)
    if spans == expansion_spans(text):
        return Word(text, True)
    return Word(text, True, tuple(spans))


def _unquoted(node) -> tuple[str, list[tuple[int, int]]]:
    """The node's quote-removed text and its expansion spans."""
    parts = _parts(node)
    raw = getattr(node, "raw", None)
    if raw is None:
        # Nodes built without the parser's raw slice: trust bashlex's text
        text: str = node.word
        found = [p for p in parts if p.kind in _EXPANSION_PARTS]
        spans = expansion_spans(text) if found else []
    else:
        text, spans = unquote(raw, parts, node.pos[0])
    return text, spans


def _expand_tilde(
    node, text: str, spans: list[tuple[int, int]], at: int
) -> tuple[str, list[tuple[int, int]]]:
    """Rewrite an unquoted `~` at text[at] to ${HOME}."""
    tildes = [p for p in getattr(node, "parts", None) or [] if p.kind == "tilde"]
    if not tildes or not text.startswith("~", at):
        return text, spans
    if tildes[0].value != "~":
        raise UnsupportedConstruct("tilde", tildes[0].value)
    home = "${HOME}"
    shift = len(home) - 1
    moved = [(s + shift, e + shift) if s > at else (s, e) for s, e in spans]
    return text[:at] + home + text[at + 1 :], sorted(moved + [(at, at + len(home))])


def word_value(node) -> Word:
    """Convert a bashlex word node to an IR Word."""
    text, spans = _unquoted(node)
    text, spans = _expand_tilde(node, text, spans, 0)
    return _make_word(text, spans)


def split_assignment(node) -> tuple[str, Word]:
    """Split a NAME=value node into its name and value Word."""
    text, spans = _unquoted(node)
    name, sep, _ = text.partition("=")
    if not sep:
        return (text, Word(""))
    if name.endswith("+"):
        raise UnsupportedConstruct("append assignment", text)
    if not IDENT.match(name):
        raise UnsupportedConstruct("assignment", text)
    text, spans = _expand_tilde(node, text, spans, len(name) + 1)
    offset = len(name) + 1
    return (name, _make_word(text[offset:], [(s - offset, e - offset) for s, e in spans if s >= offset]))


def range_bounds(word: Word) -> tuple[Word, Word] | None:
    """Recognize `{A..B}` and `$(seq A B)` as counted ranges."""
    m = _BRACE_RANGE.match(word.text)
    if m is not None and not word.interpolated:
        return (Word(m.group(1)), Word(m.group(2)))
    m = _SEQ_RANGE.match(word.text)
    if m is not None and word.interpolated:
        return (_bound(m.group(1)), _bound(m.group(2)))
    return None


def _bound(text: str) -> Word:
    return Word(text, "$" in text)


def positional_refs(word: Word) -> set[str]:
    """Positional parameters ($1..$9) referenced by an interpolated word."""
    if not word.interpolated:
        return set()
    chunks = [word.text] if word.spans is None else [word.text[s:e] for s, e in word.spans]
    found: set[str] = set()
    for chunk in chunks:
        for m in _POSITIONAL.finditer(chunk):
            found.add(m.group(1) or m.group(2))
    return found
