"""Variable-reference splicing: interpolated shell text -> Go string expression.

`$NAME` and `${NAME}` tokens (NAME: letter or underscore, then alphanumerics
or underscores) become references to the resolved variable. Special
parameters ($1..$9, $@, $*, $#) resolve through runtime helpers.
Surrounding text stays literal, joined with `+`. A Word that records
expansion spans limits splicing to those ranges, so single-quoted or escaped
`$` text stays literal.

A command substitution `$(...)` is an opaque marker and stays literal.
Arithmetic expansion and `${...}` operators have no lowering and raise
UnsupportedConstruct.
"""

from __future__ import annotations

from typing import Callable, Sequence

from bash2go.backend.util import go_string
from bash2go.errors import UnsupportedConstruct

SPECIAL_PARAMS = frozenset("@*#?$!")


def _is_ident_start(c: str) -> bool:
    return c == "_" or ("a" <= c <= "z") or ("A" <= c <= "Z")


def _is_ident_char(c: str) -> bool:
    return _is_ident_start(c) or ("0" <= c <= "9")


def _braced_name(inner: str) -> bool:
    if inner.isdigit():
        return True
    if len(inner) == 1 and inner in SPECIAL_PARAMS:
        return True
    return len(inner) > 0 and _is_ident_start(inner[0]) and all(_is_ident_char(c) for c in inner)


def _matching_paren(text: str, start: int) -> int:
    """Index of the ')' closing the '(' at start, or -1."""
    depth = 0
    i = start
    while i < len(text):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def expansion_spans(text: str) -> list[tuple[int, int]]:
    """(start, end) of every `$` expansion a plain left-to-right scan finds.

    A lone `$` (end of text, or followed by anything that cannot start an
    expansion) is not an expansion.
    """
    spans: list[tuple[int, int]] = []
    i = 0
    n = len(text)
    while i < n:
        if text[i] != "$" or i + 1 >= n:
            i += 1
            continue
        end = _token_end(text, i)
        if end is None:
            i += 1
            continue
        spans.append((i, end))
        i = end
    return spans


def _token_end(text: str, i: int) -> int | None:
    """End of the expansion starting with the `$` at i, or None."""
    n = len(text)
    nxt = text[i + 1]
    if nxt == "(":
        end = _matching_paren(text, i + 1)
        return n if end < 0 else end + 1
    if nxt == "{":
        close = text.find("}", i + 2)
        return n if close < 0 else close + 1
    if _is_ident_start(nxt):
        j = i + 1
        while j < n and _is_ident_char(text[j]):
            j += 1
        return j
    if nxt.isdigit() or nxt in SPECIAL_PARAMS:
        return i + 2
    return None


def _classify(token: str) -> tuple[bool, str]:
    """(is_reference, value) for one expansion token."""
    if token.startswith("$(("):
        raise UnsupportedConstruct("arithmetic expansion", token)
    if token.startswith("$(") or token.startswith("`"):
        return (False, token)
    if token.startswith("${"):
        inner = token[2:-1]
        if not token.endswith("}") or not _braced_name(inner):
            raise UnsupportedConstruct("parameter expansion", token)
        return (True, inner)
    if len(token) < 2:
        return (False, token)
    return (True, token[1:])


def segments(text: str, spans: Sequence[tuple[int, int]] | None = None) -> list[tuple[bool, str]]:
    """Split text into (is_reference, value) runs. Adjacent literals are merged.

    spans limits expansions to those (start, end) ranges; everything outside
    them is literal, `$` included.
    """
    if spans is None:
        spans = expansion_spans(text)
    result: list[tuple[bool, str]] = []
    lit: list[str] = []
    pos = 0
    for start, end in spans:
        lit.append(text[pos:start])
        is_ref, value = _classify(text[start:end])
        if is_ref:
            if "".join(lit):
                result.append((False, "".join(lit)))
            lit = []
            result.append((True, value))
        else:
            lit.append(value)
        pos = end
    lit.append(text[pos:])
    if "".join(lit):
        result.append((False, "".join(lit)))
    return result


def references(text: str, spans: Sequence[tuple[int, int]] | None = None) -> list[str]:
    """Names referenced by interpolated text, in order of appearance."""
    return [value for is_ref, value in segments(text, spans) if is_ref]


def splice(
    text: str,
    resolve: Callable[[str], str | None],
    spans: Sequence[tuple[int, int]] | None = None,
) -> str:
    """Build the Go concatenation expression for interpolated text.

    resolve maps a referenced name to a Go expression; None keeps the token
    as literal text.
    """
    operands: list[str] = []
    pending: list[str] = []
    for is_ref, value in segments(text, spans):
        expr = resolve(value) if is_ref else None
        if expr is None:
            pending.append(("$" + value) if is_ref else value)
            continue
        if pending:
            operands.append(go_string("".join(pending)))
            pending = []
        operands.append(expr)
    if pending:
        operands.append(go_string("".join(pending)))
    if not operands:
        return '""'
    return " + ".join(operands)
