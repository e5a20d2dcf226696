"""Go naming and string-escaping utilities for the code generator."""

from __future__ import annotations

import re

from bash2go.ir import Word

# Go reserved words that need renaming
GO_RESERVED = frozenset(
    {
        "break",
        "case",
        "chan",
        "const",
        "continue",
        "default",
        "defer",
        "else",
        "fallthrough",
        "for",
        "func",
        "go",
        "goto",
        "if",
        "import",
        "interface",
        "map",
        "package",
        "range",
        "return",
        "select",
        "struct",
        "switch",
        "type",
        "var",
    }
)

# Predeclared identifiers; shadowing them breaks the generated code
GO_PREDECLARED = frozenset(
    {
        "any",
        "append",
        "bool",
        "byte",
        "cap",
        "clear",
        "close",
        "complex",
        "copy",
        "delete",
        "error",
        "false",
        "float32",
        "float64",
        "imag",
        "int",
        "int64",
        "iota",
        "len",
        "make",
        "max",
        "min",
        "new",
        "nil",
        "panic",
        "print",
        "println",
        "real",
        "recover",
        "rune",
        "string",
        "true",
        "uint",
        "uint8",
    }
)

# Package names the generated program may import
GO_PACKAGES = frozenset({"exec", "fmt", "io", "os", "strconv", "strings", "sync"})

_GO_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_WORD_SPLIT = re.compile(r"[^A-Za-z0-9]+")
_INT = re.compile(r"^-?\d+$")


def _upper_first(s: str) -> str:
    """Uppercase the first character of a string."""
    return (s[0].upper() + s[1:]) if s else ""


def go_to_pascal(name: str) -> str:
    """Convert a shell name (snake_case, kebab-case, dotted) to PascalCase."""
    parts = [p for p in _WORD_SPLIT.split(name) if p]
    # Use upper on first char only (not capitalize which lowercases rest)
    return "".join(_upper_first(p) for p in parts)


def go_ident(name: str, reserved: frozenset[str] | set[str], taken: set[str]) -> str:
    """Map a name to a Go identifier that avoids reserved and already-taken names."""
    ident = name if _GO_IDENT.match(name) else "_" + "_".join(p for p in _WORD_SPLIT.split(name) if p)
    if ident in reserved:
        ident += "_"
    while ident in taken:
        ident += "_"
    taken.add(ident)
    return ident


def escape_string(value: str) -> str:
    """Escape a string for use in a string literal (without quotes)."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
        .replace("\f", "\\f")
        .replace("\v", "\\v")
        .replace("\x00", "\\x00")
        .replace("\x01", "\\u0001")
        .replace("\x7f", "\\u007f")
    )


def go_string(value: str) -> str:
    """Double-quoted Go string literal."""
    return '"' + escape_string(value) + '"'


def literal_int(word: Word) -> int | None:
    """Integer value of a literal word, or None if it is not one."""
    if word.interpolated or not _INT.match(word.text.strip()):
        return None
    return int(word.text.strip())
