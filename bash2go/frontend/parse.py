"""Parse shell script text into a bashlex syntax tree.

bashlex returns one top-level node per complete command. Every node is a
bashlex.ast.node whose attributes depend on its kind.
"""

from __future__ import annotations

import logging

import bashlex
from bashlex import ast as bashlex_ast
from bashlex import errors as bashlex_errors

from bash2go.errors import MalformedSource, UnsupportedConstruct

logger = logging.getLogger(__name__)


def is_blank(source: str) -> bool:
    """True if source holds nothing but whitespace and comment lines."""
    for line in source.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            return False
    return True


def parse(source: str) -> list:
    """Parse source into a list of top-level bashlex nodes.

    Raises MalformedSource when bashlex rejects the text and
    UnsupportedConstruct when bashlex recognizes syntax it cannot represent.
    """
    if is_blank(source):
        return []
    try:
        nodes = bashlex.parse(source)
    except bashlex_errors.ParsingError as e:
        raise MalformedSource(e.message, e.position) from e
    except NotImplementedError as e:
        raise UnsupportedConstruct("shell syntax", str(e)) from e
    logger.debug("parsed %d top-level nodes", len(nodes))
    for node in nodes:
        _record_raw(node, source)
    return nodes


def _record_raw(node, source: str) -> None:
    """Store each word's unprocessed source slice as node.raw.

    bashlex keeps only the quote-removed text, which loses where single
    quotes and backslashes made a `$` literal.
    """
    if node.kind in ("word", "assignment"):
        node.raw = source[node.pos[0] : node.pos[1]]
    for value in list(vars(node).values()):
        if isinstance(value, bashlex_ast.node):
            _record_raw(value, source)
        elif isinstance(value, list):
            for item in _nodes_in(value):
                _record_raw(item, source)


def _nodes_in(items: list) -> list:
    out: list = []
    for item in items:
        if isinstance(item, list):
            out.extend(_nodes_in(item))
        elif isinstance(item, bashlex_ast.node):
            out.append(item)
    return out


def dump(nodes: list) -> str:
    """Render the syntax tree the way bashlex prints it."""
    return "\n".join(node.dump() for node in nodes)
