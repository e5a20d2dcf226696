"""Condition-category inference for test and [ commands."""

from __future__ import annotations

from dataclasses import dataclass

from bash2go.ir import (
    FILE_TEST,
    GENERIC_COMMAND,
    NUMERIC_TEST,
    STRING_TEST,
    TEST_COMMANDS,
    Command,
    ConditionCategory,
    Statement,
    Word,
)

FILE_OPS: frozenset[str] = frozenset({"-f", "-d", "-e"})
STRING_UNARY_OPS: frozenset[str] = frozenset({"-z", "-n"})
STRING_BINARY_OPS: frozenset[str] = frozenset({"=", "==", "!="})
NUMERIC_OPS: frozenset[str] = frozenset({"-eq", "-ne", "-lt", "-le", "-gt", "-ge"})

UNARY_OPS = FILE_OPS | STRING_UNARY_OPS
BINARY_OPS = STRING_BINARY_OPS | NUMERIC_OPS


@dataclass(frozen=True)
class Predicate:
    """A test expression with a native shortcut.

    operands holds one Word for unary operators and two for binary ones.
    """

    op: str
    operands: tuple[Word, ...]
    negated: bool = False

    @property
    def category(self) -> ConditionCategory:
        if self.op in FILE_OPS:
            return FILE_TEST
        if self.op in NUMERIC_OPS:
            return NUMERIC_TEST
        return STRING_TEST


def _is_op(word: Word, ops: frozenset[str]) -> bool:
    return not word.interpolated and word.text in ops


def split_test(cmd: Command) -> Predicate | None:
    """Locate the operator of a test command, or None when it has no native form."""
    if cmd.name not in TEST_COMMANDS:
        return None
    args = list(cmd.operands())
    negated = False
    if len(args) >= 2 and _is_op(args[0], frozenset({"!"})):
        negated = True
        args = args[1:]
    if len(args) == 2 and _is_op(args[0], UNARY_OPS):
        return Predicate(args[0].text, (args[1],), negated)
    if len(args) == 3 and _is_op(args[1], BINARY_OPS):
        return Predicate(args[1].text, (args[0], args[2]), negated)
    return None


def infer_category(cmd: Command) -> ConditionCategory:
    form = split_test(cmd)
    if form is None:
        return GENERIC_COMMAND
    return form.category


def condition_category(condition: list[Statement]) -> ConditionCategory:
    """Category of a condition list: native only for a lone test command."""
    if len(condition) != 1 or condition[0].kind != "command":
        return GENERIC_COMMAND
    cmd = condition[0].payload
    assert isinstance(cmd, Command)
    if cmd.classification != "builtin":
        return GENERIC_COMMAND
    return infer_category(cmd)
