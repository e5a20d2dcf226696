"""Generator pass 1: collect the imports and runtime helpers a Program needs.

Derived from statement kinds and command classifications only; nothing is
emitted here. Pass 2 (GoBackend) may only use helpers collected by this pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from bash2go.backend.process import ProcessBackend
from bash2go.backend.runtime import helper_imports
from bash2go.backend.splice import references
from bash2go.backend.util import literal_int
from bash2go.frontend.conditions import FILE_OPS, NUMERIC_OPS, split_test
from bash2go.ir import (
    CAP_BACKGROUND,
    GENERIC_COMMAND,
    TEST_COMMANDS,
    Assignment,
    Background,
    Command,
    Conditional,
    Loop,
    Pipeline,
    Program,
    Redirection,
    Return,
    Statement,
    Subshell,
    Word,
)

ALL_ARGS = Word("$@", True)

_FILE_HELPERS: dict[str, str] = {"-f": "isFile", "-d": "isDir", "-e": "pathExists"}


@dataclass
class Requirements:
    """Direct imports plus the runtime helpers to append."""

    imports: set[str] = field(default_factory=set)
    helpers: set[str] = field(default_factory=set)

    def all_imports(self) -> list[str]:
        """Direct imports united with helper imports, sorted."""
        return sorted(self.imports | helper_imports(self.helpers))


def collect_requirements(program: Program, process: ProcessBackend) -> Requirements:
    return _Collector(program, process).run()


def items_helpers(items: list[Word]) -> set[str]:
    """Helpers needed to turn loop items into a Go []string."""
    if items == [ALL_ARGS] or all(not w.interpolated for w in items):
        return set()
    if len(items) == 1:
        return {"splitFields"}
    return {"splitFields", "joinLists"}


class _Collector:
    def __init__(self, program: Program, process: ProcessBackend) -> None:
        self.program = program
        self.process = process
        self.req = Requirements({"fmt", "os"}, set())
        self._in_subshell = False

    def run(self) -> Requirements:
        if self.program.functions:
            self.req.imports.add("io")
        if CAP_BACKGROUND in self.program.capabilities:
            self.req.helpers.add("jobGroup")
        for fn in self.program.functions.values():
            self._stmts(fn.body)
        self._stmts(self.program.statements)
        return self.req

    def _spawn(self) -> None:
        self.req.imports |= self.process.imports()

    def _captured(self) -> None:
        self._spawn()
        self.req.helpers |= self.process.helpers()

    def _word(self, word: Word) -> None:
        if not word.interpolated:
            return
        for name in references(word.text, word.spans):
            if name.isdigit() and name != "0":
                self.req.helpers.add("positional")
            elif name in ("@", "*"):
                self.req.helpers.add("allArgs")
            elif name == "#":
                self.req.helpers.add("argCount")

    def _words(self, words: list[Word]) -> None:
        for w in words:
            self._word(w)

    def _int(self, word: Word) -> None:
        if literal_int(word) is None:
            self.req.helpers.add("atoi")
        self._word(word)

    def _stmts(self, stmts: list[Statement]) -> None:
        for stmt in stmts:
            self._stmt(stmt)

    def _stmt(self, stmt: Statement) -> None:
        p = stmt.payload
        if isinstance(p, Command):
            self._command(p)
        elif isinstance(p, Assignment):
            self._word(p.value)
        elif isinstance(p, Conditional):
            self._condition(p.condition, p.category)
            self._stmts(p.then_body)
            for branch in p.elifs:
                self._condition(branch.condition, branch.category)
                self._stmts(branch.body)
            self._stmts(p.else_body)
        elif isinstance(p, Loop):
            self._loop(p)
        elif isinstance(p, Pipeline):
            self._spawn()
            for cmd in p.commands:
                self._words(cmd.args)
        elif isinstance(p, Subshell):
            saved = self._in_subshell
            self._in_subshell = True
            self._stmts(p.body)
            self._in_subshell = saved
        elif isinstance(p, Redirection):
            self._word(p.target)
            self._stmt(p.statement)
        elif isinstance(p, Background):
            self._background(p)
        elif isinstance(p, Return):
            if p.value is not None:
                self.req.helpers.add("exitStatus")
                self._int(p.value)
            elif p.code:
                self.req.helpers.add("exitStatus")

    def _command(self, cmd: Command) -> None:
        if cmd.classification == "external":
            self._captured()
            self._words(cmd.args)
            return
        if cmd.classification == "function":
            self._words(cmd.args)
            return
        if cmd.name in TEST_COMMANDS:
            self._predicate(cmd)
        elif cmd.name == "exit":
            self._exit(cmd)
        elif cmd.name == "read":
            self.req.helpers.add("readFields")
        else:
            self._words(cmd.args)

    def _predicate(self, cmd: Command) -> None:
        form = split_test(cmd)
        if form is None:
            self._captured()
            self._words(cmd.operands())
        elif form.op in FILE_OPS:
            self.req.helpers.add(_FILE_HELPERS[form.op])
            self._words(list(form.operands))
        elif form.op in NUMERIC_OPS:
            for w in form.operands:
                self._int(w)
        else:
            self._words(list(form.operands))

    def _exit(self, cmd: Command) -> None:
        if not cmd.args:
            return
        self._int(cmd.args[0])
        if self._in_subshell and literal_int(cmd.args[0]) != 0:
            self.req.helpers.add("exitStatus")

    def _condition(self, condition: list[Statement], category: str) -> None:
        if category != GENERIC_COMMAND:
            self._predicate(condition[0].payload)  # type: ignore[arg-type]
            return
        if len(condition) == 1 and isinstance(condition[0].payload, Command):
            cmd = condition[0].payload
            if cmd.classification == "builtin" and cmd.name in TEST_COMMANDS:
                self._predicate(cmd)
                return
            if cmd.classification == "builtin" and cmd.name in ("true", "false", ":"):
                return
            if cmd.classification != "builtin":
                self._command(cmd)
                return
        self._stmts(condition)

    def _loop(self, loop: Loop) -> None:
        if loop.kind == "range":
            assert loop.range_from is not None and loop.range_to is not None
            self._int(loop.range_from)
            self._int(loop.range_to)
            self.req.helpers.add("itoa")
        elif loop.kind == "list":
            self.req.helpers |= items_helpers(loop.items)
            if loop.items != [ALL_ARGS]:
                self._words(loop.items)
        else:
            self._condition(loop.condition, loop.category)
        self._stmts(loop.body)

    def _background(self, bg: Background) -> None:
        inner = bg.statement.payload
        if isinstance(inner, Command):
            if inner.classification == "external":
                self._captured()
            self._words(inner.args)
        elif isinstance(inner, Pipeline):
            self._spawn()
            for cmd in inner.commands:
                self._words(cmd.args)
