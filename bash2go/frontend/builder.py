"""IR Builder: bashlex syntax tree -> Program.

Each syntax-node kind that can appear at statement position has one lowering
rule in the Builder's dispatch table. A kind with no rule raises
UnsupportedConstruct and the whole build aborts; no partial Program escapes.

| node kind  | Lowering                                             |
|------------|------------------------------------------------------|
| command    | Assignment(s), Command, Return, or inlined source    |
| list       | statement sequence; && || chains become Conditionals |
| pipeline   | flattened Pipeline of external Commands              |
| compound   | Subshell, brace group, or the wrapped if/for/while   |
| if         | Conditional with linearized elif branches            |
| for        | range or list Loop                                   |
| while/until| pre-condition Loop                                   |
| function   | FunctionDecl + entry in Program.functions            |
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator

from bash2go.errors import UnsupportedConstruct
from bash2go.frontend.conditions import condition_category, infer_category
from bash2go.frontend.words import (
    IDENT,
    has_expansion,
    positional_refs,
    range_bounds,
    split_assignment,
    word_value,
)
from bash2go.ir import (
    BUILTINS,
    CAP_BACKGROUND,
    CAP_CHDIR,
    CAP_ENV,
    CAP_EXEC,
    CAP_FS,
    CAP_STDIN,
    FILE_TEST,
    GENERIC_COMMAND,
    TEST_COMMANDS,
    Assignment,
    Background,
    Command,
    Conditional,
    ElifBranch,
    Function,
    FunctionDecl,
    Loop,
    Pipeline,
    Program,
    Redirection,
    Return,
    Statement,
    Subshell,
    Word,
)

logger = logging.getLogger(__name__)

SourceLoader = Callable[[str], list]

# Builtins that also exist as standalone executables, so they may run as
# pipeline stages.
EXECUTABLE_BUILTINS: frozenset[str] = frozenset(
    {"echo", "pwd", "mkdir", "rm", "cp", "test", "[", "true", "false"}
)

_BUILTIN_CAPS: dict[str, str] = {
    "cd": CAP_CHDIR,
    "pwd": CAP_FS,
    "mkdir": CAP_FS,
    "rm": CAP_FS,
    "cp": CAP_FS,
    "read": CAP_STDIN,
    "export": CAP_ENV,
}

# Default fd for each file redirect operator
_REDIRECT_FDS: dict[str, int] = {">": 1, ">>": 1, "<": 0}


def build(nodes: list, source_loader: SourceLoader | None = None) -> Program:
    """Build a Program from bashlex top-level nodes."""
    return Builder(source_loader).build(nodes)


def _flat(items) -> list:
    """Flatten the nested Python lists bashlex sometimes leaves in parts."""
    out: list = []
    for item in items or []:
        if isinstance(item, list):
            out.extend(_flat(item))
        else:
            out.append(item)
    return out


def _walk(node) -> Iterator:
    yield node
    for attr in ("parts", "list", "word"):
        value = getattr(node, attr, None)
        if not isinstance(value, list):
            continue
        for child in _flat(value):
            if hasattr(child, "kind"):
                yield from _walk(child)
    body = getattr(node, "body", None)
    if body is not None and hasattr(body, "kind"):
        yield from _walk(body)


def collect_function_names(nodes: list) -> set[str]:
    """Names of every function declared anywhere in the tree."""
    names: set[str] = set()
    for top in nodes:
        for node in _walk(top):
            if node.kind == "function":
                names.add(node.name.word)
    return names


def _sections(parts) -> list[tuple[str, list]]:
    """Split flat compound parts into (reserved word, following nodes) runs."""
    sections: list[tuple[str, list]] = []
    _collect_sections(parts, sections)
    return sections


def _collect_sections(parts, sections: list[tuple[str, list]]) -> None:
    for part in _flat(parts):
        if part.kind == "reservedword" and isinstance(part.word, list):
            # bashlex nests the second and later elif arms in the word slot
            _collect_sections(part.word, sections)
        elif part.kind == "reservedword":
            sections.append((part.word, []))
        elif sections:
            sections[-1][1].append(part)
        else:
            raise UnsupportedConstruct(part.kind, "outside a compound clause")


def _section(sections: list[tuple[str, list]], *keywords: str) -> list | None:
    for keyword, nodes in sections:
        if keyword in keywords:
            return nodes
    return None


def _fd_number(output) -> int | None:
    if isinstance(output, int):
        return output
    text = getattr(output, "word", "")
    if text.isdigit():
        return int(text)
    return None


class Builder:
    """Lower bashlex nodes to IR. One instance per conversion."""

    def __init__(self, source_loader: SourceLoader | None = None) -> None:
        self.program = Program()
        self._source_loader = source_loader
        self._function_names: set[str] = set()
        self._current: Function | None = None  # Function whose body is being built
        self._params: set[str] = set()  # Positionals seen in the current function
        self._sourcing: list[str] = []  # Stack of files being inlined
        self._rules: dict[str, Callable[[object], list[Statement]]] = {
            "command": self._build_command,
            "list": self._build_list,
            "pipeline": self._build_pipeline,
            "compound": self._build_compound,
            "if": self._build_if,
            "for": self._build_for,
            "while": self._build_while,
            "until": self._build_while,
            "function": self._build_function,
        }

    def build(self, nodes: list) -> Program:
        self._function_names = collect_function_names(nodes)
        for node in nodes:
            self.program.statements.extend(self._build_node(node))
        logger.debug(
            "built program: %d statements, %d functions, capabilities=%s",
            len(self.program.statements),
            len(self.program.functions),
            sorted(self.program.capabilities),
        )
        return self.program

    def _build_node(self, node) -> list[Statement]:
        rule = self._rules.get(node.kind)
        if rule is None:
            raise UnsupportedConstruct(node.kind)
        return rule(node)

    def _build_body(self, nodes) -> list[Statement]:
        stmts: list[Statement] = []
        for node in _flat(nodes):
            if node.kind == "operator" and node.op in (";", "\n"):
                continue
            stmts.extend(self._build_node(node))
        return stmts

    # ============================================================
    # LISTS
    # ============================================================

    def _build_list(self, node) -> list[Statement]:
        """Statement sequence. && and || chains group left to right."""
        stmts: list[Statement] = []
        pending: list[Statement] | None = None
        # Statements whose combined success is pending's status, set while
        # pending is an && chain
        chain: list[Statement] | None = None
        connector = ""
        for part in _flat(node.parts):
            if part.kind == "operator":
                if part.op in ("&&", "||"):
                    connector = part.op
                    continue
                if pending is not None:
                    if part.op == "&":
                        pending = [self._background(pending)]
                    stmts.extend(pending)
                    pending = None
                    chain = None
                continue
            built = self._build_node(part)
            if pending is None:
                pending = built
            elif connector == "&&":
                left = chain if chain is not None else pending
                pending = [self._and_or(left, built, True)]
                chain = left + built
            elif connector == "||":
                left = chain if chain is not None else pending
                pending = [self._and_or(left, built, False)]
                chain = None
            else:
                stmts.extend(pending)
                pending = built
                chain = None
            connector = ""
        if pending is not None:
            stmts.extend(pending)
        return stmts

    def _and_or(
        self, left: list[Statement], right: list[Statement], on_success: bool
    ) -> Statement:
        category = condition_category(left)
        if on_success:
            return Statement.of(Conditional(left, right, category=category))
        return Statement.of(Conditional(left, [], else_body=right, category=category))

    def _background(self, stmts: list[Statement]) -> Statement:
        if len(stmts) != 1 or stmts[0].kind not in ("command", "pipeline"):
            kind = stmts[0].kind if stmts else "empty"
            raise UnsupportedConstruct("background", kind)
        self.program.capabilities.add(CAP_BACKGROUND)
        return Statement.of(Background(stmts[0]))

    # ============================================================
    # SIMPLE COMMANDS
    # ============================================================

    def _build_command(self, node) -> list[Statement]:
        prefix: list = []
        words: list = []
        redirects: list = []
        for part in _flat(node.parts):
            if part.kind == "assignment" and not words:
                prefix.append(part)
            elif part.kind in ("word", "assignment"):
                words.append(part)
            elif part.kind == "redirect":
                redirects.append(part)
            else:
                raise UnsupportedConstruct(part.kind)
        if not words:
            if redirects:
                raise UnsupportedConstruct("redirect", "without a command")
            return [self._assign(p) for p in prefix]
        # VAR=v cmd: approximated as an exported assignment before cmd
        stmts = [self._assign(p, exported=True) for p in prefix]
        body = self._simple_command(words)
        if redirects:
            if len(body) != 1:
                raise UnsupportedConstruct("redirect", words[0].word)
            body = [self._redirected(body[0], redirects)]
        return stmts + body

    def _simple_command(self, words: list) -> list[Statement]:
        head = words[0]
        if has_expansion(head):
            raise UnsupportedConstruct("dynamic command name", head.word)
        name: str = head.word
        rest = words[1:]
        if name == "local":
            return self._local(rest)
        if name == "export":
            return self._export(rest)
        if name == "return":
            return [self._return(rest)]
        if name in ("source", ".") and self._source_loader is not None:
            return self._source(rest)
        args = [self._word(w) for w in rest]
        if name == "read":
            self._note_read(args)
        return [Statement.of(self._classify(name, args))]

    def _classify(self, name: str, args: list[Word]) -> Command:
        caps = self.program.capabilities
        if name in self._function_names:
            return Command(name, args, "function", False)
        if name in BUILTINS:
            cmd = Command(name, args, "builtin", False)
            cap = _BUILTIN_CAPS.get(name)
            if cap is not None:
                caps.add(cap)
            if name in TEST_COMMANDS:
                category = infer_category(cmd)
                if category == FILE_TEST:
                    caps.add(CAP_FS)
                elif category == GENERIC_COMMAND:
                    caps.add(CAP_EXEC)
            return cmd
        caps.add(CAP_EXEC)
        return Command(name, args, "external", True)

    def _word(self, node) -> Word:
        value = word_value(node)
        self._note_word(value)
        return value

    def _note_word(self, value: Word) -> None:
        if self._current is not None:
            self._params |= positional_refs(value)

    def _note_read(self, args: list[Word]) -> None:
        names: list[str] = []
        for arg in args:
            if arg.text == "-r" and not arg.interpolated:
                continue
            if arg.interpolated or not IDENT.match(arg.text):
                raise UnsupportedConstruct("read", arg.text)
            names.append(arg.text)
        for name in names or ["REPLY"]:
            if self._current is None or name not in self._current.locals:
                self.program.variables[name] = None

    # ============================================================
    # ASSIGNMENTS
    # ============================================================

    def _assign(self, node, exported: bool = False, local: bool = False) -> Statement:
        name, value = split_assignment(node)
        return self._bind(name, value, exported, local)

    def _bind(self, name: str, value: Word, exported: bool, local: bool) -> Statement:
        self._note_word(value)
        known = None if value.interpolated else value.text
        fn = self._current
        if fn is not None and (local or name in fn.locals):
            fn.locals[name] = known
            local = True
        else:
            self.program.variables[name] = known
        if exported:
            self.program.capabilities.add(CAP_ENV)
        return Statement.of(Assignment(name, value, local, exported))

    def _local(self, rest: list) -> list[Statement]:
        if self._current is None:
            raise UnsupportedConstruct("local", "outside a function")
        stmts: list[Statement] = []
        for node in rest:
            if node.word.startswith("-"):
                raise UnsupportedConstruct("local", node.word)
            name, value = split_assignment(node)
            if not IDENT.match(name):
                raise UnsupportedConstruct("local", node.word)
            stmts.append(self._bind(name, value, False, True))
        return stmts

    def _export(self, rest: list) -> list[Statement]:
        stmts: list[Statement] = []
        for node in rest:
            if node.word.startswith("-"):
                raise UnsupportedConstruct("export", node.word)
            if "=" in node.word:
                stmts.append(self._assign(node, exported=True))
                continue
            if has_expansion(node) or not IDENT.match(node.word):
                raise UnsupportedConstruct("export", node.word)
            self.program.capabilities.add(CAP_ENV)
            stmts.append(Statement.of(Command("export", [Word(node.word)], "builtin", False)))
        return stmts

    def _return(self, rest: list) -> Statement:
        if not rest:
            return Statement.of(Return())
        if len(rest) > 1:
            raise UnsupportedConstruct("return", "more than one argument")
        value = self._word(rest[0])
        if not value.interpolated and value.text.isdigit():
            return Statement.of(Return(code=int(value.text)))
        return Statement.of(Return(value=value))

    def _source(self, rest: list) -> list[Statement]:
        if len(rest) != 1 or has_expansion(rest[0]):
            raise UnsupportedConstruct("source", "dynamic path")
        path: str = rest[0].word
        if path in self._sourcing:
            raise UnsupportedConstruct("recursive source", path)
        assert self._source_loader is not None
        self._sourcing.append(path)
        try:
            nodes = self._source_loader(path)
            self._function_names |= collect_function_names(nodes)
            stmts: list[Statement] = []
            for node in nodes:
                stmts.extend(self._build_node(node))
        finally:
            self._sourcing.pop()
        logger.debug("inlined %s: %d statements", path, len(stmts))
        return stmts

    # ============================================================
    # REDIRECTIONS
    # ============================================================

    def _redirected(self, stmt: Statement, redirects: list) -> Statement:
        """Wrap stmt in one Redirection per redirect, first redirect innermost."""
        for r in redirects:
            op, target = self._redirect(r)
            stmt = Statement.of(Redirection(op, target, stmt))
        return stmt

    def _redirect(self, node) -> tuple[str, Word]:
        rtype: str = node.type
        fd = getattr(node, "input", None)
        if rtype in _REDIRECT_FDS:
            if fd is not None and fd != _REDIRECT_FDS[rtype]:
                raise UnsupportedConstruct("redirect", f"{fd}{rtype}")
            if not hasattr(node.output, "kind"):
                raise UnsupportedConstruct("redirect", f"{rtype}{node.output}")
            self.program.capabilities.add(CAP_FS)
            return (rtype, self._word(node.output))
        if rtype == ">&" and fd in (None, 1) and _fd_number(node.output) == 2:
            return (">&2", Word("2"))
        if rtype in ("<<", "<<-", "<<<"):
            raise UnsupportedConstruct("heredoc", rtype)
        raise UnsupportedConstruct("redirect", rtype)

    # ============================================================
    # PIPELINES
    # ============================================================

    def _flatten_pipeline(self, node, stages: list) -> bool:
        """Collect command stages left to right. Returns True if negated."""
        negated = False
        for part in _flat(node.parts):
            if part.kind == "reservedword" and part.word == "!":
                negated = not negated
            elif part.kind == "pipe":
                if part.pipe != "|":
                    raise UnsupportedConstruct("pipe", part.pipe)
            elif part.kind == "pipeline":
                if self._flatten_pipeline(part, stages):
                    negated = not negated
            elif part.kind == "command":
                stages.append(part)
            else:
                raise UnsupportedConstruct("pipeline stage", part.kind)
        return negated

    def _build_pipeline(self, node) -> list[Statement]:
        stages: list = []
        negated = self._flatten_pipeline(node, stages)
        if len(stages) == 1:
            stmts = self._build_command(stages[0])
            if negated:
                last = stmts[-1] if stmts else None
                if last is None or last.kind != "command":
                    raise UnsupportedConstruct("negation", last.kind if last else "empty")
                last.payload.negated = True  # type: ignore[union-attr]
            return stmts
        self.program.capabilities.add(CAP_EXEC)
        commands: list[Command] = []
        hoisted: list[tuple[str, Word]] = []
        for i, stage in enumerate(stages):
            cmd, redirects = self._stage(stage)
            for r in redirects:
                op, target = self._redirect(r)
                if op == "<" and i == 0:
                    hoisted.insert(0, (op, target))
                elif op != "<" and i == len(stages) - 1:
                    hoisted.append((op, target))
                else:
                    raise UnsupportedConstruct("redirect", "inside a pipeline")
            commands.append(cmd)
        stmt = Statement.of(Pipeline(commands, negated))
        for op, target in hoisted:
            stmt = Statement.of(Redirection(op, target, stmt))  # type: ignore[arg-type]
        return [stmt]

    def _stage(self, node) -> tuple[Command, list]:
        words: list = []
        redirects: list = []
        for part in _flat(node.parts):
            if part.kind == "word" or (part.kind == "assignment" and words):
                words.append(part)
            elif part.kind == "redirect":
                redirects.append(part)
            else:
                raise UnsupportedConstruct("pipeline stage", part.kind)
        if not words:
            raise UnsupportedConstruct("pipeline stage", "assignment only")
        head = words[0]
        if has_expansion(head):
            raise UnsupportedConstruct("dynamic command name", head.word)
        name: str = head.word
        if name in self._function_names:
            raise UnsupportedConstruct("pipeline stage", f"function {name}")
        if name in BUILTINS and name not in EXECUTABLE_BUILTINS:
            raise UnsupportedConstruct("pipeline stage", f"builtin {name}")
        args = [self._word(w) for w in words[1:]]
        return (Command(name, args, "external", True), redirects)

    # ============================================================
    # COMPOUND COMMANDS
    # ============================================================

    def _build_compound(self, node) -> list[Statement]:
        items = _flat(node.list)
        if not items:
            raise UnsupportedConstruct("compound", "empty")
        head = items[0]
        if head.kind == "reservedword" and head.word == "(":
            stmts = [Statement.of(Subshell(self._build_body(items[1:-1])))]
        elif head.kind == "reservedword" and head.word == "{":
            stmts = self._build_body(items[1:-1])
        else:
            stmts = self._build_body(items)
        redirects = _flat(getattr(node, "redirects", None))
        if redirects:
            if len(stmts) != 1:
                raise UnsupportedConstruct("redirect", "brace group")
            stmts = [self._redirected(stmts[0], redirects)]
        return stmts

    def _build_if(self, node) -> list[Statement]:
        """if/elif/else. Every (condition, then) pair after the first is an elif."""
        arms: list[tuple[list[Statement], list[Statement]]] = []
        else_body: list[Statement] = []
        condition: list[Statement] = []
        for keyword, nodes in _sections(node.parts):
            if keyword in ("if", "elif"):
                condition = self._build_body(nodes)
            elif keyword == "then":
                arms.append((condition, self._build_body(nodes)))
            elif keyword == "else":
                else_body = self._build_body(nodes)
            elif keyword != "fi":
                raise UnsupportedConstruct("if", keyword)
        if not arms:
            raise UnsupportedConstruct("if", "no branches")
        first_cond, first_body = arms[0]
        elifs = [ElifBranch(c, b, condition_category(c)) for c, b in arms[1:]]
        cond = Conditional(
            first_cond, first_body, else_body, elifs, condition_category(first_cond)
        )
        return [Statement.of(cond)]

    def _build_for(self, node) -> list[Statement]:
        sections = _sections(node.parts)
        head = _section(sections, "for") or []
        if len(head) != 1 or head[0].kind != "word" or not IDENT.match(head[0].word):
            raise UnsupportedConstruct("for", "loop variable")
        var: str = head[0].word
        self._bind_loop_var(var)
        body = self._build_body(_section(sections, "do", "{") or [])
        in_nodes = _section(sections, "in")
        if in_nodes is None:
            loop = Loop("list", body, var=var, items=[Word("$@", True)])
            return [Statement.of(loop)]
        items = [self._word(n) for n in in_nodes if n.kind == "word"]
        if len(items) == 1:
            bounds = range_bounds(items[0])
            if bounds is not None:
                loop = Loop("range", body, var=var, range_from=bounds[0], range_to=bounds[1])
                return [Statement.of(loop)]
        return [Statement.of(Loop("list", body, var=var, items=items))]

    def _bind_loop_var(self, var: str) -> None:
        fn = self._current
        if fn is not None and var in fn.locals:
            fn.locals[var] = None
        else:
            self.program.variables[var] = None

    def _build_while(self, node) -> list[Statement]:
        kind: str = node.kind
        sections = _sections(node.parts)
        condition = self._build_body(_section(sections, kind) or [])
        body = self._build_body(_section(sections, "do") or [])
        loop = Loop(kind, body, condition, category=condition_category(condition))  # type: ignore[arg-type]
        return [Statement.of(loop)]

    # ============================================================
    # FUNCTIONS
    # ============================================================

    def _build_function(self, node) -> list[Statement]:
        name: str = node.name.word
        if name in self.program.functions:
            raise UnsupportedConstruct("function redefinition", name)
        if self._current is not None:
            raise UnsupportedConstruct("nested function", name)
        fn = Function(name)
        self.program.functions[name] = fn
        self._current = fn
        self._params = set()
        try:
            fn.body = self._build_node(node.body)
        finally:
            self._current = None
        fn.params = sorted(self._params)
        logger.debug("function %s: %d statements, params=%s", name, len(fn.body), fn.params)
        return [Statement.of(FunctionDecl(name))]
