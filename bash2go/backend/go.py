"""GoBackend: IR -> Go code.

Pure syntax emission - no analysis. Imports and runtime helpers come from the
requirements pass; everything else comes from the IR.

Output layout:

    package main
    import (...)                         sorted
    var NAME = os.Getenv("NAME")         one per global, sorted by shell name
    func shName(stdin io.Reader, stdout io.Writer, args []string) error
    func main()
    func run() error                     top-level statements
    runtime helpers                      fixed order

Every lowered statement that can fail returns an error from the enclosing Go
function. main prints it as `error: <err>` and exits 1, or exits with the
code carried by an exitStatus.

APPROXIMATIONS (non-idiomatic output)
=====================================

- Conditions that are not a lone test command or process run as an
  immediately-invoked `func() error` whose success is the condition. The IR
  has no expression form for "status of a statement list".
- Subshells and file redirections are also immediately-invoked closures, so
  `defer` gives release on every exit path. `return`, `break` and `continue`
  cannot cross those closures and are rejected there.
- `read` pulls standard input one byte at a time so later readers of the
  same stream see everything after the consumed line.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace

from bash2go.backend.process import ExecProcessBackend, ProcessBackend
from bash2go.backend.requirements import ALL_ARGS, Requirements, collect_requirements
from bash2go.backend.runtime import HELPER_DECLS, HELPER_NAMES, helper_sources
from bash2go.backend.splice import SPECIAL_PARAMS, splice
from bash2go.backend.util import (
    GO_PACKAGES,
    GO_PREDECLARED,
    GO_RESERVED,
    go_ident,
    go_string,
    go_to_pascal,
    literal_int,
)
from bash2go.errors import UnsupportedConstruct
from bash2go.frontend.conditions import FILE_OPS, NUMERIC_OPS, Predicate, split_test
from bash2go.ir import (
    CAP_BACKGROUND,
    GENERIC_COMMAND,
    TEST_COMMANDS,
    Assignment,
    Background,
    Command,
    Conditional,
    Function,
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

# Names the generated program declares itself
_INTERNAL_NAMES = frozenset(
    {"main", "run", "args", "stdin", "stdout", "cwd", "err", "pipe", "fields", "data", "code", "ok", "jobErr"}
)

# Temporaries are a prefix plus a per-program counter
_TEMP_NAME = re.compile(r"^(stage|file|item|n|end|job|jobArgs|pipeErr)\d+$")

# "_" is the blank identifier and cannot be read back
_RESERVED = (
    GO_RESERVED
    | GO_PREDECLARED
    | GO_PACKAGES
    | HELPER_NAMES
    | HELPER_DECLS
    | _INTERNAL_NAMES
    | {"_"}
)

_FILE_HELPERS: dict[str, str] = {"-f": "isFile", "-d": "isDir", "-e": "pathExists"}

_NUMERIC_GO_OPS: dict[str, str] = {
    "-eq": "==",
    "-ne": "!=",
    "-lt": "<",
    "-le": "<=",
    "-gt": ">",
    "-ge": ">=",
}


def emit_go(program: Program, process: ProcessBackend | None = None) -> str:
    """Lower a Program to Go source text."""
    return GoBackend(process).emit(program)


def _reserved_for(name: str) -> frozenset[str]:
    if _TEMP_NAME.match(name):
        return _RESERVED | {name}
    return _RESERVED


def _command_text(cmd: Command) -> str:
    return " ".join([cmd.name] + [w.text for w in cmd.args])


def _assigned_names(stmts: list[Statement]) -> set[str]:
    """Every variable a statement list may assign, at any depth."""
    names: set[str] = set()
    for stmt in stmts:
        p = stmt.payload
        if isinstance(p, Assignment):
            names.add(p.name)
        elif isinstance(p, Command) and p.name == "read" and p.classification == "builtin":
            targets = [w.text for w in p.args if w.text != "-r"]
            names.update(targets or ["REPLY"])
        elif isinstance(p, Conditional):
            names |= _assigned_names(p.condition)
            names |= _assigned_names(p.then_body)
            for branch in p.elifs:
                names |= _assigned_names(branch.condition)
                names |= _assigned_names(branch.body)
            names |= _assigned_names(p.else_body)
        elif isinstance(p, Loop):
            if p.var:
                names.add(p.var)
            names |= _assigned_names(p.condition)
            names |= _assigned_names(p.body)
        elif isinstance(p, Subshell):
            names |= _assigned_names(p.body)
        elif isinstance(p, Redirection):
            names |= _assigned_names([p.statement])
    return names


def _has_background(stmts: list[Statement]) -> bool:
    """True if a background job starts anywhere in stmts."""
    for stmt in stmts:
        p = stmt.payload
        if isinstance(p, Background):
            return True
        if isinstance(p, Conditional):
            nested = p.condition + p.then_body + p.else_body
            for branch in p.elifs:
                nested += branch.condition + branch.body
        elif isinstance(p, Loop):
            nested = p.condition + p.body
        elif isinstance(p, Subshell):
            nested = p.body
        elif isinstance(p, Redirection):
            nested = [p.statement]
        else:
            continue
        if _has_background(nested):
            return True
    return False


class GoBackend:
    """Emit Go code from an IR Program. One instance per generation."""

    def __init__(self, process: ProcessBackend | None = None) -> None:
        self.output: list[str] = []
        self.indent = 0
        self.process: ProcessBackend = process if process is not None else ExecProcessBackend()
        self._program = Program()
        self._req = Requirements()
        self._func_idents: dict[str, str] = {}  # shell function name -> Go func name
        self._global_idents: dict[str, str] = {}  # shell variable -> package-level var
        self._local_idents: dict[str, str] = {}  # shell local -> Go local (current function)
        self._writer = "os.Stdout"  # Current stdout expression
        self._reader = "os.Stdin"  # Current stdin expression
        self._args = "os.Args[1:]"  # Current positional parameters
        self._loop_depth = 0  # Enclosing loops inside the current Go function literal
        self._closure_depth = 0  # Function literals between here and the shell function
        self._in_subshell = False
        self._temps = 0

    def emit(self, program: Program) -> str:
        """Emit Go code from IR Program."""
        self._program = program
        self._req = collect_requirements(program, self.process)
        self._assign_names(program)
        self.output = []
        self._emit_globals()
        for fn in program.functions.values():
            self._emit_function(fn)
        self._emit_main()
        self._emit_run(program.statements)
        body = self.output
        self.output = []
        self._emit_header()
        header = self.output
        self.output = []
        self._emit_helpers()
        logger.debug(
            "emitted %d lines, imports=%s, helpers=%s",
            len(header) + len(body) + len(self.output),
            self._req.all_imports(),
            sorted(self._req.helpers),
        )
        return "\n".join(header + body + self.output)

    def _assign_names(self, program: Program) -> None:
        taken: set[str] = set()
        self._func_idents = {}
        for name in program.functions:
            self._func_idents[name] = go_ident("sh" + go_to_pascal(name), _RESERVED, taken)
        self._global_idents = {}
        for name in sorted(program.variables):
            self._global_idents[name] = go_ident(name, _reserved_for(name), taken)

    # ============================================================
    # DECLARATIONS
    # ============================================================

    def _emit_header(self) -> None:
        self._line("package main")
        self._line("")
        self._line("import (")
        self.indent += 1
        for imp in self._req.all_imports():
            self._line(go_string(imp))
        self.indent -= 1
        self._line(")")
        self._line("")

    def _emit_globals(self) -> None:
        if not self._global_idents:
            return
        for name in sorted(self._global_idents):
            self._line(f"var {self._global_idents[name]} = os.Getenv({go_string(name)})")
        self._line("")

    def _emit_function(self, fn: Function) -> None:
        taken = set(self._func_idents.values())
        self._local_idents = {name: go_ident(name, _reserved_for(name), taken) for name in fn.locals}
        self._enter_scope("stdout", "stdin", "args")
        self._line(
            f"func {self._func_idents[fn.name]}(stdin io.Reader, stdout io.Writer, args []string) error {{"
        )
        self.indent += 1
        for ident in self._local_idents.values():
            self._line(f"var {ident} string")
            self._line(f"_ = {ident}")
        self._emit_stmts(fn.body)
        self._line("return nil")
        self.indent -= 1
        self._line("}")
        self._line("")

    def _emit_main(self) -> None:
        self._line("func main() {")
        self.indent += 1
        if CAP_BACKGROUND in self._program.capabilities:
            self._use("jobGroup")
            self._line("err := run()")
            self._line("if jobErr := jobs.Wait(); err == nil {")
            self._line("\terr = jobErr")
            self._line("}")
            self._line("if err != nil {")
        else:
            self._line("if err := run(); err != nil {")
        self.indent += 1
        if "exitStatus" in self._req.helpers:
            self._line("if code, ok := err.(exitStatus); ok {")
            self._line("\tos.Exit(int(code))")
            self._line("}")
        self._line('fmt.Fprintln(os.Stderr, "error:", err)')
        self._line("os.Exit(1)")
        self.indent -= 1
        self._line("}")
        self.indent -= 1
        self._line("}")
        self._line("")

    def _emit_run(self, stmts: list[Statement]) -> None:
        self._local_idents = {}
        self._enter_scope("os.Stdout", "os.Stdin", "os.Args[1:]")
        self._line("func run() error {")
        self.indent += 1
        self._emit_stmts(stmts)
        self._line("return nil")
        self.indent -= 1
        self._line("}")
        self._line("")

    def _emit_helpers(self) -> None:
        """Emit only the helper functions collected by the requirements pass."""
        for source in helper_sources(self._req.helpers):
            for line in source.split("\n"):
                self._line_raw(line)
            self._line("")

    def _enter_scope(self, writer: str, reader: str, args: str) -> None:
        self._writer = writer
        self._reader = reader
        self._args = args
        self._loop_depth = 0
        self._closure_depth = 0
        self._in_subshell = False

    # ============================================================
    # STATEMENT EMISSION
    # ============================================================

    def _emit_stmts(self, stmts: list[Statement]) -> None:
        for stmt in stmts:
            self._emit_stmt(stmt)

    def _emit_stmt(self, stmt: Statement) -> None:
        """Emit a statement."""
        kind = stmt.kind
        p = stmt.payload
        if kind == "command":
            self._emit_command(p)  # type: ignore[arg-type]
        elif kind == "assignment":
            self._emit_assignment(p)  # type: ignore[arg-type]
        elif kind == "conditional":
            self._emit_conditional(p)  # type: ignore[arg-type]
        elif kind == "loop":
            self._emit_loop(p)  # type: ignore[arg-type]
        elif kind == "pipeline":
            self._emit_pipeline(p)  # type: ignore[arg-type]
        elif kind == "subshell":
            self._emit_subshell(p)  # type: ignore[arg-type]
        elif kind == "redirection":
            self._emit_redirection(p)  # type: ignore[arg-type]
        elif kind == "background":
            self._emit_background(p)  # type: ignore[arg-type]
        elif kind == "return":
            self._emit_return(p)  # type: ignore[arg-type]
        elif kind == "function_decl":
            pass  # Declared at package level
        else:
            raise UnsupportedConstruct(kind)

    def _emit_assignment(self, stmt: Assignment) -> None:
        target = self._target(stmt.name)
        self._line(f"{target} = {self._expr(stmt.value)}")
        if stmt.exported:
            self._line(f"os.Setenv({go_string(stmt.name)}, {target})")

    def _emit_return(self, stmt: Return) -> None:
        if self._closure_depth > 0:
            raise UnsupportedConstruct("return", "inside a subshell, redirection or condition")
        if stmt.value is not None:
            self._use("exitStatus")
            self._line(f"return statusError({self._int_expr(stmt.value)})")
        elif stmt.code:
            self._use("exitStatus")
            self._line(f"return exitStatus({stmt.code})")
        else:
            self._line("return nil")

    # ============================================================
    # COMMANDS
    # ============================================================

    _BUILTIN_RULES: dict[str, str] = {
        "echo": "_emit_echo",
        "cd": "_emit_cd",
        "pwd": "_emit_pwd",
        "mkdir": "_emit_mkdir",
        "rm": "_emit_rm",
        "cp": "_emit_cp",
        "test": "_emit_test",
        "[": "_emit_test",
        "exit": "_emit_exit",
        "export": "_emit_export",
        "read": "_emit_read",
        "source": "_emit_source",
        ".": "_emit_source",
        "wait": "_emit_wait",
        "true": "_emit_true",
        ":": "_emit_true",
        "false": "_emit_false",
        "break": "_emit_loop_control",
        "continue": "_emit_loop_control",
    }

    def _emit_command(self, cmd: Command) -> None:
        if cmd.classification == "external":
            expr = self._captured(self.process.spawn(self._argv(cmd)))
            self._check_status(expr, cmd.negated, _command_text(cmd))
        elif cmd.classification == "function":
            self._check_status(self._call(cmd), cmd.negated, _command_text(cmd))
        else:
            rule = self._BUILTIN_RULES.get(cmd.name)
            if rule is None:
                raise UnsupportedConstruct("builtin", cmd.name)
            getattr(self, rule)(cmd)

    def _emit_echo(self, cmd: Command) -> None:
        args = list(cmd.args)
        newline = True
        while args and _is_echo_flag(args[0]):
            flags = args.pop(0).text[1:]
            if "e" in flags:
                raise UnsupportedConstruct("echo", "-e")
            if "n" in flags:
                newline = False
        exprs = [self._expr(a) for a in args]
        if newline:
            self._line(self._print(exprs, True))
        else:
            self._line(self._print([' + " " + '.join(exprs) if exprs else '""'], False))

    def _emit_cd(self, cmd: Command) -> None:
        if len(cmd.args) > 1:
            raise UnsupportedConstruct("cd", "too many arguments")
        if cmd.args and cmd.args[0].text == "-" and not cmd.args[0].interpolated:
            raise UnsupportedConstruct("cd", "-")
        target = self._expr(cmd.args[0]) if cmd.args else 'os.Getenv("HOME")'
        self._check(f"os.Chdir({target})")

    def _emit_pwd(self, cmd: Command) -> None:
        self._line("if cwd, err := os.Getwd(); err != nil {")
        self._line("\treturn err")
        self._line("} else {")
        self._line("\t" + self._print(["cwd"], True))
        self._line("}")

    def _emit_mkdir(self, cmd: Command) -> None:
        operands = _operands(cmd.args)
        if not operands:
            raise UnsupportedConstruct("mkdir", "missing operand")
        for operand in operands:
            self._check(f"os.MkdirAll({self._expr(operand)}, 0755)")

    def _emit_rm(self, cmd: Command) -> None:
        flags = "".join(a.text[1:] for a in cmd.args if _is_flag(a))
        recursive = "r" in flags or "R" in flags
        force = "f" in flags
        operands = _operands(cmd.args)
        if not operands and not force:
            raise UnsupportedConstruct("rm", "missing operand")
        for operand in operands:
            path = self._expr(operand)
            if recursive:
                self._check(f"os.RemoveAll({path})")
            elif force:
                self._line(f"if err := os.Remove({path}); err != nil && !os.IsNotExist(err) {{")
                self._line("\treturn err")
                self._line("}")
            else:
                self._check(f"os.Remove({path})")

    def _emit_cp(self, cmd: Command) -> None:
        for arg in cmd.args:
            if _is_flag(arg):
                raise UnsupportedConstruct("cp", arg.text)
        if len(cmd.args) != 2:
            raise UnsupportedConstruct("cp", "expected a source and a destination")
        src, dst = (self._expr(a) for a in cmd.args)
        self._line(f"if data, err := os.ReadFile({src}); err != nil {{")
        self._line("\treturn err")
        self._line(f"}} else if err := os.WriteFile({dst}, data, 0644); err != nil {{")
        self._line("\treturn err")
        self._line("}")

    def _emit_test(self, cmd: Command) -> None:
        form = split_test(cmd)
        if form is None:
            self._check_status(self._spawn_test(cmd), cmd.negated, _command_text(cmd))
            return
        self._line(f"if !({self._predicate_expr(form, cmd.negated)}) {{")
        self._line(f'\treturn fmt.Errorf("%s: test failed", {go_string(_command_text(cmd))})')
        self._line("}")

    def _emit_exit(self, cmd: Command) -> None:
        if len(cmd.args) > 1:
            raise UnsupportedConstruct("exit", "too many arguments")
        word = cmd.args[0] if cmd.args else None
        if self._in_subshell:
            code = literal_int(word) if word is not None else 0
            if code == 0:
                self._line("return nil")
            elif code is not None:
                self._use("exitStatus")
                self._line(f"return exitStatus({code})")
            else:
                self._use("exitStatus")
                self._line(f"return statusError({self._int_expr(word)})")  # type: ignore[arg-type]
            return
        if CAP_BACKGROUND in self._program.capabilities:
            self._line("jobs.Wait()")
        self._line(f"os.Exit({self._int_expr(word) if word is not None else '0'})")

    def _emit_export(self, cmd: Command) -> None:
        for arg in cmd.args:
            value = self._resolve(arg.text) or f"os.Getenv({go_string(arg.text)})"
            self._line(f"os.Setenv({go_string(arg.text)}, {value})")

    def _emit_read(self, cmd: Command) -> None:
        names: list[str] = []
        for arg in cmd.args:
            if arg.text == "-r" and not arg.interpolated:
                continue
            if arg.interpolated or arg.text.startswith("-"):
                raise UnsupportedConstruct("read", arg.text)
            names.append(arg.text)
        names = names or ["REPLY"]
        self._use("readFields")
        self._line(f"if fields, err := readFields({self._reader}, {len(names)}); err != nil {{")
        self._line("\treturn err")
        self._line("} else {")
        for i, name in enumerate(names):
            self._line(f"\t{self._target(name)} = fields[{i}]")
        self._line("}")

    def _emit_source(self, cmd: Command) -> None:
        raise UnsupportedConstruct(cmd.name, "sourced files are only inlined with a source loader")

    def _emit_wait(self, cmd: Command) -> None:
        if CAP_BACKGROUND in self._program.capabilities:
            self._check("jobs.Wait()")

    def _emit_true(self, cmd: Command) -> None:
        pass

    def _emit_false(self, cmd: Command) -> None:
        self._line('return fmt.Errorf("false")')

    def _emit_loop_control(self, cmd: Command) -> None:
        if cmd.args and not (len(cmd.args) == 1 and cmd.args[0].text == "1"):
            raise UnsupportedConstruct(cmd.name, "loop count")
        if self._loop_depth == 0:
            raise UnsupportedConstruct(cmd.name, "outside a loop body")
        self._line(cmd.name)

    def _call(self, cmd: Command) -> str:
        ident = self._func_idents.get(cmd.name)
        if ident is None:
            raise UnsupportedConstruct("function", cmd.name)
        return f"{ident}({self._reader}, {self._writer}, {self._slice(cmd.args)})"

    def _argv(self, cmd: Command) -> list[str]:
        return [go_string(cmd.name)] + [self._expr(a) for a in cmd.args]

    def _captured(self, proc: str) -> str:
        for helper in self.process.helpers():
            self._use(helper)
        return self.process.run_captured(proc, self._reader, self._writer)

    def _spawn_test(self, cmd: Command) -> str:
        argv = ['"test"'] + [self._expr(a) for a in cmd.operands()]
        return self._captured(self.process.spawn(argv))

    def _check_status(self, expr: str, negated: bool, text: str) -> None:
        """Fail the enclosing function when expr's error disagrees with negated."""
        if negated:
            self._line(f"if {expr} == nil {{")
            self._line(f'\treturn fmt.Errorf("%s: unexpected success", {go_string(text)})')
            self._line("}")
        else:
            self._check(expr)

    def _check(self, call: str) -> None:
        self._line(f"if err := {call}; err != nil {{")
        self._line("\treturn err")
        self._line("}")

    # ============================================================
    # CONDITIONS
    # ============================================================

    def _cond_expr(self, condition: list[Statement], category: str) -> str:
        if category != GENERIC_COMMAND:
            cmd = condition[0].payload
            assert isinstance(cmd, Command)
            form = split_test(cmd)
            if form is None:
                raise UnsupportedConstruct("condition", _command_text(cmd))
            return self._predicate_expr(form, cmd.negated)
        return self._generic_cond(condition)

    def _generic_cond(self, condition: list[Statement]) -> str:
        if len(condition) == 1 and isinstance(condition[0].payload, Command):
            cmd = condition[0].payload
            cmp = "!=" if cmd.negated else "=="
            if cmd.classification == "builtin" and cmd.name in TEST_COMMANDS:
                form = split_test(cmd)
                if form is None:
                    return f"{self._spawn_test(cmd)} {cmp} nil"
                return self._predicate_expr(form, cmd.negated)
            if cmd.classification == "builtin" and cmd.name in ("true", ":"):
                return "false" if cmd.negated else "true"
            if cmd.classification == "builtin" and cmd.name == "false":
                return "true" if cmd.negated else "false"
            if cmd.classification == "external":
                return f"{self._captured(self.process.spawn(self._argv(cmd)))} {cmp} nil"
            if cmd.classification == "function":
                return f"{self._call(cmd)} {cmp} nil"
        if len(condition) == 1 and isinstance(condition[0].payload, Pipeline):
            pipeline = condition[0].payload
            if pipeline.negated:
                plain = Statement.of(replace(pipeline, negated=False))
                return f"{self._iife([plain])} != nil"
        return f"{self._iife(condition)} == nil"

    def _predicate_expr(self, form: Predicate, negated: bool) -> str:
        op = form.op
        if op in FILE_OPS:
            helper = _FILE_HELPERS[op]
            self._use(helper)
            expr = f"{helper}({self._expr(form.operands[0])})"
        elif op == "-z":
            expr = f'{self._expr(form.operands[0])} == ""'
        elif op == "-n":
            expr = f'{self._expr(form.operands[0])} != ""'
        elif op in NUMERIC_OPS:
            left, right = (self._int_expr(w) for w in form.operands)
            expr = f"{left} {_NUMERIC_GO_OPS[op]} {right}"
        elif op in ("=", "=="):
            expr = f"{self._expr(form.operands[0])} == {self._expr(form.operands[1])}"
        else:
            expr = f"{self._expr(form.operands[0])} != {self._expr(form.operands[1])}"
        if form.negated != negated:
            return f"!({expr})"
        return expr

    def _iife(self, stmts: list[Statement]) -> str:
        """Immediately-invoked closure running stmts; evaluates to their error."""
        saved_output, saved_loops = self.output, self._loop_depth
        self.output = []
        self._loop_depth = 0
        self._closure_depth += 1
        self.indent += 1
        self._emit_stmts(stmts)
        self._line("return nil")
        self.indent -= 1
        self._closure_depth -= 1
        body = self.output
        self.output, self._loop_depth = saved_output, saved_loops
        return "func() error {\n" + "\n".join(body) + "\n" + "\t" * self.indent + "}()"

    def _emit_conditional(self, stmt: Conditional) -> None:
        cond = self._cond_expr(stmt.condition, stmt.category)
        if not stmt.then_body and not stmt.elifs and stmt.else_body:
            self._line(f"if !({cond}) {{")
            self._emit_block(stmt.else_body)
            self._line("}")
            return
        self._line(f"if {cond} {{")
        self._emit_block(stmt.then_body)
        for branch in stmt.elifs:
            self._line(f"}} else if {self._cond_expr(branch.condition, branch.category)} {{")
            self._emit_block(branch.body)
        if stmt.else_body:
            self._line("} else {")
            self._emit_block(stmt.else_body)
        self._line("}")

    def _emit_block(self, stmts: list[Statement]) -> None:
        self.indent += 1
        self._emit_stmts(stmts)
        self.indent -= 1

    # ============================================================
    # LOOPS
    # ============================================================

    def _emit_loop(self, loop: Loop) -> None:
        if loop.kind == "range":
            assert loop.range_from is not None and loop.range_to is not None
            target = self._target(loop.var)
            n = self._temp("n")
            lo = self._int_expr(loop.range_from)
            hi = self._int_expr(loop.range_to)
            self._use("itoa")
            if literal_int(loop.range_to) is not None:
                self._line(f"for {n} := {lo}; {n} <= {hi}; {n}++ {{")
            else:
                end = self._temp("end")
                self._line(f"for {n}, {end} := {lo}, {hi}; {n} <= {end}; {n}++ {{")
            self._line(f"\t{target} = itoa({n})")
        elif loop.kind == "list":
            target = self._target(loop.var)
            item = self._temp("item")
            self._line(f"for _, {item} := range {self._items_expr(loop.items)} {{")
            self._line(f"\t{target} = {item}")
        elif loop.kind == "while":
            self._line(f"for {self._cond_expr(loop.condition, loop.category)} {{")
        elif loop.kind == "until":
            self._line(f"for !({self._cond_expr(loop.condition, loop.category)}) {{")
        else:
            raise UnsupportedConstruct("loop", loop.kind)
        self._loop_depth += 1
        self._emit_block(loop.body)
        self._loop_depth -= 1
        self._line("}")

    def _items_expr(self, items: list[Word]) -> str:
        if items == [ALL_ARGS]:
            return self._args
        if all(not w.interpolated for w in items):
            return "[]string{" + ", ".join(go_string(w.text) for w in items) + "}"
        self._use("splitFields")
        if len(items) == 1:
            return f"splitFields({self._expr(items[0])})"
        self._use("joinLists")
        parts: list[str] = []
        run: list[str] = []
        for w in items:
            if not w.interpolated:
                run.append(go_string(w.text))
                continue
            if run:
                parts.append("[]string{" + ", ".join(run) + "}")
                run = []
            parts.append(f"splitFields({self._expr(w)})")
        if run:
            parts.append("[]string{" + ", ".join(run) + "}")
        return f"joinLists({', '.join(parts)})"

    # ============================================================
    # PIPELINES AND BACKGROUND JOBS
    # ============================================================

    def _emit_pipeline(self, stmt: Pipeline) -> None:
        self._line("{")
        self.indent += 1
        stages = self._pipeline_setup(stmt)
        self._pipeline_run(stages, stmt, in_job=False)
        self.indent -= 1
        self._line("}")

    def _pipeline_setup(self, stmt: Pipeline) -> list[str]:
        """Allocate every stage, then wire stage i's output to stage i+1's input."""
        stages: list[str] = []
        for cmd in stmt.commands:
            name = self._temp("stage")
            self._line(f"{name} := {self.process.spawn(self._argv(cmd))}")
            stages.append(name)
        self._lines(self.process.bind_input(stages[0], self._reader))
        for src, dst in zip(stages, stages[1:]):
            self._lines(self.process.wire(src, dst))
        self._lines(self.process.bind_output(stages[-1], self._writer))
        for name in stages:
            self._lines(self.process.bind_error(name, "os.Stderr"))
        return stages

    def _pipeline_run(self, stages: list[str], stmt: Pipeline, in_job: bool) -> None:
        """Start every stage before waiting on any; any failure fails the pipeline."""
        for name in stages:
            self._lines(self.process.start(name))
        err_var = self._temp("pipeErr")
        self._line(f"var {err_var} error")
        for name in stages:
            self._lines(self.process.wait(name, err_var))
        text = " | ".join(_command_text(c) for c in stmt.commands)
        if stmt.negated:
            self._line(f"if {err_var} == nil {{")
            self._line(f'\treturn fmt.Errorf("%s: unexpected success", {go_string(text)})')
            self._line("}")
            if in_job:
                self._line("return nil")
        elif in_job:
            self._line(f"return {err_var}")
        else:
            self._line(f"if {err_var} != nil {{")
            self._line(f"\treturn {err_var}")
            self._line("}")

    def _emit_background(self, stmt: Background) -> None:
        inner = stmt.statement.payload
        self._use("jobGroup")
        self._line("{")
        self.indent += 1
        if isinstance(inner, Pipeline):
            stages = self._pipeline_setup(inner)
            self._line("jobs.Go(func() error {")
            self.indent += 1
            self._pipeline_run(stages, inner, in_job=True)
            self.indent -= 1
            self._line("})")
        elif isinstance(inner, Command) and inner.classification == "external" and not inner.negated:
            job = self._temp("job")
            self._line(f"{job} := {self.process.spawn(self._argv(inner))}")
            self._line("jobs.Go(func() error {")
            self._line(f"\treturn {self._captured(job)}")
            self._line("})")
        elif isinstance(inner, Command) and inner.classification == "function" and not inner.negated:
            job_args = self._temp("jobArgs")
            self._line(f"{job_args} := {self._slice(inner.args)}")
            ident = self._func_idents[inner.name]
            self._line("jobs.Go(func() error {")
            self._line(f"\treturn {ident}({self._reader}, {self._writer}, {job_args})")
            self._line("})")
        else:
            raise UnsupportedConstruct("background", stmt.statement.kind)
        self.indent -= 1
        self._line("}")

    # ============================================================
    # SCOPED CONSTRUCTS
    # ============================================================

    def _emit_subshell(self, stmt: Subshell) -> None:
        """Run the body in a closure that restores the working directory on exit.

        Variables the body assigns are shadowed so the enclosing scope keeps
        its values.
        """
        saved = (self._loop_depth, self._in_subshell)
        self._line("if err := func() error {")
        self.indent += 1
        self._loop_depth = 0
        self._in_subshell = True
        self._closure_depth += 1
        self._line("cwd, err := os.Getwd()")
        self._line("if err != nil {")
        self._line("\treturn err")
        self._line("}")
        self._line("defer os.Chdir(cwd)")
        for name in sorted(_assigned_names(stmt.body)):
            ident = self._target(name)
            self._line(f"{ident} := {ident}")
            self._line(f"_ = {ident}")
        self._emit_stmts(stmt.body)
        self._line("return nil")
        self._closure_depth -= 1
        self._loop_depth, self._in_subshell = saved
        self.indent -= 1
        self._line("}(); err != nil {")
        self._line("\treturn err")
        self._line("}")

    def _emit_redirection(self, stmt: Redirection) -> None:
        """Hold the file open for exactly the wrapped statement."""
        if stmt.op == ">&2":
            saved_writer = self._writer
            self._writer = "os.Stderr"
            self._emit_stmt(stmt.statement)
            self._writer = saved_writer
            return
        if stmt.op not in (">", ">>", "<"):
            raise UnsupportedConstruct("redirect", stmt.op)
        if _has_background([stmt.statement]):
            # the file closes when the closure returns, before the job finishes
            raise UnsupportedConstruct("redirect", "background job")
        handle = self._temp("file")
        target = self._expr(stmt.target)
        saved = (self._loop_depth, self._writer, self._reader)
        self._line("if err := func() error {")
        self.indent += 1
        self._loop_depth = 0
        self._closure_depth += 1
        if stmt.op == "<":
            self._line(f"{handle}, err := os.Open({target})")
            self._reader = handle
        else:
            mode = "os.O_TRUNC" if stmt.op == ">" else "os.O_APPEND"
            self._line(f"{handle}, err := os.OpenFile({target}, os.O_WRONLY|os.O_CREATE|{mode}, 0644)")
            self._writer = handle
        self._line("if err != nil {")
        self._line("\treturn err")
        self._line("}")
        self._line(f"defer {handle}.Close()")
        self._emit_stmt(stmt.statement)
        self._line("return nil")
        self._closure_depth -= 1
        self._loop_depth, self._writer, self._reader = saved
        self.indent -= 1
        self._line("}(); err != nil {")
        self._line("\treturn err")
        self._line("}")

    # ============================================================
    # EXPRESSIONS
    # ============================================================

    def _expr(self, word: Word) -> str:
        if not word.interpolated:
            return go_string(word.text)
        return splice(word.text, self._resolve, word.spans)

    def _int_expr(self, word: Word) -> str:
        value = literal_int(word)
        if value is not None:
            return str(value)
        self._use("atoi")
        return f"atoi({self._expr(word)})"

    def _resolve(self, name: str) -> str | None:
        if name.isdigit():
            if name == "0":
                return "os.Args[0]"
            self._use("positional")
            return f"positional({self._args}, {int(name)})"
        if name in ("@", "*"):
            self._use("allArgs")
            return f"allArgs({self._args})"
        if name == "#":
            self._use("argCount")
            return f"argCount({self._args})"
        if name in SPECIAL_PARAMS:
            return None
        ident = self._local_idents.get(name) or self._global_idents.get(name)
        if ident is not None:
            return ident
        return f"os.Getenv({go_string(name)})"

    def _target(self, name: str) -> str:
        ident = self._local_idents.get(name) or self._global_idents.get(name)
        if ident is None:
            raise UnsupportedConstruct("assignment", f"undeclared variable {name}")
        return ident

    def _slice(self, words: list[Word]) -> str:
        return "[]string{" + ", ".join(self._expr(w) for w in words) + "}"

    def _print(self, exprs: list[str], newline: bool) -> str:
        if self._writer == "os.Stdout":
            fn = "fmt.Println" if newline else "fmt.Print"
            return f"{fn}({', '.join(exprs)})"
        fn = "fmt.Fprintln" if newline else "fmt.Fprint"
        return f"{fn}({', '.join([self._writer] + exprs)})"

    def _temp(self, prefix: str) -> str:
        name = f"{prefix}{self._temps}"
        self._temps += 1
        return name

    def _use(self, helper: str) -> None:
        assert helper in self._req.helpers, f"runtime helper {helper} was not collected"

    # ============================================================
    # OUTPUT HELPERS
    # ============================================================

    def _line(self, text: str) -> None:
        """Emit a line with current indentation."""
        self.output.append("\t" * self.indent + text)

    def _line_raw(self, text: str) -> None:
        """Emit helper source at column zero."""
        self.output.append(text)

    def _lines(self, lines: list[str]) -> None:
        for line in lines:
            self._line(line)


def _is_flag(word: Word) -> bool:
    return not word.interpolated and word.text.startswith("-") and word.text != "-"


def _operands(args: list[Word]) -> list[Word]:
    return [a for a in args if not _is_flag(a)]


def _is_echo_flag(word: Word) -> bool:
    text = word.text
    return (
        not word.interpolated
        and len(text) > 1
        and text.startswith("-")
        and set(text[1:]) <= {"n", "e", "E"}
    )
