"""Tests for the Go generator: output shape, requirements and failure modes."""

import copy
import re

import pytest

from bash2go.backend.go import GoBackend, emit_go
from bash2go.backend.process import ExecProcessBackend
from bash2go.backend.requirements import collect_requirements
from bash2go.backend.runtime import HELPERS, helper_imports
from bash2go.errors import UnsupportedConstruct
from bash2go.frontend.builder import build
from bash2go.frontend.parse import parse
from bash2go.ir import (
    CAP_BACKGROUND,
    Assignment,
    Background,
    Command,
    Conditional,
    Function,
    Loop,
    Program,
    Redirection,
    Return,
    Statement,
    Subshell,
    Word,
)


def _run(source: str) -> str:
    """Parse, build and generate. Returns the Go source."""
    return emit_go(build(parse(source)))


def _imports(go: str) -> list[str]:
    block = go.split("import (\n", 1)[1].split(")", 1)[0]
    return [line.strip().strip('"') for line in block.splitlines() if line.strip()]


def _helper_names(go: str) -> list[str]:
    """Runtime helpers present in the output, in output order."""
    names = []
    for name, _, source in HELPERS:
        first = source.split("\n", 1)[0]
        if first in go.split("\n"):
            names.append((go.index(first + "\n"), name))
    return [name for _, name in sorted(names)]


def _builtin(name: str, *args: str) -> Statement:
    return Statement.of(Command(name, [Word(a) for a in args], "builtin", False))


# ============================================================
# OUTPUT SHAPE
# ============================================================


def test_declaration_order():
    go = _run("B=1\nA=2\nf() { echo x; }\nf\n")
    positions = [
        go.index("package main"),
        go.index("import ("),
        go.index("var A = "),
        go.index("var B = "),
        go.index("func shF("),
        go.index("func main()"),
        go.index("func run() error"),
    ]
    assert positions == sorted(positions)


def test_empty_program():
    go = emit_go(Program())
    assert _imports(go) == ["fmt", "os"]
    assert "func run() error {\n\treturn nil\n}" in go
    assert go.endswith("}\n")


def test_generation_is_deterministic():
    source = "for f in a b; do echo $f | tr a-z A-Z; done\nX=1\nY=$X\n[ -f $Y ] && cat $Y\n"
    program = build(parse(source))
    assert emit_go(program) == emit_go(program)
    assert _run(source) == _run(source)


def test_generation_does_not_mutate_program():
    program = build(parse("if ! grep -q x f | sort; then echo no; fi\nf() { local a=1; }\n"))
    before = copy.deepcopy(program)
    emit_go(program)
    assert program == before


def test_backend_instances_do_not_share_temporaries():
    program = build(parse("for f in a b; do echo $f; done\n"))
    assert GoBackend().emit(program) == GoBackend().emit(program)


# ============================================================
# IMPORTS AND HELPERS
# ============================================================


@pytest.mark.parametrize(
    "source",
    [
        "echo hi\n",
        "ls | wc -l\n",
        "read a b\n",
        "for i in {1..3}; do echo $i; done\n",
        "f() { echo $1; }\nf a &\nwait\n",
        "[ \"$N\" -lt 3 ] && echo small\n",
        "(exit 3)\n",
    ],
)
def test_imports_are_direct_plus_helper_imports(source):
    program = build(parse(source))
    req = collect_requirements(program, ExecProcessBackend())
    go = emit_go(program)
    assert _imports(go) == sorted(req.imports | helper_imports(req.helpers))
    assert _imports(go) == sorted(set(_imports(go)))


def test_only_referenced_helpers_are_emitted():
    go = _run("echo plain\n")
    assert _helper_names(go) == []
    go = _run('[ -d out ] || echo "$1"\n')
    assert _helper_names(go) == ["positional", "isDir"]


def test_helpers_follow_table_order():
    go = _run('cat x | sort &\nread a\nls\nif [ -f "$1" ]; then echo $#; fi\n')
    order = [name for name, _, _ in HELPERS]
    emitted = _helper_names(go)
    assert emitted == sorted(emitted, key=order.index)
    assert set(emitted) == {"positional", "argCount", "isFile", "readFields", "jobGroup", "runCaptured"}


def test_external_command_imports_exec():
    assert "os/exec" in _imports(_run("ls\n"))
    assert "os/exec" not in _imports(_run("echo ls\n"))


def test_functions_import_io():
    assert "io" in _imports(_run("f() { :; }\n"))
    assert "io" not in _imports(_run("echo x\n"))


# ============================================================
# LOWERINGS FROM IR
# ============================================================


def test_go_keyword_variable_renamed():
    program = Program(
        statements=[Statement.of(Assignment("func", Word("x")))],
        variables={"func": "x"},
    )
    go = emit_go(program)
    assert 'var func_ = os.Getenv("func")' in go
    assert 'func_ = "x"' in go


def test_blank_identifier_variable_renamed():
    go = _run('_=hi\necho "$_"\n')
    assert 'var __ = os.Getenv("_")' in go
    assert '__ = "hi"' in go
    assert "fmt.Println(__)" in go


def test_temporary_name_variable_renamed():
    go = _run("stage0=a\necho $stage0 | cat\n")
    assert 'var stage0_ = os.Getenv("stage0")' in go
    assert "stage0 := exec.Command" in go


def test_local_shadows_global_name():
    go = _run("x=top\nf() { local x=inner; echo $x; }\nf\n")
    assert "\tvar x string\n" in go
    assert 'var x = os.Getenv("x")' in go


def test_exit_outside_subshell_joins_jobs():
    program = Program(
        statements=[
            Statement.of(Background(Statement.of(Command("sleep", [Word("1")])))),
            _builtin("exit", "2"),
        ],
        capabilities={CAP_BACKGROUND},
    )
    go = emit_go(program)
    assert "\tjobs.Wait()\n\tos.Exit(2)\n" in go


def test_exit_with_variable_code():
    go = _run("exit $CODE\n")
    assert 'os.Exit(atoi(os.Getenv("CODE")))' in go


def test_range_loop_with_variable_start():
    go = _run("for i in $(seq $A 9); do :; done\n")
    assert 'for n0 := atoi(os.Getenv("A")); n0 <= 9; n0++ {' in go


def test_empty_then_branch_negates_condition():
    program = Program(
        statements=[
            Statement.of(
                Conditional(
                    [_builtin("true")],
                    [],
                    else_body=[_builtin("echo", "b")],
                    elifs=[],
                )
            )
        ]
    )
    assert "if !(true) {" in emit_go(program)


def test_negated_pipeline_condition():
    go = _run("if ! cat f | grep -q x; then echo none; fi\n")
    assert "}() != nil {" in go


def test_subshell_shadows_loop_and_read_targets():
    go = _run("(for f in a; do :; done; read line)\n")
    assert "f := f" in go
    assert "line := line" in go


# ============================================================
# UNSUPPORTED CONSTRUCTS
# ============================================================


@pytest.mark.parametrize(
    "source",
    [
        "source lib.sh\n",
        "echo -e 'a\\tb'\n",
        "cd -\n",
        "mkdir -p\n",
        "cp -r a b\n",
        "echo $((1 + 2))\n",
        "echo ${NAME:-x}\n",
        "break\n",
        "f() { (return 1); }\n",
        "while true; do break > log; done\n",
        "cd /tmp &\n",
        "{ sh -c 'sleep 0.3; echo late' & } > out.txt\nwait\n",
    ],
)
def test_unsupported_constructs(source):
    with pytest.raises(UnsupportedConstruct):
        _run(source)


def test_unknown_builtin_rejected():
    program = Program(statements=[_builtin("shopt", "-s", "nullglob")])
    with pytest.raises(UnsupportedConstruct) as exc:
        emit_go(program)
    assert exc.value.kind == "builtin"


def test_return_inside_redirect_rejected():
    body = [
        Statement.of(
            Redirection(">", Word("out"), Statement.of(Subshell([Statement.of(Return(code=1))])))
        )
    ]
    program = Program(functions={"f": Function("f", body)})
    with pytest.raises(UnsupportedConstruct):
        emit_go(program)


def test_background_job_inside_file_redirect_rejected():
    job = Statement.of(Command("sleep", [Word("1")], "external", True))
    loop = Loop("list", [Statement.of(Background(job))], var="x", items=[Word("a")])
    program = Program(
        statements=[Statement.of(Redirection(">>", Word("log"), Statement.of(loop)))],
        variables={"x": None},
    )
    with pytest.raises(UnsupportedConstruct) as exc:
        emit_go(program)
    assert exc.value.kind == "redirect"


def test_background_job_to_stderr_allowed():
    job = Statement.of(Command("sleep", [Word("1")], "external", True))
    redirect = Redirection(">&2", Word(""), Statement.of(Background(job)))
    program = Program(statements=[Statement.of(redirect)])
    assert "jobs.Go(func() error {" in emit_go(program)


def test_loop_control_inside_loop_body():
    loop = Loop("list", [_builtin("continue")], var="x", items=[Word("a")])
    program = Program(statements=[Statement.of(loop)], variables={"x": None})
    assert re.search(r"\n\t\tcontinue\n", emit_go(program))
