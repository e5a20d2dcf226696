"""Tests for the IR builder over real bashlex parses."""

import pytest

from bash2go.errors import MalformedSource, UnsupportedConstruct
from bash2go.frontend.builder import build
from bash2go.frontend.parse import parse
from bash2go.ir import (
    CAP_BACKGROUND,
    CAP_CHDIR,
    CAP_ENV,
    CAP_EXEC,
    CAP_FS,
    CAP_STDIN,
    FILE_TEST,
    GENERIC_COMMAND,
    NUMERIC_TEST,
    STRING_TEST,
    Assignment,
    Background,
    Command,
    Conditional,
    Loop,
    Pipeline,
    Redirection,
    Return,
    Subshell,
    Word,
)


def _run(source: str, loader=None):
    """Parse and build. Returns the Program."""
    return build(parse(source), loader)


def _payloads(program):
    return [s.payload for s in program.statements]


# ============================================================
# COMMANDS
# ============================================================


def test_empty_script_builds_empty_program():
    program = _run("# just a comment\n\n")
    assert program.statements == []
    assert program.functions == {}
    assert program.capabilities == set()


def test_echo_is_builtin():
    [cmd] = _payloads(_run("echo hello\n"))
    assert isinstance(cmd, Command)
    assert cmd.name == "echo"
    assert cmd.classification == "builtin"
    assert cmd.use_exec is False
    assert cmd.args == [Word("hello")]


def test_unknown_command_is_external():
    program = _run("grep -r foo .\n")
    [cmd] = _payloads(program)
    assert cmd.classification == "external"
    assert cmd.use_exec is True
    assert CAP_EXEC in program.capabilities


def test_interpolated_word():
    [cmd] = _payloads(_run('echo "Hello, $NAME"\n'))
    assert cmd.args == [Word("Hello, $NAME", True)]


def test_single_quoted_word_is_literal():
    [cmd] = _payloads(_run("echo '$NAME'\n"))
    assert cmd.args == [Word("$NAME", False)]


def test_single_quoted_segment_of_mixed_word_stays_literal():
    [cmd] = _payloads(_run("echo \"$A\"'$HOME'\n"))
    assert cmd.args == [Word("$A$HOME", True, ((0, 2),))]


def test_escaped_dollar_in_double_quotes_stays_literal():
    [cmd] = _payloads(_run('echo "\\$A costs $A"\n'))
    assert cmd.args == [Word("$A costs $A", True, ((9, 11),))]


def test_escaped_dollar_alone_is_literal_word():
    [cmd] = _payloads(_run("echo \\$HOME\n"))
    assert cmd.args == [Word("$HOME", False)]


def test_assignment_value_keeps_literal_dollar():
    program = _run("PRICE='$5'\" for $ITEM\"\n")
    [assign] = _payloads(program)
    assert assign.value == Word("$5 for $ITEM", True, ((7, 12),))


def test_dynamic_command_name_rejected():
    with pytest.raises(UnsupportedConstruct):
        _run("$TOOL --version\n")


def test_builtin_capabilities():
    program = _run("cd /tmp\nmkdir x\nread line\nexport A\n")
    assert {CAP_CHDIR, CAP_FS, CAP_STDIN, CAP_ENV} <= program.capabilities


def test_read_registers_variables():
    program = _run("read -r first rest\n")
    assert set(program.variables) == {"first", "rest"}


def test_read_rejects_unknown_flag():
    with pytest.raises(UnsupportedConstruct):
        _run("read -p prompt line\n")


def test_malformed_source():
    with pytest.raises(MalformedSource):
        _run("if then fi\n")


def test_double_bracket_condition_rejected_by_parser():
    with pytest.raises(MalformedSource):
        _run("if [[ -f a ]]; then echo y; fi\n")


# ============================================================
# ASSIGNMENTS
# ============================================================


def test_assignment_records_literal_value():
    program = _run("NAME=World\n")
    [stmt] = _payloads(program)
    assert stmt == Assignment("NAME", Word("World"))
    assert program.variables == {"NAME": "World"}


def test_assignment_with_expansion_has_unknown_value():
    program = _run('OUT="$HOME/out"\n')
    assert program.variables == {"OUT": None}


def test_prefix_assignment_is_exported():
    program = _run("LANG=C sort data\n")
    assign, cmd = _payloads(program)
    assert assign.exported is True
    assert cmd.name == "sort"
    assert CAP_ENV in program.capabilities


# ============================================================
# LISTS
# ============================================================


def test_and_list_becomes_conditional():
    [cond] = _payloads(_run("test -f x && echo yes\n"))
    assert isinstance(cond, Conditional)
    assert cond.category == FILE_TEST
    assert [s.payload.name for s in cond.then_body] == ["echo"]
    assert cond.else_body == []


def test_or_list_uses_else_branch():
    [cond] = _payloads(_run("test -d out || mkdir out\n"))
    assert cond.then_body == []
    assert [s.payload.name for s in cond.else_body] == ["mkdir"]


def test_and_chain_condition_is_whole_prefix():
    [cond] = _payloads(_run("grep -q a f && echo one && echo two\n"))
    assert [s.payload.name for s in cond.condition] == ["grep", "echo"]
    assert [s.payload.args[0].text for s in cond.then_body] == ["two"]
    assert cond.category == GENERIC_COMMAND


def test_and_then_or():
    [cond] = _payloads(_run("grep -q a f && echo hit || echo miss\n"))
    assert [s.payload.name for s in cond.condition] == ["grep", "echo"]
    assert cond.then_body == []
    assert cond.else_body[0].payload.args == [Word("miss")]


def test_semicolon_separates_statements():
    assert len(_payloads(_run("echo a; echo b\n"))) == 2


def test_background_command():
    program = _run("sleep 1 &\n")
    [bg] = _payloads(program)
    assert isinstance(bg, Background)
    assert bg.statement.kind == "command"
    assert CAP_BACKGROUND in program.capabilities


# ============================================================
# CONDITIONALS
# ============================================================


def test_elif_branches_linearized_in_order():
    source = """\
if [ "$X" = a ]; then
  echo 1
elif [ "$X" = b ]; then
  echo 2
elif [ "$X" -gt 3 ]; then
  echo 3
else
  echo 4
fi
"""
    [cond] = _payloads(_run(source))
    assert cond.category == STRING_TEST
    assert len(cond.elifs) == 2
    assert cond.elifs[0].category == STRING_TEST
    assert cond.elifs[1].category == NUMERIC_TEST
    assert cond.elifs[1].body[0].payload.args == [Word("3")]
    assert cond.else_body[0].payload.args == [Word("4")]


def test_elif_chain_of_three_keeps_every_arm():
    source = """\
if [ "$1" = a ]; then
  echo 1
elif [ "$1" = b ]; then
  echo 2
elif [ "$1" = c ]; then
  echo 3
elif [ "$1" = d ]; then
  greet() { echo hi; }
fi
greet
"""
    program = _run(source)
    cond = _payloads(program)[0]
    assert len(cond.elifs) == 3
    assert [b.condition[0].payload.args[2] for b in cond.elifs] == [Word("b"), Word("c"), Word("d")]
    assert cond.else_body == []
    assert _payloads(program)[1].classification == "function"


def test_if_without_else():
    [cond] = _payloads(_run("if [ -d x ]; then echo d; fi\n"))
    assert cond.elifs == []
    assert cond.else_body == []


def test_generic_condition_category():
    [cond] = _payloads(_run("if grep -q x f; then echo y; fi\n"))
    assert cond.category == GENERIC_COMMAND


# ============================================================
# LOOPS
# ============================================================


def test_brace_range_loop():
    [loop] = _payloads(_run("for i in {1..5}; do echo $i; done\n"))
    assert isinstance(loop, Loop)
    assert loop.kind == "range"
    assert loop.range_from == Word("1")
    assert loop.range_to == Word("5")
    assert loop.var == "i"


def test_seq_range_loop():
    [loop] = _payloads(_run("for i in $(seq 2 $N); do echo $i; done\n"))
    assert loop.kind == "range"
    assert loop.range_from == Word("2")
    assert loop.range_to == Word("$N", True)


def test_list_loop():
    program = _run("for f in a b c; do echo $f; done\n")
    [loop] = _payloads(program)
    assert loop.kind == "list"
    assert loop.items == [Word("a"), Word("b"), Word("c")]
    assert "f" in program.variables


def test_for_without_in_iterates_arguments():
    [loop] = _payloads(_run("for a; do echo $a; done\n"))
    assert loop.items == [Word("$@", True)]


def test_while_and_until():
    stmts = _payloads(_run("while [ -f a ]; do sleep 1; done\nuntil false; do :; done\n"))
    assert [loop.kind for loop in stmts] == ["while", "until"]
    assert stmts[0].category == FILE_TEST
    assert stmts[1].category == GENERIC_COMMAND


# ============================================================
# PIPELINES AND REDIRECTIONS
# ============================================================


def test_pipeline_stages_in_order():
    [pipe] = _payloads(_run("cat f | grep x | wc -l\n"))
    assert isinstance(pipe, Pipeline)
    assert [c.name for c in pipe.commands] == ["cat", "grep", "wc"]
    assert all(c.classification == "external" for c in pipe.commands)


def test_negated_single_command():
    [cmd] = _payloads(_run("! grep -q x f\n"))
    assert cmd.negated is True


def test_negated_pipeline():
    [pipe] = _payloads(_run("! cat f | grep x\n"))
    assert pipe.negated is True


def test_function_in_pipeline_rejected():
    with pytest.raises(UnsupportedConstruct):
        _run("f() { echo x; }\nf | cat\n")


def test_output_redirect_wraps_command():
    [red] = _payloads(_run("echo hi > out.txt\n"))
    assert isinstance(red, Redirection)
    assert red.op == ">"
    assert red.target == Word("out.txt")
    assert red.statement.payload.name == "echo"


def test_stderr_redirect():
    [red] = _payloads(_run("echo oops >&2\n"))
    assert red.op == ">&2"


def test_pipeline_redirects_are_hoisted():
    [outer] = _payloads(_run("sort < in.txt | uniq > out.txt\n"))
    assert outer.op == ">"
    inner = outer.statement.payload
    assert inner.op == "<"
    assert isinstance(inner.statement.payload, Pipeline)


def test_heredoc_rejected():
    with pytest.raises(UnsupportedConstruct):
        _run("cat <<EOF\nhello\nEOF\n")


def test_fd_redirect_rejected():
    with pytest.raises(UnsupportedConstruct):
        _run("cmd 2> err.txt\n")


# ============================================================
# SUBSHELLS AND FUNCTIONS
# ============================================================


def test_subshell():
    [sub] = _payloads(_run("(cd /tmp; ls)\n"))
    assert isinstance(sub, Subshell)
    assert [s.kind for s in sub.body] == ["command", "command"]


def test_function_declaration():
    program = _run('greet() {\n  local who="$1"\n  echo "hi $who $2"\n}\ngreet bob\n')
    fn = program.functions["greet"]
    assert fn.params == ["1", "2"]
    assert fn.locals == {"who": None}
    assert "who" not in program.variables
    decl, call = program.statements
    assert decl.kind == "function_decl"
    assert call.payload.classification == "function"


def test_call_before_declaration_is_function():
    program = _run("later\nlater() { echo x; }\n")
    assert program.statements[0].payload.classification == "function"


def test_function_redefinition_rejected():
    with pytest.raises(UnsupportedConstruct):
        _run("f() { echo a; }\nf() { echo b; }\n")


def test_local_outside_function_rejected():
    with pytest.raises(UnsupportedConstruct):
        _run("local x=1\n")


def test_return_codes():
    fn = _run("f() {\n  return 2\n}\ng() {\n  return $RC\n}\n").functions
    assert fn["f"].body[0].payload == Return(code=2)
    assert fn["g"].body[0].payload == Return(value=Word("$RC", True))


# ============================================================
# SOURCE
# ============================================================


def test_source_inlined_through_loader():
    sources = {"lib.sh": "helper() { echo help; }\nLIB=1\n"}
    program = _run(". lib.sh\nhelper\n", lambda path: parse(sources[path]))
    assert "helper" in program.functions
    assert program.variables == {"LIB": "1"}
    assert program.statements[-1].payload.classification == "function"


def test_recursive_source_rejected():
    sources = {"a.sh": "source b.sh\n", "b.sh": "source a.sh\n"}
    with pytest.raises(UnsupportedConstruct):
        _run("source a.sh\n", lambda path: parse(sources[path]))


def test_source_without_loader_stays_builtin():
    [cmd] = _payloads(_run("source lib.sh\n"))
    assert cmd.classification == "builtin"
