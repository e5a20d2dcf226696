"""Tests for word extraction, test-operator splitting, splicing and Go naming."""

import pytest

from bash2go.backend.splice import references, segments, splice
from bash2go.backend.util import go_ident, go_string, go_to_pascal, literal_int
from bash2go.errors import UnsupportedConstruct
from bash2go.frontend.conditions import infer_category, split_test
from bash2go.frontend.words import positional_refs, range_bounds, unquote
from bash2go.ir import FILE_TEST, GENERIC_COMMAND, NUMERIC_TEST, STRING_TEST, Command, Word


def _test(*args: str, name: str = "[") -> Command:
    words = [Word(a, a.startswith("$")) for a in args]
    return Command(name, words, "builtin", False)


# ============================================================
# RANGES AND POSITIONALS
# ============================================================


def test_brace_range_bounds():
    assert range_bounds(Word("{1..10}")) == (Word("1"), Word("10"))
    assert range_bounds(Word("{-2..2}")) == (Word("-2"), Word("2"))


def test_seq_range_bounds():
    assert range_bounds(Word("$(seq 1 $N)", True)) == (Word("1"), Word("$N", True))


def test_non_range_words():
    assert range_bounds(Word("a")) is None
    assert range_bounds(Word("{a..z}")) is None
    assert range_bounds(Word("$(ls)", True)) is None


def test_positional_refs():
    assert positional_refs(Word("$1 and ${2} but not $10x", True)) == {"1", "2"}
    assert positional_refs(Word("$1")) == set()


# ============================================================
# TEST OPERATORS
# ============================================================


@pytest.mark.parametrize(
    "args,category",
    [
        (("-f", "x", "]"), FILE_TEST),
        (("-d", "x", "]"), FILE_TEST),
        (("-e", "x", "]"), FILE_TEST),
        (("-z", "$X", "]"), STRING_TEST),
        (("$A", "=", "b", "]"), STRING_TEST),
        (("$A", "!=", "b", "]"), STRING_TEST),
        (("$N", "-ge", "3", "]"), NUMERIC_TEST),
        (("!", "-f", "x", "]"), FILE_TEST),
        (("a", "-nt", "b", "]"), GENERIC_COMMAND),
        (("-f", "x", "-a", "-d", "y", "]"), GENERIC_COMMAND),
    ],
)
def test_infer_category(args, category):
    assert infer_category(_test(*args)) == category


def test_split_test_negation():
    form = split_test(_test("!", "-d", "out", "]"))
    assert form is not None
    assert form.op == "-d"
    assert form.operands == (Word("out"),)
    assert form.negated is True


def test_split_test_without_bracket():
    form = split_test(_test("$A", "==", "b", name="test"))
    assert form is not None
    assert form.operands == (Word("$A", True), Word("b"))


def test_interpolated_operator_is_not_an_operator():
    cmd = Command("[", [Word("$A"), Word("$OP", True), Word("b"), Word("]")], "builtin", False)
    assert split_test(cmd) is None


def test_split_test_ignores_other_commands():
    assert split_test(Command("echo", [Word("-f"), Word("x")], "builtin", False)) is None


# ============================================================
# SPLICING
# ============================================================


def _resolve(name: str):
    if name in ("?", "$", "!"):
        return None
    return f"v_{name}"


def test_segments_merge_literals():
    assert segments("a $B c") == [(False, "a "), (True, "B"), (False, " c")]


def test_references_in_order():
    assert references("$A-${B}_$1 $@") == ["A", "B", "1", "@"]


def test_splice_concatenates():
    assert splice("Hello, $NAME!", _resolve) == '"Hello, " + v_NAME + "!"'


def test_splice_braced_reference():
    assert splice("${A}b", _resolve) == 'v_A + "b"'


def test_splice_keeps_unresolved_tokens_literal():
    assert splice("pid $$ status $?", _resolve) == '"pid $$ status $?"'


def test_splice_lone_dollar():
    assert splice("cost: 5$", _resolve) == '"cost: 5$"'


def test_splice_command_substitution_is_opaque():
    assert splice("now $(date +%s)", _resolve) == '"now $(date +%s)"'


def test_splice_empty():
    assert splice("", _resolve) == '""'


def test_arithmetic_expansion_rejected():
    with pytest.raises(UnsupportedConstruct):
        splice("$((1 + 2))", _resolve)


def test_parameter_operator_rejected():
    with pytest.raises(UnsupportedConstruct):
        splice("${NAME:-default}", _resolve)


def test_splice_only_within_spans():
    assert splice("$A costs $A", _resolve, ((9, 11),)) == '"$A costs " + v_A'
    assert segments("$x$y", ((2, 4),)) == [(False, "$x"), (True, "y")]


def test_references_only_within_spans():
    assert references("$HOME and $USER", ((10, 15),)) == ["USER"]


# ============================================================
# QUOTE REMOVAL
# ============================================================


def test_unquote_mixed_quoting():
    assert unquote("'$x'\"$y\"\\$z", [], 0) == ("$x$y$z", [(2, 4)])


def test_unquote_keeps_backslash_before_ordinary_char_in_double_quotes():
    assert unquote('"a\\b"', [], 0) == ("a\\b", [])


def test_unquote_escaped_dollar_in_double_quotes():
    assert unquote('"\\$A $A"', [], 0) == ("$A $A", [(3, 5)])


def test_unquote_line_continuation():
    assert unquote("ab\\\ncd", [], 0) == ("abcd", [])


def test_unquote_command_substitution_span():
    assert unquote('"now $(date +%s)"', [], 0) == ("now $(date +%s)", [(4, 15)])


def test_unquote_rejects_ansi_c_quoting():
    with pytest.raises(UnsupportedConstruct):
        unquote("$'a\\tb'", [], 0)


def test_unquote_rejects_unclosed_single_quote():
    with pytest.raises(UnsupportedConstruct):
        unquote("'abc", [], 0)


# ============================================================
# GO NAMES AND LITERALS
# ============================================================


def test_go_to_pascal():
    assert go_to_pascal("build_all") == "BuildAll"
    assert go_to_pascal("run-tests") == "RunTests"
    assert go_to_pascal("x") == "X"


def test_go_ident_avoids_reserved_and_taken():
    taken: set[str] = set()
    assert go_ident("range", frozenset({"range"}), taken) == "range_"
    assert go_ident("range_", frozenset(), taken) == "range__"
    assert go_ident("count", frozenset(), taken) == "count"


def test_go_string_escapes():
    assert go_string('say "hi"\n') == '"say \\"hi\\"\\n"'
    assert go_string("back\\slash") == '"back\\\\slash"'


def test_literal_int():
    assert literal_int(Word("42")) == 42
    assert literal_int(Word("-3")) == -3
    assert literal_int(Word("4x")) is None
    assert literal_int(Word("$N", True)) is None
