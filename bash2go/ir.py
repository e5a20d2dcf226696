"""bash2go IR - shell-script intermediate representation.

This module defines the complete IR type system. Each node's docstring
documents its semantics and invariants.

Architecture:
    Script -> bashlex -> [syntax tree] -> Builder -> [IR] -> GoBackend -> Go source

The builder produces a fully classified Program. The backend only emits; it
never re-derives information the builder already settled.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from typing import Literal, Union

# ============================================================
# CAPABILITIES
#
# Accumulated by the builder, consumed by the backend to decide which
# runtime helper subsystems the generated program needs.
# ============================================================

CAP_EXEC = "exec"  # spawns external processes
CAP_ENV = "env"  # mutates the process environment
CAP_FS = "fs"  # filesystem I/O
CAP_CHDIR = "chdir"  # mutates the working directory
CAP_STDIN = "stdin"  # reads standard input
CAP_BACKGROUND = "background"  # schedules concurrent units of work

# Builtins with a fixed native lowering rule. Everything else not declared as
# a shell function is an external-process invocation.
BUILTINS: frozenset[str] = frozenset(
    {
        "echo",
        "cd",
        "pwd",
        "mkdir",
        "rm",
        "cp",
        "test",
        "[",
        "exit",
        "export",
        "read",
        "source",
        ".",
        "wait",
        "true",
        "false",
        ":",
        "break",
        "continue",
    }
)

TEST_COMMANDS: frozenset[str] = frozenset({"test", "["})

ConditionCategory = Literal["file-test", "string-test", "numeric-test", "generic-command"]
"""Inferred category of a condition.

| Category        | Operators                        | Go lowering                 |
|-----------------|----------------------------------|-----------------------------|
| file-test       | -f -d -e                         | isFile / isDir / pathExists |
| string-test     | -z -n = == !=                    | string comparison           |
| numeric-test    | -eq -ne -lt -le -gt -ge          | atoi + integer comparison   |
| generic-command | anything else                    | spawn, check success        |
"""

FILE_TEST: ConditionCategory = "file-test"
STRING_TEST: ConditionCategory = "string-test"
NUMERIC_TEST: ConditionCategory = "numeric-test"
GENERIC_COMMAND: ConditionCategory = "generic-command"


# ============================================================
# WORDS
# ============================================================


@dataclass(frozen=True)
class Word:
    """A single shell word after quote removal.

    Semantics:
    - interpolated=False: text is emitted verbatim (single-quoted or plain text)
    - interpolated=True: text carries $NAME / ${NAME} tokens the backend
      splices with resolved variable references
    - spans: (start, end) of each expansion in text, when some `$` in text
      is literal (single-quoted or escaped). None means every `$` token in
      text is an expansion.

    A command substitution survives as an opaque "$(...)" marker inside text;
    it is never evaluated.
    """

    text: str
    interpolated: bool = False
    spans: tuple[tuple[int, int], ...] | None = None


def literal(text: str) -> Word:
    """Factory for a non-interpolated word."""
    return Word(text, False)


# ============================================================
# STATEMENT PAYLOADS
# ============================================================

Classification = Literal["builtin", "function", "external"]


@dataclass
class Command:
    """A simple command.

    | classification | Lowering                                      |
    |----------------|-----------------------------------------------|
    | builtin        | fixed native rule per command name            |
    | function       | direct call of the generated shell function   |
    | external       | spawn through the process-execution helper    |

    Invariants:
    - use_exec is True exactly when classification == "external"
    - name is a literal (dynamic command names are rejected by the builder)
    """

    name: str
    args: list[Word] = field(default_factory=list)
    classification: Classification = "external"
    use_exec: bool = True
    negated: bool = False

    @property
    def is_builtin(self) -> bool:
        return self.classification == "builtin"

    def operands(self) -> list[Word]:
        """Arguments with the closing bracket of `[ ... ]` removed."""
        if self.name == "[" and self.args and self.args[-1].text == "]":
            return self.args[:-1]
        return self.args


@dataclass
class Assignment:
    """Variable assignment: name=value.

    Semantics:
    - local: bound in the enclosing function only (`local NAME=value`)
    - exported: also written to the process environment
    """

    name: str
    value: Word
    local: bool = False
    exported: bool = False


@dataclass
class ElifBranch:
    """One `elif` arm: evaluated only if every earlier condition was false."""

    condition: list[Statement]
    body: list[Statement]
    category: ConditionCategory = GENERIC_COMMAND


@dataclass
class Conditional:
    """if / elif / else.

    Invariants:
    - elifs preserves source left-to-right evaluation order
    - else_body holds only the final unconditional branch
    """

    condition: list[Statement]
    then_body: list[Statement]
    else_body: list[Statement] = field(default_factory=list)
    elifs: list[ElifBranch] = field(default_factory=list)
    category: ConditionCategory = GENERIC_COMMAND


LoopKind = Literal["range", "list", "while", "until"]


@dataclass
class Loop:
    """Loop construct.

    | kind  | Uses                      | Semantics                                |
    |-------|---------------------------|------------------------------------------|
    | range | var, range_from, range_to | ascending counter, inclusive, step 1     |
    | list  | var, items                | bind var to each item in order           |
    | while | condition, category       | re-evaluate condition before each pass   |
    | until | condition, category       | logical negation of while                |
    """

    kind: LoopKind
    body: list[Statement] = field(default_factory=list)
    condition: list[Statement] = field(default_factory=list)
    var: str = ""
    range_from: Word | None = None
    range_to: Word | None = None
    items: list[Word] = field(default_factory=list)
    category: ConditionCategory = GENERIC_COMMAND


@dataclass
class Pipeline:
    """Commands chained left to right; stage i's stdout feeds stage i+1's stdin.

    Invariants:
    - len(commands) >= 1
    """

    commands: list[Command]
    negated: bool = False

    def __post_init__(self) -> None:
        if not self.commands:
            raise ValueError("pipeline must have at least one command")


@dataclass
class Subshell:
    """Statements run in an isolated working-directory and variable scope."""

    body: list[Statement]


RedirectOp = Literal[">", ">>", "<", ">&2"]


@dataclass
class Redirection:
    """I/O redirection bound to exactly one statement's lifetime.

    | op   | Go open flags                    |
    |------|----------------------------------|
    | >    | O_WRONLY | O_CREATE | O_TRUNC    |
    | >>   | O_WRONLY | O_CREATE | O_APPEND   |
    | <    | O_RDONLY                         |
    | >&2  | (no file) stdout := os.Stderr    |
    """

    op: RedirectOp
    target: Word
    statement: Statement


@dataclass
class Background:
    """A Command or Pipeline scheduled concurrently, not awaited in place."""

    statement: Statement


@dataclass
class Return:
    """Return from a function (or from the script at top level)."""

    value: Word | None = None
    code: int | None = None


@dataclass
class FunctionDecl:
    """Marks where a function was declared; its body lives in Program.functions."""

    name: str


Payload = Union[
    Command,
    Assignment,
    Conditional,
    Loop,
    Pipeline,
    Subshell,
    Redirection,
    Background,
    Return,
    FunctionDecl,
]

StmtKind = Literal[
    "command",
    "assignment",
    "conditional",
    "loop",
    "pipeline",
    "subshell",
    "redirection",
    "background",
    "return",
    "function_decl",
]

_PAYLOAD_KINDS: dict[type, str] = {
    Command: "command",
    Assignment: "assignment",
    Conditional: "conditional",
    Loop: "loop",
    Pipeline: "pipeline",
    Subshell: "subshell",
    Redirection: "redirection",
    Background: "background",
    Return: "return",
    FunctionDecl: "function_decl",
}

STMT_KINDS: tuple[str, ...] = tuple(_PAYLOAD_KINDS.values())


@dataclass(frozen=True)
class Statement:
    """Closed tagged union: a kind tag plus exactly one payload.

    Invariants:
    - kind == the tag registered for type(payload)
    """

    kind: StmtKind
    payload: Payload

    def __post_init__(self) -> None:
        expected = _PAYLOAD_KINDS.get(type(self.payload))
        if expected is None:
            raise TypeError(f"not a statement payload: {type(self.payload).__name__}")
        if expected != self.kind:
            raise TypeError(f"statement kind {self.kind!r} does not match payload {expected!r}")

    @classmethod
    def of(cls, payload: Payload) -> Statement:
        """Wrap a payload, deriving the kind tag from its type."""
        kind = _PAYLOAD_KINDS.get(type(payload))
        if kind is None:
            raise TypeError(f"not a statement payload: {type(payload).__name__}")
        return cls(kind, payload)  # type: ignore[arg-type]


# ============================================================
# TOP-LEVEL DECLARATIONS
# ============================================================


@dataclass
class Function:
    """Shell function.

    Invariants:
    - params lists positional parameters referenced in the body, ascending
    - locals maps names bound with `local` to their last literal value
    """

    name: str
    body: list[Statement] = field(default_factory=list)
    params: list[str] = field(default_factory=list)
    locals: dict[str, str | None] = field(default_factory=dict)


@dataclass
class Program:
    """A complete conversion unit.

    Invariants:
    - functions keys are unique; iteration order is declaration order
    - variables holds every non-local name the script assigns, mapped to its
      last-known literal value (None when not a literal)
    - Read-only once handed to the backend
    """

    statements: list[Statement] = field(default_factory=list)
    functions: dict[str, Function] = field(default_factory=dict)
    variables: dict[str, str | None] = field(default_factory=dict)
    capabilities: set[str] = field(default_factory=set)


# ============================================================
# SERIALIZATION
# ============================================================


def to_dict(obj: object) -> object:
    """Convert IR nodes to plain JSON-compatible data, keeping key order stable."""
    if isinstance(obj, Statement):
        return {"kind": obj.kind, "payload": to_dict(obj.payload)}
    if is_dataclass(obj) and not isinstance(obj, type):
        result: dict[str, object] = {"_type": type(obj).__name__}
        for f in fields(obj):
            result[f.name] = to_dict(getattr(obj, f.name))
        return result
    if isinstance(obj, dict):
        return {str(k): to_dict(v) for k, v in obj.items()}
    if isinstance(obj, (set, frozenset)):
        return sorted(to_dict(v) for v in obj)  # type: ignore[type-var]
    if isinstance(obj, (list, tuple)):
        return [to_dict(v) for v in obj]
    return obj
