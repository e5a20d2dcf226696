"""Process-execution capability used by the Go generator.

Lowering rules for external commands, pipelines and background jobs only
talk to a ProcessBackend. Each operation returns Go source: expressions as
str, statements as a list of lines. Nested lines carry leading tabs relative
to the caller's current indentation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ProcessBackend(ABC):
    """Spawn, wire-stdio and wait operations over generated Go code."""

    @abstractmethod
    def spawn(self, argv: list[str]) -> str:
        """Expression allocating an unstarted process. argv holds Go string expressions."""

    @abstractmethod
    def wire(self, src: str, dst: str) -> list[str]:
        """Connect src's output to dst's input."""

    @abstractmethod
    def bind_input(self, proc: str, reader: str) -> list[str]: ...

    @abstractmethod
    def bind_output(self, proc: str, writer: str) -> list[str]: ...

    @abstractmethod
    def bind_error(self, proc: str, writer: str) -> list[str]: ...

    @abstractmethod
    def start(self, proc: str) -> list[str]:
        """Start proc, returning the error from the enclosing function on failure."""

    @abstractmethod
    def wait(self, proc: str, err_var: str) -> list[str]:
        """Wait for proc, recording its failure in err_var unless one is already set."""

    @abstractmethod
    def run_captured(self, proc: str, reader: str, writer: str) -> str:
        """Expression running proc to completion with combined output copied to writer."""

    @abstractmethod
    def imports(self) -> set[str]:
        """Imports needed once any process is spawned."""

    @abstractmethod
    def helpers(self) -> set[str]:
        """Runtime helpers run_captured relies on."""


class ExecProcessBackend(ProcessBackend):
    """os/exec: processes are *exec.Cmd values."""

    def spawn(self, argv: list[str]) -> str:
        return f"exec.Command({', '.join(argv)})"

    def wire(self, src: str, dst: str) -> list[str]:
        return [
            f"if pipe, err := {src}.StdoutPipe(); err != nil {{",
            "\treturn err",
            "} else {",
            f"\t{dst}.Stdin = pipe",
            "}",
        ]

    def bind_input(self, proc: str, reader: str) -> list[str]:
        return [f"{proc}.Stdin = {reader}"]

    def bind_output(self, proc: str, writer: str) -> list[str]:
        return [f"{proc}.Stdout = {writer}"]

    def bind_error(self, proc: str, writer: str) -> list[str]:
        return [f"{proc}.Stderr = {writer}"]

    def start(self, proc: str) -> list[str]:
        return [
            f"if err := {proc}.Start(); err != nil {{",
            "\treturn err",
            "}",
        ]

    def wait(self, proc: str, err_var: str) -> list[str]:
        return [
            f"if err := {proc}.Wait(); err != nil && {err_var} == nil {{",
            f"\t{err_var} = err",
            "}",
        ]

    def run_captured(self, proc: str, reader: str, writer: str) -> str:
        return f"runCaptured({proc}, {reader}, {writer})"

    def imports(self) -> set[str]:
        return {"os/exec"}

    def helpers(self) -> set[str]:
        return {"runCaptured"}
