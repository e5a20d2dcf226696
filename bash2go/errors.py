"""Error taxonomy shared by the builder, the generator and the build driver."""

from __future__ import annotations


class Bash2GoError(Exception):
    """Base for every error a conversion or build can surface."""


class MalformedSource(Bash2GoError):
    """The shell parser rejected the script text."""

    def __init__(self, message: str, position: int = -1):
        self.message: str = message
        self.position: int = position
        super().__init__(message)

    def __str__(self) -> str:
        if self.position >= 0:
            return f"malformed source at offset {self.position}: {self.message}"
        return f"malformed source: {self.message}"


class UnsupportedConstruct(Bash2GoError):
    """A construct has no lowering rule in the builder or the generator.

    Fatal: the whole conversion aborts and no output is written.
    """

    def __init__(self, kind: str, detail: str = ""):
        self.kind: str = kind
        self.detail: str = detail
        super().__init__(kind)

    def __str__(self) -> str:
        if self.detail:
            return f"unsupported construct: {self.kind} ({self.detail})"
        return f"unsupported construct: {self.kind}"


class BuildToolFailure(Bash2GoError):
    """A build-driver step failed. output is the tool's captured diagnostics."""

    def __init__(self, step: str, output: str):
        self.step: str = step
        self.output: str = output
        super().__init__(step)

    def __str__(self) -> str:
        text = self.output.rstrip("\n")
        if text:
            return f"{self.step} failed:\n{text}"
        return f"{self.step} failed"
