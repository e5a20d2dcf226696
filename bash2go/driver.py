"""Build driver: stage generated Go source and compile it with the Go toolchain.

Steps, each failing with BuildToolFailure(step, output):

    workspace   create or reuse the staging directory, write the source
    manifest    go mod init, go mod tidy
    compile     go build -o BINARY SOURCE
    relocate    move the binary to the requested path
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field

from bash2go.errors import BuildToolFailure

logger = logging.getLogger(__name__)

BINARY_NAME = "bash2go-bin"


def _default_go() -> str:
    return os.environ.get("BASH2GO_GO", "go")


@dataclass
class BuildOptions:
    """How to stage and compile one program."""

    workspace: str | None = None  # None: fresh temporary directory
    keep_workspace: bool = False
    go: str = field(default_factory=_default_go)
    module_name: str = "bash2go_output"
    source_name: str = "main.go"


def stage_and_build(source: str, output_path: str, options: BuildOptions | None = None) -> None:
    """Compile Go source to an executable at output_path.

    A workspace the driver created is removed on every exit path unless
    keep_workspace is set. A caller-supplied workspace is left in place.
    """
    options = options or BuildOptions()
    created = options.workspace is None
    workspace = _make_workspace(options)
    try:
        _write_source(workspace, source, options)
        if not os.path.exists(os.path.join(workspace, "go.mod")):
            _run("manifest", [options.go, "mod", "init", options.module_name], workspace)
        _run("manifest", [options.go, "mod", "tidy"], workspace)
        binary = os.path.join(workspace, BINARY_NAME)
        _run("compile", [options.go, "build", "-o", binary, options.source_name], workspace)
        _relocate(binary, output_path)
    finally:
        if created and not options.keep_workspace:
            logger.debug("removing workspace %s", workspace)
            shutil.rmtree(workspace, ignore_errors=True)
        else:
            logger.debug("keeping workspace %s", workspace)


def _make_workspace(options: BuildOptions) -> str:
    try:
        if options.workspace is None:
            return tempfile.mkdtemp(prefix="bash2go-")
        os.makedirs(options.workspace, exist_ok=True)
        return options.workspace
    except OSError as e:
        raise BuildToolFailure("workspace", str(e)) from e


def _write_source(workspace: str, source: str, options: BuildOptions) -> None:
    path = os.path.join(workspace, options.source_name)
    logger.debug("staging %s", path)
    try:
        with open(path, "w") as f:
            f.write(source)
    except OSError as e:
        raise BuildToolFailure("workspace", str(e)) from e


def _run(step: str, argv: list[str], cwd: str) -> None:
    """Run one toolchain command, raising with its combined output on failure."""
    logger.debug("%s: %s", step, " ".join(argv))
    try:
        result = subprocess.run(
            argv,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except OSError as e:
        raise BuildToolFailure(step, f"{argv[0]}: {e}") from e
    if result.returncode != 0:
        raise BuildToolFailure(step, result.stdout)


def _relocate(binary: str, output_path: str) -> None:
    logger.debug("relocating %s -> %s", binary, output_path)
    try:
        shutil.move(binary, output_path)
        os.chmod(output_path, 0o755)
    except OSError as e:
        raise BuildToolFailure("relocate", str(e)) from e
