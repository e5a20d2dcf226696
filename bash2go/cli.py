"""Command-line entry point: convert a shell script to Go, or build it."""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
from dataclasses import dataclass

from bash2go.backend.go import emit_go
from bash2go.driver import BuildOptions, stage_and_build
from bash2go.errors import Bash2GoError, MalformedSource
from bash2go.frontend.builder import build
from bash2go.frontend.parse import dump, parse
from bash2go.ir import to_dict

COMMANDS: list[str] = ["convert", "build"]

PHASES: list[str] = ["parse", "ir"]

USAGE: str = """\
bash2go convert SCRIPT [-o OUTPUT] [--stop-at PHASE] [-v]
bash2go build SCRIPT -o BINARY [--workspace DIR] [--keep-workspace] [--go PATH] [-v]

Options:
  -o, --output FILE   Write output to FILE instead of stdout (convert)
                      or place the compiled binary at FILE (build)
  --stop-at PHASE     Stop after phase: parse, ir (convert only)
  --workspace DIR     Stage the Go module in DIR; DIR is never removed
  --keep-workspace    Keep the temporary workspace after building
  --go PATH           Go toolchain executable (default: $BASH2GO_GO or go)
  -v, --verbose       Log each phase to stderr
  --help              Show this help message
"""


@dataclass
class Args:
    command: str
    script: str
    output: str | None = None
    stop_at: str | None = None
    workspace: str | None = None
    keep_workspace: bool = False
    go: str | None = None
    verbose: bool = False


def _usage_error(message: str) -> None:
    print("error: " + message, file=sys.stderr)
    sys.exit(2)


def parse_args(argv: list[str]) -> Args:
    """Parse command-line arguments. Exits with status 2 on a usage error."""
    if argv and argv[0] in ("--help", "-h"):
        print(USAGE, end="")
        sys.exit(0)
    if not argv or argv[0] not in COMMANDS:
        _usage_error("expected a command: " + ", ".join(COMMANDS))
    command = argv[0]
    parsed = Args(command, "")
    script: str | None = None
    i = 1
    while i < len(argv):
        arg = argv[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            sys.exit(0)
        elif arg in ("-o", "--output", "--stop-at", "--workspace", "--go"):
            if i + 1 >= len(argv):
                _usage_error(arg + " requires an argument")
            value = argv[i + 1]
            if arg in ("-o", "--output"):
                parsed.output = value
            elif arg == "--stop-at":
                parsed.stop_at = value
            elif arg == "--workspace":
                parsed.workspace = value
            else:
                parsed.go = value
            i += 2
        elif arg == "--keep-workspace":
            parsed.keep_workspace = True
            i += 1
        elif arg == "-v" or arg == "--verbose":
            parsed.verbose = True
            i += 1
        elif arg.startswith("-") and arg != "-":
            _usage_error("unknown flag '" + arg + "'")
        else:
            if script is not None:
                _usage_error("unexpected argument '" + arg + "'")
            script = arg
            i += 1
    if script is None:
        _usage_error("missing SCRIPT")
    parsed.script = script  # type: ignore[assignment]
    if parsed.stop_at is not None and parsed.stop_at not in PHASES:
        _usage_error("unknown phase '" + parsed.stop_at + "'")
    if command == "build":
        if parsed.output is None:
            _usage_error("build requires -o BINARY")
        if parsed.stop_at is not None:
            _usage_error("--stop-at applies to convert only")
    elif parsed.workspace is not None or parsed.keep_workspace or parsed.go is not None:
        _usage_error("--workspace, --keep-workspace and --go apply to build only")
    return parsed


def read_script(path: str) -> str:
    """Read a script from path, or from stdin when path is '-'."""
    if path == "-":
        return sys.stdin.read()
    try:
        with open(path) as f:
            return f.read()
    except OSError as e:
        raise MalformedSource(f"cannot open '{path}': {e.strerror}") from e
    except UnicodeDecodeError as e:
        raise MalformedSource(f"invalid utf-8 in '{path}'") from e


def make_source_loader(script: str):
    """Loader for `source FILE`: relative paths resolve against the script's directory."""
    base = os.path.dirname(os.path.abspath(script)) if script != "-" else os.getcwd()

    def load(path: str) -> list:
        full = path if os.path.isabs(path) else os.path.join(base, path)
        return parse(read_script(full))

    return load


def run_pipeline(source: str, script: str, stop_at: str | None = None) -> str:
    """Run the phases up to stop_at and return the text to write."""
    nodes = parse(source)
    if stop_at == "parse":
        return dump(nodes) + "\n"
    program = build(nodes, make_source_loader(script))
    if stop_at == "ir":
        return json.dumps(to_dict(program), indent=2) + "\n"
    return emit_go(program)


def write_output(output: str, output_file: str | None) -> None:
    """Write output to output_file atomically, or to stdout."""
    if output_file is None:
        sys.stdout.write(output)
        return
    directory = os.path.dirname(os.path.abspath(output_file))
    fd, tmp = tempfile.mkstemp(prefix=".bash2go-", dir=directory)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(output)
        # mkstemp creates 0600; match what open() would have created
        umask = os.umask(0)
        os.umask(umask)
        os.chmod(tmp, 0o666 & ~umask)
        os.replace(tmp, output_file)
    except BaseException:
        os.unlink(tmp)
        raise


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    try:
        source = read_script(args.script)
        if args.command == "convert":
            output = run_pipeline(source, args.script, args.stop_at)
            write_output(output, args.output)
        else:
            go_source = run_pipeline(source, args.script)
            options = BuildOptions(workspace=args.workspace, keep_workspace=args.keep_workspace)
            if args.go is not None:
                options.go = args.go
            stage_and_build(go_source, args.output, options)  # type: ignore[arg-type]
    except Bash2GoError as e:
        print("error: " + str(e), file=sys.stderr)
        return 1
    except OSError as e:
        print("error: cannot write '" + str(args.output) + "': " + str(e.strerror), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
