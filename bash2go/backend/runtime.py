"""Go runtime helpers appended to generated programs.

Each helper: (name, imports it needs, Go source). The generator emits only
the helpers its requirements pass collected, always in this table's order.
"""

from __future__ import annotations

HELPERS: list[tuple[str, tuple[str, ...], str]] = [
    (
        "positional",
        (),
        """func positional(args []string, n int) string {
	if n >= 1 && n <= len(args) {
		return args[n-1]
	}
	return ""
}""",
    ),
    (
        "allArgs",
        ("strings",),
        """func allArgs(args []string) string {
	return strings.Join(args, " ")
}""",
    ),
    (
        "argCount",
        ("strconv",),
        """func argCount(args []string) string {
	return strconv.Itoa(len(args))
}""",
    ),
    (
        "splitFields",
        ("strings",),
        """func splitFields(s string) []string {
	return strings.Fields(s)
}""",
    ),
    (
        "joinLists",
        (),
        """func joinLists(lists ...[]string) []string {
	var out []string
	for _, list := range lists {
		out = append(out, list...)
	}
	return out
}""",
    ),
    (
        "atoi",
        ("strconv", "strings"),
        """func atoi(s string) int {
	n, _ := strconv.Atoi(strings.TrimSpace(s))
	return n
}""",
    ),
    (
        "itoa",
        ("strconv",),
        """func itoa(n int) string {
	return strconv.Itoa(n)
}""",
    ),
    (
        "isFile",
        ("os",),
        """func isFile(path string) bool {
	info, err := os.Stat(path)
	return err == nil && info.Mode().IsRegular()
}""",
    ),
    (
        "isDir",
        ("os",),
        """func isDir(path string) bool {
	info, err := os.Stat(path)
	return err == nil && info.IsDir()
}""",
    ),
    (
        "pathExists",
        ("os",),
        """func pathExists(path string) bool {
	_, err := os.Stat(path)
	return err == nil
}""",
    ),
    (
        "readFields",
        ("io", "strings"),
        """func readFields(in io.Reader, n int) ([]string, error) {
	var line []byte
	buf := make([]byte, 1)
	for {
		k, err := in.Read(buf)
		if k > 0 {
			if buf[0] == '\\n' {
				break
			}
			line = append(line, buf[0])
		}
		if err == io.EOF {
			if len(line) == 0 {
				return nil, err
			}
			break
		}
		if err != nil {
			return nil, err
		}
	}
	fields := strings.Fields(strings.TrimSuffix(string(line), "\\r"))
	out := make([]string, n)
	for i := 0; i < n && i < len(fields); i++ {
		if i == n-1 {
			out[i] = strings.Join(fields[i:], " ")
		} else {
			out[i] = fields[i]
		}
	}
	return out, nil
}""",
    ),
    (
        "exitStatus",
        ("fmt",),
        """type exitStatus int

func (e exitStatus) Error() string {
	return fmt.Sprintf("exit status %d", int(e))
}

func statusError(code int) error {
	if code == 0 {
		return nil
	}
	return exitStatus(code)
}""",
    ),
    (
        "jobGroup",
        ("sync",),
        """type jobGroup struct {
	wg  sync.WaitGroup
	mu  sync.Mutex
	err error
}

func (g *jobGroup) Go(f func() error) {
	g.wg.Add(1)
	go func() {
		defer g.wg.Done()
		if err := f(); err != nil {
			g.mu.Lock()
			if g.err == nil {
				g.err = err
			}
			g.mu.Unlock()
		}
	}()
}

func (g *jobGroup) Wait() error {
	g.wg.Wait()
	g.mu.Lock()
	defer g.mu.Unlock()
	err := g.err
	g.err = nil
	return err
}

var jobs jobGroup""",
    ),
    (
        "runCaptured",
        ("fmt", "io", "os/exec", "strings"),
        """func runCaptured(cmd *exec.Cmd, in io.Reader, out io.Writer) error {
	cmd.Stdin = in
	output, err := cmd.CombinedOutput()
	if _, werr := out.Write(output); werr != nil && err == nil {
		err = werr
	}
	if err != nil {
		return fmt.Errorf("%s: %w", strings.Join(cmd.Args, " "), err)
	}
	return nil
}""",
    ),
]

HELPER_NAMES: frozenset[str] = frozenset(name for name, _, _ in HELPERS)

# Names a helper source declares at package level besides its own name
HELPER_DECLS: frozenset[str] = frozenset({"statusError", "jobs"})


def helper_imports(names: set[str]) -> set[str]:
    """Imports needed by the given helpers."""
    imports: set[str] = set()
    for name, needs, _ in HELPERS:
        if name in names:
            imports.update(needs)
    return imports


def helper_sources(names: set[str]) -> list[str]:
    """Sources of the given helpers in fixed table order."""
    return [source for name, _, source in HELPERS if name in names]
