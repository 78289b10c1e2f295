import sys
from pathlib import Path

from quill.quill_runtime import ScriptRunner, ExecutionResult
from quill.quill_printer import Printer
from quill.quill_serialize import serialize
from quill.quill_graph import render_html

USAGE = """usage: quill_repl.py [-v|--verbose] [--discard] [--graph OUT.html] [FILE]

  FILE            run a Quill script and print its value
  -v, --verbose   dump tokens and AST (YAML) before evaluating
  --discard       forget declarations between REPL inputs
  --graph OUT     write the script's AST graph to OUT (HTML)
"""


# A basic input prompt; tests replace it.
def read_line(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def parse_args(argv):
    """Splits argv into (options, script path or None)."""
    opts = {'verbose': False, 'discard': False, 'graph': None}
    path = None
    args = list(argv)
    while args:
        arg = args.pop(0)
        if arg in ("-v", "--verbose"):
            opts['verbose'] = True
        elif arg == "--discard":
            opts['discard'] = True
        elif arg == "--graph":
            if not args:
                raise SystemExit("--graph expects an output file")
            opts['graph'] = args.pop(0)
        elif arg in ("-h", "--help"):
            print(USAGE)
            raise SystemExit(0)
        elif arg.startswith("-"):
            print(f"Error: unknown option {arg}", file=sys.stderr)
            print(USAGE, file=sys.stderr)
            raise SystemExit(2)
        else:
            path = arg
    return opts, path


def dump_pipeline(runner: ScriptRunner):
    """Prints the tokens and AST of the last compiled input."""
    if runner.last_tokens is not None:
        print("tokens:")
        print(serialize(runner.last_tokens, fmt="yaml"), end="")
    if runner.last_ast is not None:
        try:
            dumped = serialize(runner.last_ast, fmt="yaml")
        except RecursionError:
            print("Error: syntax tree too deep to dump", file=sys.stderr)
            return
        print("ast:")
        print(dumped, end="")


def report(result: ExecutionResult, printer: Printer):
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return
    print(printer.pformat(result.value))


def run_script_file(file_path: str, verbose: bool = False, graph: str = None):
    """Run a Quill script file non-interactively and exit with appropriate status."""
    runner = ScriptRunner()
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = runner.handle_script(source)
    if verbose:
        dump_pipeline(runner)
    if graph and runner.last_ast is not None:
        Path(graph).write_text(render_html(runner.last_ast, title=p.name), encoding="utf-8")
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    print(printer.pformat(result.value))


def main(argv=None):
    """Run a script file when provided, otherwise start the interactive REPL."""
    opts, path = parse_args(sys.argv[1:] if argv is None else argv)
    if path is not None:
        run_script_file(path, verbose=opts['verbose'], graph=opts['graph'])
        return

    print("Quill REPL v0.1")
    if opts['discard']:
        print("Declarations are forgotten after each input.")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(discard=opts['discard'])
    printer = Printer()

    while True:
        try:
            raw = read_line(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = runner.handle_script(line)
            if opts['verbose']:
                dump_pipeline(runner)
            report(result, printer)

        except EOFError:
            print("\nExiting.")
            break


def run():
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    run()
