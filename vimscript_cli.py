import sys

from vimscript.vim_runtime import ScriptRunner, load_config
from vimscript.vim_printer import Printer
from vimscript.vim_errors import VimError


def _print_effects(result):
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))


def _make_runner(config_path=None) -> ScriptRunner:
    if config_path is None:
        return ScriptRunner()
    try:
        return ScriptRunner(load_config(config_path))
    except VimError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)


def run_script_file(file_path: str, config_path=None):
    """Run a script file non-interactively and exit with appropriate status."""
    runner = _make_runner(config_path)
    result = runner.run_file(file_path)
    _print_effects(result)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)


def repl(config_path=None):
    print("vimscript REPL v0.1")
    print("Lines run as script; '=expr' evaluates an expression. Ctrl+D quits.")

    runner = _make_runner(config_path)
    printer = Printer()

    while True:
        try:
            raw = input(">> ")
        except EOFError:
            print("\nExiting.")
            break
        line = raw.strip()
        if not line:
            continue
        if line == "quit":
            break

        if line.startswith("="):
            result = runner.handle_expr(line[1:])
        else:
            result = runner.handle_script(line)

        if result.status == 'error':
            print(result.format_error(), file=sys.stderr)
            continue
        _print_effects(result)
        if result.value is not None:
            print(printer.pformat(result.value))


def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    args = sys.argv[1:]
    config_path = None
    if len(args) >= 2 and args[0] in ("-c", "--config"):
        config_path = args[1]
        args = args[2:]
    if args and not args[0].startswith("-"):
        run_script_file(args[0], config_path)
        return
    repl(config_path)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
